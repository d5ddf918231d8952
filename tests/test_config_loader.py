import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from scanchat.config.loader import camel_to_snake, convert_keys, load_config, save_config, snake_to_camel
from scanchat.config.schema import Config
from scanchat.context import RequestContext


def test_missing_file_yields_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "absent.json")

    assert config.models["gpt-4"].token_limit == 12000
    assert config.plugins.max_wait_s == 300
    assert config.api.public.models["hackergpt"].route == "gpt-3.5-turbo-instruct"


def test_save_and_load_use_camel_case(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    config = Config()
    config.plugins.base_url = "http://runner:9000/"
    config.backends["openrouter"].extra_headers = {"X-Title": "scan_chat"}
    save_config(config, path)

    raw = json.loads(path.read_text())
    assert raw["plugins"]["baseUrl"] == "http://runner:9000/"
    assert raw["backends"]["openrouter"]["extraHeaders"] == {"X-Title": "scan_chat"}
    assert "tokenLimit" in raw["models"]["gpt-4"]

    loaded = load_config(path)
    assert loaded.plugins.base_url == "http://runner:9000"
    assert loaded.backends["openrouter"].extra_headers == {"X-Title": "scan_chat"}


def test_legacy_feature_flags_become_tool_toggles(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "featureFlags": {
                    "ENABLE_NAABU_FEATURE": "FALSE",
                    "ENABLE_GAU_FEATURE": "TRUE",
                    "USE_WEB_BROWSING_PLUGIN": "TRUE",
                    "USE_PINECONE": "yes",
                    "UNRELATED": "FALSE",
                },
                "plugins": {"secret": "s3cret"},
            }
        )
    )

    config = load_config(path)
    ctx = RequestContext.from_config(config)

    assert config.plugins.secret == "s3cret"
    assert ctx.tool_enabled("naabu") is False
    assert ctx.tool_enabled("gau") is True
    assert ctx.tool_enabled("katana") is False
    assert Config().plugins.is_enabled("katana") is False
    assert config.search.web.enabled is True
    assert config.search.retrieval.enabled is False


def test_invalid_file_falls_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{not json")

    assert load_config(path).server.port == 18790


def test_unknown_backend_reference_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Config.model_validate({"models": {"custom": {"backend": "nowhere"}}})


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("SCANCHAT_PLUGINS__SECRET", "from-env")
    monkeypatch.setenv("SCANCHAT_SERVER__PORT", "9999")

    config = Config()

    assert config.plugins.secret == "from-env"
    assert config.server.port == 9999


def test_key_case_helpers() -> None:
    assert camel_to_snake("maxWaitS") == "max_wait_s"
    assert snake_to_camel("heartbeat_interval_s") == "heartbeatIntervalS"
    assert convert_keys({"api": {"exposeUpstreamErrors": True}}) == {"api": {"expose_upstream_errors": True}}
