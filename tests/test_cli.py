import json
from pathlib import Path

from typer.testing import CliRunner

from scanchat.cli.commands import app

runner = CliRunner()


def _config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "plugins": {"baseUrl": "http://runner:8080", "secret": "s3cret", "tools": {"gau": {"enabled": False}}},
                "api": {"public": {"apiKeys": ["pub-key"]}},
            }
        )
    )
    return path


def test_version() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert "scanchat v" in result.stdout


def test_parse_shows_backend_url(tmp_path: Path) -> None:
    result = runner.invoke(app, ["parse", "/naabu -host example.com -p 80", "--config", str(_config_file(tmp_path))])

    assert result.exit_code == 0
    assert "http://runner:8080/api/chat/plugins/naabu?host=example.com&port=80" in result.stdout


def test_parse_reports_invalid_command(tmp_path: Path) -> None:
    config = str(_config_file(tmp_path))

    invalid = runner.invoke(app, ["parse", "/naabu -bogus", "--config", config])
    not_a_tool = runner.invoke(app, ["parse", "hello", "--config", config])

    assert invalid.exit_code == 1
    assert "Invalid or unrecognized flag: -bogus" in invalid.stdout
    assert not_a_tool.exit_code == 1


def test_config_show_masks_secrets(tmp_path: Path) -> None:
    result = runner.invoke(app, ["config-show", "--config", str(_config_file(tmp_path))])

    assert result.exit_code == 0
    assert "s3cret" not in result.stdout
    assert "pub-key" not in result.stdout
    assert "http://runner:8080" in result.stdout


def test_tools_lists_registry(tmp_path: Path) -> None:
    result = runner.invoke(app, ["tools", "--config", str(_config_file(tmp_path))])

    assert result.exit_code == 0
    for command in ("/subfinder", "/naabu", "/katana", "/httpx", "/gau", "/alterx"):
        assert command in result.stdout
