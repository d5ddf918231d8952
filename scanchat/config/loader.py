"""Configuration loading utilities for scanchat."""

import json
import re
from pathlib import Path
from typing import Any

from loguru import logger

from scanchat.config.schema import Config

# Keys whose nested mapping keys are user data (header names) and must not be renamed.
_VERBATIM_KEYS = {"extraHeaders", "extra_headers"}

_LEGACY_FLAG_RE = re.compile(r"^ENABLE_([A-Z0-9]+)_FEATURE$")
_LEGACY_SEARCH_FLAGS = {"USE_WEB_BROWSING_PLUGIN": "web", "USE_PINECONE": "retrieval"}


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".scanchat" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file or create default.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded configuration object.
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path) as f:
                data = json.load(f)
            data = _migrate_config(data)
            return Config.model_validate(convert_keys(data))
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            logger.warning("Using default configuration.")

    return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    Save configuration to file.

    Args:
        config: Configuration to save.
        config_path: Optional path to save to. Uses default if not provided.
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = convert_to_camel(config.model_dump())

    with open(path, "w") as f:
        json.dump(data, f, indent=2)


def _migrate_config(data: Any) -> dict:
    """
    Fold legacy ``featureFlags`` into plugins.tools and search.

    ``ENABLE_<TOOL>_FEATURE`` toggles a plugin; ``USE_WEB_BROWSING_PLUGIN`` and
    ``USE_PINECONE`` toggle the web and retrieval context sources. Only the
    value ``TRUE`` enables anything.
    """
    if not isinstance(data, dict):
        return {}

    flags = data.pop("featureFlags", None)
    if not isinstance(flags, dict):
        return data

    plugins = data.setdefault("plugins", {})
    if not isinstance(plugins, dict):
        plugins = {}
        data["plugins"] = plugins
    tools = plugins.setdefault("tools", {})
    for name, raw in flags.items():
        enabled = str(raw).strip().upper() == "TRUE"
        source = _LEGACY_SEARCH_FLAGS.get(str(name))
        if source is not None:
            search = data.setdefault("search", {})
            if isinstance(search, dict):
                search.setdefault(source, {}).setdefault("enabled", enabled)
            continue
        match = _LEGACY_FLAG_RE.match(str(name))
        if not match:
            continue
        tools.setdefault(match.group(1).lower(), {"enabled": enabled})
    return data


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case for Pydantic."""
    if isinstance(data, dict):
        return {
            camel_to_snake(k): (v if k in _VERBATIM_KEYS else convert_keys(v))
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """Convert snake_case keys to camelCase."""
    if isinstance(data, dict):
        return {
            snake_to_camel(k): (v if k in _VERBATIM_KEYS else convert_to_camel(v))
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)


def snake_to_camel(name: str) -> str:
    """Convert snake_case to camelCase."""
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
