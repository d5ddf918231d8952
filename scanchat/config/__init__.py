"""Configuration module for scanchat."""

from scanchat.config.loader import load_config, get_config_path
from scanchat.config.schema import Config

__all__ = ["Config", "load_config", "get_config_path"]
