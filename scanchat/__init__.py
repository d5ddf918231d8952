"""scanchat - chat pipeline for LLM completions and scanning plugins."""

__version__ = "0.1.0"
__logo__ = "🛰️"
