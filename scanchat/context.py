"""Per-request context threaded through every pipeline component."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from scanchat.config.schema import (
    BackendConfig,
    Config,
    ModelConfig,
    PromptsConfig,
    WindowConfig,
)


@dataclass(frozen=True)
class RequestContext:
    """
    Immutable snapshot of everything the core needs for one chat turn.

    Built once per inbound request from Config. Core components read settings
    and credentials from here, never from the environment.
    """

    models: dict[str, ModelConfig]
    backends: dict[str, BackendConfig]
    prompts: PromptsConfig
    window: WindowConfig
    plugin_base_url: str
    plugin_secret: str
    enabled_tools: frozenset[str] = frozenset()
    heartbeat_interval_s: float = 15.0
    max_plugin_wait_s: float = 300.0
    auth_token: str = ""
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @classmethod
    def from_config(cls, config: Config, *, auth_token: str = "", request_id: str | None = None) -> "RequestContext":
        plugins = config.plugins
        enabled = frozenset(name for name, toggle in plugins.tools.items() if toggle.enabled)
        kwargs = {}
        if request_id:
            kwargs["request_id"] = request_id
        return cls(
            models=dict(config.models),
            backends=dict(config.backends),
            prompts=config.prompts,
            window=config.window,
            plugin_base_url=plugins.base_url,
            plugin_secret=plugins.secret,
            enabled_tools=enabled,
            heartbeat_interval_s=plugins.heartbeat_interval_s,
            max_plugin_wait_s=plugins.max_wait_s,
            auth_token=auth_token,
            **kwargs,
        )

    def tool_enabled(self, tool_id: str) -> bool:
        return tool_id in self.enabled_tools

    def model_runs_plugins(self, model: str) -> bool:
        entry = self.models.get(model)
        return bool(entry and entry.plugins)

    def plugin_model_names(self) -> list[str]:
        return [name for name, entry in self.models.items() if entry.plugins]
