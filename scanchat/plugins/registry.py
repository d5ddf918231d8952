"""Registry of plugin tool specs, in command recognition priority order."""

from __future__ import annotations

from scanchat.plugins.spec import ToolSpec

TOOLS_COMMAND = "/tools"


class ToolRegistry:
    """
    Ordered mapping of tool id to ToolSpec.

    Registration order is the order in which slash-command recognizers are tried.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        if spec.id in self._tools:
            raise ValueError(f"Tool already registered: {spec.id}")
        self._tools[spec.id] = spec

    def get(self, tool_id: str) -> ToolSpec | None:
        return self._tools.get(tool_id)

    def __contains__(self, tool_id: str) -> bool:
        return tool_id in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self):
        return iter(self._tools.values())

    @property
    def tool_ids(self) -> list[str]:
        return list(self._tools.keys())

    def recognize(self, text: str) -> ToolSpec | None:
        """Return the first tool whose slash-command matches ``text``."""
        if not text.lstrip().startswith("/"):
            return None
        for spec in self._tools.values():
            if spec.recognizes(text):
                return spec
        return None

    def tools_guide(self) -> str:
        lines = ["Tools available:", ""]
        for spec in self._tools.values():
            lines.append(f"+ [{spec.title}]({spec.homepage}): {spec.summary} Use {spec.command} -h for more details.")
            lines.append("")
        lines.append(
            "To use these tools, type the tool's command followed by -h to see specific "
            "instructions and options for each tool."
        )
        return "\n".join(lines)


def is_tools_command(text: str) -> bool:
    return text.strip() == TOOLS_COMMAND


def default_registry() -> ToolRegistry:
    from scanchat.plugins.tools import alterx, gau, httpx, katana, naabu, subfinder

    registry = ToolRegistry()
    for module in (subfinder, naabu, katana, httpx, gau, alterx):
        registry.register(module.SPEC)
    return registry
