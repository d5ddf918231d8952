"""Tool specification: flag table, backend query mapping and report layout."""

from __future__ import annotations

import dataclasses
import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from urllib.parse import urlencode

from scanchat.plugins import grammar
from scanchat.plugins.grammar import FlagSpec, ParserLimits, ToolCommand

# Report timestamps are rendered in a fixed UTC-5 zone.
REPORT_TZ = timezone(timedelta(hours=-5))
REPORT_TZ_LABEL = "UTC-5"

GENERIC_FAILURE_MARKERS: tuple[tuple[str, ...], ...] = (("process exited with code 1",),)

DEFAULT_ANALYSIS_PROMPT = """You are given the results of a {title} scan against "{target}".

{report}

Summarize the findings for a security professional: highlight anything that
looks exposed or unusual, group related results and suggest concrete next
steps. Do not invent results that are not in the data above."""


def split_lines(output: str) -> list[str]:
    return [line.strip() for line in output.splitlines() if line.strip()]


def json_field_lines(key: str) -> Callable[[str], list[str]]:
    """Extract ``key`` from JSON-lines output, keeping non-JSON lines verbatim."""

    def _extract(output: str) -> list[str]:
        results: list[str] = []
        for line in split_lines(output):
            try:
                item = json.loads(line)
            except json.JSONDecodeError:
                results.append(line)
                continue
            if isinstance(item, dict) and item.get(key):
                results.append(str(item[key]))
        return results

    return _extract


def format_scan_time(when: datetime) -> str:
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when.astimezone(REPORT_TZ).strftime("%m/%d/%Y, %I:%M:%S %p")


@dataclass(frozen=True)
class ToolSpec:
    """Everything the pipeline needs to parse, run and report one plugin."""

    id: str
    title: str
    homepage: str
    summary: str
    params_type: type
    flags: tuple[FlagSpec, ...]
    limits: ParserLimits = field(default_factory=ParserLimits)
    target_field: str | None = None
    missing_target_message: str | None = None
    usage: str = ""
    examples: tuple[str, ...] = ()
    model_agnostic: bool = False
    analyze_default: bool = False
    results_heading: str = "Results"
    empty_message: str = "🔍 Didn't find anything for {target}."
    max_report_chars: int | None = None
    failure_markers: tuple[tuple[str, ...], ...] = ()
    extract_results: Callable[[str], list[str]] = split_lines
    analysis_prompt: str = DEFAULT_ANALYSIS_PROMPT
    translation_notes: str = ""

    @property
    def command(self) -> str:
        return f"/{self.id}"

    @property
    def positional_flag(self) -> FlagSpec | None:
        for flag in self.flags:
            if flag.positional:
                return flag
        return None

    @property
    def target_flag(self) -> FlagSpec | None:
        if self.target_field is None:
            return None
        for flag in self.flags:
            if flag.name == self.target_field:
                return flag
        return None

    def lookup(self, token: str) -> FlagSpec | None:
        # Tools accept both "-flag" and "--flag" spellings.
        bare = token.lstrip("-")
        for flag in self.flags:
            for alias in flag.aliases:
                if alias.lstrip("-") == bare:
                    return flag
        return None

    def recognizes(self, text: str) -> bool:
        return bool(re.match(rf"^/{re.escape(self.id)}(?:\s+\S+)*\s*$", text.strip()))

    def parse(self, raw: str) -> ToolCommand:
        return grammar.parse(self, raw)

    def defaults(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in dataclasses.fields(self.params_type):
            if f.default is not dataclasses.MISSING:
                out[f.name] = f.default
            elif f.default_factory is not dataclasses.MISSING:
                out[f.name] = f.default_factory()
        return out

    def build_query(self, params: Any) -> list[tuple[str, str]]:
        """Query parameters for the plugin backend; values left at their default are omitted."""
        defaults = self.defaults()
        pairs: list[tuple[str, str]] = []
        for flag in self.flags:
            value = getattr(params, flag.name)
            if value == defaults.get(flag.name):
                continue
            if flag.to_query is not None:
                value = flag.to_query(value)
            if isinstance(value, bool):
                pairs.append((flag.key, "true"))
            elif isinstance(value, tuple):
                pairs.extend((flag.key, str(item)) for item in value)
            else:
                pairs.append((flag.key, str(value)))
        return pairs

    def build_url(self, base_url: str, params: Any) -> str:
        query = urlencode(self.build_query(params))
        url = f"{base_url.rstrip('/')}/api/chat/plugins/{self.id}"
        return f"{url}?{query}" if query else url

    def target_label(self, params: Any) -> str:
        if self.target_field is None:
            return ""
        value = getattr(params, self.target_field)
        if isinstance(value, tuple):
            return ", ".join(str(v) for v in value)
        return str(value)

    def is_failure(self, output: str) -> bool:
        lowered = output.lower()
        for group in GENERIC_FAILURE_MARKERS + self.failure_markers:
            if all(marker.lower() in lowered for marker in group):
                return True
        return False

    def format_report(self, params: Any, results: list[str], when: datetime) -> str:
        body = "\n".join(results)
        if self.max_report_chars is not None and len(body) > self.max_report_chars:
            body = body[: self.max_report_chars]
        return (
            f"## [{self.title}]({self.homepage}) Scan Results\n"
            f'**Target**: "{self.target_label(params)}"\n\n'
            f"**Scan Date and Time**: {format_scan_time(when)} ({REPORT_TZ_LABEL}) \n\n"
            f"### {self.results_heading}:\n"
            f"```\n{body}\n```\n"
        )

    def render_analysis_prompt(self, params: Any, report: str) -> str:
        return self.analysis_prompt.format(title=self.title, target=self.target_label(params), report=report)

    @property
    def help_text(self) -> str:
        lines = [f"[{self.title}]({self.homepage}) {self.summary}", ""]
        if self.usage:
            lines += ["Usage:", f"   {self.usage}", ""]
        lines.append("Flags:")
        groups: dict[str, list[FlagSpec]] = {}
        for flag in self.flags:
            groups.setdefault(flag.group, []).append(flag)
        for group, flags in groups.items():
            lines.append(f"{group.upper()}:")
            for flag in flags:
                lines.append(f"   {flag.label:<32} {flag.description}")
        lines.append("ANALYSIS:")
        lines.append(f"   {'-ai/-analyze':<32} ask the assistant to summarize the results")
        return "```\n" + "\n".join(lines) + "\n```"

    def translation_prompt(self, query: str) -> str:
        """Prompt asking the model to turn a natural-language request into a command line."""
        flag_lines = "\n".join(f"  - {flag.label}: {flag.description}" for flag in self.flags)
        example = self.examples[0] if self.examples else f"{self.id} [flags]"
        return (
            f'Query: "{query}"\n\n'
            f"Based on this query, generate a command for the '{self.id}' tool. {self.summary} "
            "Use only the flags listed below and include '-help' if a help guide or the full "
            "list of flags is requested.\n\n"
            "ALWAYS USE THIS FORMAT:\n"
            "```json\n"
            f'{{ "command": "{self.id} [flags]" }}\n'
            "```\n"
            "Replace '[flags]' with the actual flags and values and make sure the command is "
            "valid JSON (escape regex patterns properly).\n\n"
            f"Available flags:\n{flag_lines}\n"
            f"{self.translation_notes}\n"
            "Example:\n"
            "```json\n"
            f'{{ "command": "{example}" }}\n'
            "```\n\n"
            "Response:"
        )
