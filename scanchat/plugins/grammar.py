"""Generic CLI-style command grammar shared by every plugin."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Union

if TYPE_CHECKING:
    from scanchat.plugins.spec import ToolSpec

HELP_TOKENS = frozenset({"-h", "-help", "--help"})
ANALYZE_TOKENS = frozenset({"-ai", "-analyze", "--ai", "--analyze"})

_NEGATIVE_NUMBER_RE = re.compile(r"^-\d+$")


class FlagKind(str, Enum):
    BOOL = "bool"
    INT = "int"
    INT_LIST = "int_list"
    STRING = "string"
    STRING_LIST = "string_list"
    ENUM = "enum"
    ENUM_LIST = "enum_list"

    @property
    def is_list(self) -> bool:
        return self in (FlagKind.INT_LIST, FlagKind.STRING_LIST, FlagKind.ENUM_LIST)


class ParseErrorKind(str, Enum):
    INPUT_TOO_LONG = "input_too_long"
    TOO_MANY_FLAGS = "too_many_flags"
    TOKEN_TOO_LONG = "token_too_long"
    TOO_MANY_ITEMS = "too_many_items"
    UNKNOWN_FLAG = "unknown_flag"
    MISSING_VALUE = "missing_value"
    INVALID_VALUE = "invalid_value"
    MISSING_TARGET = "missing_target"


@dataclass(frozen=True)
class FlagSpec:
    """One entry of a tool's flag table."""

    name: str  # Field on the tool's params dataclass
    aliases: tuple[str, ...]
    kind: FlagKind
    description: str = ""
    query_key: str | None = None
    validator: Callable[[str], bool] | None = None
    max_length: int | None = None
    choices: tuple[str, ...] = ()
    minimum: int | None = None
    maximum: int | None = None
    multi: bool = False  # Consume following tokens until the next flag
    split_commas: bool = True
    max_items: int | None = None
    positional: bool = False
    to_query: Callable[[Any], Any] | None = None
    group: str = "Options"

    @property
    def label(self) -> str:
        return "/".join(self.aliases) if self.aliases else self.name

    @property
    def key(self) -> str:
        return self.query_key or self.name


@dataclass(frozen=True)
class ParserLimits:
    max_input_length: int = 500
    max_flags: int = 30
    max_token_length: int = 100
    max_list_items: int = 100


@dataclass(frozen=True)
class ValidCommand:
    tool: str
    params: Any
    analyze: bool = False


@dataclass(frozen=True)
class InvalidCommand:
    tool: str
    reason: ParseErrorKind
    message: str


@dataclass(frozen=True)
class HelpRequest:
    tool: str
    text: str


ToolCommand = Union[ValidCommand, InvalidCommand, HelpRequest]


class _ParseFailure(Exception):
    def __init__(self, reason: ParseErrorKind, message: str):
        super().__init__(message)
        self.reason = reason
        self.message = message


def is_flag_token(token: str) -> bool:
    return len(token) > 1 and token.startswith("-") and not _NEGATIVE_NUMBER_RE.match(token)


def tokenize(raw: str, tool_id: str) -> list[str]:
    """Split on whitespace and drop a leading ``/tool`` or ``tool`` word."""
    tokens = raw.split()
    if tokens and tokens[0].lstrip("/").lower() == tool_id:
        tokens = tokens[1:]
    return tokens


def parse(spec: "ToolSpec", raw: str) -> ToolCommand:
    """
    Parse ``raw`` with the flag table of ``spec``.

    Pure and deterministic. Fails fast on the first problem with a message that
    names the offending flag or token.
    """
    try:
        return _parse(spec, raw)
    except _ParseFailure as failure:
        return InvalidCommand(tool=spec.id, reason=failure.reason, message=failure.message)


def _parse(spec: "ToolSpec", raw: str) -> ToolCommand:
    limits = spec.limits
    if len(raw) > limits.max_input_length:
        raise _ParseFailure(
            ParseErrorKind.INPUT_TOO_LONG,
            f"🚨 Input exceeds the maximum length of {limits.max_input_length} characters.",
        )

    tokens = tokenize(raw, spec.id)
    if any(token in HELP_TOKENS for token in tokens):
        return HelpRequest(tool=spec.id, text=spec.help_text)

    flag_count = sum(1 for token in tokens if is_flag_token(token))
    if flag_count > limits.max_flags:
        raise _ParseFailure(
            ParseErrorKind.TOO_MANY_FLAGS,
            f"🚨 Too many flags: at most {limits.max_flags} are allowed.",
        )
    for token in tokens:
        if len(token) > limits.max_token_length:
            raise _ParseFailure(ParseErrorKind.TOKEN_TOO_LONG, f"🚨 Parameter value too long: {token[:40]}...")

    values: dict[str, Any] = {}
    analyze = spec.analyze_default
    i = 0
    while i < len(tokens):
        token = tokens[i]

        if not is_flag_token(token):
            positional = spec.positional_flag
            if positional is None or positional.name in values:
                raise _ParseFailure(ParseErrorKind.INVALID_VALUE, f"🚨 Unexpected argument: {token}")
            values[positional.name] = _convert(positional, positional.label, [token], limits, None)
            i += 1
            continue

        if token in ANALYZE_TOKENS:
            analyze = True
            i += 1
            continue

        flag = spec.lookup(token)
        if flag is None:
            raise _ParseFailure(ParseErrorKind.UNKNOWN_FLAG, f"🚨 Invalid or unrecognized flag: {token}")

        if flag.kind is FlagKind.BOOL:
            values[flag.name] = True
            i += 1
            continue

        raw_values: list[str] = []
        j = i + 1
        while j < len(tokens) and not is_flag_token(tokens[j]):
            raw_values.append(tokens[j])
            j += 1
            if not flag.multi:
                break
        if not raw_values:
            raise _ParseFailure(ParseErrorKind.MISSING_VALUE, f"🚨 Missing value for '{token}'.")

        values[flag.name] = _convert(flag, token, raw_values, limits, values.get(flag.name))
        i = j

    target = spec.target_flag
    if target is not None and not values.get(target.name):
        raise _ParseFailure(
            ParseErrorKind.MISSING_TARGET,
            spec.missing_target_message or f"🚨 Error: {target.label} parameter is required.",
        )

    return ValidCommand(tool=spec.id, params=spec.params_type(**values), analyze=analyze)


def _convert(flag: FlagSpec, token: str, raw_values: list[str], limits: ParserLimits, existing: Any) -> Any:
    if not flag.kind.is_list:
        return _convert_one(flag, token, raw_values[0])

    items: list[str] = []
    for raw in raw_values:
        parts = raw.split(",") if flag.split_commas else [raw]
        items.extend(part for part in parts if part)
    if not items:
        raise _ParseFailure(ParseErrorKind.MISSING_VALUE, f"🚨 Missing value for '{token}'.")

    combined = tuple(existing or ()) + tuple(_convert_one(flag, token, item) for item in items)
    max_items = flag.max_items or limits.max_list_items
    if len(combined) > max_items:
        raise _ParseFailure(
            ParseErrorKind.TOO_MANY_ITEMS,
            f"🚨 Too many values for '{token}' (maximum {max_items}).",
        )
    return combined


def _convert_one(flag: FlagSpec, token: str, value: str) -> Any:
    kind = flag.kind
    if kind in (FlagKind.INT, FlagKind.INT_LIST):
        if not (value.isascii() and value.isdigit()):
            raise _ParseFailure(
                ParseErrorKind.INVALID_VALUE,
                f"🚨 Invalid value for '{token}': expected an integer, got {value}.",
            )
        number = int(value)
        if (flag.minimum is not None and number < flag.minimum) or (
            flag.maximum is not None and number > flag.maximum
        ):
            low = flag.minimum if flag.minimum is not None else 0
            high = flag.maximum if flag.maximum is not None else "∞"
            raise _ParseFailure(
                ParseErrorKind.INVALID_VALUE,
                f"🚨 Value for '{token}' must be between {low} and {high}.",
            )
        return number

    if kind in (FlagKind.ENUM, FlagKind.ENUM_LIST):
        if value not in flag.choices:
            raise _ParseFailure(
                ParseErrorKind.INVALID_VALUE,
                f"🚨 Invalid value for '{token}'. Supported values: {', '.join(flag.choices)}.",
            )
        return value

    if flag.max_length is not None and len(value) > flag.max_length:
        raise _ParseFailure(
            ParseErrorKind.INVALID_VALUE,
            f"🚨 Value for '{token}' exceeds {flag.max_length} characters.",
        )
    if flag.validator is not None and not flag.validator(value):
        raise _ParseFailure(ParseErrorKind.INVALID_VALUE, f"🚨 Invalid value for '{token}': {value}")
    return value
