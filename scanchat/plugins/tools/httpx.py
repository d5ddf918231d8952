"""httpx: HTTP probing and response analysis."""

from __future__ import annotations

import re
from dataclasses import dataclass

from scanchat.plugins.grammar import FlagKind, FlagSpec, ParserLimits
from scanchat.plugins.spec import ToolSpec
from scanchat.plugins.validators import is_hash, is_regex, is_url

MAX_REGEX_LENGTH = 500
MAX_BODY_PREVIEW = 1000
HASH_TYPES = ("md5", "mmh3", "simhash", "sha1", "sha256", "sha512")
EXTRACT_PRESETS = ("url", "ipv4", "mail")
STRIP_FORMATS = ("html", "xml")

_SIMPLE_STRING_RE = re.compile(r"^[a-zA-Z0-9,._<>=-]+$")


def _is_simple_string(value: str) -> bool:
    return bool(_SIMPLE_STRING_RE.match(value))


@dataclass(frozen=True)
class HttpProbe:
    target: tuple[str, ...] = ()
    status_code: bool = False
    content_length: bool = False
    content_type: bool = False
    location: bool = False
    favicon: bool = False
    hash: str = ""
    jarm: bool = False
    response_time: bool = False
    line_count: bool = False
    word_count: bool = False
    title: bool = False
    body_preview: int = 0
    web_server: bool = False
    tech_detect: bool = False
    method: bool = False
    websocket: bool = False
    ip: bool = False
    cname: bool = False
    asn: bool = False
    cdn: bool = False
    probe: bool = False
    match_code: tuple[int, ...] = ()
    match_length: tuple[int, ...] = ()
    match_line_count: tuple[int, ...] = ()
    match_word_count: tuple[int, ...] = ()
    match_favicon: tuple[str, ...] = ()
    match_string: str = ""
    match_regex: str = ""
    match_cdn: tuple[str, ...] = ()
    match_response_time: str = ""
    match_condition: str = ""
    extract_regex: tuple[str, ...] = ()
    extract_preset: tuple[str, ...] = ()
    filter_code: tuple[int, ...] = ()
    filter_error_page: bool = False
    filter_length: tuple[int, ...] = ()
    filter_line_count: tuple[int, ...] = ()
    filter_word_count: tuple[int, ...] = ()
    filter_favicon: tuple[str, ...] = ()
    filter_string: str = ""
    filter_regex: str = ""
    filter_cdn: tuple[str, ...] = ()
    filter_response_time: str = ""
    filter_condition: str = ""
    strip: str = ""
    json: bool = False
    include_response_header: bool = False
    include_response: bool = False
    include_response_base64: bool = False
    include_chain: bool = False
    timeout: int = 15


def _probe(name: str, aliases: tuple[str, ...], description: str, group: str = "Probes") -> FlagSpec:
    return FlagSpec(name, aliases, FlagKind.BOOL, description=description, group=group)


def _int_list(name: str, aliases: tuple[str, ...], description: str, group: str) -> FlagSpec:
    return FlagSpec(name, aliases, FlagKind.INT_LIST, description=description, max_items=50, group=group)


def _text(name: str, aliases: tuple[str, ...], description: str, group: str) -> FlagSpec:
    return FlagSpec(name, aliases, FlagKind.STRING, description=description,
                    validator=_is_simple_string, max_length=200, group=group)


def _regex(name: str, aliases: tuple[str, ...], description: str, group: str) -> FlagSpec:
    return FlagSpec(name, aliases, FlagKind.STRING, description=description,
                    validator=is_regex, max_length=MAX_REGEX_LENGTH, group=group)


def _hashes(name: str, aliases: tuple[str, ...], description: str, group: str) -> FlagSpec:
    return FlagSpec(name, aliases, FlagKind.STRING_LIST, description=description,
                    validator=is_hash, max_items=20, group=group)


def _cdn_list(name: str, aliases: tuple[str, ...], description: str, group: str) -> FlagSpec:
    return FlagSpec(name, aliases, FlagKind.STRING_LIST, description=description,
                    validator=_is_simple_string, max_items=20, group=group)


SPEC = ToolSpec(
    id="httpx",
    title="httpx",
    homepage="https://github.com/projectdiscovery/httpx",
    summary="A fast and multi-purpose HTTP toolkit for running multiple probes.",
    params_type=HttpProbe,
    usage="/httpx -u example.com [flags]",
    examples=("httpx -u host1.com,host2.com -sc -title",),
    limits=ParserLimits(max_input_length=4000, max_flags=40, max_token_length=2000, max_list_items=100),
    target_field="target",
    missing_target_message="🚨 Error: -u/-target parameter is required.",
    results_heading="Results",
    failure_markers=(("Error executing httpx command", "Error reading output file"),),
    translation_notes=(
        "'-u' is required. Output flags such as '-irh' only apply together with '-json'."
    ),
    flags=(
        FlagSpec(
            "target", ("-u", "-target"), FlagKind.STRING_LIST,
            description="input target host(s) to probe",
            validator=is_url, multi=True, group="Input",
        ),
        _probe("status_code", ("-sc", "-status-code"), "display response status-code"),
        _probe("content_length", ("-cl", "-content-length"), "display response content-length"),
        _probe("content_type", ("-ct", "-content-type"), "display response content-type"),
        _probe("location", ("-location",), "display response redirect location"),
        _probe("favicon", ("-favicon",), "display mmh3 hash for '/favicon.ico' file"),
        FlagSpec("hash", ("-hash",), FlagKind.ENUM, description="display response body hash",
                 choices=HASH_TYPES, group="Probes"),
        _probe("jarm", ("-jarm",), "display jarm fingerprint hash"),
        _probe("response_time", ("-rt", "-response-time"), "display response time"),
        _probe("line_count", ("-lc", "-line-count"), "display response body line count"),
        _probe("word_count", ("-wc", "-word-count"), "display response body word count"),
        _probe("title", ("-title",), "display page title"),
        FlagSpec("body_preview", ("-bp", "-body-preview"), FlagKind.INT,
                 description="display first N characters of response body",
                 minimum=1, maximum=MAX_BODY_PREVIEW, group="Probes"),
        _probe("web_server", ("-server", "-web-server"), "display server name"),
        _probe("tech_detect", ("-td", "-tech-detect"), "display technology in use based on wappalyzer dataset"),
        _probe("method", ("-method",), "display http request method"),
        _probe("websocket", ("-websocket",), "display server using websocket"),
        _probe("ip", ("-ip",), "display host ip"),
        _probe("cname", ("-cname",), "display host cname"),
        _probe("asn", ("-asn",), "display host asn information"),
        _probe("cdn", ("-cdn",), "display cdn/waf in use"),
        _probe("probe", ("-probe",), "display probe status"),
        _int_list("match_code", ("-mc", "-match-code"), "match response with specified status code", "Matchers"),
        _int_list("match_length", ("-ml", "-match-length"), "match response with specified content length", "Matchers"),
        _int_list("match_line_count", ("-mlc", "-match-line-count"), "match response body with specified line count", "Matchers"),
        _int_list("match_word_count", ("-mwc", "-match-word-count"), "match response body with specified word count", "Matchers"),
        _hashes("match_favicon", ("-mfc", "-match-favicon"), "match response with specified favicon hash", "Matchers"),
        _text("match_string", ("-ms", "-match-string"), "match response with specified string", "Matchers"),
        _regex("match_regex", ("-mr", "-match-regex"), "match response with specified regex", "Matchers"),
        _cdn_list("match_cdn", ("-mcdn", "-match-cdn"), "match host with specified cdn provider", "Matchers"),
        _text("match_response_time", ("-mrt", "-match-response-time"), "match response with specified response time in seconds", "Matchers"),
        _text("match_condition", ("-mdc", "-match-condition"), "match response with dsl expression condition", "Matchers"),
        FlagSpec("extract_regex", ("-er", "-extract-regex"), FlagKind.STRING_LIST,
                 description="display response content with matched regex",
                 validator=is_regex, split_commas=False, max_length=MAX_REGEX_LENGTH, max_items=10,
                 group="Extractor"),
        FlagSpec("extract_preset", ("-ep", "-extract-preset"), FlagKind.ENUM_LIST,
                 description="display response content matched by a pre-defined regex (url,ipv4,mail)",
                 choices=EXTRACT_PRESETS, group="Extractor"),
        _int_list("filter_code", ("-fc", "-filter-code"), "filter response with specified status code", "Filters"),
        _probe("filter_error_page", ("-fep", "-filter-error-page"), "filter response with ML based error page detection", "Filters"),
        _int_list("filter_length", ("-fl", "-filter-length"), "filter response with specified content length", "Filters"),
        _int_list("filter_line_count", ("-flc", "-filter-line-count"), "filter response body with specified line count", "Filters"),
        _int_list("filter_word_count", ("-fwc", "-filter-word-count"), "filter response body with specified word count", "Filters"),
        _hashes("filter_favicon", ("-ffc", "-filter-favicon"), "filter response with specified favicon hash", "Filters"),
        _text("filter_string", ("-fs", "-filter-string"), "filter response with specified string", "Filters"),
        _regex("filter_regex", ("-fe", "-filter-regex"), "filter response with specified regex", "Filters"),
        _cdn_list("filter_cdn", ("-fcdn", "-filter-cdn"), "filter host with specified cdn provider", "Filters"),
        _text("filter_response_time", ("-frt", "-filter-response-time"), "filter response with specified response time in seconds", "Filters"),
        _text("filter_condition", ("-fdc", "-filter-condition"), "filter response with dsl expression condition", "Filters"),
        FlagSpec("strip", ("-strip",), FlagKind.ENUM, description="strips all tags in response (html,xml)",
                 choices=STRIP_FORMATS, group="Filters"),
        _probe("json", ("-j", "-json"), "write output in JSONL(ines) format", "Output"),
        _probe("include_response_header", ("-irh", "-include-response-header"), "include http response headers in JSON output", "Output"),
        _probe("include_response", ("-irr", "-include-response"), "include http request/response in JSON output", "Output"),
        _probe("include_response_base64", ("-irrb", "-include-response-base64"), "include base64 encoded request/response in JSON output", "Output"),
        _probe("include_chain", ("-include-chain",), "include redirect http chain in JSON output", "Output"),
        FlagSpec("timeout", ("-timeout",), FlagKind.INT, description="timeout in seconds (default 15)",
                 minimum=1, maximum=300, group="Optimizations"),
    ),
)
