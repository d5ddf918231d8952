"""gau: fetch known URLs from public archives."""

from __future__ import annotations

import re
from dataclasses import dataclass

from scanchat.plugins.grammar import FlagKind, FlagSpec, ParserLimits
from scanchat.plugins.spec import ToolSpec, json_field_lines
from scanchat.plugins.validators import is_domain_or_url, is_extension, is_yyyymm

PROVIDERS = ("wayback", "commoncrawl", "otx", "urlscan")
MAX_REPORT_CHARS = 50000

_MIME_RE = re.compile(r"^[\w.+-]+/[\w.+-]+$")


def _is_mime_type(value: str) -> bool:
    return bool(_MIME_RE.match(value))


@dataclass(frozen=True)
class UrlHarvest:
    target: str = ""
    blacklist: tuple[str, ...] = ()
    filter_codes: tuple[int, ...] = ()
    from_date: str = ""
    filter_types: tuple[str, ...] = ()
    filter_params: bool = False
    match_codes: tuple[int, ...] = ()
    match_types: tuple[str, ...] = ()
    providers: tuple[str, ...] = ()
    include_subdomains: bool = False
    to_date: str = ""


SPEC = ToolSpec(
    id="gau",
    title="gau",
    homepage="https://github.com/lc/gau",
    summary=(
        "Fetches known URLs from AlienVault's Open Threat Exchange, the Wayback Machine, "
        "Common Crawl, and URLScan for any given domain."
    ),
    params_type=UrlHarvest,
    usage="/gau example.com [flags]",
    examples=("gau example.com --subs --mc 200",),
    limits=ParserLimits(max_input_length=2000, max_flags=15, max_token_length=100, max_list_items=50),
    target_field="target",
    missing_target_message="🚨 No target domain/URL provided",
    results_heading="Identified Urls",
    empty_message="🔍 Didn't find any URLs for {target}.",
    max_report_chars=MAX_REPORT_CHARS,
    extract_results=json_field_lines("url"),
    translation_notes="The target domain or URL is a bare positional argument; gau flags use '--'.",
    flags=(
        FlagSpec("target", (), FlagKind.STRING, description="target domain or URL (positional)",
                 validator=is_domain_or_url, positional=True, group="Input"),
        FlagSpec("blacklist", ("--blacklist",), FlagKind.STRING_LIST,
                 description="list of extensions to skip (eg. --blacklist png,jpg)",
                 validator=is_extension, group="Filter"),
        FlagSpec("filter_codes", ("--fc",), FlagKind.INT_LIST, query_key="fc",
                 description="list of status codes to filter", minimum=100, maximum=599, group="Filter"),
        FlagSpec("from_date", ("--from",), FlagKind.STRING, query_key="from",
                 description="fetch urls from date (format: YYYYMM)", validator=is_yyyymm, group="Filter"),
        FlagSpec("filter_types", ("--ft",), FlagKind.STRING_LIST, query_key="ft",
                 description="list of mime-types to filter", validator=_is_mime_type, group="Filter"),
        FlagSpec("filter_params", ("--fp",), FlagKind.BOOL, query_key="fp",
                 description="remove different parameters of the same endpoint", group="Filter"),
        FlagSpec("match_codes", ("--mc",), FlagKind.INT_LIST, query_key="mc",
                 description="list of status codes to match", minimum=100, maximum=599, group="Filter"),
        FlagSpec("match_types", ("--mt",), FlagKind.STRING_LIST, query_key="mt",
                 description="list of mime-types to match", validator=_is_mime_type, group="Filter"),
        FlagSpec("providers", ("--providers",), FlagKind.ENUM_LIST,
                 description="list of providers to use (wayback,commoncrawl,otx,urlscan)",
                 choices=PROVIDERS, group="Configuration"),
        FlagSpec("include_subdomains", ("--subs",), FlagKind.BOOL, query_key="subs",
                 description="include subdomains of target domain", group="Configuration"),
        FlagSpec("to_date", ("--to",), FlagKind.STRING, query_key="to",
                 description="fetch urls to date (format: YYYYMM)", validator=is_yyyymm, group="Filter"),
    ),
)
