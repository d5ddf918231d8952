"""katana: web crawling and spidering."""

from __future__ import annotations

from dataclasses import dataclass

from scanchat.plugins.grammar import FlagKind, FlagSpec, ParserLimits
from scanchat.plugins.spec import ToolSpec
from scanchat.plugins.validators import is_extension, is_plain_text, is_regex, is_url


@dataclass(frozen=True)
class Crawl:
    urls: tuple[str, ...] = ()
    depth: int = 3
    js_crawl: bool = False
    ignore_query_params: bool = False
    headless: bool = False
    xhr_extraction: bool = False
    crawl_scope: tuple[str, ...] = ()
    crawl_out_scope: tuple[str, ...] = ()
    display_out_scope: bool = False
    match_regex: tuple[str, ...] = ()
    filter_regex: tuple[str, ...] = ()
    extension_match: tuple[str, ...] = ()
    extension_filter: tuple[str, ...] = ()
    match_condition: str = ""
    filter_condition: str = ""
    timeout: int = 10


def _regex_list(name: str, aliases: tuple[str, ...], key: str, description: str, group: str) -> FlagSpec:
    # Regexes may legitimately contain commas, so each token is one pattern.
    return FlagSpec(
        name, aliases, FlagKind.STRING_LIST,
        description=description, query_key=key,
        validator=is_regex, multi=True, split_commas=False, max_items=10, group=group,
    )


SPEC = ToolSpec(
    id="katana",
    title="Katana",
    homepage="https://github.com/projectdiscovery/katana",
    summary="A fast crawler designed to execute JS and DOM rendering headlessly.",
    params_type=Crawl,
    usage="/katana -u https://example.com [flags]",
    examples=("katana -u https://example.com -d 2 -jc",),
    limits=ParserLimits(max_input_length=2000, max_flags=15, max_token_length=100, max_list_items=25),
    target_field="urls",
    missing_target_message="🚨 Error: -u/-list parameter is required.",
    results_heading="Identified Urls",
    failure_markers=(("Katana process exited with code 1",),),
    translation_notes="'-u' is required. Regex flags take one pattern per token.",
    flags=(
        FlagSpec(
            "urls", ("-u", "-list"), FlagKind.STRING_LIST,
            query_key="urls",
            description="target url(s) to crawl",
            validator=is_url, multi=True, group="Input",
        ),
        FlagSpec(
            "depth", ("-d", "-depth"), FlagKind.INT,
            description="maximum depth to crawl (default 3)",
            minimum=1, maximum=10, group="Configuration",
        ),
        FlagSpec("js_crawl", ("-jc", "-js-crawl"), FlagKind.BOOL, query_key="jsCrawl",
                 description="enable endpoint parsing / crawling in javascript file", group="Configuration"),
        FlagSpec("ignore_query_params", ("-iqp", "-ignore-query-params"), FlagKind.BOOL, query_key="ignoreQueryParams",
                 description="ignore crawling same path with different query-param values", group="Configuration"),
        FlagSpec("headless", ("-hl", "-headless"), FlagKind.BOOL,
                 description="enable headless hybrid crawling (experimental)", group="Headless"),
        FlagSpec("xhr_extraction", ("-xhr", "-xhr-extraction"), FlagKind.BOOL, query_key="xhrExtraction",
                 description="extract xhr request url,method in jsonl output", group="Headless"),
        _regex_list("crawl_scope", ("-cs", "-crawl-scope"), "crawlScope", "in scope url regex to be followed by crawler", "Scope"),
        _regex_list("crawl_out_scope", ("-cos", "-crawl-out-scope"), "crawlOutScope", "out of scope url regex to be excluded by crawler", "Scope"),
        FlagSpec("display_out_scope", ("-do", "-display-out-scope"), FlagKind.BOOL, query_key="displayOutScope",
                 description="display external endpoint from scoped crawling", group="Scope"),
        _regex_list("match_regex", ("-mr", "-match-regex"), "matchRegex", "regex or list of regex to match on output url (cli, file)", "Filter"),
        _regex_list("filter_regex", ("-fr", "-filter-regex"), "filterRegex", "regex or list of regex to filter on output url (cli, file)", "Filter"),
        FlagSpec(
            "extension_match", ("-em", "-extension-match"), FlagKind.STRING_LIST,
            query_key="extensionMatch",
            description="match output for given extension (eg, -em php,html,js)",
            validator=is_extension, group="Filter",
        ),
        FlagSpec(
            "extension_filter", ("-ef", "-extension-filter"), FlagKind.STRING_LIST,
            query_key="extensionFilter",
            description="filter output for given extension (eg, -ef png,css)",
            validator=is_extension, group="Filter",
        ),
        FlagSpec("match_condition", ("-mdc", "-match-condition"), FlagKind.STRING, query_key="matchCondition",
                 description="match response with dsl based condition",
                 validator=is_plain_text, max_length=100, group="Filter"),
        FlagSpec("filter_condition", ("-fdc", "-filter-condition"), FlagKind.STRING, query_key="filterCondition",
                 description="filter response with dsl based condition",
                 validator=is_plain_text, max_length=100, group="Filter"),
        FlagSpec(
            "timeout", ("-timeout",), FlagKind.INT,
            description="time to wait for request in seconds (default 10, max 300)",
            minimum=1, maximum=300, group="Optimization",
        ),
    ),
)
