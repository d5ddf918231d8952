"""subfinder: passive subdomain discovery."""

from __future__ import annotations

from dataclasses import dataclass

from scanchat.plugins.grammar import FlagKind, FlagSpec, ParserLimits
from scanchat.plugins.spec import ToolSpec
from scanchat.plugins.validators import is_domain, is_filter_pattern


@dataclass(frozen=True)
class SubdomainScan:
    domain: tuple[str, ...] = ()
    match: tuple[str, ...] = ()
    filter: tuple[str, ...] = ()
    include_sources: bool = False
    timeout: int = 30


ANALYSIS_PROMPT = """Generate a report for the Subfinder scan of "{target}". Assume the scan is
complete and the data below is everything it found.

{report}

1. List the identified subdomains exactly as found.
2. Highlight notable naming patterns or subdomains that may need attention
   (staging, admin, legacy or internal-looking hosts).
3. Recommend next steps and tools for probing the identified subdomains."""


SPEC = ToolSpec(
    id="subfinder",
    title="Subfinder",
    homepage="https://github.com/projectdiscovery/subfinder",
    summary="Discovers valid subdomains for websites using passive online sources.",
    params_type=SubdomainScan,
    usage="/subfinder -d example.com [flags]",
    examples=("subfinder -d example.com", "subfinder -d example.com -m api,dev"),
    limits=ParserLimits(max_input_length=500, max_flags=10, max_token_length=255, max_list_items=10),
    target_field="domain",
    missing_target_message="🚨 Error: -d/-domain parameter is required.",
    model_agnostic=True,
    analyze_default=True,
    results_heading="Identified Subdomains",
    empty_message="🔍 Didn't find any subdomains for {target}.",
    analysis_prompt=ANALYSIS_PROMPT,
    flags=(
        FlagSpec(
            "domain", ("-d", "-domain"), FlagKind.STRING_LIST,
            description="domains to find subdomains for",
            validator=is_domain, multi=True, group="Input",
        ),
        FlagSpec(
            "match", ("-m", "-match"), FlagKind.STRING_LIST,
            description="subdomain or list of subdomains to match (comma separated)",
            validator=is_filter_pattern, group="Filter",
        ),
        FlagSpec(
            "filter", ("-f", "-filter"), FlagKind.STRING_LIST,
            description="subdomain or list of subdomains to filter (comma separated)",
            validator=is_filter_pattern, group="Filter",
        ),
        FlagSpec(
            "include_sources", ("-cs", "-collect-sources"), FlagKind.BOOL,
            query_key="includeSources",
            description="include all sources in the output",
            group="Output",
        ),
        FlagSpec(
            "timeout", ("-timeout",), FlagKind.INT,
            description="seconds to wait before timing out (default 30, max 300)",
            minimum=1, maximum=300, group="Optimization",
        ),
    ),
)
