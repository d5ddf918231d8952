"""alterx: pattern-based subdomain wordlist generation."""

from __future__ import annotations

from dataclasses import dataclass

from scanchat.plugins.grammar import FlagKind, FlagSpec, ParserLimits
from scanchat.plugins.spec import ToolSpec
from scanchat.plugins.validators import is_domain, is_payload, is_permutation_pattern


@dataclass(frozen=True)
class WordlistGen:
    domains: tuple[str, ...] = ()
    patterns: tuple[str, ...] = ()
    payloads: tuple[str, ...] = ()
    enrich: bool = False
    limit: int = 0


SPEC = ToolSpec(
    id="alterx",
    title="AlterX",
    homepage="https://github.com/projectdiscovery/alterx",
    summary="Fast and customizable subdomain wordlist generator using DSL.",
    params_type=WordlistGen,
    usage="/alterx -l example.com [flags]",
    examples=("alterx -l api.example.com -enrich",),
    limits=ParserLimits(max_input_length=1000, max_flags=10, max_token_length=100, max_list_items=25),
    target_field="domains",
    missing_target_message="🚨 Error: -l/-list parameter is required.",
    model_agnostic=True,
    results_heading="Generated Subdomains",
    empty_message="🔍 No permutations were generated for {target}.",
    max_report_chars=50000,
    translation_notes=(
        "'-l' is required. Patterns use alterx DSL variables such as {{word}}, {{sub}}, "
        "{{suffix}}, {{number}}."
    ),
    flags=(
        FlagSpec("domains", ("-l", "-list"), FlagKind.STRING_LIST, query_key="list",
                 description="subdomains to use when creating permutations (comma separated)",
                 validator=is_domain, multi=True, group="Input"),
        FlagSpec("patterns", ("-p", "-pattern"), FlagKind.STRING_LIST, query_key="pattern",
                 description="custom permutation patterns input to generate",
                 validator=is_permutation_pattern, multi=True, split_commas=False, max_items=10,
                 group="Input"),
        FlagSpec("payloads", ("-pp", "-payload"), FlagKind.STRING_LIST, query_key="payload",
                 description="overwrite existing payload values (key=value)",
                 validator=is_payload, max_items=10, group="Input"),
        FlagSpec("enrich", ("-en", "-enrich"), FlagKind.BOOL,
                 description="enrich wordlist by extracting words and numbers from input",
                 group="Configuration"),
        FlagSpec("limit", ("-limit",), FlagKind.INT,
                 description="limit the number of results to return (default 0 = all)",
                 minimum=1, maximum=100000, group="Configuration"),
    ),
)
