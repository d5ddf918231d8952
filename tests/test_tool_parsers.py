import time
from datetime import datetime, timezone

from scanchat.plugins.grammar import HelpRequest, InvalidCommand, ParseErrorKind, ValidCommand, is_flag_token
from scanchat.plugins.registry import default_registry
from scanchat.plugins.spec import json_field_lines
from scanchat.plugins.validators import is_domain_or_url
from scanchat.plugins.tools import alterx, gau, naabu, subfinder


def test_subfinder_collects_multiple_domains_and_comma_lists() -> None:
    result = subfinder.SPEC.parse("/subfinder -d example.com example.org -m api,dev -timeout 60")

    assert isinstance(result, ValidCommand)
    assert result.params.domain == ("example.com", "example.org")
    assert result.params.match == ("api", "dev")
    assert result.params.timeout == 60
    assert result.analyze is True


def test_naabu_query_omits_defaults_and_scales_timeout() -> None:
    plain = naabu.SPEC.parse("/naabu -host example.com")
    tuned = naabu.SPEC.parse("/naabu -host example.com -p 80,443 -timeout 20 -Pn")

    assert isinstance(plain, ValidCommand)
    assert isinstance(tuned, ValidCommand)
    assert plain.analyze is False
    assert naabu.SPEC.build_query(plain.params) == [("host", "example.com")]
    assert naabu.SPEC.build_query(tuned.params) == [
        ("host", "example.com"),
        ("port", "80,443"),
        ("skipHostDiscovery", "true"),
        ("timeout", "20000"),
    ]
    assert (
        naabu.SPEC.build_url("http://runner:8080/", tuned.params)
        == "http://runner:8080/api/chat/plugins/naabu?host=example.com&port=80%2C443&skipHostDiscovery=true&timeout=20000"
    )


def test_distinct_commands_map_to_distinct_urls() -> None:
    first = naabu.SPEC.parse("/naabu -host example.com -p 80")
    second = naabu.SPEC.parse("/naabu -host example.com -p 8080")

    assert naabu.SPEC.build_url("http://runner", first.params) != naabu.SPEC.build_url(
        "http://runner", second.params
    )


def test_unknown_flag_is_named_in_error() -> None:
    result = naabu.SPEC.parse("/naabu -host example.com -bogus")

    assert isinstance(result, InvalidCommand)
    assert result.reason is ParseErrorKind.UNKNOWN_FLAG
    assert result.message == "🚨 Invalid or unrecognized flag: -bogus"


def test_missing_value_and_missing_target() -> None:
    missing_value = naabu.SPEC.parse("/naabu -host")
    missing_target = naabu.SPEC.parse("/naabu -p 80")

    assert isinstance(missing_value, InvalidCommand)
    assert missing_value.message == "🚨 Missing value for '-host'."
    assert isinstance(missing_target, InvalidCommand)
    assert missing_target.reason is ParseErrorKind.MISSING_TARGET
    assert missing_target.message == "🚨 Error: -host parameter is required."


def test_numeric_bounds_are_enforced() -> None:
    too_high = naabu.SPEC.parse("/naabu -host example.com -timeout 91")
    not_a_number = naabu.SPEC.parse("/naabu -host example.com -timeout soon")

    assert isinstance(too_high, InvalidCommand)
    assert "between 1 and 90" in too_high.message
    assert isinstance(not_a_number, InvalidCommand)
    assert not_a_number.reason is ParseErrorKind.INVALID_VALUE


def test_negative_number_is_a_value_not_a_flag() -> None:
    assert is_flag_token("-limit") is True
    assert is_flag_token("-5") is False

    result = alterx.SPEC.parse("/alterx -l example.com -limit -5")

    assert isinstance(result, InvalidCommand)
    assert result.reason is ParseErrorKind.INVALID_VALUE
    assert "expected an integer" in result.message


def test_input_length_is_checked_before_anything_else() -> None:
    raw = "/naabu -host " + "a" * 600 + " -h"

    result = naabu.SPEC.parse(raw)

    assert isinstance(result, InvalidCommand)
    assert result.message == "🚨 Input exceeds the maximum length of 500 characters."


def test_too_many_flags() -> None:
    raw = "/subfinder -d example.com " + " ".join(["-cs"] * 11)

    result = subfinder.SPEC.parse(raw)

    assert isinstance(result, InvalidCommand)
    assert result.reason is ParseErrorKind.TOO_MANY_FLAGS


def test_help_flag_returns_generated_guide() -> None:
    result = gau.SPEC.parse("/gau --help")

    assert isinstance(result, HelpRequest)
    assert result.text.startswith("```")
    assert "--subs" in result.text
    assert "-ai/-analyze" in result.text


def test_gau_positional_target_and_repeated_list_values() -> None:
    result = gau.SPEC.parse("/gau example.com --subs --mc 200,301 --providers wayback,otx")

    assert isinstance(result, ValidCommand)
    assert result.params.target == "example.com"
    assert result.params.match_codes == (200, 301)
    assert gau.SPEC.build_query(result.params) == [
        ("target", "example.com"),
        ("mc", "200"),
        ("mc", "301"),
        ("providers", "wayback"),
        ("providers", "otx"),
        ("subs", "true"),
    ]


def test_gau_rejects_missing_and_extra_positionals() -> None:
    missing = gau.SPEC.parse("/gau --subs")
    extra = gau.SPEC.parse("/gau example.com other.com")
    bad_provider = gau.SPEC.parse("/gau example.com --providers archive")

    assert isinstance(missing, InvalidCommand)
    assert missing.message == "🚨 No target domain/URL provided"
    assert isinstance(extra, InvalidCommand)
    assert extra.message == "🚨 Unexpected argument: other.com"
    assert isinstance(bad_provider, InvalidCommand)
    assert "Supported values: wayback, commoncrawl, otx, urlscan" in bad_provider.message


def test_alterx_patterns_keep_commas_and_analyze_flag() -> None:
    result = alterx.SPEC.parse("/alterx -l api.example.com -p {{sub}}-{{word}}.{{suffix}} -enrich -ai")

    assert isinstance(result, ValidCommand)
    assert result.params.domains == ("api.example.com",)
    assert result.params.patterns == ("{{sub}}-{{word}}.{{suffix}}",)
    assert result.params.enrich is True
    assert result.analyze is True


def test_registry_recognizes_commands_in_order() -> None:
    registry = default_registry()

    assert registry.tool_ids == ["subfinder", "naabu", "katana", "httpx", "gau", "alterx"]
    assert registry.recognize("/naabu -host example.com") is naabu.SPEC
    assert registry.recognize("/naabu") is naabu.SPEC
    assert registry.recognize("/naabux -host example.com") is None
    assert registry.recognize("naabu -host example.com") is None
    assert "gau" in registry
    assert registry.tools_guide().startswith("Tools available:")


def test_report_layout_uses_fixed_offset_timestamp() -> None:
    params = naabu.SPEC.parse("/naabu -host example.com").params
    when = datetime(2024, 1, 15, 17, 30, 0, tzinfo=timezone.utc)

    report = naabu.SPEC.format_report(params, ["80", "443"], when)

    assert report == (
        "## [Naabu](https://github.com/projectdiscovery/naabu) Scan Results\n"
        '**Target**: "example.com"\n\n'
        "**Scan Date and Time**: 01/15/2024, 12:30:00 PM (UTC-5) \n\n"
        "### Identified Ports:\n"
        "```\n80\n443\n```\n"
    )


def test_failure_markers_and_json_line_extraction() -> None:
    assert naabu.SPEC.is_failure("Error executing Naabu command\nError reading output file")
    assert naabu.SPEC.is_failure("process exited with code 1")
    assert not naabu.SPEC.is_failure("80\n443")

    extract = json_field_lines("url")
    assert extract('{"url": "https://example.com/a"}\nplain line\n{"status": 200}\n') == [
        "https://example.com/a",
        "plain line",
    ]


def test_subfinder_defaults_and_missing_target() -> None:
    valid = subfinder.SPEC.parse("/subfinder -d example.com")
    missing = subfinder.SPEC.parse("/subfinder")

    assert valid == subfinder.SPEC.parse("/subfinder -d example.com")
    assert isinstance(valid, ValidCommand)
    assert valid.params == subfinder.SubdomainScan(domain=("example.com",))
    assert isinstance(missing, InvalidCommand)
    assert missing.reason is ParseErrorKind.MISSING_TARGET


def test_gau_target_rejection_does_not_backtrack() -> None:
    started = time.perf_counter()
    result = gau.SPEC.parse("/gau a.com/" + "a" * 90 + "!")
    elapsed = time.perf_counter() - started

    assert isinstance(result, InvalidCommand)
    assert result.reason is ParseErrorKind.INVALID_VALUE
    assert elapsed < 0.5
    assert is_domain_or_url("https://example.com/path/to page.html")
    assert is_domain_or_url("example.co.uk/")
    assert not is_domain_or_url("example")
