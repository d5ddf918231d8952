"""naabu: fast port scanning."""

from __future__ import annotations

from dataclasses import dataclass

from scanchat.plugins.grammar import FlagKind, FlagSpec, ParserLimits
from scanchat.plugins.spec import ToolSpec
from scanchat.plugins.validators import is_host, is_port_spec


@dataclass(frozen=True)
class PortScan:
    host: tuple[str, ...] = ()
    port: str = ""
    top_ports: str = ""
    exclude_ports: str = ""
    port_threshold: int = 0
    exclude_cdn: bool = False
    display_cdn: bool = False
    scan_all_ips: bool = False
    host_discovery: bool = False
    skip_host_discovery: bool = False
    probe_icmp_echo: bool = False
    probe_icmp_timestamp: bool = False
    probe_icmp_address_mask: bool = False
    arp_ping: bool = False
    nd_ping: bool = False
    rev_ptr: bool = False
    timeout: int = 10
    json: bool = False


def _bool(name: str, aliases: tuple[str, ...], key: str, description: str, group: str) -> FlagSpec:
    return FlagSpec(name, aliases, FlagKind.BOOL, description=description, query_key=key, group=group)


SPEC = ToolSpec(
    id="naabu",
    title="Naabu",
    homepage="https://github.com/projectdiscovery/naabu",
    summary="A fast port scanner focused on reliability and simplicity.",
    params_type=PortScan,
    usage="/naabu -host example.com [flags]",
    examples=("naabu -host example.com -p 80,443",),
    limits=ParserLimits(max_input_length=500, max_flags=20, max_token_length=100, max_list_items=100),
    target_field="host",
    missing_target_message="🚨 Error: -host parameter is required.",
    results_heading="Identified Ports",
    empty_message="🔍 Looks like there aren't any open ports to report for {target}.",
    failure_markers=(("Error executing Naabu command", "Error reading output file"),),
    translation_notes=(
        "'-host' is required. Use '-p' for specific ports or ranges, or '-tp' for the "
        "top 100/1000 ports. Include '-json' only when the user asks for JSON output."
    ),
    flags=(
        FlagSpec(
            "host", ("-host",), FlagKind.STRING_LIST,
            description="hosts or IPv4 addresses to scan (comma separated)",
            validator=is_host, group="Input",
        ),
        FlagSpec(
            "port", ("-p", "-port"), FlagKind.STRING,
            description="ports to scan (80,443, 100-200)",
            validator=is_port_spec, group="Port",
        ),
        FlagSpec(
            "top_ports", ("-tp", "-top-ports"), FlagKind.ENUM,
            query_key="topPorts",
            description="top ports to scan (100,1000)",
            choices=("100", "1000"), group="Port",
        ),
        FlagSpec(
            "exclude_ports", ("-ep", "-exclude-ports"), FlagKind.STRING,
            query_key="excludePorts",
            description="ports to exclude from scan (comma separated)",
            validator=is_port_spec, group="Port",
        ),
        FlagSpec(
            "port_threshold", ("-pts", "-port-threshold"), FlagKind.INT,
            query_key="portThreshold",
            description="port threshold to skip port scan for the host",
            minimum=1, maximum=65535, group="Port",
        ),
        _bool("exclude_cdn", ("-ec", "-exclude-cdn"), "excludeCDN", "skip full port scans for CDN/WAF (only scan 80,443)", "Port"),
        _bool("display_cdn", ("-cdn", "-display-cdn"), "displayCDN", "display cdn in use", "Port"),
        _bool("scan_all_ips", ("-sa", "-scan-all-ips"), "scanAllIPs", "scan all the IPs associated with the DNS record", "Config"),
        _bool("host_discovery", ("-sn", "-host-discovery"), "hostDiscovery", "perform only host discovery", "Host discovery"),
        _bool("skip_host_discovery", ("-Pn", "-skip-host-discovery"), "skipHostDiscovery", "skip host discovery", "Host discovery"),
        _bool("probe_icmp_echo", ("-pe", "-probe-icmp-echo"), "probeIcmpEcho", "ICMP echo request ping", "Host discovery"),
        _bool("probe_icmp_timestamp", ("-pp", "-probe-icmp-timestamp"), "probeIcmpTimestamp", "ICMP timestamp request ping", "Host discovery"),
        _bool("probe_icmp_address_mask", ("-pm", "-probe-icmp-address-mask"), "probeIcmpAddressMask", "ICMP address mask request ping", "Host discovery"),
        _bool("arp_ping", ("-arp", "-arp-ping"), "arpPing", "ARP ping", "Host discovery"),
        _bool("nd_ping", ("-nd", "-nd-ping"), "ndPing", "IPv6 neighbor discovery", "Host discovery"),
        _bool("rev_ptr", ("-rev-ptr",), "revPtr", "reverse PTR lookup for input ips", "Host discovery"),
        FlagSpec(
            "timeout", ("-timeout",), FlagKind.INT,
            description="seconds to wait before timing out (default 10, max 90)",
            minimum=1, maximum=90, group="Optimization",
            # Backend expects milliseconds.
            to_query=lambda seconds: seconds * 1000,
        ),
        _bool("json", ("-j", "-json"), "outputJson", "write output in JSON lines format", "Output"),
    ),
)
