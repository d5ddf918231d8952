"""Value validators shared by the plugin flag tables."""

from __future__ import annotations

import ipaddress
import re

_HOSTNAME_RE = re.compile(r"^(?=.{1,253}$)(?!-)[A-Za-z0-9-]{1,63}(?<!-)(\.(?!-)[A-Za-z0-9-]{1,63}(?<!-))*$")
_DOMAIN_RE = re.compile(r"^[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
_DOMAIN_OR_URL_RE = re.compile(r"^(https?://)?([\da-z.-]+)\.([a-z.]{2,6})[/\w .-]*/?$")
_URL_RE = re.compile(r"^https?://\S+$")
_BARE_HOST_RE = re.compile(r"^\S+\.\S+$")
_FILTER_RE = re.compile(r"^[a-zA-Z0-9.-]+$")
_EXTENSION_RE = re.compile(r"^\.?[a-zA-Z0-9]{1,10}$")
_YYYYMM_RE = re.compile(r"^\d{6}$")
_HASH_RE = re.compile(r"^-?[0-9a-fA-F]{1,128}$")
_PATTERN_RE = re.compile(r"^[\w.{}\-]+$")
_PAYLOAD_RE = re.compile(r"^[\w-]+=[\w.,-]+$")

MAX_DOMAIN_LENGTH = 50
MAX_FILTER_LENGTH = 255


def is_ipv4(value: str) -> bool:
    try:
        return isinstance(ipaddress.ip_address(value), ipaddress.IPv4Address)
    except ValueError:
        return False


def is_hostname(value: str) -> bool:
    return bool(_HOSTNAME_RE.match(value))


def is_host(value: str) -> bool:
    """Hostname or IPv4 address."""
    return is_ipv4(value) or is_hostname(value)


def is_domain(value: str) -> bool:
    return len(value) <= MAX_DOMAIN_LENGTH and bool(_DOMAIN_RE.match(value))


def is_filter_pattern(value: str) -> bool:
    return len(value) <= MAX_FILTER_LENGTH and bool(_FILTER_RE.match(value))


def is_domain_or_url(value: str) -> bool:
    return bool(_DOMAIN_OR_URL_RE.match(value))


def is_url(value: str) -> bool:
    """Permissive URL check: scheme URL or anything that looks like host.tld."""
    return bool(_URL_RE.match(value) or _BARE_HOST_RE.match(value))


def is_regex(value: str) -> bool:
    try:
        re.compile(value)
    except re.error:
        return False
    return True


def is_extension(value: str) -> bool:
    return bool(_EXTENSION_RE.match(value))


def is_yyyymm(value: str) -> bool:
    if not _YYYYMM_RE.match(value):
        return False
    return 1 <= int(value[4:]) <= 12


def is_hash(value: str) -> bool:
    return bool(_HASH_RE.match(value))


def is_plain_text(value: str) -> bool:
    return bool(value) and value.isprintable()


def is_port_spec(value: str) -> bool:
    """Comma-separated ports or ranges within 1-65535, e.g. ``80,443,8000-8100``."""
    if not value:
        return False
    for part in value.split(","):
        bounds = part.split("-")
        if len(bounds) > 2 or not all(b.isdigit() for b in bounds):
            return False
        numbers = [int(b) for b in bounds]
        if any(n < 1 or n > 65535 for n in numbers):
            return False
        if len(numbers) == 2 and numbers[0] > numbers[1]:
            return False
    return True


def is_permutation_pattern(value: str) -> bool:
    return bool(_PATTERN_RE.match(value))


def is_payload(value: str) -> bool:
    return bool(_PAYLOAD_RE.match(value))
