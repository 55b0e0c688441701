"""SSRF guard for webhook endpoint URLs.

Validates the literal URL string only. No DNS resolution is performed, so a
public hostname that resolves to a private address (DNS rebinding) is not
blocked here.
"""

from __future__ import annotations

import ipaddress
import re
from urllib.parse import urlsplit

from hookrelay.exceptions import InvalidURLError

MAX_URL_LENGTH = 2048
MAX_HOSTNAME_LENGTH = 253

LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})

INTERNAL_DOMAIN_SUFFIXES = (".local", ".internal", ".corp", ".home", ".lan", ".intranet")

BLOCKED_IPV4_NETWORKS = tuple(
    ipaddress.IPv4Network(cidr)
    for cidr in (
        "0.0.0.0/8",
        "10.0.0.0/8",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "224.0.0.0/3",  # multicast and reserved, first octet >= 224
    )
)

# Hosts whose last label is numeric are IPv4 addresses in any of the forms
# browsers and inet_aton accept: 2130706433, 0x7f000001, 127.1, 0177.0.0.1.
_NUMERIC_LABEL = re.compile(r"^(?:\d+|0x[0-9a-f]*)$")
_DECIMAL = re.compile(r"^\d+$")
_OCTAL = re.compile(r"^[0-7]+$")
_HEX = re.compile(r"^[0-9a-f]*$")


def _parse_ipv4_number(part: str) -> int:
    if part.startswith("0x"):
        digits = part[2:]
        if not _HEX.match(digits):
            raise ValueError(part)
        return int(digits, 16) if digits else 0
    if len(part) > 1 and part.startswith("0"):
        if not _OCTAL.match(part[1:]):
            raise ValueError(part)
        return int(part[1:], 8)
    if not _DECIMAL.match(part):
        raise ValueError(part)
    return int(part)


def parse_ipv4_host(hostname: str) -> ipaddress.IPv4Address | None:
    """IPv4 address denoted by ``hostname``, or None for a domain name.

    Follows the WHATWG URL host parser: up to four dot-separated parts in
    decimal, octal (leading 0) or hex (0x); the last part fills the remaining
    bytes.

    Raises:
        InvalidURLError: If the host looks numeric but is not a valid address.
    """
    labels = hostname.split(".")
    if len(labels) > 1 and labels[-1] == "":
        labels.pop()
    if not _NUMERIC_LABEL.match(labels[-1]):
        return None

    try:
        numbers = [_parse_ipv4_number(label) for label in labels]
    except ValueError as e:
        raise InvalidURLError("Invalid IP address") from e
    if len(numbers) > 4 or any(n > 255 for n in numbers[:-1]):
        raise InvalidURLError("Invalid IP address")
    if numbers[-1] >= 256 ** (5 - len(numbers)):
        raise InvalidURLError("Invalid IP address")

    value = numbers[-1]
    for index, number in enumerate(numbers[:-1]):
        value += number << (8 * (3 - index))
    return ipaddress.IPv4Address(value)


def _check_ip_literal(hostname: str) -> None:
    if ":" in hostname:
        try:
            address6 = ipaddress.IPv6Address(hostname)
        except ValueError as e:
            raise InvalidURLError("Invalid IP address") from e
        if not address6.is_global:
            raise InvalidURLError("Private IP addresses are not allowed for security reasons")
        return

    address = parse_ipv4_host(hostname)
    if address is not None and any(address in network for network in BLOCKED_IPV4_NETWORKS):
        raise InvalidURLError("Private IP addresses are not allowed for security reasons")


def validate_webhook_url(url: str, allow_localhost: bool = False) -> None:
    """Validate a webhook URL against the SSRF rules.

    Rules are applied in order and the first failure is reported:

    1. The URL must parse and use ``https``.
    2. The host must not be loopback or a private/reserved IP literal.
    3. The host must not end in an internal domain suffix.
    4. URL and hostname length limits.

    Args:
        url: Candidate webhook URL.
        allow_localhost: Accept ``http``/``https`` to localhost. Only set this
            for local development builds.

    Raises:
        InvalidURLError: If the URL is unsafe to call.
    """
    try:
        parts = urlsplit(url.strip())
        hostname = (parts.hostname or "").lower()
        _ = parts.port  # raises ValueError on a malformed port
    except (ValueError, AttributeError) as e:
        raise InvalidURLError("Invalid URL format") from e

    if not parts.scheme or not parts.netloc:
        raise InvalidURLError("Invalid URL format")

    scheme = parts.scheme.lower()

    if allow_localhost and hostname in ("localhost", "127.0.0.1") and scheme in ("http", "https"):
        if len(url) > MAX_URL_LENGTH:
            raise InvalidURLError(f"Webhook URL is too long (max {MAX_URL_LENGTH} characters)")
        return

    if scheme != "https":
        raise InvalidURLError("Webhook URL must use HTTPS")

    if hostname in LOOPBACK_HOSTS:
        raise InvalidURLError("Localhost URLs are not allowed for security reasons")

    _check_ip_literal(hostname)

    if hostname.endswith(INTERNAL_DOMAIN_SUFFIXES):
        raise InvalidURLError("Internal domain names are not allowed for security reasons")

    if len(url) > MAX_URL_LENGTH:
        raise InvalidURLError(f"Webhook URL is too long (max {MAX_URL_LENGTH} characters)")

    if (
        not hostname
        or len(hostname) > MAX_HOSTNAME_LENGTH
        or hostname.startswith(".")
        or hostname.endswith(".")
    ):
        raise InvalidURLError("Invalid hostname format")


def is_valid_webhook_url(url: str, allow_localhost: bool = False) -> bool:
    """Boolean form of :func:`validate_webhook_url`."""
    try:
        validate_webhook_url(url, allow_localhost=allow_localhost)
    except InvalidURLError:
        return False
    return True
