"""Domain scoping helpers.

Matching is purely suffix-based: no wildcards, no regex, no public-suffix list.
"""

from __future__ import annotations

import logging
import urllib.parse

from .errors import AddressParseFailure

logger = logging.getLogger("containers.domains")


def normalize_cookie_domain(domain: str) -> str:
    """Strip a single leading dot (".example.com" -> "example.com")."""
    domain = domain or ""
    return domain[1:] if domain.startswith(".") else domain


def matches_domain(cookie_domain: str, target_domain: str | None, include_subdomains: bool) -> bool:
    """Return True if a cookie domain belongs to the target scope."""
    if not target_domain:
        return True

    normalized = normalize_cookie_domain(cookie_domain)

    if normalized == target_domain:
        return True

    if include_subdomains and normalized.endswith("." + target_domain):
        return True

    # Parent-domain direction: a cookie for example.com also matches target sub.example.com.
    if include_subdomains and target_domain.endswith("." + normalized):
        return True

    return False


def parse_host(address: str) -> str:
    """Return the host of an address or raise AddressParseFailure."""
    if not isinstance(address, str) or not address.strip():
        raise AddressParseFailure(address, "empty address")
    try:
        parsed = urllib.parse.urlsplit(address.strip())
        host = parsed.hostname
    except ValueError as exc:
        raise AddressParseFailure(address, str(exc)) from exc
    if not parsed.scheme or not host:
        raise AddressParseFailure(address, "address has no host")
    return host


def extract_domain(address: str | None) -> str | None:
    try:
        return parse_host(address)  # type: ignore[arg-type]
    except AddressParseFailure as exc:
        logger.warning("extract_domain_failed address=%s reason=%s", exc.details.get("address"), exc.reason)
        return None
