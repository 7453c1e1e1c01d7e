from __future__ import annotations

import logging

import pytest

from cookie_containers.domains import extract_domain, matches_domain, normalize_cookie_domain


@pytest.mark.parametrize(
    ("cookie_domain", "target", "subdomains", "expected"),
    [
        # rule 1: unscoped target matches everything
        ("anything.test", None, False, True),
        (".example.com", None, True, True),
        ("example.com", "", False, True),
        # rules 2+3: leading dot stripped, exact match
        ("example.com", "example.com", False, True),
        (".example.com", "example.com", False, True),
        # rule 4: cookie is a subdomain of the target
        ("mail.example.com", "example.com", True, True),
        (".mail.example.com", "example.com", True, True),
        ("mail.example.com", "example.com", False, False),
        ("badexample.com", "example.com", True, False),
        # rule 5: target is a subdomain of the cookie's domain (permissive direction)
        (".example.com", "work.example.com", True, True),
        ("example.com", "a.b.example.com", True, True),
        (".example.com", "work.example.com", False, False),
        ("ample.com", "example.com", True, False),
        # rule 6: unrelated
        ("amazon.com", "work.example.com", True, False),
        (".amazon.com", "example.com", False, False),
    ],
)
def test_matches_domain_rules(cookie_domain: str, target: str | None, subdomains: bool, expected: bool) -> None:
    assert matches_domain(cookie_domain, target, subdomains) is expected


@pytest.mark.parametrize("domain", ["example.com", "a.b.test", "localhost"])
def test_matches_domain_is_reflexive(domain: str) -> None:
    assert matches_domain(domain, domain, False)
    assert matches_domain(domain, domain, True)
    assert matches_domain("." + domain, domain, False)


def test_normalize_strips_single_leading_dot_only() -> None:
    assert normalize_cookie_domain(".example.com") == "example.com"
    assert normalize_cookie_domain("example.com") == "example.com"
    assert normalize_cookie_domain("..example.com") == ".example.com"
    assert normalize_cookie_domain("") == ""


def test_extract_domain_returns_host() -> None:
    assert extract_domain("https://work.example.com/inbox?x=1") == "work.example.com"
    assert extract_domain("http://localhost:8080/") == "localhost"
    assert extract_domain("https://user:pw@shop.amazon.com/cart") == "shop.amazon.com"


@pytest.mark.parametrize("address", [None, "", "   ", "not a url", "about:blank", "http://[::1/"])
def test_extract_domain_unparseable_returns_none_and_logs(address, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="containers.domains"):
        assert extract_domain(address) is None
    assert any("extract_domain_failed" in r.getMessage() for r in caplog.records)
