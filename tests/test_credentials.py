from __future__ import annotations

from cookie_containers.credentials import (
    WRITE_FIELDS,
    CookieWriteRequest,
    Credential,
    location_of,
    parse_credentials,
)


def _chrome_cookie(**overrides):
    raw = {
        "domain": ".example.com",
        "name": "sid",
        "value": "abc",
        "path": "/",
        "secure": True,
        "httpOnly": True,
        "expirationDate": 1893456000.5,
        "storeId": "0",
        "sameSite": "lax",
        "hostOnly": False,
        "session": False,
    }
    raw.update(overrides)
    return raw


def test_from_dict_extension_shape_keeps_readonly_fields_as_extra() -> None:
    c = Credential.from_dict(_chrome_cookie())
    assert c.identity == (".example.com", "sid", "/", "0")
    assert c.http_only is True
    assert c.expiration_date == 1893456000.5
    assert c.same_site == "lax"
    assert c.extra == {"hostOnly": False, "session": False}
    assert c.to_dict() == _chrome_cookie()


def test_from_dict_cdp_shape_maps_expires_and_session_cookies() -> None:
    persistent = Credential.from_dict({"domain": "a.test", "name": "n", "value": "1", "expires": 1800000000})
    assert persistent.expiration_date == 1800000000.0
    session = Credential.from_dict({"domain": "a.test", "name": "n", "value": "1", "expires": -1, "size": 2})
    assert session.expiration_date is None
    assert session.extra == {"size": 2}
    assert session.path == "/"


def test_location_of_uses_scheme_from_secure_flag_and_strips_dot() -> None:
    assert location_of(Credential(domain=".example.com", name="a", path="/app", secure=True)) == "https://example.com/app"
    assert location_of(Credential(domain="work.example.com", name="a")) == "http://work.example.com/"
    assert location_of(Credential(domain="x.test", name="a", path="")) == "http://x.test/"


def test_write_request_drops_fields_outside_write_contract() -> None:
    c = Credential.from_dict(_chrome_cookie())
    req = CookieWriteRequest.from_credential(c)
    payload = req.to_payload()
    assert set(payload) == set(WRITE_FIELDS) | {"url"}
    assert payload["url"] == "https://example.com/"
    assert "hostOnly" not in payload and "session" not in payload
    assert req.identity == c.identity
    assert req.to_credential() == c


def test_write_request_omits_unset_optionals() -> None:
    payload = CookieWriteRequest.from_credential(Credential(domain="a.test", name="n")).to_payload()
    assert "expirationDate" not in payload
    assert "storeId" not in payload
    assert "sameSite" not in payload


def test_parse_credentials_skips_malformed_records() -> None:
    parsed = parse_credentials(
        [_chrome_cookie(), {"name": "no-domain"}, "junk", {"domain": "a.test"}, _chrome_cookie(name="b")]
    )
    assert [c.name for c in parsed] == ["sid", "b"]
    assert parse_credentials(None) == []
    assert parse_credentials({"domain": "a.test"}) == []


def test_credential_equality_ignores_extra() -> None:
    a = Credential.from_dict(_chrome_cookie())
    b = Credential.from_dict(_chrome_cookie(hostOnly=True))
    assert a == b


def test_host_only_cookie_is_written_without_domain() -> None:
    host_only = Credential.from_dict(_chrome_cookie(domain="example.com", hostOnly=True))
    assert host_only.host_only is True
    req = CookieWriteRequest.from_credential(host_only)
    payload = req.to_payload()
    assert "domain" not in payload
    assert payload["url"] == "https://example.com/"
    assert req.identity == host_only.identity
    restored = req.to_credential()
    assert restored == host_only
    assert restored.host_only is True

    domain_cookie = Credential.from_dict(_chrome_cookie())
    assert domain_cookie.host_only is False
    assert CookieWriteRequest.from_credential(domain_cookie).to_payload()["domain"] == ".example.com"


def test_host_only_inferred_from_leading_dot_without_flag() -> None:
    # DevTools records carry no hostOnly flag.
    assert Credential(domain="a.test", name="n").host_only is True
    assert Credential(domain=".a.test", name="n").host_only is False
