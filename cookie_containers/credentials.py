"""Cookie value types.

`Credential` is the full record as read from the browser and persisted in snapshots.
`CookieWriteRequest` is its projection onto the fields a cookie store accepts for writes;
everything else (session, size, ...) is dropped on restore by construction, and hostOnly
only decides whether the write carries a domain.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .domains import normalize_cookie_domain

# Fields the cookie store accepts on insertion (besides the computed url).
WRITE_FIELDS: tuple[str, ...] = (
    "name",
    "value",
    "domain",
    "path",
    "secure",
    "httpOnly",
    "expirationDate",
    "storeId",
    "sameSite",
)

_KNOWN_KEYS = set(WRITE_FIELDS) | {"expires"}

Identity = tuple[str, str, str, str | None]


def _opt_float(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    # CDP reports session cookies as expires=-1.
    return value if value > 0 else None


def _opt_str(raw: Any) -> str | None:
    if raw is None:
        return None
    s = str(raw)
    return s or None


@dataclass(frozen=True)
class Credential:
    domain: str
    name: str
    value: str = ""
    path: str = "/"
    secure: bool = False
    http_only: bool = False
    expiration_date: float | None = None
    store_id: str | None = None
    same_site: str | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def identity(self) -> Identity:
        return (self.domain, self.name, self.path, self.store_id)

    @property
    def host_only(self) -> bool:
        """True for cookies scoped to exactly one host (no Domain attribute)."""
        flag = self.extra.get("hostOnly")
        if isinstance(flag, bool):
            return flag
        # CDP does not report hostOnly; domain cookies always carry the leading dot.
        return not self.domain.startswith(".")

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Credential:
        if not isinstance(raw, dict):
            raise ValueError("cookie record must be an object")
        domain = raw.get("domain")
        name = raw.get("name")
        if not isinstance(domain, str) or not domain:
            raise ValueError("cookie record is missing 'domain'")
        if not isinstance(name, str):
            raise ValueError("cookie record is missing 'name'")
        expiration = raw.get("expirationDate")
        if expiration is None:
            expiration = raw.get("expires")
        return cls(
            domain=domain,
            name=name,
            value=str(raw.get("value") or ""),
            path=str(raw.get("path") or "/"),
            secure=bool(raw.get("secure", False)),
            http_only=bool(raw.get("httpOnly", False)),
            expiration_date=_opt_float(expiration),
            store_id=_opt_str(raw.get("storeId")),
            same_site=_opt_str(raw.get("sameSite")),
            extra={k: v for k, v in raw.items() if isinstance(k, str) and k not in _KNOWN_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = dict(self.extra)
        out.update(
            {
                "domain": self.domain,
                "name": self.name,
                "value": self.value,
                "path": self.path,
                "secure": self.secure,
                "httpOnly": self.http_only,
            }
        )
        if self.expiration_date is not None:
            out["expirationDate"] = self.expiration_date
        if self.store_id is not None:
            out["storeId"] = self.store_id
        if self.same_site is not None:
            out["sameSite"] = self.same_site
        return out

    def describe(self) -> dict[str, Any]:
        """Identity-only view (never includes the value)."""
        return {"domain": self.domain, "name": self.name, "path": self.path, "storeId": self.store_id}


def location_of(credential: Credential) -> str:
    """Addressable location of a cookie: scheme://host/path."""
    scheme = "https" if credential.secure else "http"
    path = credential.path or "/"
    if not path.startswith("/"):
        path = "/" + path
    return f"{scheme}://{normalize_cookie_domain(credential.domain)}{path}"


@dataclass(frozen=True)
class CookieWriteRequest:
    url: str
    name: str
    value: str
    domain: str
    path: str
    secure: bool
    http_only: bool
    expiration_date: float | None = None
    store_id: str | None = None
    same_site: str | None = None
    host_only: bool = False

    @classmethod
    def from_credential(cls, credential: Credential) -> CookieWriteRequest:
        return cls(
            url=location_of(credential),
            name=credential.name,
            value=credential.value,
            domain=credential.domain,
            path=credential.path,
            secure=credential.secure,
            http_only=credential.http_only,
            expiration_date=credential.expiration_date,
            store_id=credential.store_id,
            same_site=credential.same_site,
            host_only=credential.host_only,
        )

    @property
    def identity(self) -> Identity:
        return (self.domain, self.name, self.path, self.store_id)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "url": self.url,
            "name": self.name,
            "value": self.value,
            "path": self.path,
            "secure": self.secure,
            "httpOnly": self.http_only,
        }
        # Passing a domain would widen a host-only cookie to a domain cookie.
        if not self.host_only:
            payload["domain"] = self.domain
        if self.expiration_date is not None:
            payload["expirationDate"] = self.expiration_date
        if self.store_id is not None:
            payload["storeId"] = self.store_id
        if self.same_site is not None:
            payload["sameSite"] = self.same_site
        return payload

    def to_credential(self) -> Credential:
        return Credential(
            domain=self.domain,
            name=self.name,
            value=self.value,
            path=self.path,
            secure=self.secure,
            http_only=self.http_only,
            expiration_date=self.expiration_date,
            store_id=self.store_id,
            same_site=self.same_site,
            extra={"hostOnly": self.host_only},
        )


def parse_credentials(raw: Any) -> list[Credential]:
    """Parse a list of cookie records, skipping malformed entries."""
    if not isinstance(raw, list):
        return []
    out: list[Credential] = []
    for item in raw:
        try:
            out.append(Credential.from_dict(item))
        except ValueError:
            continue
    return out
