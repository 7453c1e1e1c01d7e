"""Per-container cookie snapshots."""

from __future__ import annotations

import logging

from .batch import BatchResult, ItemFailure, bounded, run_batch
from .credentials import CookieWriteRequest, Credential, parse_credentials
from .domains import matches_domain
from .errors import CredentialWriteFailure
from .live_cookies import LiveCredentialAccess
from .state_store import StateStore

logger = logging.getLogger("containers.sessions")

STORAGE_KEY_PREFIX = "container_cookies_"


def snapshot_key(container_id: str) -> str:
    return STORAGE_KEY_PREFIX + container_id


def filter_scope(cookies: list[Credential], domain: str | None, include_subdomains: bool) -> list[Credential]:
    if not domain:
        return list(cookies)
    return [c for c in cookies if matches_domain(c.domain, domain, include_subdomains)]


def _scope_suffix(domain: str | None) -> str:
    return f" domain={domain}" if domain else ""


class SessionStore:
    def __init__(self, store: StateStore, live: LiveCredentialAccess, *, call_timeout: float | None = None) -> None:
        self._store = store
        self._live = live
        self._timeout = call_timeout

    async def load(self, container_id: str) -> list[Credential]:
        key = snapshot_key(container_id)
        data = await bounded(self._store.get([key]), self._timeout, what="state.get")
        return parse_credentials(data.get(key))

    async def save(self, container_id: str, domain: str | None = None, include_subdomains: bool = False) -> int:
        """Capture the in-scope live cookies, replacing the container's snapshot."""
        live = await bounded(self._live.list_all(), self._timeout, what="cookies.getAll")
        cookies = filter_scope(live, domain, include_subdomains)
        await bounded(
            self._store.set({snapshot_key(container_id): [c.to_dict() for c in cookies]}),
            self._timeout,
            what="state.set",
        )
        logger.info("saved_cookies container=%s count=%d%s", container_id, len(cookies), _scope_suffix(domain))
        return len(cookies)

    async def restore(
        self, container_id: str, domain: str | None = None, include_subdomains: bool = False
    ) -> BatchResult[CookieWriteRequest]:
        """Insert the container's in-scope snapshot into the live jar (best-effort)."""
        snapshot = filter_scope(await self.load(container_id), domain, include_subdomains)
        requests = [CookieWriteRequest.from_credential(c) for c in snapshot]

        async def _insert(req: CookieWriteRequest) -> None:
            await bounded(self._live.insert(req), self._timeout, what="cookies.set")

        result = await run_batch(requests, _insert, on_failure=_insert_failed)
        logger.info(
            "restored_cookies container=%s count=%d failed=%d%s",
            container_id,
            result.count,
            len(result.failures),
            _scope_suffix(domain),
        )
        return result


def _insert_failed(req: CookieWriteRequest, exc: BaseException) -> ItemFailure:
    failure = CredentialWriteFailure("insert", req.identity, str(exc) or type(exc).__name__)
    logger.warning("cookie_insert_failed name=%s domain=%s reason=%s", req.name, req.domain, failure.reason)
    return ItemFailure(item=req.to_credential(), error=failure.reason, kind=type(failure).__name__)
