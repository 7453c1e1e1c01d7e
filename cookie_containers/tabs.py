"""Open-tab lookup and post-switch reloads."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from .batch import BatchResult, ItemFailure, bounded, run_batch
from .domains import extract_domain, matches_domain
from .errors import ChannelFailure

if TYPE_CHECKING:
    from .bridge import ExtensionBridge

logger = logging.getLogger("containers.tabs")


@dataclass(frozen=True)
class Tab:
    id: str | None
    url: str | None
    title: str | None = None
    active: bool = False

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Tab:
        tab_id = raw.get("id")
        url = raw.get("url")
        title = raw.get("title")
        return cls(
            id=str(tab_id) if tab_id is not None and str(tab_id) else None,
            url=url if isinstance(url, str) else None,
            title=title if isinstance(title, str) else None,
            active=bool(raw.get("active", False)),
        )

    def describe(self) -> dict[str, Any]:
        return {"id": self.id, "url": self.url}


class TabAccess(Protocol):
    async def query(self, *, active_only: bool = False) -> list[Tab]: ...

    async def reload(self, tab_id: str) -> None: ...


class ExtensionTabAccess:
    """Tabs through the companion extension (`tabs.query` / `tabs.reload`)."""

    def __init__(self, bridge: ExtensionBridge, *, timeout: float = 10.0) -> None:
        self._bridge = bridge
        self._timeout = timeout

    async def query(self, *, active_only: bool = False) -> list[Tab]:
        params = {"active": True, "currentWindow": True} if active_only else {}
        res = await self._bridge.rpc_call_async("tabs.query", params, timeout=self._timeout)
        if not isinstance(res, list):
            raise ChannelFailure(f"tabs.query returned {type(res).__name__}")
        return [Tab.from_dict(t) for t in res if isinstance(t, dict)]

    async def reload(self, tab_id: str) -> None:
        # chrome.tabs ids are integers; Tab keeps them as strings.
        tab_key: int | str = int(tab_id) if tab_id.isdigit() else tab_id
        await self._bridge.rpc_call_async("tabs.reload", {"tabId": tab_key}, timeout=self._timeout)


def select_in_scope(tabs: list[Tab], domain: str | None, include_subdomains: bool) -> list[Tab]:
    """Tabs whose page host falls in scope; unparseable addresses are out of scope."""
    if not domain:
        return list(tabs)
    out: list[Tab] = []
    for tab in tabs:
        host = extract_domain(tab.url)
        if host and matches_domain(host, domain, include_subdomains):
            out.append(tab)
    return out


class TabRefresher:
    def __init__(self, tabs: TabAccess, *, call_timeout: float | None = None) -> None:
        self._tabs = tabs
        self._timeout = call_timeout

    async def active_tab(self) -> Tab | None:
        tabs = await bounded(self._tabs.query(active_only=True), self._timeout, what="tabs.query")
        return tabs[0] if tabs else None

    async def refresh(self, domain: str | None, include_subdomains: bool) -> BatchResult[Tab]:
        tabs = await bounded(self._tabs.query(), self._timeout, what="tabs.query")
        targets = [t for t in select_in_scope(tabs, domain, include_subdomains) if t.id]

        async def _reload(tab: Tab) -> None:
            await bounded(self._tabs.reload(tab.id or ""), self._timeout, what="tabs.reload")

        return await run_batch(targets, _reload, on_failure=_reload_failed)


def _reload_failed(tab: Tab, exc: BaseException) -> ItemFailure:
    logger.warning("tab_reload_failed tab=%s reason=%s", tab.id, exc)
    return ItemFailure(item=tab, error=str(exc) or type(exc).__name__, kind=type(exc).__name__)
