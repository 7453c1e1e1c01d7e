"""In-memory stand-ins for the browser side (live cookie jar, open tabs)."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from cookie_containers.credentials import CookieWriteRequest, Credential, location_of
from cookie_containers.errors import ChannelFailure
from cookie_containers.registry import CONTAINERS_KEY, CURRENT_CONTAINER_KEY, Container
from cookie_containers.tabs import Tab


class FakeCookieJar:
    """In-memory live cookie jar keyed by cookie identity."""

    def __init__(self, cookies: list[Credential] | None = None) -> None:
        self.cookies: dict[tuple, Credential] = {}
        for c in cookies or []:
            self.cookies[c.identity] = c
        self.list_calls = 0
        self.removed: list[tuple[str, str, str | None]] = []
        self.inserted: list[CookieWriteRequest] = []
        self.fail_insert: set[str] = set()
        self.fail_remove: set[str] = set()
        self.hang_insert: set[str] = set()
        self.list_error: Exception | None = None
        self.list_delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0

    async def list_all(self) -> list[Credential]:
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.list_delay:
                await asyncio.sleep(self.list_delay)
            return list(self.cookies.values())
        finally:
            self.in_flight -= 1

    async def remove(self, location: str, name: str, store_id: str | None) -> None:
        if name in self.fail_remove:
            raise ChannelFailure(f"remove refused: {name}")
        self.removed.append((location, name, store_id))
        for key, c in list(self.cookies.items()):
            if c.name == name and c.store_id == store_id and location_of(c) == location:
                del self.cookies[key]

    async def insert(self, request: CookieWriteRequest) -> None:
        if request.name in self.hang_insert:
            await asyncio.sleep(30)
        if request.name in self.fail_insert:
            raise ChannelFailure(f"insert refused: {request.name}")
        self.inserted.append(request)
        cookie = request.to_credential()
        self.cookies[cookie.identity] = cookie

    def in_scope(self, predicate: Callable[[Credential], bool]) -> set[tuple]:
        return {c.identity for c in self.cookies.values() if predicate(c)}

    @property
    def write_count(self) -> int:
        return len(self.removed) + len(self.inserted)


class FakeTabs:
    def __init__(self, tabs: list[Tab] | None = None) -> None:
        self.tabs = list(tabs or [])
        self.reloaded: list[str] = []
        self.fail_reload: set[str] = set()
        self.query_error: Exception | None = None

    async def query(self, *, active_only: bool = False) -> list[Tab]:
        if self.query_error is not None:
            raise self.query_error
        if active_only:
            return [t for t in self.tabs if t.active][:1]
        return list(self.tabs)

    async def reload(self, tab_id: str) -> None:
        if tab_id in self.fail_reload:
            raise ChannelFailure(f"reload refused: {tab_id}")
        self.reloaded.append(tab_id)


def cookie(domain: str, name: str, value: str = "v", path: str = "/", **kwargs: Any) -> Credential:
    return Credential(domain=domain, name=name, value=value, path=path, store_id=kwargs.pop("store_id", "0"), **kwargs)


def seed_state(containers: list[Container], current: str | None = "default", **snapshots: list[Credential]) -> dict:
    state: dict[str, Any] = {CONTAINERS_KEY: [c.to_dict() for c in containers]}
    if current is not None:
        state[CURRENT_CONTAINER_KEY] = current
    for cid, cookies in snapshots.items():
        state[f"container_cookies_{cid}"] = [c.to_dict() for c in cookies]
    return state


