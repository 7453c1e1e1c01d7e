"""Live cookie set access (the browser's cookie jar).

Each call is independent and may fail on its own; nothing here is transactional.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from .credentials import CookieWriteRequest, Credential, parse_credentials
from .errors import ChannelFailure

if TYPE_CHECKING:
    from .bridge import ExtensionBridge


class LiveCredentialAccess(Protocol):
    async def list_all(self) -> list[Credential]: ...

    async def remove(self, location: str, name: str, store_id: str | None) -> None: ...

    async def insert(self, request: CookieWriteRequest) -> None: ...


class ExtensionCookieAccess:
    """Cookie jar access through the companion extension (`cookies.*` RPCs)."""

    def __init__(self, bridge: ExtensionBridge, *, timeout: float = 10.0) -> None:
        self._bridge = bridge
        self._timeout = timeout

    async def list_all(self) -> list[Credential]:
        res = await self._bridge.rpc_call_async("cookies.getAll", {}, timeout=self._timeout)
        if not isinstance(res, list):
            raise ChannelFailure(f"cookies.getAll returned {type(res).__name__}")
        return parse_credentials(res)

    async def remove(self, location: str, name: str, store_id: str | None) -> None:
        params: dict[str, object] = {"url": location, "name": name}
        if store_id is not None:
            params["storeId"] = store_id
        await self._bridge.rpc_call_async("cookies.remove", params, timeout=self._timeout)

    async def insert(self, request: CookieWriteRequest) -> None:
        res = await self._bridge.rpc_call_async("cookies.set", request.to_payload(), timeout=self._timeout)
        # chrome.cookies.set resolves to null when the browser rejects the cookie.
        if res is None:
            raise ChannelFailure(f"cookies.set rejected cookie {request.name!r} for {request.url}")
