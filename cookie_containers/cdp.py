"""DevTools Protocol transport (cdp mode).

Attaches to a Chromium started with --remote-debugging-port and drives cookies
through the `Network` domain of a page target. CDP has no notion of the focused
tab; /json/list is ordered most-recently-used first, so the first page target
is reported as active.
"""

from __future__ import annotations

import asyncio
import json
import threading
import time
from contextlib import suppress
from typing import Any
from urllib.error import URLError
from urllib.request import urlopen

import websocket

from .credentials import CookieWriteRequest, Credential, parse_credentials
from .errors import ChannelFailure
from .tabs import Tab


def _http_get_json(url: str, timeout: float = 2.0) -> Any:
    try:
        with urlopen(url, timeout=timeout) as resp:
            return json.loads(resp.read().decode())
    except (URLError, OSError, ValueError) as e:
        raise ChannelFailure(str(e)) from e


class CdpConnection:
    """Low-level CDP WebSocket connection (blocking; one command at a time)."""

    def __init__(self, ws_url: str, timeout: float = 5.0):
        try:
            self.ws = websocket.create_connection(ws_url, timeout=timeout, suppress_origin=True)
        except Exception as exc:  # noqa: BLE001
            raise ChannelFailure(f"CDP connect failed: {exc}") from exc
        self.ws_url = ws_url
        self.timeout = timeout
        self._next_id = 1
        self._lock = threading.Lock()

    def close(self) -> None:
        with suppress(Exception):
            self.ws.close()

    def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send CDP command and wait for response."""
        with self._lock:
            msg_id = self._next_id
            self._next_id += 1

            msg: dict[str, Any] = {"id": msg_id, "method": method}
            if params:
                msg["params"] = params
            try:
                self.ws.send(json.dumps(msg))
            except Exception as exc:  # noqa: BLE001
                raise ChannelFailure(str(exc)) from exc
            return self._recv_until(msg_id)

    def _recv_until(self, expected_id: int) -> dict[str, Any]:
        deadline = time.time() + self.timeout
        while True:
            remaining = deadline - time.time()
            if remaining <= 0:
                raise ChannelFailure("CDP response timed out")
            try:
                self.ws.settimeout(min(0.5, remaining))
                raw = self.ws.recv()
            except websocket.WebSocketTimeoutException:
                continue
            except Exception as exc:  # noqa: BLE001
                if isinstance(exc, TimeoutError) or "timed out" in str(exc).lower():
                    continue
                raise ChannelFailure(str(exc)) from exc

            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                continue

            # Events are irrelevant here; skip until our response arrives.
            if not isinstance(data, dict) or data.get("id") != expected_id:
                continue
            if "error" in data:
                err = data.get("error")
                message = err.get("message") if isinstance(err, dict) else str(err)
                raise ChannelFailure(f"CDP {message}")
            result = data.get("result")
            return result if isinstance(result, dict) else {}


class CdpEndpoint:
    """Target discovery over the DevTools HTTP endpoint."""

    def __init__(self, host: str = "127.0.0.1", port: int = 9222, *, timeout: float = 5.0) -> None:
        self.base = f"http://{host}:{int(port)}"
        self.timeout = timeout
        self._page: CdpConnection | None = None
        self._lock = threading.Lock()

    def list_pages(self) -> list[dict[str, Any]]:
        targets = _http_get_json(f"{self.base}/json/list", timeout=self.timeout)
        if not isinstance(targets, list):
            raise ChannelFailure("CDP /json/list returned a non-list payload")
        return [t for t in targets if isinstance(t, dict) and t.get("type") == "page"]

    def connect(self, ws_url: str) -> CdpConnection:
        return CdpConnection(ws_url, timeout=self.timeout)

    def page_connection(self) -> CdpConnection:
        """Shared connection to any page target (cookies are browser-wide)."""
        with self._lock:
            if self._page is not None:
                return self._page
            for page in self.list_pages():
                ws_url = page.get("webSocketDebuggerUrl")
                if isinstance(ws_url, str) and ws_url:
                    self._page = self.connect(ws_url)
                    return self._page
            raise ChannelFailure("No debuggable page target found")

    def reset(self) -> None:
        with self._lock:
            page = self._page
            self._page = None
        if page is not None:
            page.close()

    def page_send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            return self.page_connection().send(method, params)
        except ChannelFailure:
            # The page may have closed; reconnect on the next call.
            self.reset()
            raise


class CdpCookieAccess:
    def __init__(self, endpoint: CdpEndpoint) -> None:
        self._endpoint = endpoint

    async def list_all(self) -> list[Credential]:
        res = await asyncio.to_thread(self._endpoint.page_send, "Network.getAllCookies")
        return parse_credentials(res.get("cookies"))

    async def remove(self, location: str, name: str, store_id: str | None) -> None:
        await asyncio.to_thread(self._endpoint.page_send, "Network.deleteCookies", {"name": name, "url": location})

    async def insert(self, request: CookieWriteRequest) -> None:
        params: dict[str, Any] = {
            "name": request.name,
            "value": request.value,
            "url": request.url,
            "path": request.path,
            "secure": request.secure,
            "httpOnly": request.http_only,
        }
        if not request.host_only:
            params["domain"] = request.domain
        if request.same_site in {"Strict", "Lax", "None"}:
            params["sameSite"] = request.same_site
        if request.expiration_date is not None:
            params["expires"] = request.expiration_date
        res = await asyncio.to_thread(self._endpoint.page_send, "Network.setCookie", params)
        if res.get("success") is False:
            raise ChannelFailure(f"Network.setCookie rejected cookie {request.name!r}")


class CdpTabAccess:
    def __init__(self, endpoint: CdpEndpoint) -> None:
        self._endpoint = endpoint

    async def query(self, *, active_only: bool = False) -> list[Tab]:
        pages = await asyncio.to_thread(self._endpoint.list_pages)
        tabs = [
            Tab(id=str(p.get("id") or "") or None, url=p.get("url"), title=p.get("title"), active=i == 0)
            for i, p in enumerate(pages)
        ]
        return tabs[:1] if active_only else tabs

    async def reload(self, tab_id: str) -> None:
        await asyncio.to_thread(self._reload_blocking, tab_id)

    def _reload_blocking(self, tab_id: str) -> None:
        for page in self._endpoint.list_pages():
            if str(page.get("id") or "") != tab_id:
                continue
            ws_url = page.get("webSocketDebuggerUrl")
            if not isinstance(ws_url, str) or not ws_url:
                raise ChannelFailure(f"Tab {tab_id} is not debuggable")
            conn = self._endpoint.connect(ws_url)
            try:
                conn.send("Page.reload", {})
            finally:
                conn.close()
            return
        raise ChannelFailure(f"Tab not found: {tab_id}")
