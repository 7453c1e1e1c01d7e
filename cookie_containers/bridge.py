from __future__ import annotations

import asyncio
import contextlib
import errno
import json
import logging
import os
import re
import threading
import time
from collections import deque
from collections.abc import Awaitable, Callable, Coroutine
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, TypeVar

import websockets

from .errors import ChannelFailure

BRIDGE_PROTOCOL_VERSION = "2026-10-01"

logger = logging.getLogger("containers.bridge")

MessageHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]
T = TypeVar("T")


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class ExtensionClientInfo:
    extension_id: str
    extension_version: str | None = None
    capabilities: dict[str, Any] | None = None


class ExtensionBridge:
    """Local WebSocket bridge for the cookie-containers browser extension.

    The extension connects, says hello, then:
    - executes `cookies.*` / `tabs.*` / `storage.*` RPCs issued by the engine;
    - forwards popup messages (`switchContainer`, `getContainers`, ...) to the engine.

    The asyncio loop runs in a dedicated daemon thread. Engine code runs on that
    loop and uses `rpc_call_async`; plain threads may use `rpc_call` / `run`.
    """

    def __init__(
        self,
        *,
        host: str = "127.0.0.1",
        port: int = 8766,
        expected_extension_id: str | None = None,
        on_message: MessageHandler | None = None,
        port_span: int = 5,
    ) -> None:
        self.host = (host or "127.0.0.1").strip() or "127.0.0.1"
        self.port = int(port)
        self._configured_port = int(port)
        self._port_span = max(0, min(int(port_span), 50))
        self.expected_extension_id = (expected_extension_id or "").strip() or None
        self._on_message = on_message

        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()
        self._connected = threading.Event()

        self._server: Any | None = None
        self._ws: Any | None = None
        self._bind_error: str | None = None
        self._session_id: str | None = None
        self._client: ExtensionClientInfo | None = None
        self._client_last_seen_ms = 0

        self._next_id = 1
        self._pending: dict[int, Future] = {}
        self._tasks: set[asyncio.Task] = set()
        self._logs: deque[dict[str, Any]] = deque(maxlen=200)

    def set_message_handler(self, handler: MessageHandler | None) -> None:
        self._on_message = handler

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def start(self, *, wait_timeout: float = 5.0, require_listening: bool = True) -> None:
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop.clear()
        with self._lock:
            self._bind_error = None

        t = threading.Thread(target=self._run_thread, name="containers-bridge", daemon=True)
        self._thread = t
        t.start()

        deadline = time.time() + max(0.05, float(wait_timeout))
        while time.time() < deadline:
            with self._lock:
                if self._server is not None:
                    return
            if not t.is_alive():
                break
            time.sleep(0.05)

        with self._lock:
            bind_error = self._bind_error
            listening = self._server is not None
        if listening:
            return
        if not t.is_alive():
            raise ChannelFailure(f"Bridge thread died during startup on {self.host}:{self.port}")
        if require_listening:
            raise ChannelFailure(f"Bridge failed to listen on {self.host}:{self.port}: {bind_error or 'timeout'}")

    def stop(self, *, timeout: float = 2.0) -> None:
        self._stop.set()
        loop = self._loop
        if loop is not None and loop.is_running():
            with contextlib.suppress(Exception):
                asyncio.run_coroutine_threadsafe(self._shutdown_async(), loop).result(timeout=timeout)
        t = self._thread
        if t is not None:
            t.join(timeout=timeout)

    def run(self, coro: Coroutine[Any, Any, T], *, timeout: float | None = None) -> T:
        """Run a coroutine on the bridge loop from another thread and wait for it."""
        loop = self._loop
        if loop is None or not loop.is_running():
            coro.close()
            raise ChannelFailure("Bridge loop is not running")
        try:
            return asyncio.run_coroutine_threadsafe(coro, loop).result(timeout=timeout)
        except FutureTimeoutError as exc:
            raise ChannelFailure(f"Bridge call timed out after {timeout}s") from exc

    def status(self) -> dict[str, Any]:
        with self._lock:
            client = self._client
            return {
                "listening": self._server is not None,
                "host": self.host,
                "port": self.port,
                "configuredPort": self._configured_port,
                "connected": self._ws is not None,
                "sessionId": self._session_id,
                **({"bindError": self._bind_error} if self._bind_error else {}),
                "client": (
                    {
                        "extensionId": client.extension_id,
                        **({"extensionVersion": client.extension_version} if client.extension_version else {}),
                        **({"lastSeenMs": self._client_last_seen_ms} if self._client_last_seen_ms else {}),
                    }
                    if client is not None
                    else None
                ),
            }

    def logs(self) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._logs)

    def is_connected(self) -> bool:
        with self._lock:
            return self._ws is not None

    def wait_for_connection(self, *, timeout: float = 5.0) -> bool:
        return bool(self._connected.wait(timeout=max(0.0, float(timeout))))

    # ─────────────────────────────────────────────────────────────────────────
    # RPC
    # ─────────────────────────────────────────────────────────────────────────

    def _register_call(self, method: str) -> tuple[Any, int, Future]:
        if not isinstance(method, str) or not method.strip():
            raise ChannelFailure("Bridge RPC method is required")
        with self._lock:
            ws = self._ws
            if ws is None:
                raise ChannelFailure("Extension is not connected to the containers bridge")
            req_id = self._next_id
            self._next_id += 1
            fut: Future = Future()
            self._pending[req_id] = fut
        return ws, req_id, fut

    async def rpc_call_async(self, method: str, params: dict[str, Any] | None = None, *, timeout: float = 10.0) -> Any:
        ws, req_id, fut = self._register_call(method)
        msg: dict[str, Any] = {"type": "rpc", "id": req_id, "method": method}
        if isinstance(params, dict) and params:
            msg["params"] = params

        try:
            await self._ws_send_json(ws, msg)
        except Exception as exc:  # noqa: BLE001
            with self._lock:
                self._pending.pop(req_id, None)
            raise ChannelFailure(f"Bridge RPC send failed: {exc}") from exc

        try:
            return await asyncio.wait_for(asyncio.wrap_future(fut), timeout=max(0.1, float(timeout)))
        except ChannelFailure:
            raise
        except asyncio.TimeoutError as exc:
            raise ChannelFailure(f"Bridge RPC timed out: method={method}") from exc
        finally:
            with self._lock:
                self._pending.pop(req_id, None)

    # ─────────────────────────────────────────────────────────────────────────
    # Internals (async)
    # ─────────────────────────────────────────────────────────────────────────

    def _port_candidates(self) -> list[int]:
        base = int(self._configured_port)
        return [p for p in range(base, base + self._port_span + 1) if 1 <= p <= 65535]

    def _run_thread(self) -> None:
        asyncio.run(self._run_async())

    def _log(self, level: str, message: str, meta: dict[str, Any] | None = None) -> None:
        with self._lock:
            self._logs.append(
                {
                    "ts": _now_ms(),
                    "level": level if level in {"debug", "info", "warn", "error"} else "info",
                    "message": message[:2000],
                    **({"meta": meta} if isinstance(meta, dict) else {}),
                }
            )

    async def _handler(self, ws: Any) -> None:
        try:
            raw = await asyncio.wait_for(ws.recv(), timeout=2.5)
        except Exception:
            self._log("warn", "extension hello timeout")
            return

        try:
            hello = json.loads(raw)
        except Exception:
            hello = None
        if not isinstance(hello, dict) or hello.get("type") != "hello":
            with contextlib.suppress(Exception):
                await ws.close(code=1002, reason="expected hello")
            return

        ext_id = str(hello.get("extensionId") or "").strip()
        if not ext_id:
            with contextlib.suppress(Exception):
                await ws.close(code=1002, reason="missing extensionId")
            return
        if self.expected_extension_id is not None and ext_id != self.expected_extension_id:
            logger.warning("bridge_rejected_extension id=%s", ext_id)
            with contextlib.suppress(Exception):
                await ws.close(code=1008, reason="unexpected extensionId")
            return

        client = ExtensionClientInfo(
            extension_id=ext_id,
            extension_version=str(hello.get("extensionVersion") or "") or None,
            capabilities=hello.get("capabilities") if isinstance(hello.get("capabilities"), dict) else None,
        )
        session_id = f"ext-{_now_ms()}-{os.getpid()}"

        # MV3 service workers reconnect often; the newest client replaces the old one.
        with self._lock:
            previous = self._ws
            self._ws = ws
            self._client = client
            self._session_id = session_id
            self._client_last_seen_ms = _now_ms()
            self._connected.clear()
        if previous is not None and previous is not ws:
            self._fail_pending("Extension reconnected")

        try:
            await self._ws_send_json(
                ws,
                {"type": "helloAck", "protocolVersion": BRIDGE_PROTOCOL_VERSION, "sessionId": session_id},
            )
        except Exception:
            self._disconnect(ws)
            return
        self._connected.set()
        logger.info("bridge_extension_connected id=%s session=%s", ext_id, session_id)

        try:
            async for raw_msg in ws:
                with self._lock:
                    self._client_last_seen_ms = _now_ms()
                try:
                    msg = json.loads(raw_msg)
                except Exception:
                    continue
                await self._on_frame(ws, msg)
        except websockets.ConnectionClosed:
            pass
        finally:
            self._disconnect(ws)

    async def _run_async(self) -> None:
        self._loop = asyncio.get_running_loop()

        backoff_s = 0.25
        max_backoff_s = 5.0
        try:
            while not self._stop.is_set():
                with self._lock:
                    has_server = self._server is not None
                if has_server:
                    await asyncio.sleep(0.25)
                    continue

                bind_error: str | None = None
                server = None
                for port in self._port_candidates():
                    try:
                        server = await websockets.serve(
                            self._handler,
                            self.host,
                            int(port),
                            origins=[None, re.compile(r"^null$"), re.compile(r"^chrome-extension://[a-p]{32}/?$")],
                            max_size=8_000_000,
                            ping_interval=None,
                        )
                        with self._lock:
                            self.port = int(port)
                        break
                    except OSError as exc:
                        bind_error = str(exc)
                        if getattr(exc, "errno", None) in {errno.EADDRINUSE, errno.EACCES}:
                            continue
                        break

                if server is not None:
                    with self._lock:
                        self._server = server
                        self._bind_error = None
                    logger.info("bridge_listening host=%s port=%d", self.host, self.port)
                    backoff_s = 0.25
                    continue

                with self._lock:
                    self._bind_error = bind_error or "unknown bind error"
                logger.warning("bridge_bind_failed host=%s error=%s", self.host, self._bind_error)
                await asyncio.sleep(backoff_s)
                backoff_s = min(backoff_s * 1.6, max_backoff_s)
        finally:
            await self._shutdown_async()

    async def _shutdown_async(self) -> None:
        with self._lock:
            srv = self._server
            self._server = None
            ws = self._ws
        if srv is not None:
            srv.close()
            with contextlib.suppress(Exception):
                await srv.wait_closed()
        if ws is not None:
            with contextlib.suppress(Exception):
                await ws.close()
        self._disconnect(ws)

    def _fail_pending(self, reason: str) -> None:
        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()
        for fut in pending:
            if not fut.done():
                with contextlib.suppress(Exception):
                    fut.set_exception(ChannelFailure(reason))

    def _disconnect(self, ws: Any) -> None:
        with self._lock:
            if ws is not None and self._ws is not ws:
                return
            self._ws = None
            self._client = None
            self._session_id = None
            self._client_last_seen_ms = 0
            self._connected.clear()
        self._fail_pending("Extension disconnected")

    async def _on_frame(self, ws: Any, msg: Any) -> None:
        if not isinstance(msg, dict):
            return

        mtype = msg.get("type")

        if mtype == "rpcResult":
            raw_id = msg.get("id")
            try:
                req_id = int(raw_id)
            except (TypeError, ValueError):
                return
            with self._lock:
                fut = self._pending.get(req_id)
            if fut is None or fut.done():
                return
            if msg.get("ok"):
                with contextlib.suppress(Exception):
                    fut.set_result(msg.get("result"))
                return
            err = msg.get("error")
            err_msg = err.get("message") if isinstance(err, dict) and isinstance(err.get("message"), str) else None
            with contextlib.suppress(Exception):
                fut.set_exception(ChannelFailure(err_msg or "Extension RPC failed"))
            return

        if mtype == "message":
            # Handled off the receive loop: a switch awaits rpcResults arriving on this socket.
            task = asyncio.create_task(self._answer_message(ws, msg.get("id"), msg.get("request")))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return

        if mtype == "log":
            self._log(str(msg.get("level") or "info"), str(msg.get("message") or ""), msg.get("meta"))
            return

        if mtype == "ping":
            with contextlib.suppress(Exception):
                await self._ws_send_json(ws, {"type": "pong", "ts": _now_ms()})
            return

    async def _answer_message(self, ws: Any, msg_id: Any, request: Any) -> None:
        handler = self._on_message
        if handler is None:
            response: dict[str, Any] = {"success": False, "error": "No message handler installed"}
        elif not isinstance(request, dict):
            response = {"success": False, "error": "Malformed message: 'request' must be an object"}
        else:
            try:
                response = await handler(request)
            except Exception as exc:  # noqa: BLE001
                logger.exception("bridge_message_handler_failed")
                response = {"success": False, "error": str(exc)}
        with contextlib.suppress(Exception):
            await self._ws_send_json(ws, {"type": "messageResult", "id": msg_id, "response": response})

    async def _ws_send_json(self, ws: Any, payload: dict[str, Any]) -> None:
        await ws.send(json.dumps(payload, ensure_ascii=False))
