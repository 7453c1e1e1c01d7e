"""Persisted key/value state (containers, active pointer, snapshots).

Three backends share one async protocol:
- MemoryStateStore: process-local, used by tests and ephemeral runs.
- JsonFileStateStore: a small JSON document on disk, written atomically.
- ExtensionStateStore: the companion extension's storage area, via the bridge.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import shutil
import time
from contextlib import suppress
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from .errors import ChannelFailure

if TYPE_CHECKING:
    from .bridge import ExtensionBridge

logger = logging.getLogger("containers.state")

STATE_FILE_VERSION = 1


class StateStore(Protocol):
    async def get(self, keys: list[str]) -> dict[str, Any]:
        """Return the subset of `keys` that exist."""
        ...

    async def set(self, items: dict[str, Any]) -> None: ...


class MemoryStateStore:
    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._items: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    async def get(self, keys: list[str]) -> dict[str, Any]:
        return {k: copy.deepcopy(self._items[k]) for k in keys if k in self._items}

    async def set(self, items: dict[str, Any]) -> None:
        for k, v in items.items():
            self._items[k] = copy.deepcopy(v)

    def dump(self) -> dict[str, Any]:
        return copy.deepcopy(self._items)


def load_items(path: Path) -> dict[str, Any]:
    """Read the items mapping; a missing or corrupt file reads as empty."""
    try:
        if not path.exists() or not path.is_file():
            return {}
        obj = json.loads(path.read_text(encoding="utf-8", errors="replace"))
    except Exception:
        logger.warning("state_file_unreadable path=%s", path)
        return {}

    if not isinstance(obj, dict):
        return {}
    items = obj.get("items")
    if not isinstance(items, dict):
        return {}
    return {k: v for k, v in items.items() if isinstance(k, str) and k}


def save_items(path: Path, items: dict[str, Any]) -> dict[str, Any]:
    path.parent.mkdir(parents=True, exist_ok=True)

    now_ms = int(time.time() * 1000)
    payload = {"version": STATE_FILE_VERSION, "updatedAt": now_ms, "items": items}
    text = json.dumps(payload, ensure_ascii=True, indent=2, sort_keys=True)

    tmp = path.with_suffix(path.suffix + ".tmp")
    bak = path.with_suffix(path.suffix + ".bak")

    if path.exists() and path.is_file():
        try:
            shutil.copyfile(path, bak)
        except OSError as exc:
            logger.debug("state_backup_failed path=%s err=%s", bak, exc)

    tmp.write_text(text, encoding="utf-8")
    with suppress(OSError):
        os.chmod(tmp, 0o600)
    tmp.replace(path)
    with suppress(OSError):
        os.chmod(path, 0o600)

    return {"ok": True, "path": str(path), "updatedAt": now_ms, "keys": len(items)}


class JsonFileStateStore:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()
        self._lock = asyncio.Lock()

    async def get(self, keys: list[str]) -> dict[str, Any]:
        items = await asyncio.to_thread(load_items, self.path)
        return {k: items[k] for k in keys if k in items}

    async def set(self, items: dict[str, Any]) -> None:
        # Read-modify-write of the whole document; serialize writers in this process.
        async with self._lock:
            current = await asyncio.to_thread(load_items, self.path)
            current.update(items)
            await asyncio.to_thread(save_items, self.path, current)


class ExtensionStateStore:
    """State kept in the extension's local storage area (`storage.get` / `storage.set`)."""

    def __init__(self, bridge: ExtensionBridge, *, timeout: float = 10.0) -> None:
        self._bridge = bridge
        self._timeout = timeout

    async def get(self, keys: list[str]) -> dict[str, Any]:
        res = await self._bridge.rpc_call_async("storage.get", {"keys": list(keys)}, timeout=self._timeout)
        if res is None:
            return {}
        if not isinstance(res, dict):
            raise ChannelFailure(f"storage.get returned {type(res).__name__}")
        return {k: res[k] for k in keys if k in res}

    async def set(self, items: dict[str, Any]) -> None:
        await self._bridge.rpc_call_async("storage.set", {"items": items}, timeout=self._timeout)
