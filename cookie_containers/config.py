from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_STATE_FILE = "~/.cookie-containers/state.json"


def expand_path(raw: str) -> str:
    return str(Path(raw).expanduser())


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name) or default)
    except Exception:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name) or default)
    except Exception:
        return default


@dataclass
class ContainersConfig:
    state_file: str
    mode: str = "extension"
    state_backend: str = "file"
    bridge_host: str = "127.0.0.1"
    bridge_port: int = 8766
    extension_id: str | None = None
    cdp_port: int = 9222
    call_timeout: float = 10.0
    busy_policy: str = "queue"
    log_level: str = "INFO"

    @staticmethod
    def normalize_mode(raw: str | None) -> str:
        mode = (raw or "").strip().lower()
        if mode in {"cdp", "attach", "devtools"}:
            return "cdp"
        return "extension"

    @staticmethod
    def normalize_state_backend(raw: str | None, mode: str) -> str:
        backend = (raw or "").strip().lower()
        # The extension's storage area is only reachable over the bridge.
        if backend in {"extension", "storage", "chrome"} and mode == "extension":
            return "extension"
        return "file"

    @staticmethod
    def normalize_busy_policy(raw: str | None) -> str:
        policy = (raw or "").strip().lower()
        if policy in {"reject", "fail", "refuse"}:
            return "reject"
        return "queue"

    @staticmethod
    def clamp_timeout(raw: float) -> float:
        return max(0.5, min(float(raw), 120.0))

    @classmethod
    def from_env(cls) -> ContainersConfig:
        level = (os.environ.get("CONTAINERS_LOG_LEVEL") or "INFO").strip().upper() or "INFO"
        mode = cls.normalize_mode(os.environ.get("CONTAINERS_MODE"))
        return cls(
            state_file=expand_path(os.environ.get("CONTAINERS_STATE_FILE") or DEFAULT_STATE_FILE),
            mode=mode,
            state_backend=cls.normalize_state_backend(os.environ.get("CONTAINERS_STATE"), mode),
            bridge_host=(os.environ.get("CONTAINERS_BRIDGE_HOST") or "127.0.0.1").strip() or "127.0.0.1",
            bridge_port=_env_int("CONTAINERS_BRIDGE_PORT", 8766),
            extension_id=(os.environ.get("CONTAINERS_EXTENSION_ID") or "").strip() or None,
            cdp_port=_env_int("CONTAINERS_CDP_PORT", 9222),
            call_timeout=cls.clamp_timeout(_env_float("CONTAINERS_CALL_TIMEOUT", 10.0)),
            busy_policy=cls.normalize_busy_policy(os.environ.get("CONTAINERS_BUSY_POLICY")),
            log_level=level,
        )
