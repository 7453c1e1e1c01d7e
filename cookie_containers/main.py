"""
Entry point for the cookie-containers engine.

extension mode: serve the local bridge and answer popup messages forwarded by
the companion extension.
cdp mode: attach to a debuggable Chromium and answer JSON-lines requests on
stdin/stdout (one request object per line).
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
import threading
from typing import Any

from .bridge import ExtensionBridge
from .cdp import CdpCookieAccess, CdpEndpoint, CdpTabAccess
from .config import ContainersConfig
from .engine import ContainersEngine, build_engine
from .errors import ChannelFailure
from .live_cookies import ExtensionCookieAccess
from .server import create_default_dispatcher
from .state_store import ExtensionStateStore, JsonFileStateStore, StateStore
from .tabs import ExtensionTabAccess

logger = logging.getLogger("containers")


def _configure_logging(config: ContainersConfig) -> None:
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )


def _write_message(payload: dict[str, Any]) -> None:
    sys.stdout.buffer.write((json.dumps(payload, ensure_ascii=False) + "\n").encode())
    sys.stdout.buffer.flush()


def _read_message() -> dict[str, Any] | None:
    """Read one request; None at EOF, {} for blank or malformed lines."""
    line = sys.stdin.buffer.readline()
    if not line:
        return None
    line = line.strip()
    if not line:
        return {}
    try:
        msg = json.loads(line.decode())
    except ValueError:
        logger.warning("stdin_message_malformed")
        return {}
    return msg if isinstance(msg, dict) else {}


def build_extension_engine(config: ContainersConfig, bridge: ExtensionBridge) -> ContainersEngine:
    if config.state_backend == "extension":
        store: StateStore = ExtensionStateStore(bridge, timeout=config.call_timeout)
    else:
        store = JsonFileStateStore(config.state_file)
    engine = build_engine(
        config,
        store=store,
        live=ExtensionCookieAccess(bridge, timeout=config.call_timeout),
        tabs=ExtensionTabAccess(bridge, timeout=config.call_timeout),
        bridge=bridge,
    )
    bridge.set_message_handler(create_default_dispatcher(engine).handle)
    return engine


def build_cdp_engine(config: ContainersConfig) -> ContainersEngine:
    endpoint = CdpEndpoint(port=config.cdp_port, timeout=config.call_timeout)
    return build_engine(
        config,
        store=JsonFileStateStore(config.state_file),
        live=CdpCookieAccess(endpoint),
        tabs=CdpTabAccess(endpoint),
    )


def _install_defaults(engine: ContainersEngine, bridge: ExtensionBridge, timeout: float) -> bool:
    try:
        bridge.run(engine.registry.install_defaults(), timeout=timeout)
    except ChannelFailure as exc:
        logger.warning("install_defaults_failed reason=%s", exc)
        return False
    return True


def run_extension_mode(config: ContainersConfig) -> None:
    bridge = ExtensionBridge(
        host=config.bridge_host,
        port=config.bridge_port,
        expected_extension_id=config.extension_id,
    )
    engine = build_extension_engine(config, bridge)

    bridge.start(require_listening=False)
    # Extension-held state is only reachable once the extension has connected.
    installed = config.state_backend != "extension" and _install_defaults(engine, bridge, config.call_timeout)
    logger.info("containers_bridge_ready state=%s status=%s", config.state_backend, bridge.status())

    stop = threading.Event()

    def _on_signal(signum: int, _frame: Any) -> None:
        logger.info("containers_stopping signal=%d", signum)
        stop.set()

    signal.signal(signal.SIGTERM, _on_signal)
    signal.signal(signal.SIGINT, _on_signal)
    try:
        while not stop.wait(timeout=1.0):
            if not installed and bridge.is_connected():
                installed = _install_defaults(engine, bridge, config.call_timeout)
    finally:
        bridge.stop()


async def serve_stdio(engine: ContainersEngine) -> None:
    dispatcher = create_default_dispatcher(engine)
    await engine.registry.install_defaults()
    while True:
        message = await asyncio.to_thread(_read_message)
        if message is None:
            break
        if not message:
            _write_message({"success": False, "error": "Malformed message"})
            continue
        response = await dispatcher.handle(message)
        if "id" in message:
            response = {"id": message["id"], **response}
        _write_message(response)


def main() -> None:
    """Main entry point for the containers engine."""
    config = ContainersConfig.from_env()
    _configure_logging(config)
    logger.info("containers_start mode=%s state=%s", config.mode, config.state_file)
    if config.mode == "cdp":
        asyncio.run(serve_stdio(build_cdp_engine(config)))
        return
    run_extension_mode(config)


if __name__ == "__main__":
    main()
