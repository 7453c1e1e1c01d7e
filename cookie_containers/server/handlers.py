"""Handlers for the popup message protocol."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..domains import extract_domain
from ..orchestrator import SwitchRequest
from ..registry import CURRENT_CONTAINER_KEY

if TYPE_CHECKING:
    from ..engine import ContainersEngine


async def handle_switch_container(engine: ContainersEngine, request: dict[str, Any]) -> dict[str, Any]:
    report = await engine.orchestrator.switch(SwitchRequest.from_message(request))
    return {
        "success": True,
        "noop": report.noop,
        "restored": report.restored,
        "reloaded": report.reloaded,
    }


async def handle_get_containers(engine: ContainersEngine, request: dict[str, Any]) -> dict[str, Any]:
    containers, current = await engine.registry.snapshot()
    return {"containers": [c.to_dict() for c in containers], CURRENT_CONTAINER_KEY: current}


async def handle_get_current_tab(engine: ContainersEngine, request: dict[str, Any]) -> dict[str, Any]:
    tab = await engine.refresher.active_tab()
    if tab is None or not tab.url:
        return {"domain": None, "url": None}
    return {"domain": extract_domain(tab.url), "url": tab.url}


async def handle_get_status(engine: ContainersEngine, request: dict[str, Any]) -> dict[str, Any]:
    orchestrator = engine.orchestrator
    last = orchestrator.last_report
    status = {
        "state": orchestrator.state.value,
        "busy": orchestrator.busy,
        CURRENT_CONTAINER_KEY: await engine.registry.current_id(),
        "lastSwitch": last.to_dict() if last is not None else None,
    }
    if engine.bridge is not None:
        status["bridge"] = {**engine.bridge.status(), "logs": engine.bridge.logs()[-20:]}
    return status


async def handle_get_snapshot(engine: ContainersEngine, request: dict[str, Any]) -> dict[str, Any]:
    cid = request.get("containerId")
    if not isinstance(cid, str) or not cid:
        raise ValueError("getSnapshot requires 'containerId'")
    cookies = await engine.sessions.load(cid)
    return {"containerId": cid, "count": len(cookies), "cookies": [c.describe() for c in cookies]}


MESSAGE_HANDLERS = {
    "switchContainer": handle_switch_container,
    "getContainers": handle_get_containers,
    "getCurrentTab": handle_get_current_tab,
    "getStatus": handle_get_status,
    "getSnapshot": handle_get_snapshot,
}
