"""Wiring of the container engine components."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .config import ContainersConfig
from .live_cookies import LiveCredentialAccess
from .orchestrator import SwitchOrchestrator
from .registry import ContainerRegistry
from .session_store import SessionStore
from .state_store import StateStore
from .tabs import TabAccess, TabRefresher

if TYPE_CHECKING:
    from .bridge import ExtensionBridge


@dataclass
class ContainersEngine:
    config: ContainersConfig
    store: StateStore
    registry: ContainerRegistry
    sessions: SessionStore
    refresher: TabRefresher
    orchestrator: SwitchOrchestrator
    bridge: ExtensionBridge | None = None


def build_engine(
    config: ContainersConfig,
    *,
    store: StateStore,
    live: LiveCredentialAccess,
    tabs: TabAccess,
    bridge: ExtensionBridge | None = None,
) -> ContainersEngine:
    timeout = config.call_timeout
    registry = ContainerRegistry(store)
    sessions = SessionStore(store, live, call_timeout=timeout)
    refresher = TabRefresher(tabs, call_timeout=timeout)
    orchestrator = SwitchOrchestrator(
        store=store,
        registry=registry,
        sessions=sessions,
        live=live,
        refresher=refresher,
        call_timeout=timeout,
        busy_policy=config.busy_policy,
    )
    return ContainersEngine(
        config=config,
        store=store,
        registry=registry,
        sessions=sessions,
        refresher=refresher,
        orchestrator=orchestrator,
        bridge=bridge,
    )
