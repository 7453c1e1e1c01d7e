"""Container switch state machine.

A switch runs five strictly ordered stages; fan-out inside a stage is concurrent:

    IDLE -> SAVING -> CLEARING -> RESTORING -> COMMITTING -> RELOADING -> IDLE

The active-container pointer is written only in COMMITTING, after the target
session has been restored. A failure before that leaves the pointer on the
previous (already saved) container.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .batch import BatchResult, ItemFailure, bounded, run_batch
from .credentials import Credential, location_of
from .errors import ChannelFailure, ContainerNotFound, CredentialWriteFailure, SwitchInProgress
from .live_cookies import LiveCredentialAccess
from .registry import CURRENT_CONTAINER_KEY, ContainerRegistry
from .session_store import SessionStore, filter_scope
from .state_store import StateStore
from .tabs import TabRefresher

logger = logging.getLogger("containers.switch")


class SwitchState(str, Enum):
    IDLE = "idle"
    SAVING = "saving"
    CLEARING = "clearing"
    RESTORING = "restoring"
    COMMITTING = "committing"
    RELOADING = "reloading"


@dataclass(frozen=True)
class SwitchRequest:
    container_id: str
    domain: str | None = None
    include_subdomains: bool = False

    @classmethod
    def from_message(cls, msg: dict[str, Any]) -> SwitchRequest:
        cid = msg.get("containerId")
        if not isinstance(cid, str) or not cid.strip():
            raise ValueError("switchContainer requires 'containerId'")
        domain = msg.get("domain")
        return cls(
            container_id=cid,
            domain=domain if isinstance(domain, str) and domain else None,
            include_subdomains=bool(msg.get("includeSubdomains") or False),
        )


@dataclass
class SwitchReport:
    target: str
    previous: str
    domain: str | None
    include_subdomains: bool
    noop: bool = False
    saved: int = 0
    cleared: int = 0
    restored: int = 0
    reloaded: int = 0
    failures: list[ItemFailure] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "noop": self.noop,
            "containerId": self.target,
            "previousContainerId": self.previous,
            "domain": self.domain,
            "includeSubdomains": self.include_subdomains,
            "saved": self.saved,
            "cleared": self.cleared,
            "restored": self.restored,
            "reloaded": self.reloaded,
            "failures": [f.to_dict() for f in self.failures],
        }


class SwitchOrchestrator:
    """Single entry point for container switches, serialized by one lock."""

    def __init__(
        self,
        *,
        store: StateStore,
        registry: ContainerRegistry,
        sessions: SessionStore,
        live: LiveCredentialAccess,
        refresher: TabRefresher,
        call_timeout: float | None = None,
        busy_policy: str = "queue",
    ) -> None:
        self._store = store
        self._registry = registry
        self._sessions = sessions
        self._live = live
        self._refresher = refresher
        self._timeout = call_timeout
        self._busy_policy = busy_policy
        self._lock = asyncio.Lock()
        self._state = SwitchState.IDLE
        self._ids = itertools.count(1)
        self._inflight = 0
        self._tasks: set[asyncio.Future[SwitchReport]] = set()
        self.last_report: SwitchReport | None = None

    @property
    def state(self) -> SwitchState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._inflight > 0

    def _enter(self, state: SwitchState, switch_id: int) -> None:
        logger.debug("switch_state id=%d %s->%s", switch_id, self._state.value, state.value)
        self._state = state

    async def switch(self, request: SwitchRequest) -> SwitchReport:
        if self._busy_policy == "reject" and self._inflight > 0:
            logger.info("switch_rejected_busy target=%s", request.container_id)
            raise SwitchInProgress(request.container_id)
        self._inflight += 1
        # Once started, a switch runs to completion even if the caller goes away.
        task = asyncio.ensure_future(self._switch_serialized(request))
        self._tasks.add(task)
        task.add_done_callback(self._switch_done)
        return await asyncio.shield(task)

    def _switch_done(self, task: asyncio.Future[SwitchReport]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.info("switch_failed kind=%s reason=%s", type(exc).__name__, exc)

    async def _switch_serialized(self, request: SwitchRequest) -> SwitchReport:
        try:
            async with self._lock:
                switch_id = next(self._ids)
                try:
                    report = await self._run(request, switch_id)
                finally:
                    self._enter(SwitchState.IDLE, switch_id)
                self.last_report = report
                return report
        finally:
            self._inflight -= 1

    async def _run(self, request: SwitchRequest, switch_id: int) -> SwitchReport:
        containers, current_id = await bounded(self._registry.snapshot(), self._timeout, what="state.get")
        by_id = {c.id: c for c in containers}

        target = by_id.get(request.container_id)
        if target is None:
            logger.error("switch_target_not_found id=%s", request.container_id)
            raise ContainerNotFound(request.container_id)
        current = by_id.get(current_id)

        domain = request.domain or target.domain
        subdomains = bool(request.include_subdomains or target.include_subdomains)
        report = SwitchReport(
            target=target.id, previous=current_id, domain=domain, include_subdomains=subdomains
        )

        if current_id == target.id and current is not None and current.domain == domain:
            logger.info("switch_noop target=%s domain=%s", target.id, domain)
            report.noop = True
            return report

        logger.info("switch_start id=%d from=%s to=%s domain=%s", switch_id, current_id, target.id, domain)

        self._enter(SwitchState.SAVING, switch_id)
        if current is not None:
            report.saved = await self._sessions.save(
                current.id,
                current.domain or domain,
                bool(current.include_subdomains or subdomains),
            )

        self._enter(SwitchState.CLEARING, switch_id)
        cleared = await self._clear(domain, subdomains)
        report.cleared = cleared.count
        report.failures.extend(cleared.failures)

        self._enter(SwitchState.RESTORING, switch_id)
        restored = await self._sessions.restore(target.id, domain, subdomains)
        report.restored = restored.count
        report.failures.extend(restored.failures)

        self._enter(SwitchState.COMMITTING, switch_id)
        await bounded(self._store.set({CURRENT_CONTAINER_KEY: target.id}), self._timeout, what="state.set")

        self._enter(SwitchState.RELOADING, switch_id)
        try:
            reloaded = await self._refresher.refresh(domain, subdomains)
        except ChannelFailure as exc:
            # Committed already; a missing reload does not undo the switch.
            logger.warning("tab_query_failed target=%s reason=%s", target.id, exc)
        else:
            report.reloaded = reloaded.count
            report.failures.extend(reloaded.failures)

        logger.info(
            "switch_complete id=%d target=%s reloaded=%d%s",
            switch_id,
            target.id,
            report.reloaded,
            f" domain={domain}" if domain else "",
        )
        return report

    async def _clear(self, domain: str | None, include_subdomains: bool) -> BatchResult[Credential]:
        live = await bounded(self._live.list_all(), self._timeout, what="cookies.getAll")
        doomed = filter_scope(live, domain, include_subdomains)

        async def _remove(cookie: Credential) -> None:
            await bounded(
                self._live.remove(location_of(cookie), cookie.name, cookie.store_id),
                self._timeout,
                what="cookies.remove",
            )

        result = await run_batch(doomed, _remove, on_failure=_remove_failed)
        logger.info(
            "cleared_cookies count=%d failed=%d%s",
            result.count,
            len(result.failures),
            f" domain={domain}" if domain else "",
        )
        return result


def _remove_failed(cookie: Credential, exc: BaseException) -> ItemFailure:
    failure = CredentialWriteFailure("remove", cookie.identity, str(exc) or type(exc).__name__)
    logger.warning("cookie_remove_failed name=%s domain=%s reason=%s", cookie.name, cookie.domain, failure.reason)
    return ItemFailure(item=cookie, error=failure.reason, kind=type(failure).__name__)
