"""Known containers and the active-container pointer (read side)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .state_store import StateStore

logger = logging.getLogger("containers.registry")

CONTAINERS_KEY = "containers"
CURRENT_CONTAINER_KEY = "current_container_id"
DEFAULT_CONTAINER_ID = "default"


@dataclass(frozen=True)
class Container:
    id: str
    name: str
    color: str = "#808080"
    icon: str = ""
    domain: str | None = None
    include_subdomains: bool = False

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Container:
        if not isinstance(raw, dict):
            raise ValueError("container record must be an object")
        cid = raw.get("id")
        if not isinstance(cid, str) or not cid.strip():
            raise ValueError("container record is missing 'id'")
        domain = raw.get("domain")
        return cls(
            id=cid,
            name=str(raw.get("name") or cid),
            color=str(raw.get("color") or "#808080"),
            icon=str(raw.get("icon") or ""),
            domain=domain if isinstance(domain, str) and domain else None,
            include_subdomains=bool(raw.get("includeSubdomains", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "icon": self.icon,
            "domain": self.domain,
            "includeSubdomains": self.include_subdomains,
        }


DEFAULT_CONTAINERS: tuple[Container, ...] = (
    Container(id="default", name="Default", color="#808080", icon="🌐", domain=None, include_subdomains=False),
    Container(id="personal", name="Personal", color="#2196F3", icon="👤", domain="example.com", include_subdomains=True),
    Container(id="work", name="Work", color="#FF5722", icon="💼", domain="work.example.com", include_subdomains=True),
    Container(id="shopping", name="Shopping", color="#4CAF50", icon="🛒", domain="amazon.com", include_subdomains=True),
)


def parse_containers(raw: Any) -> list[Container]:
    """Parse stored container records; malformed and duplicate ids are skipped (first wins)."""
    if not isinstance(raw, list):
        return []
    out: list[Container] = []
    seen: set[str] = set()
    for item in raw:
        try:
            container = Container.from_dict(item)
        except ValueError as exc:
            logger.warning("container_record_skipped reason=%s", exc)
            continue
        if container.id in seen:
            logger.warning("container_duplicate_id id=%s", container.id)
            continue
        seen.add(container.id)
        out.append(container)
    return out


class ContainerRegistry:
    """Read-only view over the configured containers.

    The active pointer is read here but written only by the switch orchestrator.
    """

    def __init__(self, store: StateStore) -> None:
        self._store = store

    async def list_containers(self) -> list[Container]:
        data = await self._store.get([CONTAINERS_KEY])
        return parse_containers(data.get(CONTAINERS_KEY))

    async def get(self, container_id: str) -> Container | None:
        for container in await self.list_containers():
            if container.id == container_id:
                return container
        return None

    async def snapshot(self) -> tuple[list[Container], str]:
        data = await self._store.get([CONTAINERS_KEY, CURRENT_CONTAINER_KEY])
        containers = parse_containers(data.get(CONTAINERS_KEY))
        return containers, self._resolve_current(data.get(CURRENT_CONTAINER_KEY), containers)

    async def current_id(self) -> str:
        _containers, current = await self.snapshot()
        return current

    @staticmethod
    def _resolve_current(raw: Any, containers: list[Container]) -> str:
        current = raw if isinstance(raw, str) and raw else DEFAULT_CONTAINER_ID
        if containers and current not in {c.id for c in containers}:
            logger.warning("current_container_unknown id=%s fallback=%s", current, DEFAULT_CONTAINER_ID)
            return DEFAULT_CONTAINER_ID
        return current

    async def install_defaults(self) -> bool:
        """Write the default containers on first run. Returns True if installed."""
        data = await self._store.get([CONTAINERS_KEY])
        if CONTAINERS_KEY in data and data[CONTAINERS_KEY] is not None:
            return False
        await self._store.set(
            {
                CONTAINERS_KEY: [c.to_dict() for c in DEFAULT_CONTAINERS],
                CURRENT_CONTAINER_KEY: DEFAULT_CONTAINER_ID,
            }
        )
        logger.info("installed_default_containers count=%d", len(DEFAULT_CONTAINERS))
        return True
