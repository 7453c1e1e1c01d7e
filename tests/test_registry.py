from __future__ import annotations

import asyncio

from cookie_containers.registry import (
    CONTAINERS_KEY,
    CURRENT_CONTAINER_KEY,
    DEFAULT_CONTAINERS,
    Container,
    ContainerRegistry,
)
from cookie_containers.state_store import MemoryStateStore


def test_install_defaults_only_once() -> None:
    store = MemoryStateStore()
    registry = ContainerRegistry(store)

    async def main() -> None:
        assert await registry.install_defaults() is True
        containers, current = await registry.snapshot()
        assert [c.id for c in containers] == ["default", "personal", "work", "shopping"]
        assert current == "default"

        await store.set({CURRENT_CONTAINER_KEY: "work"})
        assert await registry.install_defaults() is False
        assert await registry.current_id() == "work"

    asyncio.run(main())


def test_install_defaults_respects_existing_empty_list() -> None:
    store = MemoryStateStore({CONTAINERS_KEY: []})
    assert asyncio.run(ContainerRegistry(store).install_defaults()) is False


def test_default_containers_shape() -> None:
    by_id = {c.id: c for c in DEFAULT_CONTAINERS}
    assert by_id["default"].domain is None
    assert by_id["work"].to_dict() == {
        "id": "work",
        "name": "Work",
        "color": "#FF5722",
        "icon": "💼",
        "domain": "work.example.com",
        "includeSubdomains": True,
    }
    assert all(c.include_subdomains for c in DEFAULT_CONTAINERS if c.domain)


def test_duplicate_and_malformed_containers_are_skipped() -> None:
    store = MemoryStateStore(
        {
            CONTAINERS_KEY: [
                {"id": "a", "name": "First"},
                {"id": "a", "name": "Second"},
                {"name": "no id"},
                "junk",
                {"id": "b", "domain": ""},
            ]
        }
    )
    registry = ContainerRegistry(store)
    containers = asyncio.run(registry.list_containers())
    assert [(c.id, c.name) for c in containers] == [("a", "First"), ("b", "b")]
    assert containers[1].domain is None
    assert asyncio.run(registry.get("missing")) is None


def test_current_pointer_falls_back_to_default() -> None:
    containers = [Container(id="default", name="Default"), Container(id="work", name="Work")]
    unset = MemoryStateStore({CONTAINERS_KEY: [c.to_dict() for c in containers]})
    assert asyncio.run(ContainerRegistry(unset).current_id()) == "default"

    dangling = MemoryStateStore({CONTAINERS_KEY: [c.to_dict() for c in containers], CURRENT_CONTAINER_KEY: "gone"})
    assert asyncio.run(ContainerRegistry(dangling).current_id()) == "default"
