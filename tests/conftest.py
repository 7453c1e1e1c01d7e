from __future__ import annotations

from typing import Any

import pytest
from fakes import FakeCookieJar, FakeTabs

from cookie_containers.config import ContainersConfig
from cookie_containers.engine import ContainersEngine, build_engine
from cookie_containers.state_store import MemoryStateStore


@pytest.fixture
def config(tmp_path) -> ContainersConfig:
    return ContainersConfig(state_file=str(tmp_path / "state.json"), call_timeout=2.0)


@pytest.fixture
def make_engine(config: ContainersConfig):
    def _make(
        state: dict | None = None,
        jar: FakeCookieJar | None = None,
        tabs: FakeTabs | None = None,
        **overrides: Any,
    ) -> tuple[ContainersEngine, MemoryStateStore, FakeCookieJar, FakeTabs]:
        for key, value in overrides.items():
            setattr(config, key, value)
        store = MemoryStateStore(state)
        jar = jar if jar is not None else FakeCookieJar()
        tabs = tabs if tabs is not None else FakeTabs()
        engine = build_engine(config, store=store, live=jar, tabs=tabs)
        return engine, store, jar, tabs

    return _make
