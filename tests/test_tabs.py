from __future__ import annotations

import asyncio

from fakes import FakeTabs

from cookie_containers.errors import ChannelFailure
from cookie_containers.tabs import Tab, TabRefresher, select_in_scope


def _tabs() -> list[Tab]:
    return [
        Tab(id="1", url="https://app.site.test/home", active=True),
        Tab(id="2", url="https://site.test/"),
        Tab(id="3", url="https://other.test/"),
        Tab(id="4", url="about:blank"),
        Tab(id=None, url="https://site.test/devtools"),
    ]


def test_select_in_scope_follows_domain_rules() -> None:
    tabs = _tabs()
    assert [t.id for t in select_in_scope(tabs, "site.test", True)] == ["1", "2", None]
    assert [t.id for t in select_in_scope(tabs, "site.test", False)] == ["2", None]
    assert [t.id for t in select_in_scope(tabs, "app.site.test", False)] == ["1"]
    assert len(select_in_scope(tabs, None, False)) == len(tabs)


def test_tab_from_dict_normalizes_ids() -> None:
    t = Tab.from_dict({"id": 42, "url": "https://a.test/", "active": True, "title": 7})
    assert t == Tab(id="42", url="https://a.test/", title=None, active=True)
    assert Tab.from_dict({}).id is None


def test_refresh_reloads_scoped_tabs_with_ids() -> None:
    tabs = FakeTabs(_tabs())
    res = asyncio.run(TabRefresher(tabs, call_timeout=1.0).refresh("site.test", True))
    assert sorted(tabs.reloaded) == ["1", "2"]
    assert res.count == 2
    assert res.failures == []


def test_refresh_collects_reload_failures() -> None:
    tabs = FakeTabs(_tabs())
    tabs.fail_reload = {"2"}
    res = asyncio.run(TabRefresher(tabs, call_timeout=1.0).refresh(None, False))
    assert sorted(tabs.reloaded) == ["1", "3", "4"]
    assert res.count == 3
    assert [(f.item.id, f.kind) for f in res.failures] == [("2", "ChannelFailure")]


def test_active_tab() -> None:
    refresher = TabRefresher(FakeTabs(_tabs()))
    assert asyncio.run(refresher.active_tab()).id == "1"
    assert asyncio.run(TabRefresher(FakeTabs()).active_tab()) is None


def test_query_failure_propagates() -> None:
    tabs = FakeTabs()
    tabs.query_error = ChannelFailure("tabs unavailable")
    try:
        asyncio.run(TabRefresher(tabs).refresh("site.test", True))
    except ChannelFailure as exc:
        assert "tabs unavailable" in str(exc)
    else:
        raise AssertionError("expected ChannelFailure")
