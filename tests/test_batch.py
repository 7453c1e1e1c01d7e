from __future__ import annotations

import asyncio

import pytest

from cookie_containers.batch import ItemFailure, bounded, run_batch
from cookie_containers.errors import ChannelFailure


def test_run_batch_collects_partial_failures_without_aborting() -> None:
    seen: list[int] = []

    async def op(n: int) -> None:
        await asyncio.sleep(0)
        if n % 2:
            raise RuntimeError(f"odd {n}")
        seen.append(n)

    result = asyncio.run(run_batch(range(6), op))
    assert sorted(seen) == [0, 2, 4]
    assert result.succeeded == [0, 2, 4]
    assert result.count == 3
    assert result.attempted == 6
    assert not result.ok
    assert [f.item for f in result.failures] == [1, 3, 5]
    assert result.failures[0].kind == "RuntimeError"
    assert result.to_dict()["failures"][0] == {"item": 1, "error": "odd 1", "kind": "RuntimeError"}


def test_run_batch_uses_failure_translator() -> None:
    async def op(_n: int) -> None:
        raise ValueError("nope")

    result = asyncio.run(run_batch([7], op, on_failure=lambda item, exc: ItemFailure(item=item, error="custom")))
    assert result.failures == [ItemFailure(item=7, error="custom")]


def test_run_batch_empty_is_ok() -> None:
    async def op(_n: int) -> None:
        raise AssertionError("not called")

    result = asyncio.run(run_batch([], op))
    assert result.ok and result.count == 0


def test_bounded_converts_timeout_to_channel_failure() -> None:
    async def main() -> None:
        with pytest.raises(ChannelFailure, match="slow.call timed out"):
            await bounded(asyncio.sleep(5), 0.01, what="slow.call")
        assert await bounded(asyncio.sleep(0, result=3), None, what="fast") == 3

    asyncio.run(main())
