"""Best-effort fan-out with visible partial failure."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class ItemFailure:
    item: Any
    error: str
    kind: str = "Exception"

    def to_dict(self) -> dict[str, Any]:
        item = self.item
        describe = getattr(item, "describe", None)
        if callable(describe):
            item = describe()
        elif not isinstance(item, (str, int, float, bool, type(None), dict, list)):
            item = repr(item)
        return {"item": item, "error": self.error, "kind": self.kind}


@dataclass
class BatchResult(Generic[T]):
    succeeded: list[T] = field(default_factory=list)
    failures: list[ItemFailure] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.succeeded)

    @property
    def attempted(self) -> int:
        return len(self.succeeded) + len(self.failures)

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "attempted": self.attempted,
            "failures": [f.to_dict() for f in self.failures],
        }


async def run_batch(
    items: Iterable[T],
    op: Callable[[T], Awaitable[Any]],
    *,
    on_failure: Callable[[T, BaseException], ItemFailure | None] | None = None,
) -> BatchResult[T]:
    """Run `op` over every item concurrently and wait for all of them.

    A failing item never cancels its siblings. `on_failure` may translate the
    exception into a domain-specific ItemFailure (and log it).
    """
    pending = list(items)
    result: BatchResult[T] = BatchResult()
    if not pending:
        return result

    outcomes = await asyncio.gather(*(op(item) for item in pending), return_exceptions=True)
    for item, outcome in zip(pending, outcomes):
        if isinstance(outcome, BaseException):
            if isinstance(outcome, (KeyboardInterrupt, SystemExit)):
                raise outcome
            failure = on_failure(item, outcome) if on_failure is not None else None
            if failure is None:
                failure = ItemFailure(item=item, error=str(outcome) or type(outcome).__name__, kind=type(outcome).__name__)
            result.failures.append(failure)
            continue
        result.succeeded.append(item)
    return result


async def bounded(awaitable: Awaitable[T], timeout: float | None, *, what: str) -> T:
    """Await an external call under a deadline; a timeout becomes ChannelFailure."""
    from .errors import ChannelFailure

    if timeout is None or timeout <= 0:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise ChannelFailure(f"{what} timed out after {timeout:g}s") from exc
