"""Run one action over many targets on a shared site connection.

The token store coalesces concurrent stale-token refreshes, so many
workers may hit an expired token at once and still trigger a single
refresh.
"""

from __future__ import annotations

import concurrent.futures
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from mwaction.config import get_settings
from mwaction.logging import get_logger

LOG = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class BulkResult(Generic[T, R]):
    """Per-item results of a bulk run, in input order.

    Attributes:
        succeeded: ``(item, result)`` pairs for items that completed.
        failed: ``(item, exception)`` pairs for items that raised.
    """

    succeeded: list[tuple[T, R]] = field(default_factory=list)
    failed: list[tuple[T, Exception]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def run_bulk(items: Iterable[T], fn: Callable[[T], R], max_workers: int | None = None) -> BulkResult[T, R]:
    """Apply *fn* to every item on a thread pool.

    A failing item never stops the others; its exception is recorded
    and logged.

    Args:
        items: Targets, e.g. user names to block.
        fn: Called once per item, typically a closure over a ``Site``.
        max_workers: Pool size; defaults to the ``max_workers`` setting.

    Returns:
        The successes and failures, each in input order.
    """
    if max_workers is None:
        max_workers = get_settings().max_workers
    if max_workers < 1:
        raise ValueError(f"max_workers must be at least 1, got {max_workers}")

    ordered = list(items)
    outcomes: dict[int, tuple[bool, object]] = {}
    with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = {pool.submit(fn, item): index for index, item in enumerate(ordered)}
        for future in concurrent.futures.as_completed(futures):
            index = futures[future]
            try:
                outcomes[index] = (True, future.result())
            except Exception as exc:  # noqa: BLE001 — one failed item must not abort the batch
                LOG.warning("bulk_item_failed", item=str(ordered[index]), error=str(exc))
                outcomes[index] = (False, exc)

    result: BulkResult[T, R] = BulkResult()
    for index, item in enumerate(ordered):
        ok, value = outcomes[index]
        if ok:
            result.succeeded.append((item, value))  # type: ignore[arg-type]
        else:
            result.failed.append((item, value))  # type: ignore[arg-type]
    LOG.info("bulk_run_done", succeeded=len(result.succeeded), failed=len(result.failed))
    return result
