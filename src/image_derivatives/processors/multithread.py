"""Multithreaded fan-out with join-all semantics."""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Generic, List, Optional, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class TaskOutcome(Generic[T, R]):
    """Resolution of one fanned-out task."""

    item: T
    result: Optional[R] = None
    error: Optional[BaseException] = None

    @property
    def success(self) -> bool:
        return self.error is None


def fan_out(
    task: Callable[[T], R],
    items: Sequence[T],
    max_workers: Optional[int] = None,
) -> List[TaskOutcome[T, R]]:
    """
    Run ``task`` for every item on a thread pool and wait for all of them.

    A failing task never cancels its siblings: the call returns only once
    every task has resolved, so no worker is left writing to a file the
    caller is about to remove.

    Args:
        task: Callable applied to each item
        items: Work items
        max_workers: Pool size, defaults to one thread per item

    Returns:
        One TaskOutcome per item, in the order of ``items``
    """
    if not items:
        return []

    workers = min(max_workers or len(items), len(items))
    outcomes: List[Optional[TaskOutcome[T, R]]] = [None] * len(items)

    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_to_index = {
            executor.submit(task, item): index for index, item in enumerate(items)
        }

        for future in as_completed(future_to_index):
            index = future_to_index[future]
            try:
                outcomes[index] = TaskOutcome(item=items[index], result=future.result())
            except Exception as e:
                outcomes[index] = TaskOutcome(item=items[index], error=e)

    return [outcome for outcome in outcomes if outcome is not None]
