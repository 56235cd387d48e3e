"""Priority send queue with penalty-based flood control."""

from __future__ import annotations

import heapq
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from ircbot.irc.throttle import PenaltyBudget

PRIORITY_HIGH = 0
PRIORITY_NORMAL = 10
PRIORITY_LOW = 20

T = TypeVar("T")


class PriorityQueue(Generic[T]):
    """Min-priority queue, FIFO among equal priorities.

    Every insert takes the next value of a decreasing serial; the serial is reset to
    its seed whenever the queue runs empty so it never grows without bound.
    """

    SERIAL_SEED = sys.maxsize

    def __init__(self) -> None:
        self._heap: list[tuple[int, int, T]] = []
        self._serial = self.SERIAL_SEED

    def insert(self, item: T, priority: int) -> None:
        # Larger serial means inserted earlier, so negate it for the min-heap
        heapq.heappush(self._heap, (priority, -self._serial, item))
        self._serial -= 1

    def extract(self) -> T | None:
        """Remove and return the first item, or None when empty."""
        if not self._heap:
            return None
        _, _, item = heapq.heappop(self._heap)
        if not self._heap:
            self._serial = self.SERIAL_SEED
        return item

    def peek(self) -> T | None:
        return self._heap[0][2] if self._heap else None

    def clear(self) -> None:
        self._heap.clear()
        self._serial = self.SERIAL_SEED

    def __len__(self) -> int:
        return len(self._heap)

    def __bool__(self) -> bool:
        return bool(self._heap)


def compute_penalty(data: bytes, extra: int = 0) -> int:
    """Cost of sending data: one point plus one per started 100 bytes, plus extra."""
    return int(1 + (len(data) + 1) / 100) + extra


@dataclass
class QueuedItem:
    """Outbound line waiting for budget."""

    data: bytes
    priority: int
    penalty: int = field(default=1)


class SendQueue:
    """Outbound lines ordered by priority, released as the penalty budget allows."""

    def __init__(self, budget: PenaltyBudget | None = None) -> None:
        self._queue: PriorityQueue[QueuedItem] = PriorityQueue()
        self._budget = budget or PenaltyBudget()

    @property
    def budget(self) -> PenaltyBudget:
        return self._budget

    def put(self, data: bytes, priority: int = PRIORITY_NORMAL, penalty: int = 0) -> QueuedItem:
        """Queue data; penalty is added on top of the size-based cost."""
        item = QueuedItem(data=data, priority=priority, penalty=compute_penalty(data, penalty))
        self._queue.insert(item, priority)
        return item

    def drain(self, write: Callable[[bytes], object]) -> int:
        """Write queued items while budget remains. Returns the number of items written."""
        sent = 0
        while self._queue and self._budget.available > 0:
            item = self._queue.extract()
            if item is None:
                break
            self._budget.consume(item.penalty)
            write(item.data)
            sent += 1
        return sent

    def clear(self) -> None:
        self._queue.clear()

    def __len__(self) -> int:
        return len(self._queue)
