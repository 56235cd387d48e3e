"""IRC flood control: penalty budget."""

from __future__ import annotations


class PenaltyBudget:
    """Penalty points available for sending. Refilled by a periodic tick, capped at limit."""

    def __init__(self, limit: int = 10) -> None:
        self._limit = limit
        self._available = limit

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def available(self) -> int:
        return self._available

    def consume(self, penalty: int) -> None:
        """Spend penalty points. The budget may go negative; it then needs several refills."""
        self._available -= penalty

    def refill(self, amount: int = 1) -> None:
        self._available = min(self._limit, self._available + amount)

    def reset(self) -> None:
        self._available = self._limit
