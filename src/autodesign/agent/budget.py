"""Monetary ceiling for cost-incurring operations."""

from __future__ import annotations

import logging
from decimal import Decimal

LOGGER = logging.getLogger(__name__)


def _to_decimal(value: float) -> Decimal:
    # str() keeps 0.04 as 0.04 instead of its binary expansion.
    return Decimal(str(value))


class BudgetTracker:
    """Tracks spend for one run and refuses reservations past the ceiling."""

    def __init__(self, max_cost: float) -> None:
        if max_cost < 0:
            raise ValueError("max_cost must not be negative")
        self._ceiling = _to_decimal(max_cost)
        self._spent = Decimal("0")

    def try_reserve(self, unit_cost: float) -> bool:
        if unit_cost < 0:
            raise ValueError("unit_cost must not be negative")
        cost = _to_decimal(unit_cost)
        if self._spent + cost > self._ceiling:
            LOGGER.info(
                "budget_reservation_denied",
                extra={
                    "spent": float(self._spent),
                    "unit_cost": unit_cost,
                    "max_cost": float(self._ceiling),
                },
            )
            return False
        self._spent += cost
        return True

    def get_spent(self) -> float:
        return float(self._spent)

    @property
    def spent(self) -> float:
        return float(self._spent)

    @property
    def remaining(self) -> float:
        return float(self._ceiling - self._spent)
