import logging
from collections.abc import Sequence

from portfolio_engine.analysis.allocation import AllocationEngine, distribute
from portfolio_engine.config import TargetPolicy
from portfolio_engine.errors import InvalidInputError
from portfolio_engine.models.holding import (
    ConvergenceResult,
    FinalAllocation,
    Holding,
)

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_PERCENT = 1.0
DEFAULT_MAX_MONTHS = 120


def _weights(values: list[float]) -> list[float]:
    total = sum(values)
    return [v / total * 100 if total > 0 else 0.0 for v in values]


def _is_ideal(values: list[float], targets: list[float], tolerance: float) -> bool:
    return all(
        abs(w - t) <= tolerance for w, t in zip(_weights(values), targets)
    )


class ConvergenceSimulator:
    """Simulates monthly contributions until every weight is near its target.

    Each month re-runs the allocation rule on the simulated state, so the
    forecast follows the same path-dependent policy the allocator uses.
    """

    def __init__(self, target_policy: TargetPolicy = TargetPolicy.REJECT) -> None:
        self._allocator = AllocationEngine(target_policy)

    def months_to_ideal(
        self,
        holdings: Sequence[Holding],
        monthly_amount: float,
        tolerance_percent: float = DEFAULT_TOLERANCE_PERCENT,
        max_months: int = DEFAULT_MAX_MONTHS,
    ) -> ConvergenceResult:
        if not holdings:
            raise InvalidInputError("At least one holding is required")
        if monthly_amount < 0:
            raise InvalidInputError(
                f"Monthly amount must not be negative, got {monthly_amount}"
            )
        if tolerance_percent < 0:
            raise InvalidInputError(
                f"Tolerance must not be negative, got {tolerance_percent}"
            )
        if max_months < 1:
            raise InvalidInputError(f"max_months must be at least 1, got {max_months}")

        prepared = self._allocator.prepare(holdings)
        targets = [h.target_allocation for h in prepared]
        values = [h.current_value for h in prepared]

        if _is_ideal(values, targets, tolerance_percent):
            return self._result(prepared, values, months=0, reachable=True)

        for month in range(1, max_months + 1):
            amounts = distribute(values, targets, monthly_amount)
            values = [v + a for v, a in zip(values, amounts)]
            if _is_ideal(values, targets, tolerance_percent):
                logger.debug("Ideal allocation reached after %d months", month)
                return self._result(prepared, values, months=month, reachable=True)

        logger.info(
            "Ideal allocation not reached within %d months at %.2f/month",
            max_months,
            monthly_amount,
        )
        return self._result(prepared, values, months=max_months, reachable=False)

    def _result(
        self,
        holdings: list[Holding],
        values: list[float],
        *,
        months: int,
        reachable: bool,
    ) -> ConvergenceResult:
        return ConvergenceResult(
            months=months,
            reachable=reachable,
            final_allocations=[
                FinalAllocation(
                    holding_id=h.id,
                    name=h.name,
                    current=round(w, 2),
                    target=h.target_allocation,
                )
                for h, w in zip(holdings, _weights(values))
            ],
        )
