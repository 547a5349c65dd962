"""Distribute new cash across holdings without selling anything.

Holdings below their target value (the deficit) are funded first. When the
cash cannot close every deficit it is split in proportion to each deficit;
otherwise every deficit is closed and the remainder follows the target
weights.
"""

import logging
from collections.abc import Sequence

from portfolio_engine.config import TargetPolicy
from portfolio_engine.errors import InvalidInputError, InvalidTargetsError
from portfolio_engine.models.holding import (
    AllocationResult,
    Holding,
    PortfolioSummary,
    TargetValidation,
)

logger = logging.getLogger(__name__)

TARGET_SUM_TOLERANCE = 0.01


def validate_targets(holdings: Sequence[Holding]) -> TargetValidation:
    total = sum(h.target_allocation for h in holdings)
    is_valid = abs(total - 100) < TARGET_SUM_TOLERANCE
    return TargetValidation(
        is_valid=is_valid,
        total=round(total, 2),
        message=None
        if is_valid
        else f"Target allocations sum to {total:.1f}% instead of 100%",
    )


def portfolio_summary(holdings: Sequence[Holding]) -> PortfolioSummary:
    validation = validate_targets(holdings)
    return PortfolioSummary(
        total_value=sum(h.current_value for h in holdings),
        holdings_count=len(holdings),
        allocation_valid=validation.is_valid,
        allocation_total=validation.total,
    )


def distribute(
    values: Sequence[float],
    targets: Sequence[float],
    cash: float,
) -> list[float]:
    """Amount to add to each position; ``targets`` are percentages."""
    new_total = sum(values) + cash
    deficits = [max(0.0, t / 100 * new_total - v) for v, t in zip(values, targets)]
    total_deficit = sum(deficits)

    if total_deficit >= cash:
        if total_deficit <= 0:
            return [0.0] * len(deficits)
        return [d / total_deficit * cash for d in deficits]

    remainder = cash - total_deficit
    return [d + t / 100 * remainder for d, t in zip(deficits, targets)]


class AllocationEngine:
    def __init__(self, target_policy: TargetPolicy = TargetPolicy.REJECT) -> None:
        self.target_policy = target_policy

    def prepare(self, holdings: Sequence[Holding]) -> list[Holding]:
        """Apply the target policy, returning holdings safe to allocate on."""
        validation = validate_targets(holdings)
        if validation.is_valid:
            return list(holdings)

        total = sum(h.target_allocation for h in holdings)
        if self.target_policy == TargetPolicy.REJECT or total <= 0:
            raise InvalidTargetsError(total)

        logger.warning(
            "Target allocations sum to %.2f%%, normalizing to 100%%", total
        )
        scale = 100 / total
        return [
            h.model_copy(update={"target_allocation": h.target_allocation * scale})
            for h in holdings
        ]

    def allocate(
        self, holdings: Sequence[Holding], cash_amount: float
    ) -> list[AllocationResult]:
        if cash_amount < 0:
            raise InvalidInputError(
                f"Investment amount must not be negative, got {cash_amount}"
            )
        if not holdings:
            return []

        prepared = self.prepare(holdings)
        current_total = sum(h.current_value for h in prepared)
        new_total = current_total + cash_amount
        amounts = distribute(
            [h.current_value for h in prepared],
            [h.target_allocation for h in prepared],
            cash_amount,
        )

        results: list[AllocationResult] = []
        for h, amount in zip(prepared, amounts):
            current_alloc = (
                h.current_value / current_total * 100 if current_total > 0 else 0.0
            )
            new_value = h.current_value + amount
            new_alloc = new_value / new_total * 100 if new_total > 0 else 0.0
            results.append(
                AllocationResult(
                    holding_id=h.id,
                    holding_name=h.name,
                    current_value=h.current_value,
                    target_allocation=h.target_allocation,
                    current_allocation=round(current_alloc, 2),
                    amount_to_invest=round(amount, 2),
                    new_value=round(new_value, 2),
                    new_allocation=round(new_alloc, 2),
                )
            )

        logger.debug(
            "Allocated %.2f across %d holdings (total %.2f -> %.2f)",
            cash_amount,
            len(results),
            current_total,
            new_total,
        )
        return results


def apply_allocation(
    holdings: Sequence[Holding], results: Sequence[AllocationResult]
) -> list[Holding]:
    new_values = {r.holding_id: r.new_value for r in results}
    return [
        h.model_copy(update={"current_value": new_values.get(h.id, h.current_value)})
        for h in holdings
    ]
