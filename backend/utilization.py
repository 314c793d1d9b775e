from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENTS = Decimal("0.01")


@dataclass(frozen=True)
class BudgetFigures:
    amount_planned: Decimal
    amount_spent: Decimal
    amount_revised: Optional[Decimal] = None


@dataclass(frozen=True)
class Utilization:
    effective_amount: Decimal
    total_spent: Decimal
    remaining: Decimal
    utilization_percentage: Decimal


@dataclass(frozen=True)
class BudgetSummary:
    budget_count: int
    total_planned: Decimal
    total_revised: Decimal
    total_spent: Decimal
    total_remaining: Decimal
    average_utilization: Decimal


def effective_amount(
    amount_planned: Decimal, amount_revised: Optional[Decimal] = None
) -> Decimal:
    if amount_revised is not None:
        return _coerce_amount(amount_revised)
    return _coerce_amount(amount_planned)


def calculate_utilization(
    amount_planned: Decimal,
    amount_revised: Optional[Decimal],
    total_spent: Decimal,
) -> Utilization:
    effective = effective_amount(amount_planned, amount_revised)
    spent = _coerce_amount(total_spent)
    if effective <= ZERO:
        raise ValueError("effective amount must be greater than zero.")
    if spent < ZERO:
        raise ValueError("total_spent cannot be negative.")

    percentage = (spent / effective * HUNDRED).quantize(CENTS, rounding=ROUND_HALF_UP)
    return Utilization(
        effective_amount=effective,
        total_spent=spent,
        remaining=effective - spent,
        utilization_percentage=percentage,
    )


def summarize(budgets: Iterable[BudgetFigures]) -> BudgetSummary:
    count = 0
    total_planned = ZERO
    total_revised = ZERO
    total_spent = ZERO
    total_remaining = ZERO
    percentage_sum = ZERO
    for figures in budgets:
        result = calculate_utilization(
            figures.amount_planned, figures.amount_revised, figures.amount_spent
        )
        count += 1
        total_planned += _coerce_amount(figures.amount_planned)
        total_revised += result.effective_amount
        total_spent += result.total_spent
        total_remaining += result.remaining
        percentage_sum += result.utilization_percentage

    average = ZERO
    if count:
        average = (percentage_sum / count).quantize(CENTS, rounding=ROUND_HALF_UP)
    return BudgetSummary(
        budget_count=count,
        total_planned=total_planned,
        total_revised=total_revised,
        total_spent=total_spent,
        total_remaining=total_remaining,
        average_utilization=average,
    )


def to_money(amount: Decimal | float | int | str | None) -> Decimal:
    if amount is None:
        return ZERO.quantize(CENTS)
    return _coerce_amount(amount).quantize(CENTS, rounding=ROUND_HALF_UP)


def _coerce_amount(amount: Decimal) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
