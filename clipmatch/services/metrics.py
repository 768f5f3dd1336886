"""Per-match financial metrics."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from clipmatch.models import Side
from clipmatch.services.errors import ComputationError

MONEY_QUANT = Decimal("0.00000001")
PERCENT_QUANT = Decimal("0.00000001")
HUNDRED = Decimal("100")
ZERO = Decimal("0")


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def safe_percentage(numerator: Decimal, denominator: Decimal) -> Decimal:
    """Return numerator / denominator * 100, or zero when the denominator is zero."""
    if denominator == 0:
        return ZERO
    return (numerator / denominator * HUNDRED).quantize(PERCENT_QUANT, rounding=ROUND_HALF_UP)


def safe_average(total: Decimal, count: int) -> Decimal:
    if count == 0:
        return ZERO
    return quantize_money(total / Decimal(count))


@dataclass(frozen=True)
class MatchMetrics:
    gross_expense: Decimal
    gross_income: Decimal
    gross_profit: Decimal
    profit_percentage: Decimal


@dataclass(frozen=True)
class RoleMapping:
    """Which side of a pair is the expense; the other side is the income.

    expense_multiplier scales the expense (e.g. a 0.9% platform commission).
    """

    expense_side: Side
    expense_multiplier: Decimal = Decimal("1")

    @property
    def income_side(self) -> Side:
        return self.expense_side.other

    def split(self, side_a_amount: Decimal, side_b_amount: Decimal) -> tuple[Decimal, Decimal]:
        """Return (expense_amount, income_amount) for a pair's settlement amounts."""
        if self.expense_side is Side.A:
            return side_a_amount, side_b_amount
        return side_b_amount, side_a_amount


def compute_metrics(
    expense_amount: Decimal,
    income_amount: Decimal,
    expense_multiplier: Decimal = Decimal("1"),
) -> MatchMetrics:
    """Compute gross metrics from absolute expense and income amounts.

    The expense is rounded before profit is derived, so
    gross_profit == gross_income - gross_expense holds exactly.
    """
    for value in (expense_amount, income_amount, expense_multiplier):
        if not Decimal(value).is_finite():
            raise ComputationError(f"Cannot compute metrics from non-finite value {value!r}")

    gross_expense = quantize_money(abs(Decimal(expense_amount)) * Decimal(expense_multiplier))
    gross_income = quantize_money(abs(Decimal(income_amount)))
    gross_profit = gross_income - gross_expense
    return MatchMetrics(
        gross_expense=gross_expense,
        gross_income=gross_income,
        gross_profit=gross_profit,
        profit_percentage=safe_percentage(gross_profit, gross_expense),
    )


def metrics_for_pair(side_a_amount: Decimal, side_b_amount: Decimal, roles: RoleMapping) -> MatchMetrics:
    expense, income = roles.split(side_a_amount, side_b_amount)
    return compute_metrics(expense, income, roles.expense_multiplier)
