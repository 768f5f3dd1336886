"""Greedy one-to-one matcher under amount-tolerance and time-window constraints.

Side A is walked in time order. Each transaction takes the closest-in-time
unused side-B transaction whose amount is within tolerance (and which shares a
match key with it, when the profile requires one), provided the gap fits the
window.
Ties go to the lowest side-B id so reruns are reproducible.

Cost is O(|A| * |B|), fine for batches in the low thousands. An index of side B
bucketed by amount would bring it down if volumes grow.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal

from clipmatch.services.adapters import NormalizedTransaction
from clipmatch.services.errors import ValidationError
from clipmatch.services.metrics import MatchMetrics, RoleMapping, metrics_for_pair


@dataclass(frozen=True)
class MatchThresholds:
    amount_tolerance: Decimal
    time_window: timedelta
    require_key_match: bool = False

    def __post_init__(self) -> None:
        if not Decimal(self.amount_tolerance).is_finite() or self.amount_tolerance <= 0:
            raise ValidationError(f"amount_tolerance must be positive, got {self.amount_tolerance}")
        if self.time_window <= timedelta(0):
            raise ValidationError(f"time_window must be positive, got {self.time_window}")


@dataclass(frozen=True)
class ProposedMatch:
    side_a: NormalizedTransaction
    side_b: NormalizedTransaction
    time_difference: timedelta
    metrics: MatchMetrics

    @property
    def time_difference_seconds(self) -> int:
        return round(self.time_difference.total_seconds())


@dataclass
class MatchRun:
    matches: list[ProposedMatch] = field(default_factory=list)
    unmatched_a: list[NormalizedTransaction] = field(default_factory=list)
    unmatched_b: list[NormalizedTransaction] = field(default_factory=list)


def time_gap(a: NormalizedTransaction, b: NormalizedTransaction) -> timedelta:
    return abs(a.occurred_at - b.occurred_at)


def pair_metrics(a: NormalizedTransaction, b: NormalizedTransaction, roles: RoleMapping) -> MatchMetrics:
    return metrics_for_pair(a.settlement_amount, b.settlement_amount, roles)


def _time_order(txn: NormalizedTransaction) -> tuple:
    return (txn.occurred_at, txn.id)


def _is_candidate(a: NormalizedTransaction, b: NormalizedTransaction, thresholds: MatchThresholds) -> bool:
    if abs(a.amount - b.amount) > thresholds.amount_tolerance:
        return False
    if thresholds.require_key_match and a.match_keys.isdisjoint(b.match_keys):
        return False
    return True


def find_best_counterpart(
    a: NormalizedTransaction,
    side_b: Iterable[NormalizedTransaction],
    thresholds: MatchThresholds,
) -> tuple[NormalizedTransaction, timedelta] | None:
    """Return the closest eligible side-B transaction and its gap, if any."""
    best: tuple[timedelta, int, NormalizedTransaction] | None = None
    for b in side_b:
        if not _is_candidate(a, b, thresholds):
            continue
        gap = time_gap(a, b)
        if gap > thresholds.time_window:
            continue
        key = (gap, b.id, b)
        if best is None or key[:2] < best[:2]:
            best = key
    if best is None:
        return None
    return best[2], best[0]


def iter_matches(
    side_a: Iterable[NormalizedTransaction],
    side_b: Iterable[NormalizedTransaction],
    thresholds: MatchThresholds,
    roles: RoleMapping,
) -> Iterator[ProposedMatch]:
    """Yield matches one at a time so callers can persist them as they are found."""
    available: dict[int, NormalizedTransaction] = {b.id: b for b in side_b}
    used_a: set[int] = set()

    for a in sorted(side_a, key=_time_order):
        if a.id in used_a:
            continue
        found = find_best_counterpart(a, available.values(), thresholds)
        if found is None:
            continue
        b, gap = found
        used_a.add(a.id)
        del available[b.id]
        yield ProposedMatch(side_a=a, side_b=b, time_difference=gap, metrics=pair_metrics(a, b, roles))


def match(
    side_a: list[NormalizedTransaction],
    side_b: list[NormalizedTransaction],
    thresholds: MatchThresholds,
    roles: RoleMapping,
) -> MatchRun:
    """Run a full greedy pass and report what stayed unmatched on each side."""
    run = MatchRun(matches=list(iter_matches(side_a, side_b, thresholds, roles)))
    matched_a = {m.side_a.id for m in run.matches}
    matched_b = {m.side_b.id for m in run.matches}
    run.unmatched_a = sorted((a for a in side_a if a.id not in matched_a), key=_time_order)
    run.unmatched_b = sorted((b for b in side_b if b.id not in matched_b), key=_time_order)
    return run
