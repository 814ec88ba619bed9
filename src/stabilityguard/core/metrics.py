from collections.abc import Mapping

from stabilityguard.core.history import BoundedHistory
from stabilityguard.core.models import StabilityMetrics, TestStability


def compute_metrics(history: BoundedHistory | None) -> StabilityMetrics:
    """Derive stability and flakiness percentages from a history snapshot.

    A missing or empty history means no data: 100% stable, 0% flaky.
    Percentages are truncated, never rounded up.
    """
    if history is None:
        return StabilityMetrics()

    outcomes = history.snapshot()
    total = len(outcomes)
    if total == 0:
        return StabilityMetrics()

    failed = sum(1 for outcome in outcomes if not outcome.passed)
    stability = 100 * (total - failed) // total

    status_changes = sum(
        1
        for previous, current in zip(outcomes, outcomes[1:])
        if previous.passed != current.passed
    )
    flakiness = 100 * status_changes // (total - 1) if total > 1 else 0

    return StabilityMetrics(
        total=total,
        failed=failed,
        stability=stability,
        test_status_changes=status_changes,
        flakiness=flakiness,
    )


def rank_by_flakiness(histories: Mapping[str, BoundedHistory]) -> list[TestStability]:
    ranked = [
        TestStability(test_id=test_id, metrics=compute_metrics(history))
        for test_id, history in histories.items()
    ]
    return sorted(
        ranked,
        key=lambda s: (-s.metrics.flakiness, -s.metrics.failed, s.test_id),
    )
