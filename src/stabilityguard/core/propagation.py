import logging
from collections.abc import Iterable

from stabilityguard.core.history import BoundedHistory
from stabilityguard.core.models import Outcome, StabilityConfig
from stabilityguard.ports.protocols import ResultHistoryPort, TestResultPort

logger = logging.getLogger(__name__)


def previous_result(
    port: ResultHistoryPort, result: TestResultPort
) -> TestResultPort | None:
    """Look up ``result`` in the preceding build, treating lookup errors as absence."""
    try:
        return port.previous_result(result)
    except Exception as exc:
        logger.warning(
            "Previous result lookup failed for %s (build %s), treating it as absent: %s",
            result.test_id,
            result.build_number,
            exc,
        )
        return None


def _inherited_history(
    port: ResultHistoryPort, previous: TestResultPort, capacity: int
) -> BoundedHistory | None:
    try:
        attached = port.attached_history(previous)
    except Exception as exc:
        logger.warning(
            "History lookup failed for %s (build %s), treating it as absent: %s",
            previous.test_id,
            previous.build_number,
            exc,
        )
        return None

    if attached is None:
        return None

    # copy so the previous build's buffer stays untouched; capacity changes apply here
    history = BoundedHistory(capacity)
    history.add_all(attached.snapshot())
    return history


def _walk_previous_outcomes(
    port: ResultHistoryPort, start: TestResultPort | None, limit: int
) -> list[Outcome]:
    """Collect up to ``limit`` outcomes following previous-result links, newest first."""
    outcomes: list[Outcome] = []
    current = start
    while current is not None and len(outcomes) < limit:
        outcomes.append(
            Outcome(build_number=current.build_number, passed=current.is_passed())
        )
        current = previous_result(port, current) if len(outcomes) < limit else None
    return outcomes


def build_initial_history(
    port: ResultHistoryPort,
    result: TestResultPort,
    previous: TestResultPort | None,
    build_number: int,
    capacity: int,
) -> BoundedHistory:
    """Backfill a history for a test seen failing without any tracked history.

    ``previous`` is the already looked-up result of the preceding build; the
    walk continues from there through at most ``capacity - 1`` builds.
    """
    history = BoundedHistory(capacity)
    history.add_all(reversed(_walk_previous_outcomes(port, previous, capacity - 1)))
    history.add(Outcome(build_number=build_number, passed=result.is_passed()))
    return history


def propagate_histories(
    port: ResultHistoryPort,
    results: Iterable[TestResultPort],
    build_number: int,
    config: StabilityConfig,
) -> dict[str, BoundedHistory]:
    """Produce the histories to attach to ``build_number``, keyed by test id.

    Tests whose retained window is all passes are dropped, and tests that never
    failed get no history at all.
    """
    capacity = config.max_history_length
    histories: dict[str, BoundedHistory] = {}
    processed = 0
    bootstrapped = 0
    dropped = 0

    for result in results:
        processed += 1
        previous = previous_result(port, result)
        history = (
            _inherited_history(port, previous, capacity) if previous is not None else None
        )

        if history is not None:
            if result.is_passed():
                history.add(Outcome(build_number=build_number, passed=True))
                if history.is_all_passed():
                    logger.debug("%s has stabilized, dropping its history", result.test_id)
                    dropped += 1
                    continue
            elif result.fail_count > 0:
                history.add(Outcome(build_number=build_number, passed=False))
            # skipped: inherited history carried over unchanged
            histories[result.test_id] = history
        elif result.fail_count > 0:
            logger.debug("First tracked failure of %s, building history", result.test_id)
            histories[result.test_id] = build_initial_history(
                port, result, previous, build_number, capacity
            )
            bootstrapped += 1

    logger.debug(
        "Build %s: %d results, %d tracked histories (%d new, %d stabilized)",
        build_number,
        processed,
        len(histories),
        bootstrapped,
        dropped,
    )
    return histories
