from collections.abc import Iterable

from stabilityguard.core.models import TestOutcome, TestResult


def parent_id(test_id: str) -> str | None:
    """Return the class (or module) node id that owns a test case node id."""
    if "::" not in test_id:
        return None
    return test_id.rsplit("::", 1)[0]


def _class_result(test_id: str, cases: list[TestResult]) -> TestResult:
    fail_count = sum(case.fail_count for case in cases)

    if fail_count > 0:
        outcome = TestOutcome.FAILED
    elif any(case.is_passed() for case in cases):
        outcome = TestOutcome.PASSED
    else:
        outcome = TestOutcome.SKIPPED

    return TestResult(
        test_id=test_id,
        build_number=cases[0].build_number,
        outcome=outcome,
        fail_count=fail_count,
    )


def collect_class_and_case_results(case_results: Iterable[TestResult]) -> list[TestResult]:
    """Return the case results followed by one aggregated result per parent node."""
    cases = list(case_results)
    grouped: dict[str, list[TestResult]] = {}

    for case in cases:
        parent = parent_id(case.test_id)
        if parent is not None:
            grouped.setdefault(parent, []).append(case)

    return cases + [_class_result(test_id, members) for test_id, members in grouped.items()]
