import logging
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from stabilityguard.adapters.storage import SQLiteStorage
from stabilityguard.core.history import BoundedHistory
from stabilityguard.core.metrics import rank_by_flakiness
from stabilityguard.core.models import StabilityConfig, TestOutcome, TestResult
from stabilityguard.core.propagation import propagate_histories
from stabilityguard.core.results import collect_class_and_case_results
from stabilityguard.ports.protocols import StoragePort

logger = logging.getLogger(__name__)


def pytest_addoption(parser: Any) -> None:
    group = parser.getgroup("stabilityguard")

    group.addoption(
        "--stability",
        action="store_true",
        default=False,
        help="Enable StabilityGuard test stability history tracking",
    )

    group.addoption(
        "--stability-db",
        type=str,
        default=".stabilityguard/history.db",
        help="Path to database file (default: .stabilityguard/history.db)",
    )

    group.addoption(
        "--stability-max-history",
        type=int,
        default=30,
        help="Maximum number of runs kept per test (default: 30)",
    )

    group.addoption(
        "--stability-build",
        type=int,
        default=None,
        help="Build number of this run (default: last recorded build + 1)",
    )


def pytest_configure(config: Any) -> None:
    if not config.getoption("--stability"):
        return

    stability_config = StabilityConfig(
        max_history_length=config.getoption("--stability-max-history"),
        db_path=Path(config.getoption("--stability-db")),
    )

    storage = SQLiteStorage(stability_config)

    config.pluginmanager.register(
        StabilityGuardPlugin(
            storage, stability_config, config.getoption("--stability-build")
        ),
        "stabilityguard-runtime",
    )


class StabilityGuardPlugin:
    def __init__(
        self,
        storage: StoragePort,
        config: StabilityConfig,
        build_number: int | None = None,
    ) -> None:
        self.storage = storage
        self.config = config
        self.build_number = build_number
        self.outcomes: dict[str, TestOutcome] = {}
        self.histories: dict[str, BoundedHistory] = {}

    @pytest.hookimpl(tryfirst=True, hookwrapper=True)
    def pytest_runtest_makereport(
        self, item: Any, call: Any
    ) -> Generator[None, Any, None]:
        outcome = yield
        report = outcome.get_result()

        if report.when == "call":
            outcome_map = {
                "passed": TestOutcome.PASSED,
                "failed": TestOutcome.FAILED,
                "skipped": TestOutcome.SKIPPED,
            }
            self.outcomes[item.nodeid] = outcome_map.get(report.outcome, TestOutcome.ERROR)
        elif report.when == "setup" and report.skipped:
            self.outcomes[item.nodeid] = TestOutcome.SKIPPED
        elif report.failed and self.outcomes.get(item.nodeid) != TestOutcome.FAILED:
            self.outcomes[item.nodeid] = TestOutcome.ERROR

    def pytest_sessionfinish(self, session: Any, exitstatus: Any) -> None:
        if not self.outcomes:
            return

        if self.build_number is None:
            self.build_number = self.storage.next_build_number()

        cases = [
            TestResult.from_outcome(test_id, self.build_number, test_outcome)
            for test_id, test_outcome in self.outcomes.items()
        ]
        results = collect_class_and_case_results(cases)

        self.storage.save_results(results)
        self.histories = propagate_histories(
            self.storage, results, self.build_number, self.config
        )
        self.storage.attach_histories(self.build_number, self.histories)
        self.storage.close()

        logger.info(
            "Recorded build %s: %d results, %d tracked histories",
            self.build_number,
            len(results),
            len(self.histories),
        )

    def pytest_terminal_summary(self, terminalreporter: Any) -> None:
        rankings = [r for r in rank_by_flakiness(self.histories) if r.metrics.stability < 100]

        if not rankings:
            return

        terminalreporter.section("StabilityGuard Summary")
        terminalreporter.write_line(
            f"Build {self.build_number}: {len(rankings)} test(s) with failures "
            f"in their last {self.config.max_history_length} runs"
        )
        terminalreporter.write_line("")

        for ranked in rankings[:10]:
            status_color = "red" if ranked.metrics.flakiness > 20 else "yellow"
            terminalreporter.write_line(
                f"  - {ranked.test_id}: {ranked.metrics.description}",
                **{status_color: True},
            )

        if len(rankings) > 10:
            terminalreporter.write_line(f"  ... and {len(rankings) - 10} more")

        terminalreporter.write_line("")
        terminalreporter.write_line(
            "Run 'stabilityguard report' for detailed information."
        )
