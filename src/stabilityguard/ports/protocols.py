from collections.abc import Iterable, Mapping
from typing import Protocol

from stabilityguard.core.history import BoundedHistory
from stabilityguard.core.models import TestResult


class TestResultPort(Protocol):
    """A single case- or class-level result of one build."""

    @property
    def test_id(self) -> str: ...

    @property
    def build_number(self) -> int: ...

    @property
    def fail_count(self) -> int: ...

    def is_passed(self) -> bool: ...


class ResultHistoryPort(Protocol):
    def previous_result(self, result: TestResultPort) -> TestResultPort | None:
        """Return the same test's result from the preceding build.

        Returns None when there is none; may raise on internal errors.
        """
        ...

    def attached_history(self, result: TestResultPort) -> BoundedHistory | None:
        """Return a fresh copy of the history attached to ``result``, if any."""
        ...


class StoragePort(ResultHistoryPort, Protocol):
    def save_results(self, results: Iterable[TestResultPort]) -> None: ...

    def attach_histories(
        self, build_number: int, histories: Mapping[str, BoundedHistory]
    ) -> None: ...

    def get_results(self, build_number: int) -> list[TestResult]: ...

    def get_histories(self, build_number: int) -> dict[str, BoundedHistory]: ...

    def latest_build_number(self) -> int | None: ...

    def next_build_number(self) -> int: ...

    def clear(self) -> None: ...

    def close(self) -> None: ...
