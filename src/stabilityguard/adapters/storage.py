import json
import logging
import sqlite3
from collections.abc import Iterable, Mapping

from stabilityguard.core.errors import HistoryLookupError
from stabilityguard.core.history import BoundedHistory
from stabilityguard.core.models import Outcome, StabilityConfig, TestOutcome, TestResult
from stabilityguard.ports.protocols import TestResultPort

logger = logging.getLogger(__name__)


class SQLiteStorage:
    def __init__(self, config: StabilityConfig) -> None:
        self.db_path = config.db_path
        self._init_database()

    def _init_database(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS metadata (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS test_results (
                    build_number INTEGER NOT NULL,
                    test_id TEXT NOT NULL,
                    outcome TEXT NOT NULL,
                    fail_count INTEGER NOT NULL,
                    PRIMARY KEY (build_number, test_id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS histories (
                    build_number INTEGER NOT NULL,
                    test_id TEXT NOT NULL,
                    capacity INTEGER NOT NULL,
                    outcomes TEXT NOT NULL,
                    PRIMARY KEY (build_number, test_id)
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_test_id
                ON test_results(test_id, build_number)
            """)

            cursor.execute(
                "INSERT OR IGNORE INTO metadata (key, value) VALUES (?, ?)",
                ("schema_version", "1"),
            )

            conn.commit()

    def save_results(self, results: Iterable[TestResultPort]) -> None:
        rows = [
            (
                result.build_number,
                result.test_id,
                _outcome_of(result).value,
                result.fail_count,
            )
            for result in results
        ]

        with sqlite3.connect(self.db_path) as conn:
            conn.executemany(
                """
                INSERT OR REPLACE INTO test_results (build_number, test_id, outcome, fail_count)
                VALUES (?, ?, ?, ?)
            """,
                rows,
            )
            conn.commit()

        logger.debug("Saved %d results to %s", len(rows), self.db_path)

    def get_results(self, build_number: int) -> list[TestResult]:
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT test_id, outcome, fail_count
                FROM test_results
                WHERE build_number = ?
                ORDER BY test_id
            """,
                (build_number,),
            )
            rows = cursor.fetchall()

        return [
            TestResult(
                test_id=test_id,
                build_number=build_number,
                outcome=TestOutcome(outcome),
                fail_count=fail_count,
            )
            for test_id, outcome, fail_count in rows
        ]

    def previous_result(self, result: TestResultPort) -> TestResult | None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    SELECT build_number, outcome, fail_count
                    FROM test_results
                    WHERE test_id = ? AND build_number < ?
                    ORDER BY build_number DESC
                    LIMIT 1
                """,
                    (result.test_id, result.build_number),
                )
                row = cursor.fetchone()
        except sqlite3.Error as exc:
            raise HistoryLookupError(
                f"Could not look up previous result of {result.test_id}"
            ) from exc

        if row is None:
            return None

        build_number, outcome, fail_count = row
        return TestResult(
            test_id=result.test_id,
            build_number=build_number,
            outcome=TestOutcome(outcome),
            fail_count=fail_count,
        )

    def attached_history(self, result: TestResultPort) -> BoundedHistory | None:
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT capacity, outcomes
                FROM histories
                WHERE build_number = ? AND test_id = ?
            """,
                (result.build_number, result.test_id),
            )
            row = cursor.fetchone()

        if row is None:
            return None

        capacity, outcomes_json = row
        return _load_history(capacity, outcomes_json)

    def attach_histories(
        self, build_number: int, histories: Mapping[str, BoundedHistory]
    ) -> None:
        rows = [
            (build_number, test_id, history.capacity, _dump_history(history))
            for test_id, history in histories.items()
        ]

        with sqlite3.connect(self.db_path) as conn:
            conn.execute("DELETE FROM histories WHERE build_number = ?", (build_number,))
            conn.executemany(
                """
                INSERT INTO histories (build_number, test_id, capacity, outcomes)
                VALUES (?, ?, ?, ?)
            """,
                rows,
            )
            conn.commit()

        logger.debug("Attached %d histories to build %s", len(rows), build_number)

    def get_histories(self, build_number: int) -> dict[str, BoundedHistory]:
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT test_id, capacity, outcomes
                FROM histories
                WHERE build_number = ?
                ORDER BY test_id
            """,
                (build_number,),
            )
            rows = cursor.fetchall()

        return {
            test_id: _load_history(capacity, outcomes_json)
            for test_id, capacity, outcomes_json in rows
        }

    def latest_build_number(self) -> int | None:
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT MAX(build_number) FROM test_results")
            (latest,) = cursor.fetchone()
        return latest

    def next_build_number(self) -> int:
        latest = self.latest_build_number()
        return 1 if latest is None else latest + 1

    def clear(self) -> None:
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM histories")
            cursor.execute("DELETE FROM test_results")
            conn.commit()

    def close(self) -> None:
        pass


def _outcome_of(result: TestResultPort) -> TestOutcome:
    if isinstance(result, TestResult):
        return result.outcome
    if result.is_passed():
        return TestOutcome.PASSED
    if result.fail_count > 0:
        return TestOutcome.FAILED
    return TestOutcome.SKIPPED


def _dump_history(history: BoundedHistory) -> str:
    return json.dumps([outcome.model_dump() for outcome in history.snapshot()])


def _load_history(capacity: int, outcomes_json: str) -> BoundedHistory:
    history = BoundedHistory(capacity)
    history.add_all(Outcome(**data) for data in json.loads(outcomes_json))
    return history
