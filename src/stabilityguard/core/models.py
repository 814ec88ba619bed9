from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

NO_KNOWN_FAILURES = "No known failures. Flakiness 0%, Stability 100%"


class TestOutcome(str, Enum):
    __test__ = False

    PASSED = "passed"
    FAILED = "failed"
    ERROR = "error"
    SKIPPED = "skipped"


class Outcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    build_number: int
    passed: bool


class TestResult(BaseModel):
    __test__ = False
    model_config = ConfigDict(frozen=True)

    test_id: str
    build_number: int
    outcome: TestOutcome
    fail_count: int = Field(default=0, ge=0)

    @classmethod
    def from_outcome(
        cls, test_id: str, build_number: int, outcome: TestOutcome
    ) -> "TestResult":
        failed = outcome in (TestOutcome.FAILED, TestOutcome.ERROR)
        return cls(
            test_id=test_id,
            build_number=build_number,
            outcome=outcome,
            fail_count=1 if failed else 0,
        )

    def is_passed(self) -> bool:
        return self.outcome == TestOutcome.PASSED


class StabilityMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    stability: int = Field(default=100, ge=0, le=100)
    test_status_changes: int = Field(default=0, ge=0)
    flakiness: int = Field(default=0, ge=0, le=100)

    @property
    def health(self) -> int:
        return 100 - self.flakiness

    @property
    def description(self) -> str:
        if self.stability == 100:
            return NO_KNOWN_FAILURES
        return (
            f"Failed {self.failed} times in the last {self.total} runs. "
            f"Flakiness: {self.flakiness}%, Stability: {self.stability}%"
        )


class TestStability(BaseModel):
    __test__ = False
    model_config = ConfigDict(frozen=True)

    test_id: str
    metrics: StabilityMetrics


class StabilityConfig(BaseModel):
    max_history_length: int = Field(default=30, ge=1)
    db_path: Path = Field(default=Path(".stabilityguard/history.db"))
