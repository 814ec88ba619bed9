from collections import deque
from collections.abc import Iterable, Iterator

from stabilityguard.core.errors import InvalidConfigurationError
from stabilityguard.core.models import Outcome


class BoundedHistory:
    """Fixed-capacity log of a test's outcomes, oldest first.

    Once full, adding an outcome evicts the oldest one. Buffers attached to a
    finished build are never extended in place; later builds copy them with
    ``add_all`` into a new instance.
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise InvalidConfigurationError(
                f"History capacity must be positive, got {capacity}"
            )
        self._outcomes: deque[Outcome] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._outcomes.maxlen or 0

    def add(self, outcome: Outcome) -> None:
        self._outcomes.append(outcome)

    def add_all(self, outcomes: Iterable[Outcome]) -> None:
        for outcome in outcomes:
            self.add(outcome)

    def snapshot(self) -> tuple[Outcome, ...]:
        return tuple(self._outcomes)

    def is_all_passed(self) -> bool:
        return all(outcome.passed for outcome in self._outcomes)

    def __len__(self) -> int:
        return len(self._outcomes)

    def __iter__(self) -> Iterator[Outcome]:
        return iter(self.snapshot())

    def __repr__(self) -> str:
        return f"BoundedHistory(capacity={self.capacity}, outcomes={len(self)})"
