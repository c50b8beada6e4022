import random
from dataclasses import dataclass, field


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded, jittered exponential backoff for the read-decide-write cycle.

    Each delay is the exponential step scaled by a factor drawn from
    [0.5, 1.5), then capped, so requests that lost the same race do not
    retry in lockstep.
    """
    max_attempts: int = 3
    conflict_base_delay: float = 0.1        # seconds, after a rejected conditional write
    conflict_max_delay: float = 1.0
    unavailable_base_delay: float = 0.2     # seconds, after throttling or an unreachable store
    unavailable_max_delay: float = 2.0
    rng: random.Random = field(default_factory=random.Random, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")

    def conflict_delay(self, attempt: int) -> float:
        """Delay after the given (1-based) attempt failed on a write conflict."""
        return self._jittered(self.conflict_base_delay, self.conflict_max_delay, attempt)

    def unavailable_delay(self, attempt: int) -> float:
        """Delay after the given (1-based) attempt failed on an unavailable store."""
        return self._jittered(self.unavailable_base_delay, self.unavailable_max_delay, attempt)

    def _jittered(self, base: float, cap: float, attempt: int) -> float:
        step = base * 2 ** (attempt - 1)
        return min(step * (0.5 + self.rng.random()), cap)
