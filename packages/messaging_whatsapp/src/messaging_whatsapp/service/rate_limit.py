"""
Blast Rate Limiting

In-process pacing for bulk template sends:
- RateLimitConfig: Cloud API friendly limits and delay tuning
- SlidingWindowRateLimiter: per-key send history (phone number or "global")
- calculate_adaptive_delay: delay between sends, grows with errors
- BatchQueue: fixed-size batches with progress

State lives in the process running the blast; it is not shared between
workers.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterator, Sequence, TypeVar

logger = logging.getLogger(__name__)

GLOBAL_KEY = "global"

T = TypeVar("T")


@dataclass(frozen=True)
class RateLimitConfig:
    """Limits and pacing parameters. Delays are in milliseconds."""

    messages_per_second: int = 3
    messages_per_minute: int = 80
    messages_per_hour: int = 1200
    batch_size: int = 50
    batch_delay_ms: int = 60_000
    retry_after_ms: int = 30_000
    max_retries: int = 3
    base_delay_ms: int = 1_000
    adaptive_multiplier: float = 1.5
    max_delay_ms: int = 10_000
    cooldown_ms: int = 300_000

    def as_dict(self) -> dict[str, float]:
        return {
            "messages_per_second": self.messages_per_second,
            "messages_per_minute": self.messages_per_minute,
            "messages_per_hour": self.messages_per_hour,
            "batch_size": self.batch_size,
            "batch_delay_ms": self.batch_delay_ms,
            "retry_after_ms": self.retry_after_ms,
            "max_retries": self.max_retries,
            "base_delay_ms": self.base_delay_ms,
            "adaptive_multiplier": self.adaptive_multiplier,
            "max_delay_ms": self.max_delay_ms,
            "cooldown_ms": self.cooldown_ms,
        }


RATE_LIMITS = RateLimitConfig()


@dataclass
class _KeyState:
    timestamps: list[float] = field(default_factory=list)
    error_count: int = 0
    last_error: float | None = None
    last_message: float | None = None


class SlidingWindowRateLimiter:
    """
    Sliding-window limiter keyed by phone number or GLOBAL_KEY.

    Timestamps older than one hour are pruned on every check. A key with
    recorded errors stays limited until `cooldown_ms` has passed since its
    last error.
    """

    HORIZON_MS = 3_600_000

    def __init__(
        self,
        config: RateLimitConfig = RATE_LIMITS,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self._clock = clock
        self._state: dict[str, _KeyState] = {}

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def _get(self, key: str) -> _KeyState:
        return self._state.setdefault(key, _KeyState())

    def is_limited(self, key: str = GLOBAL_KEY) -> bool:
        now = self._now_ms()
        state = self._get(key)
        state.timestamps = [t for t in state.timestamps if now - t < self.HORIZON_MS]

        last_second = sum(1 for t in state.timestamps if now - t < 1_000)
        last_minute = sum(1 for t in state.timestamps if now - t < 60_000)
        last_hour = len(state.timestamps)

        if last_second >= self.config.messages_per_second:
            return True
        if last_minute >= self.config.messages_per_minute:
            return True
        if last_hour >= self.config.messages_per_hour:
            return True

        if state.error_count > 0 and state.last_error is not None:
            if now - state.last_error < self.config.cooldown_ms:
                return True

        return False

    def record(self, key: str, success: bool) -> None:
        """Record a send attempt; errors decay by one per success."""
        now = self._now_ms()
        state = self._get(key)
        state.timestamps.append(now)
        state.last_message = now
        if success:
            state.error_count = max(0, state.error_count - 1)
        else:
            state.error_count += 1
            state.last_error = now

    def add_cooldown(self, key: str, cooldown_ms: float) -> None:
        """
        Push the key into cooldown for roughly `cooldown_ms`.

        Implemented as a synthetic error whose timestamp makes the regular
        cooldown window end `cooldown_ms` from now.
        """
        now = self._now_ms()
        state = self._get(key)
        state.error_count += 1
        state.last_error = now - self.config.cooldown_ms + cooldown_ms
        logger.warning(
            f"Rate limiter cooldown applied to {key}",
            extra={"key": key, "cooldown_ms": cooldown_ms},
        )

    def error_count(self, key: str = GLOBAL_KEY) -> int:
        return self._get(key).error_count


def calculate_adaptive_delay(
    error_count: int,
    progress_pct: float,
    config: RateLimitConfig = RATE_LIMITS,
) -> int:
    """
    Delay before the next send, in milliseconds.

    Starts slow, speeds up as the campaign progresses, and backs off
    (up to 3x) as errors accumulate. Never exceeds config.max_delay_ms.
    """
    error_factor = min(1 + error_count * 0.1, 3)

    if progress_pct < 20:
        progress_factor = 1.5
    elif progress_pct < 50:
        progress_factor = 1.2
    elif progress_pct < 80:
        progress_factor = 1.0
    else:
        progress_factor = 0.8

    delay = config.base_delay_ms * config.adaptive_multiplier * error_factor * progress_factor
    return int(min(delay, config.max_delay_ms))


@dataclass
class Batch(Generic[T]):
    items: list[T]
    batch_number: int
    total_batches: int
    progress_pct: float


class BatchQueue(Generic[T]):
    """Splits a sequence into fixed-size batches."""

    def __init__(self, items: Sequence[T], batch_size: int = RATE_LIMITS.batch_size):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.batches = [list(items[i:i + batch_size]) for i in range(0, len(items), batch_size)]
        self.current = 0

    @property
    def total_batches(self) -> int:
        return len(self.batches)

    def has_next(self) -> bool:
        return self.current < len(self.batches)

    def next(self) -> Batch[T] | None:
        if not self.has_next():
            return None
        items = self.batches[self.current]
        self.current += 1
        return Batch(
            items=items,
            batch_number=self.current,
            total_batches=self.total_batches,
            progress_pct=round(self.current / self.total_batches * 100, 2),
        )

    def __iter__(self) -> Iterator[Batch[T]]:
        while self.has_next():
            batch = self.next()
            if batch is not None:
                yield batch
