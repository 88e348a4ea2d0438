"""gates.py - The decision engine in front of every log call.

GatePipeline applies a fixed sequence of pass/suppress predicates to a
candidate record. The first gate that fails suppresses the record and no
later gate is evaluated:

    1. level          ``level < min_log_level``
    2. rate_limit     more than ``rate_limit_per_minute`` records this minute
    3. sampling       uniform draw above ``sampling_rate``
    4. circuit_open   ERROR+ burst above ``circuit_breaker_threshold``
    5. filtered       message pattern or context filter matched

A record that passes every gate gets its context merged with the context
stack before emission.

Counters use fixed calendar-minute buckets keyed ``YYYYMMDDHHmm``: the count
restarts when the key changes. This is deliberately not a sliding window.

Fault handling:
    Gate evaluation never raises. If a gate throws (or a filter pattern does
    not compile) the gate passes and a warning is written to the platform
    log. Dropping a real error because of a broken filter is worse than a
    noisy record. Internal warnings go straight to the platform log and never
    re-enter the pipeline.
"""

import logging
import random
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Pattern

from .config import LoggerConfig
from .context import ContextStack
from .levels import LogLevel

logger = logging.getLogger(__name__)

LEVEL = "level"
RATE_LIMIT = "rate_limit"
SAMPLING = "sampling"
CIRCUIT_OPEN = "circuit_open"
FILTERED = "filtered"

Clock = Callable[[], datetime]
Warn = Callable[[str, LogLevel], None]


def local_now() -> datetime:
    """Current wall-clock time with the local UTC offset attached."""
    return datetime.now().astimezone()


def bucket_key(instant: datetime) -> str:
    """Return the per-minute bucket key for ``instant``."""
    return instant.strftime("%Y%m%d%H%M")


@dataclass(frozen=True)
class Decision:
    """Outcome of ``GatePipeline.evaluate()``.

    Attributes:
        emit: True when the record should be written.
        reason: Name of the suppressing gate, ``None`` when emitted.
        context: The merged context to emit with (empty when suppressed).
    """

    emit: bool
    reason: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)


class MinuteCounter:
    """A ``(bucket, count)`` pair that restarts whenever the bucket changes."""

    def __init__(self) -> None:
        self.bucket: Optional[str] = None
        self.count = 0

    def increment(self, bucket: str) -> int:
        if bucket != self.bucket:
            self.bucket = bucket
            self.count = 0
        self.count += 1
        return self.count

    def reset(self) -> None:
        self.bucket = None
        self.count = 0


class GatePipeline:
    """Stateful pass/suppress engine owned by one ErrorLogger.

    Args:
        config: Source of the thresholds, rates and filters.
        context_stack: Stack merged into emitted contexts. A private stack is
            created when omitted.
        clock: Returns the current aware datetime. Injected by tests.
        rng: ``random.Random``-compatible source for the sampler.
        warn: Receives internal warnings. Defaults to the module logger.

    Thread-safety:
        ``evaluate()`` holds an RLock while it reads and updates the counters
        and the circuit state.
    """

    def __init__(
        self,
        config: LoggerConfig,
        context_stack: Optional[ContextStack] = None,
        *,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        warn: Optional[Warn] = None,
    ) -> None:
        self.config = config
        self.context_stack = context_stack if context_stack is not None else ContextStack()
        self._clock = clock or local_now
        self._rng = rng or random.Random()
        self._warn = warn or (lambda message, level: logger.log(logging.WARNING, message))
        self._lock = threading.RLock()

        self._rate = MinuteCounter()
        self._errors = MinuteCounter()
        self._opened_at: Optional[datetime] = None
        self._patterns: Dict[str, Optional[Pattern[str]]] = {}

    # ---------------------------------------------------------------------- #
    # Public interface
    # ---------------------------------------------------------------------- #

    @property
    def circuit_open(self) -> bool:
        return self._opened_at is not None

    def evaluate(self, level: int, message: str, context: Optional[Mapping[str, Any]] = None) -> Decision:
        """Decide whether a record is emitted, and with which context.

        Args:
            level: Severity of the candidate record.
            message: Message text, tested against the message filters.
            context: Call-site context, tested against the context filters
                and merged on top of the context stack.

        Returns:
            A Decision. Never raises.
        """
        context = context or {}
        with self._lock:
            if level < self.config.min_log_level:
                return Decision(False, LEVEL)

            now = self._clock()
            gates = (
                (RATE_LIMIT, lambda: self._rate_limited(now)),
                (SAMPLING, self._sampled_out),
                (CIRCUIT_OPEN, lambda: self._circuit_blocks(level, now)),
                (FILTERED, lambda: self._filtered(message, context)),
            )
            for name, gate in gates:
                try:
                    suppress = gate()
                except Exception as exc:
                    self._warn(f"Log gate '{name}' failed, letting record through: {exc!r}", LogLevel.WARNING)
                    suppress = False
                if suppress:
                    return Decision(False, name)

        try:
            merged = self.context_stack.merged(context)
        except Exception as exc:
            self._warn(f"Context merge failed, using call-site context: {exc!r}", LogLevel.WARNING)
            merged = dict(context)
        return Decision(True, None, merged)

    def reset(self) -> None:
        """Clear counters, circuit state and the context stack."""
        with self._lock:
            self._rate.reset()
            self._errors.reset()
            self._opened_at = None
            self._patterns.clear()
            self.context_stack.clear()

    # ---------------------------------------------------------------------- #
    # Gates: each returns True to suppress
    # ---------------------------------------------------------------------- #

    def _rate_limited(self, now: datetime) -> bool:
        limit = self.config.rate_limit_per_minute
        if limit <= 0:
            return False
        count = self._rate.increment(bucket_key(now))
        if count <= limit:
            return False
        if count == limit + 1:
            self._warn("Log rate limit reached for this minute", LogLevel.WARNING)
        return True

    def _sampled_out(self) -> bool:
        rate = self.config.sampling_rate
        if rate >= 1.0:
            return False
        if rate <= 0.0:
            return True
        return self._rng.random() >= rate

    def _circuit_blocks(self, level: int, now: datetime) -> bool:
        threshold = self.config.circuit_breaker_threshold
        if level < LogLevel.ERROR or threshold <= 0:
            return False

        if self._opened_at is not None:
            elapsed = (now - self._opened_at).total_seconds()
            if elapsed >= self.config.circuit_breaker_cooldown:
                self._opened_at = None
                self._errors.reset()
                return False
            return True

        if self._errors.increment(bucket_key(now)) > threshold:
            self._opened_at = now
            self._warn(
                f"Circuit breaker opened: more than {threshold} errors this minute, "
                f"suppressing errors for {self.config.circuit_breaker_cooldown:g}s",
                LogLevel.WARNING,
            )
            return True
        return False

    def _filtered(self, message: str, context: Mapping[str, Any]) -> bool:
        for pattern in self.config.message_filters:
            compiled = self._compile(pattern)
            if compiled is not None and compiled.search(message):
                return True

        for rule in self.config.context_filters:
            if rule.key not in context:
                continue
            value = context[rule.key]
            if rule.is_regex:
                if not isinstance(value, str):
                    continue
                compiled = self._compile(str(rule.value))
                if compiled is not None and compiled.search(value):
                    return True
            elif value == rule.value:
                return True
        return False

    def _compile(self, pattern: str) -> Optional[Pattern[str]]:
        """Compile and cache ``pattern``; ``None`` marks a broken pattern."""
        if pattern in self._patterns:
            return self._patterns[pattern]
        try:
            compiled: Optional[Pattern[str]] = re.compile(pattern)
        except re.error as exc:
            self._warn(f"Ignoring invalid log filter pattern {pattern!r}: {exc}", LogLevel.WARNING)
            compiled = None
        self._patterns[pattern] = compiled
        return compiled
