"""Violation log: append-only record of policy breaches."""
import threading
from collections import Counter, deque
from typing import Callable, Dict, List, Optional
from shared.clock import Clock, now_ms
from shared.config import config
from shared.models import Severity, Violation, ViolationType
import logging

logger = logging.getLogger(__name__)

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS

_LOG_LEVELS = {
    Severity.LOW: logging.INFO,
    Severity.MEDIUM: logging.WARNING,
    Severity.HIGH: logging.ERROR,
    Severity.CRITICAL: logging.CRITICAL,
}

Subscriber = Callable[[Violation], None]


class ViolationRecorder:
    """Service for recording and querying policy violations."""

    def __init__(
        self,
        clock: Clock = now_ms,
        retention_days: int = config.VIOLATION_RETENTION_DAYS,
        max_entries: int = config.VIOLATION_MAX_ENTRIES
    ):
        self.clock = clock
        self.retention_ms = retention_days * DAY_MS
        self._violations = deque(maxlen=max_entries)
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def record(
        self,
        violation_type: ViolationType,
        severity: Severity,
        actor_id: Optional[str] = None,
        details: Optional[Dict] = None
    ) -> Violation:
        """Append a violation, log it and notify subscribers.

        Args:
            violation_type: Kind of breach
            severity: How serious the breach is
            actor_id: Actor the breach is attributed to, if known
            details: Free-form structured payload

        Returns:
            The recorded violation
        """
        violation = Violation(
            type=violation_type,
            severity=severity,
            actor_id=actor_id,
            details=details or {},
            timestamp=self.clock()
        )
        with self._lock:
            self._violations.append(violation)
            subscribers = list(self._subscribers)

        logger.log(
            _LOG_LEVELS[severity],
            f"Security violation {violation_type.value} ({severity.value}) "
            f"by {actor_id or 'anonymous'}: {violation.details}"
        )

        for callback in subscribers:
            try:
                callback(violation)
            except Exception as e:
                logger.error(f"Violation subscriber {callback!r} failed: {e}")

        return violation

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback for every new violation.

        Returns:
            A function that removes the subscription; calling it twice is harmless
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def get_violations(
        self,
        actor_id: Optional[str] = None,
        violation_type: Optional[ViolationType] = None,
        hours_back: float = 24
    ) -> List[Violation]:
        """Violations newer than hours_back, optionally filtered by actor and type."""
        cutoff = self.clock() - int(hours_back * HOUR_MS)
        with self._lock:
            snapshot = list(self._violations)
        return [
            v for v in snapshot
            if v.timestamp > cutoff
            and (actor_id is None or v.actor_id == actor_id)
            and (violation_type is None or v.type == violation_type)
        ]

    def summarize(self, hours_back: float = 24) -> Dict[str, Dict[str, int]]:
        """Counts of recent violations by type and by severity."""
        recent = self.get_violations(hours_back=hours_back)
        return {
            "by_type": dict(Counter(v.type.value for v in recent)),
            "by_severity": dict(Counter(v.severity.value for v in recent)),
        }

    def sweep(self, now: Optional[int] = None) -> int:
        """Drop violations older than the retention window.

        Returns:
            Number of violations removed
        """
        cutoff = (now if now is not None else self.clock()) - self.retention_ms
        with self._lock:
            kept = [v for v in self._violations if v.timestamp > cutoff]
            removed = len(self._violations) - len(kept)
            self._violations.clear()
            self._violations.extend(kept)
        if removed:
            logger.info(f"Swept {removed} expired violations")
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._violations)
