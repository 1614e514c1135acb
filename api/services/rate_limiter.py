"""Per-actor, per-action fixed-window rate limiting."""
from typing import Optional
from shared.clock import Clock, now_ms
from shared.counters import CounterStore
from shared.models import RateLimitDecision, RateLimitEntry, Severity, ViolationType
from shared.policy import PolicyHolder
from api.services.violations import ViolationRecorder
import logging

logger = logging.getLogger(__name__)

KEY_PREFIX = "rate_limit:"


class RateLimiter:
    """Gates repeated operations (upload, delete, search, login) per actor."""

    def __init__(
        self,
        store: CounterStore,
        policy: PolicyHolder,
        recorder: ViolationRecorder,
        clock: Clock = now_ms
    ):
        self.store = store
        self.policy = policy
        self.recorder = recorder
        self.clock = clock

    @staticmethod
    def _key(actor_id: str, action: str) -> str:
        return f"{KEY_PREFIX}{actor_id}:{action}"

    def check(self, actor_id: str, action: str) -> RateLimitDecision:
        """Count one call and decide whether it may proceed.

        Args:
            actor_id: Actor the call is attributed to
            action: Action name (upload, delete, search, login, ...)

        Returns:
            RateLimitDecision; when refused, reset_at is the current window's end
        """
        policy = self.policy.current
        now = self.clock()
        key = self._key(actor_id, action)
        count, reset_at = self.store.hit_window(key, policy.rate_limit_window_ms, now)

        limit = policy.limit_for(action)
        if count > limit:
            self.store.set_fields(key, {"blocked": 1})
            self.recorder.record(
                ViolationType.RATE_LIMIT,
                Severity.MEDIUM,
                actor_id,
                {"action": action, "count": count, "limit": limit}
            )
            return RateLimitDecision(allowed=False, reset_at=reset_at)

        return RateLimitDecision(allowed=True, reset_at=reset_at)

    def entry(self, actor_id: str, action: str) -> Optional[RateLimitEntry]:
        """Current counter state for (actor, action), if any."""
        record = self.store.get(self._key(actor_id, action))
        if not record or "window_reset_at" not in record:
            return None
        return RateLimitEntry(
            count=record.get("count", 0),
            window_reset_at=record["window_reset_at"],
            blocked=bool(record.get("blocked", 0))
        )

    def sweep(self, now: Optional[int] = None) -> int:
        """Purge entries whose window has ended.

        Returns:
            Number of entries removed
        """
        now = now if now is not None else self.clock()
        expired = [
            key for key, record in self.store.scan(KEY_PREFIX)
            if now > record.get("window_reset_at", 0)
        ]
        for key in expired:
            self.store.delete(key)
        if expired:
            logger.info(f"Swept {len(expired)} expired rate limit entries")
        return len(expired)
