"""Security policy snapshot and its atomic holder."""
import threading
import logging
from typing import Dict, FrozenSet
from pydantic import BaseModel, ConfigDict, Field, PositiveInt
from shared.config import config

logger = logging.getLogger(__name__)


class SecurityPolicy(BaseModel):
    """Immutable policy snapshot."""
    model_config = ConfigDict(frozen=True)

    max_file_size_bytes: int = config.MAX_FILE_SIZE
    allowed_media_types: FrozenSet[str] = config.ALLOWED_MEDIA_TYPES
    rate_limits: Dict[str, PositiveInt] = Field(default_factory=lambda: dict(config.RATE_LIMITS))
    default_rate_limit: int = config.DEFAULT_RATE_LIMIT
    rate_limit_window_ms: int = config.RATE_LIMIT_WINDOW_MS
    max_login_attempts: int = config.MAX_LOGIN_ATTEMPTS
    lockout_duration_ms: int = config.LOCKOUT_DURATION_MS

    def limit_for(self, action: str) -> int:
        """Allowed calls per window for an action."""
        return self.rate_limits.get(action, self.default_rate_limit)


class PolicyHolder:
    """Holds the current policy; updates replace the whole snapshot."""

    def __init__(self, policy: SecurityPolicy = None):
        self._policy = policy or SecurityPolicy()
        self._lock = threading.Lock()

    @property
    def current(self) -> SecurityPolicy:
        return self._policy

    def update(self, **changes) -> SecurityPolicy:
        """Swap in a new snapshot with the given fields changed.

        Args:
            **changes: Policy fields to replace; None values are ignored.
                rate_limits is merged into the current per-action limits.

        Returns:
            The new policy snapshot
        """
        changes = {key: value for key, value in changes.items() if value is not None}
        if "allowed_media_types" in changes:
            changes["allowed_media_types"] = frozenset(changes["allowed_media_types"])
        with self._lock:
            if "rate_limits" in changes:
                changes["rate_limits"] = {**self._policy.rate_limits, **changes["rate_limits"]}
            merged = {**self._policy.model_dump(), **changes}
            self._policy = SecurityPolicy.model_validate(merged)
        logger.info(f"Security policy updated: {sorted(changes)}")
        return self._policy
