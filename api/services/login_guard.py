"""Login lockout after repeated authentication failures."""
from typing import Optional
from shared.clock import Clock, now_ms
from shared.counters import CounterStore
from shared.models import LoginAttemptRecord, LoginDecision, Severity, ViolationType
from shared.policy import PolicyHolder
from api.services.violations import ViolationRecorder
import logging

logger = logging.getLogger(__name__)

KEY_PREFIX = "login:"
SUSPICIOUS_IPS_KEY = "suspicious_ips"


class LoginGuard:
    """Tracks consecutive failures per identifier and enforces temporary lockout.

    Clear -> Accumulating -> Locked -> (lockout expires) -> Clear. A success
    outside lockout clears the identifier. Attempts during lockout do not
    extend it.
    """

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
    def _key(identifier: str) -> str:
        return f"{KEY_PREFIX}{identifier}"

    def record(self, identifier: str) -> Optional[LoginAttemptRecord]:
        """Current attempt record for an identifier, if any."""
        data = self.store.get(self._key(identifier))
        if not data:
            return None
        return LoginAttemptRecord(count=data.get("count", 0), lockout_until=data.get("lockout_until"))

    def record_attempt(self, identifier: str, success: bool, ip: Optional[str] = None) -> LoginDecision:
        """Record a login attempt and decide whether the identifier may log in.

        Args:
            identifier: Login identifier (email, username)
            success: Whether the credentials were correct
            ip: Originating IP address, if known

        Returns:
            LoginDecision; lockout_until is set while the identifier is locked
        """
        now = self.clock()
        key = self._key(identifier)
        current = self.record(identifier)

        if current and current.lockout_until is not None:
            if now <= current.lockout_until:
                return LoginDecision(allowed=False, lockout_until=current.lockout_until)
            # lockout over: start again from Clear
            self.store.delete(key)

        if success:
            self.store.delete(key)
            return LoginDecision(allowed=True)

        policy = self.policy.current
        count = self.store.increment(key, "count")
        if count < policy.max_login_attempts:
            return LoginDecision(allowed=True)

        lockout_until = now + policy.lockout_duration_ms
        self.store.set_fields(key, {"lockout_until": lockout_until}, expire_at=lockout_until + 1)
        self.recorder.record(
            ViolationType.SUSPICIOUS_ACTIVITY,
            Severity.HIGH,
            identifier,
            {
                "reason": "multiple_failed_logins",
                "identifier": identifier,
                "attempts": count,
                "ip": ip,
                "lockout_until": lockout_until,
            }
        )
        if ip:
            self.store.add_member(SUSPICIOUS_IPS_KEY, ip)
        logger.warning(f"Locked out {identifier} until {lockout_until} after {count} failed attempts")
        return LoginDecision(allowed=False, lockout_until=lockout_until)

    def is_locked(self, identifier: str) -> bool:
        current = self.record(identifier)
        return bool(current and current.lockout_until is not None and self.clock() <= current.lockout_until)

    def locked_out_count(self, now: Optional[int] = None) -> int:
        """Number of identifiers currently locked out."""
        now = now if now is not None else self.clock()
        return sum(
            1 for _, data in self.store.scan(KEY_PREFIX)
            if data.get("lockout_until") is not None and now <= data["lockout_until"]
        )

    def suspicious_ip_count(self) -> int:
        return self.store.member_count(SUSPICIOUS_IPS_KEY)

    def sweep(self, now: Optional[int] = None) -> int:
        """Purge records whose lockout has expired.

        Returns:
            Number of records removed
        """
        now = now if now is not None else self.clock()
        expired = [
            key for key, data in self.store.scan(KEY_PREFIX)
            if data.get("lockout_until") is not None and now > data["lockout_until"]
        ]
        for key in expired:
            self.store.delete(key)
        if expired:
            logger.info(f"Swept {len(expired)} expired login lockouts")
        return len(expired)
