"""Keyed counter stores backing the rate limiter and login guard."""
import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterator, Optional, Tuple
import redis
from shared.config import config


# Fixed-window hit: start a new window when none exists or the old one has passed,
# otherwise increment. Returns {count, reset_at}.
_HIT_WINDOW_SCRIPT = """
local reset_at = tonumber(redis.call('HGET', KEYS[1], 'window_reset_at') or '0')
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
if reset_at == 0 or now > reset_at then
    reset_at = now + window
    redis.call('HSET', KEYS[1], 'count', 1, 'window_reset_at', reset_at, 'blocked', 0)
    redis.call('PEXPIRE', KEYS[1], window * 2)
    return {1, reset_at}
end
local count = redis.call('HINCRBY', KEYS[1], 'count', 1)
return {count, reset_at}
"""


class CounterStore(ABC):
    """Keyed store of small integer records with atomic increments.

    Keys are strings; each key holds a flat mapping of field name to integer.
    """

    @abstractmethod
    def hit_window(self, key: str, window_ms: int, now: int) -> Tuple[int, int]:
        """Count one hit in the key's fixed window.

        Args:
            key: Counter key
            window_ms: Window length in milliseconds
            now: Current time in epoch milliseconds

        Returns:
            (count within the window, window reset time)
        """

    @abstractmethod
    def increment(self, key: str, field: str, amount: int = 1) -> int:
        """Atomically add to a field and return the new value."""

    @abstractmethod
    def get(self, key: str) -> Optional[Dict[str, int]]:
        """Return the record for a key, or None."""

    @abstractmethod
    def set_fields(self, key: str, fields: Dict[str, int], expire_at: Optional[int] = None):
        """Set fields on a record, optionally expiring it at an epoch-ms time."""

    @abstractmethod
    def delete(self, key: str):
        """Remove a record."""

    @abstractmethod
    def scan(self, prefix: str) -> Iterator[Tuple[str, Dict[str, int]]]:
        """Iterate (key, record) pairs whose key starts with prefix."""

    @abstractmethod
    def add_member(self, set_key: str, member: str):
        """Add a member to a named set."""

    @abstractmethod
    def member_count(self, set_key: str) -> int:
        """Size of a named set."""


class InMemoryCounterStore(CounterStore):
    """Process-local store; a single lock serialises every mutation."""

    def __init__(self):
        self._records: Dict[str, Dict[str, int]] = {}
        self._sets: Dict[str, set] = {}
        self._lock = threading.Lock()

    def hit_window(self, key: str, window_ms: int, now: int) -> Tuple[int, int]:
        with self._lock:
            record = self._records.get(key)
            if record is None or now > record["window_reset_at"]:
                record = {"count": 1, "window_reset_at": now + window_ms, "blocked": 0}
                self._records[key] = record
            else:
                record["count"] += 1
            return record["count"], record["window_reset_at"]

    def increment(self, key: str, field: str, amount: int = 1) -> int:
        with self._lock:
            record = self._records.setdefault(key, {})
            record[field] = record.get(field, 0) + amount
            return record[field]

    def get(self, key: str) -> Optional[Dict[str, int]]:
        with self._lock:
            record = self._records.get(key)
            return dict(record) if record is not None else None

    def set_fields(self, key: str, fields: Dict[str, int], expire_at: Optional[int] = None):
        # expiry is left to the periodic sweep
        with self._lock:
            self._records.setdefault(key, {}).update(fields)

    def delete(self, key: str):
        with self._lock:
            self._records.pop(key, None)

    def scan(self, prefix: str) -> Iterator[Tuple[str, Dict[str, int]]]:
        with self._lock:
            snapshot = [(key, dict(record)) for key, record in self._records.items() if key.startswith(prefix)]
        return iter(snapshot)

    def add_member(self, set_key: str, member: str):
        with self._lock:
            self._sets.setdefault(set_key, set()).add(member)

    def member_count(self, set_key: str) -> int:
        with self._lock:
            return len(self._sets.get(set_key, ()))


class RedisCounterStore(CounterStore):
    """Shared store for multi-process deployments; one hash per key."""

    def __init__(self, redis_client=None):
        self.redis_client = redis_client or redis.from_url(config.REDIS_URL, decode_responses=True)
        self._hit_window = self.redis_client.register_script(_HIT_WINDOW_SCRIPT)

    @staticmethod
    def _as_ints(record: Dict[str, str]) -> Dict[str, int]:
        return {field: int(value) for field, value in record.items()}

    def hit_window(self, key: str, window_ms: int, now: int) -> Tuple[int, int]:
        count, reset_at = self._hit_window(keys=[key], args=[now, window_ms])
        return int(count), int(reset_at)

    def increment(self, key: str, field: str, amount: int = 1) -> int:
        return int(self.redis_client.hincrby(key, field, amount))

    def get(self, key: str) -> Optional[Dict[str, int]]:
        record = self.redis_client.hgetall(key)
        return self._as_ints(record) if record else None

    def set_fields(self, key: str, fields: Dict[str, int], expire_at: Optional[int] = None):
        pipe = self.redis_client.pipeline()
        pipe.hset(key, mapping=fields)
        if expire_at is not None:
            pipe.pexpireat(key, expire_at)
        pipe.execute()

    def delete(self, key: str):
        self.redis_client.delete(key)

    def scan(self, prefix: str) -> Iterator[Tuple[str, Dict[str, int]]]:
        for key in self.redis_client.scan_iter(match=f"{prefix}*"):
            record = self.redis_client.hgetall(key)
            if record:
                yield key, self._as_ints(record)

    def add_member(self, set_key: str, member: str):
        self.redis_client.sadd(set_key, member)

    def member_count(self, set_key: str) -> int:
        return int(self.redis_client.scard(set_key))
