"""Cache-aside layer with a circuit breaker in front of the backend.

``CacheAside.fetch`` returns a cached value when one is present and
unexpired, otherwise computes it, stores it with a TTL and returns it.
The backend is a capability injected at construction:

- ``RedisCache``: redis-py client with short socket timeouts and a small
  ``Retry(ExponentialBackoff)`` budget, so no call blocks for long.
- ``InMemoryCache``: process-local, TTL-aware. For development and tests.
- ``NullCache``: the absent backend. Every read misses.

Caching is best-effort. Any backend failure (connect, get, set, delete,
or an entry that no longer decodes) is logged and the value is computed
directly; the caller never sees a cache error. After
``fail_threshold`` consecutive failures the breaker opens and the backend
is skipped entirely until ``reset_timeout`` elapses, then a single trial call
decides whether it closes again.

Values may be up to one TTL stale. Writers that cannot tolerate that call
``invalidate`` with a key pattern.
"""

import fnmatch
import json
import logging
import threading
import time
from typing import Callable, Optional, Protocol

import redis
from redis.backoff import ExponentialBackoff
from redis.retry import Retry

from retailhub.errors import Unavailable

logger = logging.getLogger("dashboard.cache")


class CacheUnavailable(Unavailable):
    code = "CACHE_UNAVAILABLE"


# ---------------- Backends ---------------- #

class CacheBackend(Protocol):
    """Key-value store with expiry and pattern delete."""

    enabled: bool

    def get(self, key: str) -> Optional[bytes]:
        raise NotImplementedError()

    def set(self, key: str, value: str, ttl: int) -> None:
        raise NotImplementedError()

    def delete_pattern(self, pattern: str) -> int:
        raise NotImplementedError()

    def ping(self) -> bool:
        raise NotImplementedError()


class RedisCache(CacheBackend):
    """Redis backend. Every ``RedisError`` surfaces as ``CacheUnavailable``.

    Args:
        url: ``redis://`` connection URL.
        socket_timeout: Seconds allowed for connect and for each command.
        retries: Extra attempts on connection errors and timeouts.
        backoff_base: First backoff step in seconds.
        backoff_cap: Upper bound for a single backoff sleep.
        client: Pre-built client, mostly for tests.
    """

    enabled = True

    def __init__(
        self,
        url: str,
        *,
        socket_timeout: float = 0.25,
        retries: int = 2,
        backoff_base: float = 0.05,
        backoff_cap: float = 0.5,
        client: Optional[redis.Redis] = None,
    ):
        self.url = url
        self.client = client or redis.Redis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            retry=Retry(ExponentialBackoff(cap=backoff_cap, base=backoff_base), retries),
            retry_on_error=[redis.exceptions.ConnectionError, redis.exceptions.TimeoutError],
        )

    def _call(self, op: str, fn: Callable):
        try:
            return fn()
        except redis.exceptions.RedisError as e:
            raise CacheUnavailable(f"redis {op} failed: {e}") from e

    def get(self, key: str) -> Optional[bytes]:
        return self._call("get", lambda: self.client.get(key))

    def set(self, key: str, value: str, ttl: int) -> None:
        self._call("set", lambda: self.client.set(key, value, ex=ttl))

    def delete_pattern(self, pattern: str) -> int:
        def _delete():
            deleted = 0
            batch = []
            for key in self.client.scan_iter(match=pattern, count=500):
                batch.append(key)
                if len(batch) >= 500:
                    deleted += self.client.delete(*batch)
                    batch = []
            if batch:
                deleted += self.client.delete(*batch)
            return deleted

        return self._call("delete", _delete)

    def ping(self) -> bool:
        return bool(self._call("ping", self.client.ping))


class InMemoryCache(CacheBackend):
    """Process-local backend with per-key expiry."""

    enabled = True

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._lock = threading.Lock()
        self._data: dict = {}

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self.clock() >= expires_at:
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: str, ttl: int) -> None:
        raw = value.encode("utf-8") if isinstance(value, str) else value
        with self._lock:
            self._data[key] = (self.clock() + ttl, raw)

    def delete_pattern(self, pattern: str) -> int:
        with self._lock:
            keys = [k for k in self._data if fnmatch.fnmatchcase(k, pattern)]
            for k in keys:
                del self._data[k]
            return len(keys)

    def ping(self) -> bool:
        return True


class NullCache(CacheBackend):
    """Backend used when no cache is configured."""

    enabled = False

    def get(self, key: str) -> Optional[bytes]:
        return None

    def set(self, key: str, value: str, ttl: int) -> None:
        return None

    def delete_pattern(self, pattern: str) -> int:
        return 0

    def ping(self) -> bool:
        return False


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED -> OPEN when consecutive failures reach ``fail_threshold``.
    - OPEN -> HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN -> CLOSED on a successful trial call, back to OPEN on failure.
      Only one trial call may be in flight.

    Thread-safe via an internal lock.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float, clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self.clock = clock
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"  # CLOSED | OPEN | HALF_OPEN
        self._opened_at = 0.0
        self._half_open_trial_in_flight = False

    @property
    def state(self) -> str:
        """Current state, applying the time-based OPEN -> HALF_OPEN move."""
        with self._lock:
            if self._state == "OPEN" and (self.clock() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._half_open_trial_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Admit or refuse a call.

        Raises:
            CacheUnavailable: If the circuit is OPEN or a HALF_OPEN trial call is
                already running.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise CacheUnavailable("circuit open", code="CIRCUIT_OPEN")
            if st == "HALF_OPEN":
                if self._half_open_trial_in_flight:
                    raise CacheUnavailable("half-open trial call busy", code="CIRCUIT_HALF_OPEN_BUSY")
                self._half_open_trial_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            if self._state != "CLOSED":
                logger.info("circuit closed", extra={"breaker": self.name})
            self._failures = 0
            self._state = "CLOSED"
            self._half_open_trial_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (self._failures >= self.fail_threshold and self._state != "OPEN"):
                self._state = "OPEN"
                self._opened_at = self.clock()
                self._half_open_trial_in_flight = False
                logger.warning("circuit opened", extra={"breaker": self.name, "failures": self._failures})

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._half_open_trial_in_flight = False


# ---------------- Cache-aside ---------------- #

_MISS = object()


class CacheAside:
    """Best-effort cache in front of an expensive computation.

    Args:
        backend: Any ``CacheBackend``.
        breaker: Optional ``CircuitBreaker``; a permissive one is created
            when omitted.
        default_ttl: Seconds an entry lives when ``fetch`` gets no TTL.
    """

    def __init__(self, backend: CacheBackend, breaker: Optional[CircuitBreaker] = None, default_ttl: int = 300):
        self.backend = backend
        self.breaker = breaker or CircuitBreaker("cache", fail_threshold=3, reset_timeout=30.0)
        self.default_ttl = default_ttl

    @property
    def enabled(self) -> bool:
        return self.backend.enabled

    def fetch(
        self,
        key: str,
        compute: Callable,
        ttl: Optional[int] = None,
        dumps: Callable = json.dumps,
        loads: Callable = json.loads,
    ):
        """Return the cached value for ``key`` or compute and store it.

        Args:
            key: Cache key.
            compute: Zero-argument callable producing the value.
            ttl: Lifetime in seconds; ``default_ttl`` when None.
            dumps: Serializer from value to ``str``.
            loads: Deserializer from stored bytes to value.

        Returns:
            The cached or freshly computed value. Errors raised by
            ``compute`` propagate; cache errors never do.
        """
        if not self.enabled:
            return compute()

        raw = self._guarded("get", key, lambda: self.backend.get(key), default=None)
        if raw is not None:
            try:
                return loads(raw)
            except ValueError:
                logger.warning("undecodable cache entry, recomputing", extra={"key": key})

        value = compute()
        payload = dumps(value)
        self._guarded("set", key, lambda: self.backend.set(key, payload, ttl or self.default_ttl), default=None)
        return value

    def invalidate(self, pattern: str) -> int:
        """Delete every key matching ``pattern``. Returns how many went."""
        if not self.enabled:
            return 0
        deleted = self._guarded("delete", pattern, lambda: self.backend.delete_pattern(pattern), default=0)
        logger.info("cache invalidated", extra={"pattern": pattern, "deleted": deleted})
        return deleted

    def health(self) -> dict:
        if not self.enabled:
            return {"enabled": False, "ok": False, "circuit": self.breaker.state}
        ok = self._guarded("ping", "-", self.backend.ping, default=False)
        return {"enabled": True, "ok": bool(ok), "circuit": self.breaker.state}

    def _guarded(self, op: str, key: str, fn: Callable, default):
        try:
            self.breaker.before_call()
        except CacheUnavailable as e:
            logger.debug("cache skipped", extra={"op": op, "key": key, "reason": e.code})
            return default

        result = _MISS
        try:
            result = fn()
        except Exception as e:
            self.breaker.on_failure()
            logger.warning("cache %s failed, using direct computation", op, extra={"key": key, "error": str(e)})
        else:
            self.breaker.on_success()
        finally:
            self.breaker.on_finish()
        return default if result is _MISS else result
