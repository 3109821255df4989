"""Per-address policy-violation tracking.

Every denial made by the request gate is recorded here. An address that
collects ``max_failed_attempts`` violations is rate limited until it has
been quiet for ``block_duration`` seconds. Each new violation restarts that
window, so an address that keeps misbehaving stays blocked.

Two stores are provided. ``InMemoryViolationStore`` is process local;
``RedisViolationStore`` lets several server instances share one table so
an abuser cannot dodge the limit by landing on a different instance.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Tuple

import redis

from app.core.config import Settings

logger = logging.getLogger(__name__)

MAX_FAILED_ATTEMPTS = 5
BLOCK_DURATION_SECONDS = 15 * 60
SWEEP_INTERVAL_SECONDS = 5 * 60


@dataclass
class BlockEntry:
    violation_count: int
    last_violation: float


class ViolationStore(ABC):
    @abstractmethod
    def get(self, address: str) -> Optional[BlockEntry]:
        raise NotImplementedError

    @abstractmethod
    def increment(self, address: str, now: float) -> BlockEntry:
        """Add one violation for ``address`` and stamp it with ``now``."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, address: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def items(self) -> List[Tuple[str, BlockEntry]]:
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        raise NotImplementedError

    def delete_if_stale(self, address: str, cutoff: float) -> bool:
        """Delete ``address`` unless it has been updated after ``cutoff``."""
        entry = self.get(address)
        if entry is not None and entry.last_violation < cutoff:
            self.delete(address)
            return True
        return False

    def __len__(self) -> int:
        return len(self.items())


class InMemoryViolationStore(ViolationStore):
    def __init__(self):
        self._entries: Dict[str, BlockEntry] = {}
        self._lock = threading.Lock()

    def get(self, address: str) -> Optional[BlockEntry]:
        with self._lock:
            entry = self._entries.get(address)
            if entry is None:
                return None
            return BlockEntry(entry.violation_count, entry.last_violation)

    def increment(self, address: str, now: float) -> BlockEntry:
        with self._lock:
            entry = self._entries.get(address)
            if entry is None:
                entry = BlockEntry(violation_count=0, last_violation=now)
                self._entries[address] = entry
            entry.violation_count += 1
            entry.last_violation = now
            return BlockEntry(entry.violation_count, entry.last_violation)

    def delete(self, address: str) -> None:
        with self._lock:
            self._entries.pop(address, None)

    def delete_if_stale(self, address: str, cutoff: float) -> bool:
        with self._lock:
            entry = self._entries.get(address)
            if entry is not None and entry.last_violation < cutoff:
                del self._entries[address]
                return True
            return False

    def items(self) -> List[Tuple[str, BlockEntry]]:
        with self._lock:
            return [
                (address, BlockEntry(e.violation_count, e.last_violation))
                for address, e in self._entries.items()
            ]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_DELETE_IF_STALE = """
local last = redis.call('HGET', KEYS[1], 'last')
if last and tonumber(last) < tonumber(ARGV[1]) then
    return redis.call('DEL', KEYS[1])
end
return 0
"""


class RedisViolationStore(ViolationStore):
    """One redis hash per address: ``count`` and ``last``.

    Keys carry a TTL of ``ttl_seconds`` so redis evicts idle addresses on
    its own; the periodic sweep is then only a backstop.
    """

    def __init__(self, client: "redis.Redis", ttl_seconds: int, key_prefix: str = "ipblock:"):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix
        self._delete_if_stale_script = client.register_script(_DELETE_IF_STALE)

    def _key(self, address: str) -> str:
        return f"{self.key_prefix}{address}"

    @staticmethod
    def _decode(value) -> str:
        return value.decode("utf-8") if isinstance(value, bytes) else str(value)

    def _entry(self, raw: dict) -> Optional[BlockEntry]:
        if not raw:
            return None
        fields = {self._decode(k): self._decode(v) for k, v in raw.items()}
        return BlockEntry(
            violation_count=int(fields.get("count", 0)),
            last_violation=float(fields.get("last", 0)),
        )

    def get(self, address: str) -> Optional[BlockEntry]:
        return self._entry(self.client.hgetall(self._key(address)))

    def increment(self, address: str, now: float) -> BlockEntry:
        key = self._key(address)
        pipe = self.client.pipeline()
        pipe.hincrby(key, "count", 1)
        pipe.hset(key, "last", repr(now))
        pipe.expire(key, self.ttl_seconds)
        count, _, _ = pipe.execute()
        return BlockEntry(violation_count=int(count), last_violation=now)

    def delete(self, address: str) -> None:
        self.client.delete(self._key(address))

    def delete_if_stale(self, address: str, cutoff: float) -> bool:
        # Check and delete in one script so a concurrent HINCRBY from another
        # instance is never wiped out.
        deleted = self._delete_if_stale_script(keys=[self._key(address)], args=[repr(cutoff)])
        return bool(deleted)

    def _iter_keys(self) -> Iterator[str]:
        for key in self.client.scan_iter(match=f"{self.key_prefix}*"):
            yield self._decode(key)

    def items(self) -> List[Tuple[str, BlockEntry]]:
        out = []
        for key in self._iter_keys():
            entry = self._entry(self.client.hgetall(key))
            if entry is not None:
                out.append((key[len(self.key_prefix):], entry))
        return out

    def clear(self) -> None:
        keys = list(self._iter_keys())
        if keys:
            self.client.delete(*keys)

    def __len__(self) -> int:
        return sum(1 for _ in self._iter_keys())


class ViolationRateLimiter:
    def __init__(
        self,
        store: ViolationStore,
        max_failed_attempts: int = MAX_FAILED_ATTEMPTS,
        block_duration: float = BLOCK_DURATION_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.max_failed_attempts = max_failed_attempts
        self.block_duration = block_duration
        self.clock = clock

    @property
    def sweep_threshold(self) -> float:
        return 2 * self.block_duration

    @property
    def retry_after_seconds(self) -> int:
        return math.ceil(self.block_duration)

    def is_rate_limited(self, address: str) -> bool:
        try:
            entry = self.store.get(address)
            if entry is None:
                return False
            now = self.clock()
            if now - entry.last_violation > self.block_duration:
                self.store.delete_if_stale(address, now - self.block_duration)
                return False
            return entry.violation_count >= self.max_failed_attempts
        except Exception:
            # Fail closed on store errors.
            logger.exception(f"Violation store lookup failed for {address}; treating as limited")
            return True

    def record_violation(self, address: str) -> Optional[BlockEntry]:
        try:
            return self.store.increment(address, self.clock())
        except Exception:
            logger.exception(f"Failed to record violation for {address}")
            return None

    def sweep(self, now: Optional[float] = None) -> int:
        """Evict entries idle for longer than twice the block duration."""
        now = self.clock() if now is None else now
        cutoff = now - self.sweep_threshold
        evicted = 0
        for address, entry in self.store.items():
            if entry.last_violation < cutoff and self.store.delete_if_stale(address, cutoff):
                evicted += 1
        if evicted:
            logger.info(f"Swept {evicted} expired block entries, {len(self.store)} remaining")
        return evicted


class BlockSweeper:
    """Runs ``limiter.sweep()`` on a daemon thread every ``interval`` seconds."""

    def __init__(self, limiter: ViolationRateLimiter, interval: float = SWEEP_INTERVAL_SECONDS):
        self.limiter = limiter
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _loop(self):
        while not self._stop.wait(self.interval):
            try:
                self.limiter.sweep()
            except Exception:
                logger.exception("Block entry sweep failed")

    def start(self) -> "BlockSweeper":
        if self._thread is None or not self._thread.is_alive():
            self._stop.clear()
            self._thread = threading.Thread(target=self._loop, name="block-sweeper", daemon=True)
            self._thread.start()
        return self

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


def build_violation_store(settings: Settings) -> ViolationStore:
    if settings.IP_BLOCKER_STORE == "memory":
        return InMemoryViolationStore()
    elif settings.IP_BLOCKER_STORE == "redis":
        client = redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            password=settings.REDIS_PASSWORD,
            db=settings.REDIS_DB,
        )
        return RedisViolationStore(
            client,
            ttl_seconds=2 * settings.IP_BLOCKER_BLOCK_DURATION_SECONDS,
            key_prefix=settings.REDIS_KEY_PREFIX,
        )
    else:
        raise ValueError(f"Unknown violation store: {settings.IP_BLOCKER_STORE}")
