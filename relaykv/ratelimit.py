"""Per-ip rate limiting of incoming events, with GCRA keyed limiters."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from numbers import Real
from typing import Any, Callable, Dict, Hashable, List, Mapping, Optional, Sequence

U64_MAX = 2**64 - 1
U32_MAX = 2**32 - 1
NANOS_PER_SECOND = 1_000_000_000

Clock = Callable[[], int]


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _u64(value: Any) -> int:
    if not _is_int(value) or not 0 <= value <= U64_MAX:
        raise ValueError(f"invalid kind {value!r}: expected an unsigned integer")
    return value


def _to_nanos(seconds: Any, name: str) -> int:
    if isinstance(seconds, bool) or not isinstance(seconds, Real):
        raise ValueError(f"{name}: expected a number of seconds")
    nanos = seconds * NANOS_PER_SECOND if _is_int(seconds) else round(seconds * NANOS_PER_SECOND)
    if nanos <= 0:
        raise ValueError(f"{name}: expected a non-zero positive duration")
    return int(nanos)


def _positive_u32(value: Any, name: str) -> int:
    if not _is_int(value) or not 0 < value <= U32_MAX:
        raise ValueError(f"{name}: expected a non-zero 32-bit unsigned integer")
    return value


def _string_list(value: Any, name: str) -> Optional[List[str]]:
    if value is None:
        return None
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise ValueError(f"{name}: expected a list of strings")
    items = list(value)
    if not all(isinstance(item, str) for item in items):
        raise ValueError(f"{name}: expected a list of strings")
    return items


@dataclass(frozen=True)
class KindRange:
    """Event kinds from ``start`` (included) to ``end`` (excluded)."""

    start: int
    end: int

    def contains(self, value: int) -> bool:
        """Whether ``value`` lies inside the range."""
        return self.start <= value < self.end


def parse_range(value: Any) -> KindRange:
    """Parse a single kind (``1``) or a ``[start, end]`` pair into a range."""
    if _is_int(value):
        kind = _u64(value)
        return KindRange(kind, kind + 1)
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise ValueError(f"invalid kind range {value!r}: expected a kind or a sequence")
    if len(value) != 2:
        raise ValueError(f"invalid kind range {value!r}: expected two elements")
    return KindRange(_u64(value[0]), _u64(value[1]))


def parse_ranges(values: Any) -> List[KindRange]:
    """Parse a list of kinds and ``[start, end]`` pairs, e.g. ``[1, 2, [30000, 40000]]``."""
    if isinstance(values, (str, bytes)) or not isinstance(values, Sequence):
        raise ValueError("kinds: expected a list")
    return [parse_range(value) for value in values]


@dataclass(frozen=True)
class Quota:
    """One cell is replenished every ``replenish_interval`` ns, up to ``max_burst``."""

    replenish_interval: int
    max_burst: int

    @classmethod
    def per_second(cls, limit: int) -> "Quota":
        """Allow ``limit`` cells per second."""
        return cls.with_period(1, limit)

    @classmethod
    def with_period(cls, period: Real, limit: int) -> "Quota":
        """Allow ``limit`` cells every ``period`` seconds, all of them at once if needed."""
        limit = _positive_u32(limit, "limit")
        interval = _to_nanos(period, "period") // limit
        if interval <= 0:
            raise ValueError("period too short for the limit")
        return cls(interval, limit)


@dataclass
class EventQuota:
    """A limit on events, optionally narrowed to some kinds and relaxed for some ips."""

    period: float
    limit: int
    name: str = ""
    description: str = ""
    kinds: Optional[List[KindRange]] = None
    ip_whitelist: Optional[List[str]] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EventQuota":
        """Build a quota from settings; ``period`` and ``limit`` are required."""
        if not isinstance(data, Mapping):
            raise ValueError("event quota: expected a mapping")
        for required in ("period", "limit"):
            if required not in data:
                raise ValueError(f"missing field `{required}`")
        period = data["period"]
        _to_nanos(period, "period")
        name = data.get("name", "")
        description = data.get("description", "")
        if not isinstance(name, str) or not isinstance(description, str):
            raise ValueError("name and description must be strings")
        kinds = data.get("kinds")
        return cls(
            period=period,
            limit=_positive_u32(data["limit"], "limit"),
            name=name,
            description=description,
            kinds=None if kinds is None else parse_ranges(kinds),
            ip_whitelist=_string_list(data.get("ip_whitelist"), "ip_whitelist"),
        )

    def hit(self, kind: int, ip: str) -> bool:
        """Whether an event of ``kind`` from ``ip`` counts against this quota."""
        if self.ip_whitelist is not None and ip in self.ip_whitelist:
            return False
        if self.kinds is not None:
            return any(kind_range.contains(kind) for kind_range in self.kinds)
        return True

    def quota(self) -> Quota:
        """The limiter quota of this event quota."""
        return Quota.with_period(self.period, self.limit)


class KeyedRateLimiter:
    """A generic cell rate limiter keeping one state per key."""

    def __init__(self, quota: Quota, clock: Optional[Clock] = None) -> None:
        self.quota = quota
        self._clock: Clock = clock or time.monotonic_ns
        self._tau = quota.replenish_interval * quota.max_burst
        self._states: Dict[Hashable, int] = {}
        self._lock = threading.Lock()

    def check_key(self, key: Hashable) -> bool:
        """Take one cell for ``key``; False when the key is over its quota."""
        now = self._clock()
        with self._lock:
            tat = max(self._states.get(key, now), now)
            next_tat = tat + self.quota.replenish_interval
            if next_tat - self._tau > now:
                return False
            self._states[key] = next_tat
            return True

    def retain_recent(self) -> None:
        """Forget keys whose state is no different from a fresh one."""
        now = self._clock()
        with self._lock:
            self._states = {key: tat for key, tat in self._states.items() if tat > now}

    def __len__(self) -> int:
        return len(self._states)


@dataclass
class RatelimiterSetting:
    """Configuration of the rate limiter extension."""

    enabled: bool = False
    event: List[EventQuota] = field(default_factory=list)
    clear_interval: float = 60

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "RatelimiterSetting":
        """Build the setting from a config mapping; missing keys take defaults."""
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ValueError("rate_limiter: expected a mapping")
        enabled = data.get("enabled", False)
        if not isinstance(enabled, bool):
            raise ValueError("enabled: expected a boolean")
        events = data.get("event", [])
        if isinstance(events, (str, bytes)) or not isinstance(events, Sequence):
            raise ValueError("event: expected a list")
        clear_interval = data.get("clear_interval", 60)
        _to_nanos(clear_interval, "clear_interval")
        return cls(
            enabled=enabled,
            event=[EventQuota.from_dict(item) for item in events],
            clear_interval=clear_interval,
        )


class Ratelimiter:
    """Limits EVENT messages per client ip according to the configured quotas."""

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock: Clock = clock or time.monotonic_ns
        self.setting = RatelimiterSetting()
        self.event_limiters: List[KeyedRateLimiter] = []
        self.clear_time = self._clock()
        self.exceeded: Dict[str, int] = {}
        self._lock = threading.Lock()

    def configure(self, data: Optional[Mapping[str, Any]]) -> None:
        """Apply the ``rate_limiter`` settings and build one limiter per quota."""
        self.setting = RatelimiterSetting.from_dict(data)
        self.event_limiters = [
            KeyedRateLimiter(quota.quota(), self._clock) for quota in self.setting.event
        ]

    def clear(self) -> None:
        """Free stale limiter state once the clear interval has passed."""
        now = self._clock()
        with self._lock:
            if now - self.clear_time <= _to_nanos(self.setting.clear_interval, "clear_interval"):
                return
            self.clear_time = now
        for limiter in self.event_limiters:
            limiter.retain_recent()

    def check_event(self, event_id: str, kind: int, ip: str) -> Optional[list]:
        """Check an incoming event.

        Returns None when it may pass, otherwise the refusing OK message as a
        list: ``["OK", event_id, False, "rate-limited: <description>"]``.
        """
        if not self.setting.enabled:
            return None
        self.clear()
        for quota, limiter in zip(self.setting.event, self.event_limiters):
            if quota.hit(kind, ip) and not limiter.check_key(ip):
                self.exceeded[quota.name] = self.exceeded.get(quota.name, 0) + 1
                return ["OK", event_id, False, f"rate-limited: {quota.description}"]
        return None