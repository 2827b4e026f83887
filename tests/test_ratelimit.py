import pytest

from relaykv.ratelimit import (
    EventQuota,
    KeyedRateLimiter,
    KindRange,
    Quota,
    Ratelimiter,
    RatelimiterSetting,
    parse_range,
    parse_ranges,
)

MS = 1_000_000
EVENT_ID = "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"


class FakeClock:
    def __init__(self, start=10_000 * MS):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, millis):
        self.now += millis * MS


def test_quota_with_period_equals_per_second():
    assert Quota.with_period(1, 10) == Quota.per_second(10)
    assert Quota.per_second(10) == Quota(100_000_000, 10)


def test_quota_rejects_zero_limit():
    with pytest.raises(ValueError):
        Quota.with_period(1, 0)
    with pytest.raises(ValueError):
        Quota.with_period(0, 3)


def test_range():
    ranges = parse_ranges([1, 2, [30000, 40000]])
    assert len(ranges) == 3
    assert ranges[0].contains(1)
    assert not ranges[0].contains(0)
    assert not ranges[0].contains(2)
    assert ranges[2].contains(30000)
    assert ranges[2].contains(30001)
    assert ranges[2].contains(39999)
    assert not ranges[2].contains(40000)
    assert ranges == [KindRange(1, 2), KindRange(2, 3), KindRange(30000, 40000)]


@pytest.mark.parametrize("value", [["1", 2, [30000, 40000]], [-1], [[1]], [1.5]])
def test_parse_ranges_rejects_invalid(value):
    with pytest.raises(ValueError):
        parse_ranges(value)


def test_parse_range_single_and_pair():
    assert parse_range(7) == KindRange(7, 8)
    assert parse_range([3, 9]) == KindRange(3, 9)
    with pytest.raises(ValueError):
        parse_range("7")


def test_hit():
    ip = "127.0.0.1"
    quota = EventQuota(period=1, limit=1, name="test")
    assert quota.hit(1, ip)

    quota = EventQuota(
        period=1,
        limit=1,
        name="test",
        kinds=[KindRange(1, 100), KindRange(200, 300)],
        ip_whitelist=[ip],
    )
    assert not quota.hit(1, ip)
    assert quota.hit(1, "127")
    assert not quota.hit(101, "127")


def test_event_quota_from_dict():
    quota = EventQuota.from_dict(
        {"period": 1, "limit": 2, "kinds": [1, 2, [100, 200]], "description": "slow down"}
    )
    assert quota.limit == 2
    assert quota.kinds == [KindRange(1, 2), KindRange(2, 3), KindRange(100, 200)]
    assert quota.description == "slow down"
    assert quota.name == ""
    assert quota.quota() == Quota(500_000_000, 2)


@pytest.mark.parametrize(
    "data",
    [{"limit": 2}, {"period": 1}, {"period": 0, "limit": 2}, {"period": 1, "limit": 0}],
)
def test_event_quota_from_dict_errors(data):
    with pytest.raises(ValueError):
        EventQuota.from_dict(data)


def test_check():
    clock = FakeClock()
    limiter = Ratelimiter(clock)
    limiter.configure({"enabled": True, "event": [{"period": 1, "limit": 3}]})
    assert limiter.setting.enabled
    assert len(limiter.event_limiters) == 1
    lim = limiter.event_limiters[0]
    ip = "127.0.0.1"
    assert lim.check_key(ip)
    assert lim.check_key(ip)
    assert lim.check_key(ip)
    assert not lim.check_key(ip)
    clock.advance(100)
    assert not lim.check_key(ip)
    clock.advance(1100)
    assert lim.check_key(ip)


def test_keys_are_independent():
    clock = FakeClock()
    lim = KeyedRateLimiter(Quota.per_second(1), clock)
    assert lim.check_key("a")
    assert not lim.check_key("a")
    assert lim.check_key("b")


def test_retain_recent_drops_stale_keys():
    clock = FakeClock()
    lim = KeyedRateLimiter(Quota.per_second(2), clock)
    lim.check_key("a")
    assert len(lim) == 1
    lim.retain_recent()
    assert len(lim) == 1
    clock.advance(1000)
    lim.retain_recent()
    assert len(lim) == 0


def test_setting_defaults():
    setting = RatelimiterSetting.from_dict({})
    assert setting.enabled is False
    assert setting.event == []
    assert setting.clear_interval == 60
    with pytest.raises(ValueError):
        RatelimiterSetting.from_dict({"clear_interval": 0})


def test_message():
    clock = FakeClock()
    limiter = Ratelimiter(clock)
    limiter.configure(
        {
            "enabled": True,
            "event": [{"period": 1, "limit": 2, "kinds": [1, 2, [100, 200]]}],
        }
    )
    ip = "127.0.0.1"
    for _ in range(2):
        assert limiter.check_event(EVENT_ID, 1, ip) is None

    refused = limiter.check_event(EVENT_ID, 1, ip)
    assert refused[0] == "OK"
    assert refused[1] == EVENT_ID
    assert refused[2] is False
    assert "rate-limited" in refused[3]
    assert limiter.exceeded == {"": 1}

    for _ in range(5):
        assert limiter.check_event(EVENT_ID, 3, ip) is None


def test_disabled_never_limits():
    limiter = Ratelimiter(FakeClock())
    limiter.configure({"enabled": False, "event": [{"period": 1, "limit": 1}]})
    results = [limiter.check_event(EVENT_ID, 1, "127.0.0.1") for _ in range(5)]
    assert results == [None] * 5


def test_clear_after_interval():
    clock = FakeClock()
    limiter = Ratelimiter(clock)
    limiter.configure(
        {"enabled": True, "clear_interval": 1, "event": [{"period": 1, "limit": 1}]}
    )
    assert limiter.check_event(EVENT_ID, 1, "127.0.0.1") is None
    assert len(limiter.event_limiters[0]) == 1
    clock.advance(2000)
    limiter.clear()
    assert len(limiter.event_limiters[0]) == 0
    assert limiter.clear_time == clock.now