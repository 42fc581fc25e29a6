import pytest
from fastapi import HTTPException

from drivegate.core.constants import APPS_SCRIPT_ORIGIN_PATTERN
from drivegate.core.origins import pattern_allow_list
from drivegate.core.ratelimit import SlidingWindowLimiter

is_apps_script = pattern_allow_list(APPS_SCRIPT_ORIGIN_PATTERN)


@pytest.mark.parametrize(
    "origin",
    [
        "https://n-" + "a" * 32 + "-0lu-script.googleusercontent.com",
        "https://n-" + "abc-123-" * 6 + "-0lu-script.googleusercontent.com",
    ],
)
def test_apps_script_sandbox_origins_are_allowed(origin):
    assert is_apps_script(origin)


@pytest.mark.parametrize(
    "origin",
    [
        None,
        "",
        "https://n-" + "a" * 31 + "-0lu-script.googleusercontent.com",
        "https://n-" + "A" * 32 + "-0lu-script.googleusercontent.com",
        "http://n-" + "a" * 32 + "-0lu-script.googleusercontent.com",
        "https://n-" + "a" * 32 + "-0lu-script.googleusercontent.com.evil.com",
        "https://evil.com/https://n-" + "a" * 32 + "-0lu-script.googleusercontent.com",
    ],
)
def test_other_origins_are_rejected(origin):
    assert not is_apps_script(origin)


def test_limiter_blocks_after_limit_per_key():
    limiter = SlidingWindowLimiter(limit=2)
    limiter.hit("a")
    limiter.hit("a")
    limiter.hit("b")

    with pytest.raises(HTTPException) as info:
        limiter.hit("a")
    assert info.value.status_code == 429


def test_limiter_window_expires(monkeypatch):
    clock = [100.0]
    monkeypatch.setattr("drivegate.core.ratelimit.monotonic", lambda: clock[0])
    limiter = SlidingWindowLimiter(limit=1, window_seconds=10)

    limiter.hit("a")
    clock[0] += 11
    limiter.hit("a")


def test_limiter_forgets_idle_clients(monkeypatch):
    clock = [100.0]
    monkeypatch.setattr("drivegate.core.ratelimit.monotonic", lambda: clock[0])
    limiter = SlidingWindowLimiter(limit=5, window_seconds=10)

    for client in ("10.0.0.1", "10.0.0.2", "10.0.0.3"):
        limiter.hit(client)
    clock[0] += 11
    limiter.hit("10.0.0.4")

    assert list(limiter._buckets) == ["10.0.0.4"]


def test_limiter_disabled_with_zero_limit():
    limiter = SlidingWindowLimiter(limit=0)
    for _ in range(100):
        limiter.hit("a")
