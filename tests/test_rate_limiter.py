import pytest

import ems.rate_limiter as rl
from ems.config import Config
from ems.rate_limiter import build_rate_limiter, current_window
from ems.rate_limiter_memory import MemoryRateLimiter
from ems.rate_limiter_noop import NoopRateLimiter


@pytest.fixture
def frozen_time(monkeypatch):
    # pin the clock inside a window so a boundary cannot reset counts mid-test
    now = [float(current_window(900)[0] + 10)]
    monkeypatch.setattr(rl.time, "time", lambda: now[0])
    return now


@pytest.fixture
def memory_limiter(app):
    app.rate_limiter = MemoryRateLimiter()
    return app.rate_limiter


def test_memory_limiter_quota_and_window(frozen_time):
    lim = MemoryRateLimiter()
    assert all(lim.allow("k", quota=3, per_seconds=60) for _ in range(3))
    assert lim.allow("k", quota=3, per_seconds=60) is False
    assert 0 < lim.retry_after("k", per_seconds=60) <= 60
    # other keys are independent
    assert lim.allow("other", quota=3, per_seconds=60)
    frozen_time[0] += 61
    assert lim.retry_after("k", per_seconds=60) == 0
    assert lim.allow("k", quota=3, per_seconds=60)


def test_memory_limiter_reset(frozen_time):
    lim = MemoryRateLimiter()
    lim.allow("k", quota=1, per_seconds=60)
    assert lim.allow("k", quota=1, per_seconds=60) is False
    lim.reset()
    assert lim.allow("k", quota=1, per_seconds=60)


def test_noop_always_allows():
    lim = NoopRateLimiter()
    assert all(lim.allow("k", quota=1, per_seconds=1) for _ in range(5))
    assert lim.retry_after("k", per_seconds=1) == 0


@pytest.mark.parametrize(
    ("backend", "expected"),
    [("memory", MemoryRateLimiter), ("noop", NoopRateLimiter), ("", MemoryRateLimiter), ("bogus", MemoryRateLimiter)],
)
def test_backend_selected_from_config(backend, expected):
    assert isinstance(build_rate_limiter(Config(rate_limit_backend=backend)), expected)


def test_backend_read_from_env(monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_BACKEND", "NOOP")
    monkeypatch.setenv("RATE_LIMIT_PREFIX", "test:rl:")
    cfg = Config.from_env()
    assert cfg.rate_limit_backend == "noop"
    assert cfg.rate_limit_prefix == "test:rl:"


def test_current_window_aligns():
    assert current_window(60, now=125.7) == (120, 55)
    assert current_window(900, now=1800) == (1800, 900)


def test_app_uses_configured_limiter(app):
    assert isinstance(app.rate_limiter, NoopRateLimiter)


def test_ticket_creation_is_rate_limited(client, auth, memory_limiter, frozen_time):
    headers = auth("employee")
    body = {"title": "Printer jam", "description": "Tray two is jammed again.", "category": "Printer"}
    for _ in range(10):
        assert client.post("/api/v1/tickets", json=body, headers=headers).status_code == 201
    r = client.post("/api/v1/tickets", json=body, headers=headers)
    assert r.status_code == 429
    data = r.get_json()
    assert data["success"] is False
    assert data["message"] == "Too many ticket creation attempts, please try again later."
    assert data["limit"] == "ticket_create"
    assert int(r.headers["Retry-After"]) == data["retry_after"] == 890
    # the quota is per caller
    assert client.post("/api/v1/tickets", json=body, headers=auth("other")).status_code == 201


def test_limit_applies_after_authentication(client, memory_limiter):
    for _ in range(12):
        assert client.post("/api/v1/tickets", json={}).status_code == 401
