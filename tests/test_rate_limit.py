from datetime import datetime, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.scholartrack import create_app
from app.scholartrack.db import session_scope
from app.scholartrack.errors import RateLimitedError
from app.scholartrack.models import Base, User
from app.scholartrack.ratelimit import RateLimiter


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, 12, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture()
def clock():
    return FakeClock()


def test_limit_and_expiry(clock):
    limiter = RateLimiter(limit=2, window_seconds=60, clock=clock)
    limiter.check_and_hit("k")
    clock.advance(10)
    limiter.check_and_hit("k")

    with pytest.raises(RateLimitedError) as exc:
        limiter.check_and_hit("k")
    assert exc.value.retry_after == 50
    assert exc.value.status_code == 429

    # The first attempt falls out of the window.
    clock.advance(51)
    assert not limiter.is_limited("k")
    limiter.check_and_hit("k")
    assert limiter.is_limited("k")


def test_keys_are_independent(clock):
    limiter = RateLimiter(limit=1, window_seconds=60, clock=clock)
    limiter.check_and_hit("a")
    limiter.check_and_hit("b")
    assert limiter.is_limited("a")
    limiter.reset("a")
    assert not limiter.is_limited("a")
    assert limiter.is_limited("b")
    limiter.reset()
    assert len(limiter) == 0


def test_prune_drops_expired_keys(clock):
    limiter = RateLimiter(limit=5, window_seconds=60, clock=clock)
    limiter.hit("old")
    clock.advance(30)
    limiter.hit("new")
    clock.advance(40)
    assert limiter.prune() == 1
    assert len(limiter) == 1


def test_max_keys_triggers_prune(clock):
    limiter = RateLimiter(limit=5, window_seconds=60, max_keys=2, clock=clock)
    limiter.hit("a")
    limiter.hit("b")
    clock.advance(61)
    limiter.hit("c")
    assert len(limiter) == 1


def test_max_keys_bounds_live_keys(clock):
    limiter = RateLimiter(limit=5, window_seconds=300, max_keys=10, clock=clock)
    for i in range(1000):
        limiter.hit(f"ip-{i}")
    assert len(limiter) == 10

    # The least recently hit keys are the ones evicted.
    assert limiter.is_limited("ip-999") is False
    limiter.hit("ip-990")
    limiter.hit("ip-1000")
    assert "ip-990" in limiter._attempts
    assert "ip-991" not in limiter._attempts


def test_limit_must_be_positive():
    with pytest.raises(ValueError):
        RateLimiter(limit=0, window_seconds=60)


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("LOGIN_RATE_LIMIT", "3")
    monkeypatch.setenv("LOGIN_RATE_WINDOW", "300")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    with session_scope(app) as s:
        s.add(User(email="alice@example.com", password_hash=generate_password_hash("pw"), is_active=True))
    return app.test_client()


def test_login_is_rate_limited(client):
    for _ in range(3):
        r = client.post("/auth/login", json={"email": "alice@example.com", "password": "wrong"})
        assert r.status_code == 401

    r = client.post("/auth/login", json={"email": "alice@example.com", "password": "pw"})
    assert r.status_code == 429
    assert int(r.headers["Retry-After"]) > 0
    assert r.json["retryAfter"] == int(r.headers["Retry-After"])


def test_successful_login_resets_counter(client):
    for _ in range(2):
        client.post("/auth/login", json={"email": "alice@example.com", "password": "wrong"})
    assert client.post("/auth/login", json={"email": "alice@example.com", "password": "pw"}).status_code == 200

    for _ in range(2):
        r = client.post("/auth/login", json={"email": "alice@example.com", "password": "wrong"})
        assert r.status_code == 401
