"""Tests for the fixed-window rate limiters and client address extraction."""

from starlette.requests import Request

from windalert.models.database import SessionLocal
from windalert.services.ratelimit import DatabaseRateLimiter, MemoryRateLimiter, client_ip


class FakeClock:
    def __init__(self, t: float = 1_000.0):
        self.t = t

    def __call__(self) -> float:
        return self.t


def _request(headers: dict[str, str] | None = None, client=("10.0.0.9", 5123)) -> Request:
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/api/send-alerts",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


class TestMemoryRateLimiter:
    def test_sixth_request_denied(self):
        limiter = MemoryRateLimiter(5, 60, clock=FakeClock())
        results = [limiter.hit("1.2.3.4") for _ in range(6)]
        assert [r.success for r in results] == [True] * 5 + [False]
        assert [r.remaining for r in results] == [4, 3, 2, 1, 0, 0]
        assert results[-1].reset == 1_060.0

    def test_window_restarts(self):
        clock = FakeClock()
        limiter = MemoryRateLimiter(2, 60, clock=clock)
        limiter.hit("k")
        limiter.hit("k")
        assert not limiter.hit("k").success
        clock.t += 61
        result = limiter.hit("k")
        assert result.success and result.remaining == 1

    def test_keys_independent(self):
        limiter = MemoryRateLimiter(1, 60, clock=FakeClock())
        assert limiter.hit("a").success
        assert limiter.hit("b").success
        assert not limiter.hit("a").success

    def test_headers(self):
        result = MemoryRateLimiter(5, 60, clock=FakeClock()).hit("k")
        assert result.headers == {
            "X-RateLimit-Limit": "5",
            "X-RateLimit-Remaining": "4",
            "X-RateLimit-Reset": "1060",
        }


class TestDatabaseRateLimiter:
    def test_sixth_request_denied(self, db):
        limiter = DatabaseRateLimiter(SessionLocal, 5, 60, clock=FakeClock())
        results = [limiter.hit("1.2.3.4") for _ in range(6)]
        assert [r.success for r in results] == [True] * 5 + [False]
        assert results[-1].remaining == 0

    def test_shared_between_instances(self, db):
        clock = FakeClock()
        a = DatabaseRateLimiter(SessionLocal, 3, 60, clock=clock)
        b = DatabaseRateLimiter(SessionLocal, 3, 60, clock=clock)
        assert a.hit("k").success
        assert b.hit("k").success
        assert a.hit("k").success
        assert not b.hit("k").success

    def test_window_restarts(self, db):
        clock = FakeClock()
        limiter = DatabaseRateLimiter(SessionLocal, 1, 60, clock=clock)
        assert limiter.hit("k").success
        assert not limiter.hit("k").success
        clock.t += 61
        result = limiter.hit("k")
        assert result.success
        assert result.reset == clock.t + 60


class TestClientIp:
    def test_forwarded_for_first_hop(self):
        assert client_ip(_request({"X-Forwarded-For": "203.0.113.5, 10.0.0.1"})) == "203.0.113.5"

    def test_real_ip(self):
        assert client_ip(_request({"X-Real-IP": "198.51.100.7"})) == "198.51.100.7"

    def test_peer_address(self):
        assert client_ip(_request()) == "10.0.0.9"

    def test_anonymous(self):
        assert client_ip(_request(client=None)) == "anonymous"
