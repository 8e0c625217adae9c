from concurrent.futures import ThreadPoolExecutor

from httpx import ASGITransport, AsyncClient

from telemetry_demo.config import Settings
from telemetry_demo.main import create_app
from telemetry_demo.observability.context import RequestContext
from telemetry_demo.services.container import build_services
from telemetry_demo.services.rate_limit import RateLimiter


def test_fixed_window_admission(clock, logger) -> None:
    limiter = RateLimiter(logger, window_ms=1000, max_requests=3, clock=clock)

    decisions = []
    for _ in range(4):
        decisions.append(limiter.admit("10.0.0.1"))
        clock.advance(0.1)

    assert [d.allowed for d in decisions] == [True, True, True, False]
    assert [d.count for d in decisions] == [1, 2, 3, 4]
    assert decisions[2].remaining == 0
    # Rejected at t=300ms in a window that started at t=0.
    assert decisions[3].retry_after_seconds == 1

    clock.advance(0.7)
    fresh = limiter.admit("10.0.0.1")
    assert fresh.allowed
    assert fresh.count == 1


def test_retry_after_rounds_up_to_whole_seconds(clock, logger) -> None:
    limiter = RateLimiter(logger, window_ms=60_000, max_requests=1, clock=clock)
    limiter.admit("c")
    clock.advance(10)

    rejected = limiter.admit("c")
    assert not rejected.allowed
    assert rejected.retry_after_seconds == 50


def test_rejection_is_logged_as_warning(clock, logger, log_capture) -> None:
    limiter = RateLimiter(logger, window_ms=1000, max_requests=1, clock=clock)
    context = RequestContext.new(trace_id="t-1")

    assert limiter.admit("1.2.3.4", context).allowed
    assert not limiter.admit("1.2.3.4", context).allowed

    [record] = log_capture.find("Rate limit exceeded")
    assert record["level"] == "WARNING"
    assert record["trace_id"] == "t-1"
    assert record["context"] == {"client_ip": "1.2.3.4", "request_count": 2, "limit": 1, "window_ms": 1000}


def test_clients_are_limited_independently(clock, logger) -> None:
    limiter = RateLimiter(logger, window_ms=1000, max_requests=1, clock=clock)

    assert limiter.admit("a").allowed
    assert limiter.admit("b").allowed
    assert not limiter.admit("a").allowed


def test_idle_clients_are_swept(clock, logger) -> None:
    limiter = RateLimiter(logger, window_ms=1000, max_requests=5, clock=clock)
    limiter.admit("a")
    limiter.admit("b")
    assert limiter.get_stats() == {"tracked_clients": 2, "window_ms": 1000, "max_requests": 5}

    clock.advance(1.5)
    limiter.admit("c")
    assert limiter.get_stats()["tracked_clients"] == 1


async def test_middleware_answers_429_with_retry_after(logger) -> None:
    settings = Settings(RATE_LIMIT_MAX_REQUESTS=2, RATE_LIMIT_WINDOW_MS=60_000, LOG_TO_FILE=False)
    app = create_app(settings, build_services(settings, logger=logger))

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        first = await client.get("/api/users/1")
        second = await client.get("/api/users/1")
        third = await client.get("/api/users/1")
        health = await client.get("/health")

    assert first.status_code == 200
    assert first.headers["x-ratelimit-limit"] == "2"
    assert first.headers["x-ratelimit-remaining"] == "1"
    assert second.headers["x-ratelimit-remaining"] == "0"

    assert third.status_code == 429
    assert third.json()["error"] == "Too many requests"
    assert int(third.headers["retry-after"]) == third.json()["retry_after"]
    assert 0 < third.json()["retry_after"] <= 60
    # Rejections still pass through the request context layer.
    assert "x-request-id" in third.headers

    assert health.status_code == 200


async def test_forwarded_for_identifies_the_client(logger) -> None:
    settings = Settings(RATE_LIMIT_MAX_REQUESTS=1, LOG_TO_FILE=False)
    app = create_app(settings, build_services(settings, logger=logger))

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        a = await client.get("/api/users/1", headers={"X-Forwarded-For": "203.0.113.5, 10.0.0.1"})
        b = await client.get("/api/users/1", headers={"X-Forwarded-For": "203.0.113.6"})
        again = await client.get("/api/users/1", headers={"X-Forwarded-For": "203.0.113.5"})

    assert [a.status_code, b.status_code, again.status_code] == [200, 200, 429]


def test_concurrent_admits_never_exceed_the_limit(clock, logger) -> None:
    limiter = RateLimiter(logger, window_ms=60_000, max_requests=25, clock=clock)

    with ThreadPoolExecutor(max_workers=16) as pool:
        decisions = list(pool.map(lambda _: limiter.admit("same"), range(200)))

    assert sum(d.allowed for d in decisions) == 25
    assert sorted(d.count for d in decisions) == list(range(1, 201))
