"""Unit tests for the fixed-window rate limiter."""

from wayfarer.resilience import RateLimiter, get_client_ip


def make_limiter(clock, limit: int = 3, **kwargs) -> RateLimiter:
    return RateLimiter(window_seconds=60, default_limit=limit, clock=clock, **kwargs)


class TestCheck:
    def test_allows_up_to_limit_then_denies(self, clock) -> None:
        limiter = make_limiter(clock)
        assert [limiter.check("1.2.3.4", "weather") for _ in range(4)] == [True, True, True, False]

    def test_denied_requests_do_not_consume_budget(self, clock) -> None:
        limiter = make_limiter(clock, limit=2)
        limiter.check("c", "weather")
        limiter.check("c", "weather")
        for _ in range(5):
            assert not limiter.check("c", "weather")
        assert limiter.get_info("c", "weather").remaining == 0

        clock.advance(60)
        assert limiter.check("c", "weather")
        assert limiter.get_info("c", "weather").remaining == 1

    def test_window_resets_after_its_length(self, clock) -> None:
        limiter = make_limiter(clock, limit=1)
        assert limiter.check("c")
        clock.advance(59)
        assert not limiter.check("c")
        clock.advance(1)
        assert limiter.check("c")

    def test_categories_are_independent(self, clock) -> None:
        limiter = make_limiter(clock, limit=1)
        assert limiter.check("c", "places")
        assert not limiter.check("c", "places")
        assert limiter.check("c", "weather")

    def test_clients_are_independent(self, clock) -> None:
        limiter = make_limiter(clock, limit=1)
        assert limiter.check("a", "places")
        assert limiter.check("b", "places")

    def test_per_category_limits(self, clock) -> None:
        limiter = make_limiter(clock, limit=1, limits={"routing": 3})
        assert limiter.limit_for("routing") == 3
        assert limiter.limit_for("unknown") == 1
        assert [limiter.check("c", "routing") for _ in range(4)] == [True, True, True, False]


class TestInfoAndHeaders:
    def test_fresh_client_has_full_budget(self, clock) -> None:
        limiter = make_limiter(clock, limit=5)
        info = limiter.get_info("new", "weather")
        assert info.limit == 5
        assert info.remaining == 5
        assert info.reset_at == clock.now() + 60

    def test_headers_reflect_window(self, clock) -> None:
        limiter = make_limiter(clock, limit=5)
        start = clock.now()
        limiter.check("c", "weather")
        clock.advance(10.5)
        limiter.check("c", "weather")

        assert limiter.get_headers("c", "weather") == {
            "X-RateLimit-Limit": "5",
            "X-RateLimit-Remaining": "3",
            "X-RateLimit-Reset": str(int(start + 60)),
        }

    def test_remaining_never_negative(self, clock) -> None:
        limiter = make_limiter(clock, limit=1)
        limiter.check("c")
        limiter.check("c")
        assert limiter.get_info("c").remaining == 0


class TestMaintenance:
    def test_cleanup_drops_idle_windows(self, clock) -> None:
        limiter = make_limiter(clock)
        limiter.check("old")
        clock.advance(90)
        limiter.check("recent")
        clock.advance(40)
        assert limiter.cleanup() == 1
        assert limiter.cleanup() == 0

    def test_reset_one_category(self, clock) -> None:
        limiter = make_limiter(clock, limit=1)
        limiter.check("c", "places")
        limiter.check("c", "weather")
        limiter.reset("c", "places")
        assert limiter.check("c", "places")
        assert not limiter.check("c", "weather")

    def test_reset_all_categories(self, clock) -> None:
        limiter = make_limiter(clock, limit=1)
        limiter.check("c", "places")
        limiter.check("c", "weather")
        limiter.check("other", "places")
        limiter.reset("c")
        assert limiter.check("c", "places")
        assert limiter.check("c", "weather")
        assert not limiter.check("other", "places")


class TestGetClientIp:
    def test_first_forwarded_address_wins(self) -> None:
        headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1", "x-real-ip": "10.0.0.2"}
        assert get_client_ip(headers, "127.0.0.1") == "203.0.113.7"

    def test_real_ip_when_no_forwarded_for(self) -> None:
        assert get_client_ip({"x-real-ip": " 198.51.100.4 "}, "127.0.0.1") == "198.51.100.4"

    def test_peer_when_no_proxy_headers(self) -> None:
        assert get_client_ip({}, "192.0.2.1") == "192.0.2.1"

    def test_unknown_without_any_source(self) -> None:
        assert get_client_ip({}, None) == "unknown"

    def test_untrusted_proxy_ignores_headers(self) -> None:
        headers = {"x-forwarded-for": "203.0.113.7"}
        assert get_client_ip(headers, "192.0.2.1", trust_proxy=False) == "192.0.2.1"
