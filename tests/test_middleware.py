from fastapi import FastAPI
from fastapi.testclient import TestClient

from middleware.csrf import CSRF_HEADER_NAME, SESSION_COOKIE_NAME, is_path_exempt
from middleware.rate_limit import RateLimiter, RateLimitMiddleware, RateLimitRule
from tests.factories import auth_headers

API = "/api/v1"

SALON = {
    "name": "Cookie Salon",
    "address": {"street": "4-5-6 Ginza", "city": "Tokyo"},
    "phone": "0311112222",
}


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestCSRF:
    """Double-submit checks for cookie authenticated requests"""

    def session_token(self):
        return auth_headers("admin")["Authorization"].split()[1]

    def test_cookie_request_without_header(self, client):
        client.cookies.set(SESSION_COOKIE_NAME, self.session_token())

        response = client.post(f"{API}/salons/", json=SALON)

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "CSRF_TOKEN_INVALID"

    def test_cookie_request_with_matching_header(self, client):
        client.cookies.set(SESSION_COOKIE_NAME, self.session_token())
        token = client.get(f"{API}/auth/csrf-token").json()["csrf_token"]

        response = client.post(f"{API}/salons/", json=SALON, headers={CSRF_HEADER_NAME: token})

        assert response.status_code == 201

    def test_cookie_request_with_wrong_header(self, client):
        client.cookies.set(SESSION_COOKIE_NAME, self.session_token())
        client.get(f"{API}/auth/csrf-token")

        response = client.post(f"{API}/salons/", json=SALON, headers={CSRF_HEADER_NAME: "forged"})

        assert response.status_code == 403

    def test_bearer_request_skips_check(self, client):
        client.cookies.set(SESSION_COOKIE_NAME, self.session_token())
        response = client.post(f"{API}/salons/", json=SALON, headers=auth_headers("admin"))
        assert response.status_code == 201

    def test_csrf_cookie_issued(self, client):
        response = client.get(f"{API}/health")
        assert "csrf_token" in response.cookies

    def test_exempt_paths(self):
        assert is_path_exempt("/api/v1/auth/login")
        assert is_path_exempt("/api/v1/health/ready")
        assert not is_path_exempt("/api/v1/auth/refresh")


class TestRateLimiter:
    """Fixed window counting per rule and client"""

    def limiter(self, clock):
        return RateLimiter(
            rules=[RateLimitRule("auth", 2, 60, ("/api/v1/auth/login",)), RateLimitRule("general", 3, 60)],
            clock=clock,
        )

    def test_blocks_after_limit(self):
        limiter = self.limiter(FakeClock())

        results = [limiter.hit("1.2.3.4", "/api/v1/auth/login")[0] for _ in range(3)]

        assert results == [True, True, False]

    def test_rules_count_separately(self):
        limiter = self.limiter(FakeClock())
        limiter.hit("1.2.3.4", "/api/v1/auth/login")
        limiter.hit("1.2.3.4", "/api/v1/auth/login")

        allowed, rule, remaining, _ = limiter.hit("1.2.3.4", "/api/v1/salons/")

        assert allowed
        assert rule.name == "general"
        assert remaining == 2

    def test_clients_count_separately(self):
        limiter = self.limiter(FakeClock())
        for _ in range(2):
            limiter.hit("1.2.3.4", "/api/v1/auth/login")
        assert limiter.hit("5.6.7.8", "/api/v1/auth/login")[0]

    def test_window_resets(self):
        clock = FakeClock()
        limiter = self.limiter(clock)
        for _ in range(2):
            limiter.hit("1.2.3.4", "/api/v1/auth/login")

        clock.now += 30
        blocked = limiter.hit("1.2.3.4", "/api/v1/auth/login")
        clock.now += 31
        allowed = limiter.hit("1.2.3.4", "/api/v1/auth/login")

        assert not blocked[0]
        assert blocked[3] == 30
        assert allowed[0]

    def test_middleware_returns_429(self):
        app = FastAPI()
        app.add_middleware(RateLimitMiddleware, limiter=RateLimiter(rules=[RateLimitRule("general", 1, 60)],
                                                                    clock=FakeClock()))

        @app.get("/ping")
        def ping():
            return {"pong": True}

        client = TestClient(app)
        first = client.get("/ping")
        second = client.get("/ping")

        assert first.status_code == 200
        assert first.headers["X-RateLimit-Remaining"] == "0"
        assert second.status_code == 429
        assert second.headers["Retry-After"] == "60"
        assert second.json()["detail"]["code"] == "RATE_LIMIT_EXCEEDED"
