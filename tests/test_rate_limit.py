import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from plantstore.config import settings
from plantstore.middleware import InMemoryRateLimitStore, RateLimitMiddleware, RateLimitRule, default_rules
from plantstore.middleware.rate_limit import rate_limit_key

AUTH_MESSAGE = "Too many login attempts from this IP, please try again after an hour"


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryRateLimitStore(clock=clock)


@pytest.fixture
def limited_app(store):
    app = FastAPI()
    rules = [
        RateLimitRule("auth", "/api/auth/", 2, 3600, AUTH_MESSAGE),
        RateLimitRule("api", "/api/", 3, 900, "Too many requests, please try again later"),
    ]
    app.add_middleware(RateLimitMiddleware, store=store, rules=rules)

    @app.post("/api/auth/login")
    async def login():
        return {"ok": True}

    @app.put("/api/auth/reset-password/{token}")
    async def reset_password(token: str):
        return {"ok": True}

    @app.get("/api/items")
    async def items():
        return {"items": []}

    @app.get("/api/other")
    async def other():
        return {"items": []}

    @app.get("/ping")
    async def ping():
        return {"msg": "pong"}

    return app


@pytest.fixture
def limited_client(limited_app):
    return TestClient(limited_app)


# --------------------------
# Store
# --------------------------
def test_store_counts_within_window(store, clock):
    assert store.hit("k", 60) == (1, 60)
    clock.now += 10
    assert store.hit("k", 60) == (2, 50)


def test_store_window_expires(store, clock):
    store.hit("k", 60)
    store.hit("k", 60)
    clock.now += 61
    assert store.hit("k", 60)[0] == 1


def test_store_reset(store):
    store.hit("a", 60)
    store.hit("b", 60)
    store.reset("a")
    assert store.hit("a", 60)[0] == 1
    assert store.hit("b", 60)[0] == 2
    store.reset_all()
    assert store.hit("b", 60)[0] == 1


def test_store_drops_expired_windows(store, clock):
    for i in range(1000):
        store.hit(f"k{i}", 60)
    assert len(store) == 1000

    clock.now += 61
    store.hit("fresh", 60)
    assert len(store) == 1


def test_store_keeps_live_windows_while_evicting(store, clock):
    store.hit("short", 10)
    store.hit("long", 3600)
    clock.now += 11
    assert store.hit("long", 3600)[0] == 2
    assert len(store) == 1


def test_store_reset_key_then_reuse(store, clock):
    store.hit("k", 60)
    store.reset("k")
    clock.now += 30
    assert store.hit("k", 60) == (1, 60)
    # the stale expiry entry from the first window must not evict the new one
    clock.now += 31
    assert store.hit("k", 60)[0] == 2


def test_key_includes_rule_ip_and_route():
    rule = RateLimitRule("auth", "/api/auth/", 5, 3600, AUTH_MESSAGE)
    assert rate_limit_key(rule, "1.2.3.4", "/api/auth/login") == "auth:1.2.3.4:/api/auth/login"


def test_default_rules_follow_settings():
    auth, api = default_rules(settings)
    assert (auth.prefix, api.prefix) == ("/api/auth/", "/api/")
    assert auth.window_seconds == settings.AUTH_RATE_LIMIT_WINDOW_SECONDS
    assert api.max_requests == settings.API_RATE_LIMIT_MAX


# --------------------------
# Middleware
# --------------------------
def test_auth_limit_returns_429(limited_client):
    assert limited_client.post("/api/auth/login").status_code == 200
    assert limited_client.post("/api/auth/login").status_code == 200

    response = limited_client.post("/api/auth/login")
    assert response.status_code == 429
    assert response.json() == {"message": AUTH_MESSAGE, "code": "RATE_LIMIT_EXCEEDED"}
    assert int(response.headers["Retry-After"]) > 0


def test_general_limit_returns_429(limited_client):
    for _ in range(3):
        assert limited_client.get("/api/items").status_code == 200
    response = limited_client.get("/api/items")
    assert response.status_code == 429
    assert response.json()["message"] == "Too many requests, please try again later"


def test_counters_are_per_route(limited_client):
    for _ in range(3):
        limited_client.get("/api/items")
    assert limited_client.get("/api/other").status_code == 200


def test_token_guesses_share_the_route_bucket(limited_client):
    assert limited_client.put("/api/auth/reset-password/guess1").status_code == 200
    assert limited_client.put("/api/auth/reset-password/guess2").status_code == 200

    response = limited_client.put("/api/auth/reset-password/guess3")
    assert response.status_code == 429
    assert response.json()["message"] == AUTH_MESSAGE


def test_token_guesses_do_not_grow_the_store(limited_client, store):
    for i in range(300):
        limited_client.put(f"/api/auth/reset-password/guess{i}")
    # one auth and one api window for the single route template
    assert len(store) == 2


def test_unknown_paths_share_one_bucket(limited_client, store):
    for i in range(5):
        limited_client.get(f"/api/missing/{i}")
    assert len(store) == 1
    assert limited_client.get("/api/missing/again").status_code == 429


def test_paths_outside_prefixes_are_not_limited(limited_client):
    for _ in range(10):
        assert limited_client.get("/ping").status_code == 200


def test_counters_are_per_ip(limited_client, monkeypatch):
    monkeypatch.setattr(settings, "TRUST_PROXY", True)
    for _ in range(2):
        limited_client.post("/api/auth/login", headers={"X-Forwarded-For": "1.1.1.1"})
    assert limited_client.post("/api/auth/login", headers={"X-Forwarded-For": "1.1.1.1"}).status_code == 429
    assert limited_client.post("/api/auth/login", headers={"X-Forwarded-For": "2.2.2.2"}).status_code == 200


def test_window_expiry_lifts_the_limit(limited_client, clock):
    for _ in range(3):
        limited_client.post("/api/auth/login")
    clock.now += 3601
    assert limited_client.post("/api/auth/login").status_code == 200


def test_reset_between_runs(limited_client, store):
    for _ in range(3):
        limited_client.post("/api/auth/login")
    store.reset_all()
    assert limited_client.post("/api/auth/login").status_code == 200


def test_application_wires_its_store(app, client, rate_limit_store):
    assert app.state.rate_limit_store is rate_limit_store
    client.get("/api/health")
    assert rate_limit_store.hit("api:testclient:/api/health", 900)[0] == 2
