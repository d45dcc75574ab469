from collections import defaultdict

import pytest
import redis
from fastapi.testclient import TestClient

from storefront.database import get_db
from storefront.main import create_app


class FakeRedis:
    """In-memory sorted sets covering the commands the limiter issues."""

    def __init__(self):
        self.sets = defaultdict(dict)

    def pipeline(self):
        return FakePipeline(self)

    def zremrangebyscore(self, key, low, high):
        members = self.sets[key]
        for member, score in list(members.items()):
            if low <= score <= high:
                del members[member]

    def zcard(self, key):
        return len(self.sets[key])

    def zadd(self, key, mapping):
        self.sets[key].update(mapping)

    def expire(self, key, seconds):
        return True

    def zcount(self, key, low, high):
        return sum(1 for score in self.sets[key].values() if low <= score <= high)

    def close(self):
        pass


class FakePipeline:
    def __init__(self, client):
        self.client = client
        self.calls = []

    def __getattr__(self, name):
        def queue(*args):
            self.calls.append((name, args))
            return self
        return queue

    def execute(self):
        return [getattr(self.client, name)(*args) for name, args in self.calls]


class BrokenRedis(FakeRedis):
    def pipeline(self):
        raise redis.ConnectionError("connection refused")

    def zadd(self, key, mapping):
        raise redis.ConnectionError("connection refused")


def limited_client(session_factory, redis_client):
    app = create_app(redis_client=redis_client, rate_limit=True, init_database=False)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def low_limits(monkeypatch):
    monkeypatch.setattr("storefront.main.RATE_LIMIT_PER_MINUTE_IP", 3)
    monkeypatch.setattr("storefront.main.RATE_LIMIT_PER_MINUTE_USER", 2)


def test_ip_limit_returns_429(session_factory, low_limits):
    client = limited_client(session_factory, FakeRedis())

    statuses = [client.get("/api/health").status_code for _ in range(4)]

    assert statuses == [200, 200, 200, 429]
    rejected = client.get("/api/health")
    assert rejected.json()["success"] is False
    assert rejected.headers["Retry-After"] == "60"


def test_user_limit_applies_to_token_subject(session_factory, low_limits, user, auth_headers):
    fake = FakeRedis()
    client = limited_client(session_factory, fake)

    first = client.get("/api/auth/profile", headers=auth_headers(user))
    second = client.get("/api/auth/profile", headers=auth_headers(user))
    third = client.get("/api/auth/profile", headers=auth_headers(user))

    assert [first.status_code, second.status_code, third.status_code] == [200, 200, 429]
    assert "user" in third.json()["message"]
    assert f"rate:user:{user.id}" in fake.sets


def test_error_responses_are_tracked_per_ip(session_factory):
    fake = FakeRedis()
    client = limited_client(session_factory, fake)

    client.get("/api/user/products/9999")

    assert len(fake.sets["suspicious:404:testclient"]) == 1
    assert len(fake.sets["suspicious:4xx:testclient"]) == 1


def test_redis_outage_fails_open(session_factory, low_limits):
    client = limited_client(session_factory, BrokenRedis())

    statuses = [client.get("/api/health").status_code for _ in range(5)]

    assert statuses == [200] * 5
