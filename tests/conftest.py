from __future__ import annotations

import os

# must be set before anything under app/ reads settings
os.environ["DATABASE_DSN"] = "sqlite://"
os.environ["REDIS_URL"] = ""
os.environ["EMAIL_ENABLED"] = "true"
os.environ["ROUTING_POLICY_FILE"] = ""
os.environ.setdefault("SECRET_KEY", "test-secret")

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from app.core.redis import set_redis
from app.core.routing_policy import get_policy
from app.core.security import sign_session
from app.db.base import Base
from app.db.models.user import Role, User
from app.db.session import SessionLocal, engine
from app.main import app
from app.services.actions import RoutingRequest, create_action
from app.utils.mailer import LoggingMailer, set_mailer


class RecordingMailer:
    def __init__(self):
        self.sent: list[tuple[str, str, dict]] = []

    def send(self, user, template, data):
        self.sent.append((user.username, template, data))


class FailingMailer:
    def send(self, user, template, data):
        raise RuntimeError("smtp relay down")


class FakeRedis:
    """Just enough of redis-py for the badge and override caches."""

    def __init__(self):
        self.store: dict = {}

    def ping(self):
        return True

    def get(self, key):
        v = self.store.get(key)
        return None if isinstance(v, set) else v

    def setex(self, key, ttl, value):
        self.store[key] = str(value)
        return True

    def delete(self, *keys):
        return sum(1 for k in keys if self.store.pop(k, None) is not None)

    def exists(self, key):
        return int(key in self.store)

    def sadd(self, key, *members):
        s = self.store.setdefault(key, set())
        before = len(s)
        s.update(members)
        return len(s) - before

    def sismember(self, key, member):
        return member in self.store.get(key, set())

    def expire(self, key, ttl):
        return key in self.store

    def pipeline(self):
        return _FakePipeline(self)


class _FakePipeline:
    def __init__(self, r: FakeRedis):
        self.r = r
        self.ops: list = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.ops.append((name, args, kwargs))
            return self

        return queue

    def execute(self):
        return [getattr(self.r, name)(*args, **kwargs) for name, args, kwargs in self.ops]


@pytest.fixture()
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def mailer():
    m = RecordingMailer()
    set_mailer(m)
    yield m
    set_mailer(LoggingMailer())


@pytest.fixture()
def failing_mailer(mailer):
    m = FailingMailer()
    set_mailer(m)
    return m


@pytest.fixture()
def fake_redis():
    r = FakeRedis()
    set_redis(r)
    yield r
    set_redis(None)


@pytest.fixture()
def make_user(db):
    def _make(username, role, *, vendor=None, circles=(), divisions=(), is_active=True, status="approved"):
        u = User(
            username=username,
            full_name=username.replace("_", " ").title(),
            email=f"{username}@example.com",
            role=role.value if isinstance(role, Role) else role,
            vendor=vendor,
            circles=list(circles),
            divisions=list(divisions),
            is_active=is_active,
            status=status,
        )
        db.add(u)
        db.commit()
        return u

    return _make


@pytest.fixture()
def directory(make_user):
    """Users for every routing strategy. Creation order matters: first-by-id wins."""
    policy = get_policy()
    south_vendor = policy.vendor_for_circle("SOUTH")
    north_vendor = policy.vendor_for_circle("NORTH")
    return SimpleNamespace(
        admin=make_user("admin", Role.ADMIN),
        router_eq=make_user("router_eq", Role.EQUIPMENT, divisions=["HSR"]),
        eq2=make_user("eq2", Role.EQUIPMENT, divisions=["JAYANAGAR"]),
        ccr1=make_user("ccr1", Role.CCR),
        ccr2=make_user("ccr2", Role.CCR),
        amc_south=make_user("amc_south", Role.AMC, vendor=south_vendor, circles=["SOUTH", "WEST"]),
        amc_north=make_user("amc_north", Role.AMC, vendor=north_vendor, circles=["NORTH", "EAST"]),
        amc_jyothi=make_user(
            "amc_jyothi", Role.AMC, vendor=policy.override_vendor, circles=["SOUTH", "WEST", "NORTH", "EAST"]
        ),
        inactive_om=make_user("inactive_om", Role.OM, divisions=["HSR"], is_active=False),
        pending_om=make_user("pending_om", Role.OM, divisions=["HSR"], status="pending"),
        om_hsr=make_user("om_hsr", Role.OM, divisions=["hsr"]),
        relay_kor=make_user("relay_kor", Role.RELAY, divisions=["KORAMANGALA"]),
    )


@pytest.fixture()
def route(db):
    def _route(actor, routing, row, *, issue_type="Dismantled", file_id="file-1", row_key=None, **kwargs):
        req = RoutingRequest(
            row_data=row,
            routing=routing,
            issue_type=issue_type,
            source_file_id=file_id,
            row_key=row_key,
            **kwargs,
        )
        return create_action(db, actor, req)

    return _route


@pytest.fixture()
def client_for(db):
    def _client(user) -> TestClient:
        return TestClient(app, cookies={"sid": sign_session({"user_id": user.id})})

    return _client
