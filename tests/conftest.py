import os
from datetime import datetime, timedelta

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.rate_limit import request_creation_limiter
from app.core.security import create_access_token, hash_password
from app.db.base import Base
from app.db.models import Admin, AdminRole, Company, Member, MemberCompany, Visitor
from app.db.session import get_db
from app.main import fastapi_app
from app.services.notification_service import get_notifier
from app.services.request_rules import MANAGE_REQUESTS, Caller
from app.services.request_service import RequestLifecycle
from app.socket.server import get_broadcaster

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

PASSWORD = "Password123!"
PASSWORD_HASH = hash_password(PASSWORD)


class RecordingNotifier:
    def __init__(self):
        self.calls = []

    async def notify_member_of_request(self, member, visitor, request, company):
        self.calls.append(("member", request.id, request.status))
        return {"email": {"success": True, "messageId": "m-1"}}

    async def notify_visitor_of_status(self, visitor, request, member, company):
        self.calls.append(("visitor", request.id, request.status))
        return {"sms": {"success": True, "messageId": "s-1"}}

    async def send_manual(self, channel, recipient, message, subject=None):
        self.calls.append(("manual", channel, recipient))
        return {channel: {"success": False, "message": "SMS service not configured"}}


class RecordingBroadcaster:
    def __init__(self):
        self.events = []

    async def publish(self, event, room, payload):
        self.events.append((event, room, payload))

    def of_type(self, update_type):
        return [payload for event, _, payload in self.events if payload.get("type") == update_type]


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 2, 9, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    request_creation_limiter.reset()
    yield
    request_creation_limiter.reset()


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def lifecycle(db, notifier, broadcaster, clock):
    return RequestLifecycle(db, notifier, broadcaster, clock=clock)


@pytest.fixture
def company(db):
    row = Company(name="Acme Ltd", location="Block B", contact_phone="+2348010000000")
    db.add(row)
    db.commit()
    return row


def _member(db, company, email, phone, employee_id):
    row = Member(
        first_name="Ada",
        last_name=employee_id,
        email=email,
        phone=phone,
        password_hash=PASSWORD_HASH,
        employee_id=employee_id,
        department="Engineering",
        position="Lead",
    )
    db.add(row)
    db.flush()
    if company is not None:
        db.add(MemberCompany(member_id=row.id, company_id=company.id))
    db.commit()
    return row


@pytest.fixture
def member(db, company):
    return _member(db, company, "ada@acme.test", "+2348010000001", "EMP-1")


@pytest.fixture
def other_member(db, company):
    return _member(db, company, "grace@acme.test", "+2348010000002", "EMP-2")


@pytest.fixture
def make_visitor(db):
    def factory(first_name="Tunde", phone="+2348020000000", blacklisted=False, email="tunde@mail.test"):
        row = Visitor(
            first_name=first_name,
            last_name="Visitor",
            phone=phone,
            email=email,
            is_blacklisted=blacklisted,
        )
        db.add(row)
        db.commit()
        return row

    return factory


@pytest.fixture
def visitor(make_visitor):
    return make_visitor()


@pytest.fixture
def super_admin(db):
    row = Admin(
        first_name="Sade",
        last_name="Owner",
        email="owner@acme.test",
        password_hash=PASSWORD_HASH,
        role=AdminRole.super_admin,
        permissions={},
    )
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def security_admin(db):
    row = Admin(
        first_name="Gate",
        last_name="Keeper",
        email="security@acme.test",
        password_hash=PASSWORD_HASH,
        role=AdminRole.security,
        permissions={MANAGE_REQUESTS: False},
    )
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def member_caller(member):
    return Caller.member(member.id)


@pytest.fixture
def admin_caller(super_admin):
    return Caller.admin(super_admin.id, role=super_admin.role.value, permissions=super_admin.permissions)


@pytest.fixture
def security_caller(security_admin):
    return Caller.admin(security_admin.id, role=security_admin.role.value, permissions=security_admin.permissions)


@pytest.fixture
def client(db, notifier, broadcaster):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_notifier] = lambda: notifier
    fastapi_app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    try:
        yield TestClient(fastapi_app)
    finally:
        fastapi_app.dependency_overrides.clear()


def auth_headers(account_id: str, kind: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(account_id, kind)}"}


@pytest.fixture
def member_headers(member):
    return auth_headers(member.id, "member")


@pytest.fixture
def admin_headers(super_admin):
    return auth_headers(super_admin.id, "admin")


@pytest.fixture
def security_headers(security_admin):
    return auth_headers(security_admin.id, "admin")


@pytest.fixture
def headers_for():
    return auth_headers
