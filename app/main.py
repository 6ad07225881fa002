import logging

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.api.routes import api_router
from app.core.config import get_settings
from app.core.exceptions import register_exception_handlers
from app.core.logging import setup_logging
from app.core.security import hash_password
from app.db.models import Admin, AdminRole, Company, Member, MemberCompany, Visitor
from app.db.session import SessionLocal, init_db
from app.middleware.request_context import RequestContextMiddleware
from app.services.request_rules import MANAGE_REQUESTS
from app.socket.server import sio

settings = get_settings()
setup_logging(logging.DEBUG if settings.DEBUG else logging.INFO)
logger = logging.getLogger(__name__)

fastapi_app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG)
fastapi_app.include_router(api_router, prefix=settings.API_V1_PREFIX)
fastapi_app.add_middleware(RequestContextMiddleware)
fastapi_app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(fastapi_app)


def _seed_dev_data(db: Session):
    if db.query(Company).count() > 0:
        return

    password = hash_password("Password123!")
    company = Company(name="Demo Company", location="Lagos HQ", contact_phone="+2348000000000")
    member = Member(
        first_name="Demo",
        last_name="Member",
        email="member@visitordesk.local",
        phone="+2348000000001",
        password_hash=password,
        employee_id="EMP-001",
        department="Operations",
        position="Manager",
    )
    visitor = Visitor(first_name="Demo", last_name="Visitor", phone="+2348000000002")
    super_admin = Admin(
        first_name="Demo",
        last_name="Owner",
        email="owner@visitordesk.local",
        password_hash=password,
        role=AdminRole.super_admin,
        permissions={MANAGE_REQUESTS: True},
    )
    security = Admin(
        first_name="Front",
        last_name="Desk",
        email="security@visitordesk.local",
        password_hash=password,
        role=AdminRole.security,
        permissions={},
    )

    try:
        db.add_all([company, member, visitor, super_admin, security])
        db.flush()
        db.add(MemberCompany(member_id=member.id, company_id=company.id))
        db.commit()
        logger.info("Seeded development data company_id=%s", company.id)
    except IntegrityError:
        # Another worker/process already inserted seed rows.
        db.rollback()


@fastapi_app.on_event("startup")
async def on_startup():
    init_db()
    db = SessionLocal()
    try:
        if settings.ENVIRONMENT.lower() == "development":
            _seed_dev_data(db)
    finally:
        db.close()


app = socketio.ASGIApp(
    sio,
    other_asgi_app=fastapi_app,
    socketio_path=settings.SOCKET_PATH.lstrip("/"),
)
