import itertools
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

# Ensure critical settings exist before the app/config modules import.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./dev.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key-change-me-please-0123456789")

from api.deps import get_audit_logger
from app.models import (
    AdminRole,
    AdminUser,
    Booking,
    BookingStatus,
    CancellationRequest,
    CancellationStatus,
    Customer,
    RefundRequest,
    RefundRequestStatus,
)
from app.services.audit_service import DatabaseAuditLogger
from app.utils.security import create_access_token
from core.db import get_db
from core.db.base import Base
from main import app

# Use SQLite for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

engine = create_async_engine(TEST_DATABASE_URL, echo=False, connect_args={"timeout": 5})
_references = itertools.count(1)

TestSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def setup_db():
    """Create and drop all tables for each test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def session_factory() -> async_sessionmaker:
    """Factory for tests that need independent sessions."""
    return TestSessionLocal


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for testing."""
    async with TestSessionLocal() as session:
        yield session


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client for testing."""

    async def override_get_db():
        async with TestSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_audit_logger] = lambda: DatabaseAuditLogger(TestSessionLocal)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()



@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
async def test_customer(db_session: AsyncSession) -> Customer:
    """Create a test customer."""
    customer = Customer(
        email="jane@example.com",
        first_name="Jane",
        last_name="Doe",
        is_active=True,
    )
    db_session.add(customer)
    await db_session.commit()
    await db_session.refresh(customer)
    return customer


@pytest.fixture
async def other_customer(db_session: AsyncSession) -> Customer:
    customer = Customer(
        email="mallory@example.com",
        first_name="Mallory",
        last_name="Smith",
        is_active=True,
    )
    db_session.add(customer)
    await db_session.commit()
    await db_session.refresh(customer)
    return customer


@pytest.fixture
async def admin_user(db_session: AsyncSession) -> AdminUser:
    """Create admin 7, the reviewer used throughout the workflow tests."""
    admin = AdminUser(
        id=7,
        email="admin@example.com",
        name="Admin Seven",
        role=AdminRole.ADMIN,
        is_active=True,
    )
    db_session.add(admin)
    await db_session.commit()
    await db_session.refresh(admin)
    return admin


@pytest.fixture
async def second_admin(db_session: AsyncSession) -> AdminUser:
    admin = AdminUser(
        id=9,
        email="admin9@example.com",
        name="Admin Nine",
        role=AdminRole.SUPER_ADMIN,
        is_active=True,
    )
    db_session.add(admin)
    await db_session.commit()
    await db_session.refresh(admin)
    return admin


@pytest.fixture
async def test_booking(db_session: AsyncSession, test_customer: Customer) -> Booking:
    """Create a confirmed, Stripe-paid booking for an event 60 days out."""
    booking = Booking(
        booking_reference="BK-1001",
        customer_id=test_customer.id,
        event_name="Cup Final",
        event_date=datetime.now(timezone.utc) + timedelta(days=60),
        total_amount=Decimal("100.00"),
        currency="eur",
        stripe_payment_intent_id="pi_test_123",
        status=BookingStatus.CONFIRMED,
    )
    db_session.add(booking)
    await db_session.commit()
    await db_session.refresh(booking)
    return booking


@pytest.fixture
async def create_booking(db_session: AsyncSession, test_customer: Customer):
    """Factory fixture to create additional bookings."""
    counter = {"n": 2000}

    async def _create_booking(**fields) -> Booking:
        counter["n"] += 1
        values = {
            "booking_reference": f"BK-{counter['n']}",
            "customer_id": test_customer.id,
            "event_name": "League Match",
            "event_date": datetime.now(timezone.utc) + timedelta(days=60),
            "total_amount": Decimal("100.00"),
            "stripe_payment_intent_id": f"pi_test_{counter['n']}",
            "status": BookingStatus.CONFIRMED,
        }
        values.update(fields)
        booking = Booking(**values)
        db_session.add(booking)
        await db_session.commit()
        await db_session.refresh(booking)
        return booking

    return _create_booking


@pytest.fixture
async def create_cancellation(db_session: AsyncSession, test_customer: Customer, test_booking: Booking):
    """Factory fixture to create cancellation requests."""

    async def _create(**fields) -> CancellationRequest:
        values = {
            "reference": f"CAN-TEST-{next(_references)}",
            "customer_id": test_customer.id,
            "booking_id": test_booking.id,
            "requested_amount": Decimal("100.00"),
            "reason": "Cannot attend the event anymore",
            "status": CancellationStatus.PENDING,
        }
        values.update(fields)
        item = CancellationRequest(**values)
        db_session.add(item)
        await db_session.commit()
        await db_session.refresh(item)
        return item

    return _create


@pytest.fixture
async def create_refund(db_session: AsyncSession, test_customer: Customer, test_booking: Booking):
    """Factory fixture to create refund requests."""

    async def _create(**fields) -> RefundRequest:
        values = {
            "reference": f"REF-TEST-{next(_references)}",
            "customer_id": test_customer.id,
            "booking_id": test_booking.id,
            "requested_amount": Decimal("100.00"),
            "reason": "Event was rescheduled",
            "status": RefundRequestStatus.PENDING,
        }
        values.update(fields)
        item = RefundRequest(**values)
        db_session.add(item)
        await db_session.commit()
        await db_session.refresh(item)
        return item

    return _create


@pytest.fixture
def admin_headers(admin_user: AdminUser) -> dict:
    """Create authentication headers for the admin."""
    access_token = create_access_token(admin_user.id, admin_user.role.value)
    return {"Authorization": f"Bearer {access_token}"}


@pytest.fixture
def customer_headers(test_customer: Customer) -> dict:
    """Create authentication headers for the customer."""
    access_token = create_access_token(test_customer.id, "customer")
    return {"Authorization": f"Bearer {access_token}"}
