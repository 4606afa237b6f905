from typing import Optional

from fastapi import BackgroundTasks, Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.admin_user import AdminRole, AdminUser
from app.models.customer import Customer
from app.repositories.request_repository import (
    CancellationRequestRepository,
    RefundRequestRepository,
)
from app.services.audit_service import DatabaseAuditLogger, background_audit_sink
from app.services.cancellation_service import CancellationWorkflowService
from app.services.refund_service import RefundWorkflowService
from app.services.stripe_service import StripeService
from app.utils.security import decode_token
from core.db import get_db
from core.exceptions.base import ForbiddenException, UnauthorizedException

# Tokens are issued by the identity service; this URL only feeds the OpenAPI docs
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", auto_error=False)

ADMIN_ROLES = {role.value for role in AdminRole}
CUSTOMER_ROLE = "customer"


def _subject_id(payload: dict) -> int:
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        raise UnauthorizedException(message="Invalid token subject")


async def get_token_payload(
    token: Optional[str] = Depends(oauth2_scheme),
) -> dict:
    """Decode the bearer token and make sure it is an access token."""
    if not token:
        raise UnauthorizedException(message="Not authenticated")

    payload = decode_token(token)

    if payload.get("type") != "access":
        raise UnauthorizedException(message="Invalid token type")

    return payload


async def get_current_admin(
    payload: dict = Depends(get_token_payload),
    db_session: AsyncSession = Depends(get_db),
) -> AdminUser:
    """Get the current admin from the JWT token."""
    if payload.get("role") not in ADMIN_ROLES:
        raise ForbiddenException(message="Admin access required")

    admin = await AdminUser.get_by_id(db_session, _subject_id(payload))

    if not admin:
        raise UnauthorizedException(message="Admin not found")

    if not admin.is_active:
        raise UnauthorizedException(message="Admin is inactive")

    return admin


async def get_current_customer(
    payload: dict = Depends(get_token_payload),
    db_session: AsyncSession = Depends(get_db),
) -> Customer:
    """Get the current customer from the JWT token."""
    if payload.get("role") != CUSTOMER_ROLE:
        raise ForbiddenException(message="Customer access required")

    customer = await Customer.get_by_id(db_session, _subject_id(payload))

    if not customer:
        raise UnauthorizedException(message="Customer not found")

    if not customer.is_active:
        raise UnauthorizedException(message="Customer is inactive")

    return customer


def get_audit_logger() -> DatabaseAuditLogger:
    """Audit consumer; overridden in tests to write through the test database."""
    return DatabaseAuditLogger()


def get_payment_gateway():
    return StripeService


def get_cancellation_service(
    background_tasks: BackgroundTasks,
    db_session: AsyncSession = Depends(get_db),
    audit_logger: DatabaseAuditLogger = Depends(get_audit_logger),
) -> CancellationWorkflowService:
    """Cancellation workflow bound to this request's session."""
    return CancellationWorkflowService(
        CancellationRequestRepository(db_session),
        audit_sink=background_audit_sink(background_tasks, audit_logger),
    )


def get_refund_service(
    background_tasks: BackgroundTasks,
    db_session: AsyncSession = Depends(get_db),
    audit_logger: DatabaseAuditLogger = Depends(get_audit_logger),
    payment_gateway=Depends(get_payment_gateway),
) -> RefundWorkflowService:
    """Refund workflow bound to this request's session."""
    return RefundWorkflowService(
        RefundRequestRepository(db_session),
        audit_sink=background_audit_sink(background_tasks, audit_logger),
        payment_gateway=payment_gateway,
    )
