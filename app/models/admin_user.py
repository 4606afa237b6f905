"""Back-office users allowed to review requests."""

import enum
from typing import Optional

from sqlalchemy import Boolean, Enum, Integer, String, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base, TimestampMixin


class AdminRole(str, enum.Enum):
    """Back-office roles."""

    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class AdminUser(Base, TimestampMixin):
    """Admin account referenced by review decisions and audit entries."""

    __tablename__ = "admin_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    role: Mapped[AdminRole] = mapped_column(
        Enum(AdminRole, values_callable=lambda x: [e.value for e in x]),
        default=AdminRole.ADMIN,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @classmethod
    async def get_by_id(
        cls, db_session: AsyncSession, id: int
    ) -> Optional["AdminUser"]:
        """Get admin user by ID."""
        result = await db_session.execute(select(cls).where(cls.id == id))
        return result.scalars().first()
