"""Customer accounts that own bookings and raise review requests."""

from typing import Optional

from sqlalchemy import Boolean, Integer, String, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base, TimestampMixin


class Customer(Base, TimestampMixin):
    """Customer user of the storefront."""

    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name or ''}".strip()

    @classmethod
    async def get_by_id(
        cls, db_session: AsyncSession, id: int
    ) -> Optional["Customer"]:
        """Get customer by ID."""
        result = await db_session.execute(select(cls).where(cls.id == id))
        return result.scalars().first()
