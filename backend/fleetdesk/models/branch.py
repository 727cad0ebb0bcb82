"""Rental branch model."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from fleetdesk.db.base import Base
from fleetdesk.models.mixins import TimestampMixin


class Branch(TimestampMixin, Base):
    """Physical rental branch where vehicles are picked up and dropped off."""

    __tablename__ = "branches"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str | None] = mapped_column(String(120))
    phone: Mapped[str | None] = mapped_column(String(32))
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @property
    def code_prefix(self) -> str:
        """Leading segment of the branch code, e.g. ``HRE`` for ``HRE-CBD``."""
        return self.code.split("-", 1)[0].strip().upper()
