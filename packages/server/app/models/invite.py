"""Org invitation model (single-use, time-bounded)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from fizz_shared.schemas.common import Role

from .base import UUIDMixin, _utcnow, pg_enum


class Invite(UUIDMixin, SQLModel, table=True):
    __tablename__ = "invites"

    org_id: uuid.UUID = Field(
        sa_column_args=[sa.ForeignKey("organizations.id", ondelete="CASCADE")], nullable=False, index=True
    )
    email: str = Field(nullable=False, index=True)
    role: Role = Field(sa_type=pg_enum(Role, "app_role"), nullable=False)
    token: str = Field(unique=True, nullable=False)
    expires_at: datetime = Field(nullable=False, sa_type=sa.DateTime(timezone=True))
    created_by: uuid.UUID = Field(foreign_key="profiles.id", nullable=False)
    created_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.text("now()")},
        sa_type=sa.DateTime(timezone=True),
    )
    accepted_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    accepted_by: Optional[uuid.UUID] = Field(default=None, foreign_key="profiles.id")
