"""Org membership with role (the authoritative multi-org model, RLS-scoped)."""

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from fizz_shared.schemas.common import Role

from .base import UUIDMixin, _utcnow, pg_enum


class UserRole(UUIDMixin, SQLModel, table=True):
    __tablename__ = "user_roles"
    __table_args__ = (sa.UniqueConstraint("user_id", "org_id", name="user_roles_user_id_org_id_key"),)

    user_id: uuid.UUID = Field(
        sa_column_args=[sa.ForeignKey("profiles.id", ondelete="CASCADE")], nullable=False, index=True
    )
    org_id: uuid.UUID = Field(
        sa_column_args=[sa.ForeignKey("organizations.id", ondelete="CASCADE")], nullable=False, index=True
    )
    role: Role = Field(sa_type=pg_enum(Role, "app_role"), nullable=False)
    created_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.text("now()")},
        sa_type=sa.DateTime(timezone=True),
    )
