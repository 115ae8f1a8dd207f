"""User profile model (one row per account)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from fizz_shared.schemas.common import Role

from .base import TimestampMixin, UUIDMixin, pg_enum


class Profile(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "profiles"

    email: str = Field(unique=True, index=True, nullable=False)
    name: str = Field(nullable=False)
    avatar_url: Optional[str] = None
    # Active org; memberships live in user_roles
    org_id: Optional[uuid.UUID] = Field(
        default=None,
        sa_column_args=[
            sa.ForeignKey("organizations.id", ondelete="SET NULL", use_alter=True),
        ],
    )
    # Legacy single role, kept in step with the active org's membership
    role: Role = Field(default=Role.CONTRIBUTOR, sa_type=pg_enum(Role, "app_role"), nullable=False)
    github_username: Optional[str] = None
    password_hash: Optional[str] = Field(default=None)  # bcrypt hash for email/password login
    oidc_provider: Optional[str] = None
    oidc_subject: Optional[str] = None
    last_active_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
