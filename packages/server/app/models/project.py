"""Project model."""

from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Project(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "projects"
    __table_args__ = (sa.UniqueConstraint("org_id", "key", name="projects_org_id_key_key"),)

    org_id: uuid.UUID = Field(
        sa_column_args=[sa.ForeignKey("organizations.id", ondelete="CASCADE")], nullable=False, index=True
    )
    name: str = Field(nullable=False)
    key: str = Field(nullable=False)  # short prefix used in issue keys, e.g. WEB
    description: Optional[str] = None
