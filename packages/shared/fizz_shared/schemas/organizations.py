"""
Organization-related Pydantic schemas shared between server and clients.

Covers: Org CRUD request/response and slug derivation.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from .common import Role

SLUG_PATTERN = r"^[a-z0-9][a-z0-9-]*[a-z0-9]$"


def generate_slug(name: str) -> str:
    """Derive a URL-safe slug from an org name.

    "Acme Engineering!" -> "acme-engineering"
    """
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower())
    return slug.strip("-")


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class OrgCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Organization display name")
    slug: Optional[str] = Field(
        None,
        min_length=2,
        max_length=50,
        pattern=SLUG_PATTERN,
        description="URL-safe org identifier (derived from the name when omitted)",
    )
    description: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def _derive_slug(self) -> "OrgCreateRequest":
        if not self.slug:
            derived = generate_slug(self.name)
            if len(derived) < 2 or not re.match(SLUG_PATTERN, derived):
                raise ValueError("Cannot derive a slug from this name; provide one explicitly")
            self.slug = derived[:50].rstrip("-")
        return self


class OrgUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)


class ActiveOrgRequest(BaseModel):
    org_slug: str


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class OrgResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    description: Optional[str] = None
    owner_user_id: uuid.UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrgListItem(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    role: Role  # the requesting user's role in this org

    model_config = {"from_attributes": True}


class OrgListResponse(BaseModel):
    data: list[OrgListItem]
