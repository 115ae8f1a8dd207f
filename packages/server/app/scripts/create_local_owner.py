"""
Script to create a local account that owns a starter organization.

    python -m app.scripts.create_local_owner --email me@example.com --password secret123
"""

import argparse
import asyncio

from sqlmodel import select

from app.core.auth import hash_password
from app.core.database import get_session_context
from app.models.organization import Organization
from app.models.profile import Profile
from app.models.user_role import UserRole
from fizz_shared.schemas.common import Role


async def create_owner(email: str, password: str, org_name: str, org_slug: str):
    email = email.lower()
    async with get_session_context() as session:
        # 1. Ensure the profile exists
        result = await session.execute(select(Profile).where(Profile.email == email))
        profile = result.scalar_one_or_none()

        if not profile:
            profile = Profile(
                email=email,
                name=email.split("@")[0],
                password_hash=hash_password(password),
            )
            session.add(profile)
            await session.flush()
            print(f"Created profile: {email}")
        else:
            print(f"Profile {email} already exists.")

        # 2. Ensure the organization exists
        result = await session.execute(select(Organization).where(Organization.slug == org_slug))
        org = result.scalar_one_or_none()

        if not org:
            org = Organization(name=org_name, slug=org_slug, owner_user_id=profile.id)
            session.add(org)
            await session.flush()
            print(f"Created organization {org_slug}.")

        # 3. Ensure ownership
        result = await session.execute(
            select(UserRole).where(UserRole.user_id == profile.id, UserRole.org_id == org.id)
        )
        membership = result.scalar_one_or_none()

        if not membership:
            session.add(UserRole(user_id=profile.id, org_id=org.id, role=Role.OWNER))
            print(f"Added {email} as owner of {org_slug}.")
        elif membership.role != Role.OWNER:
            membership.role = Role.OWNER
            session.add(membership)
            print(f"Promoted {email} to owner of {org_slug}.")

        profile.org_id = org.id
        profile.role = Role.OWNER
        session.add(profile)
    print("Done.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create a local owner account.")
    parser.add_argument("--email", required=True, help="Email address for the user")
    parser.add_argument("--password", required=True, help="Password for the user")
    parser.add_argument("--org-name", default="Default Organization")
    parser.add_argument("--org-slug", default="default")

    args = parser.parse_args()

    asyncio.run(create_owner(args.email, args.password, args.org_name, args.org_slug))
