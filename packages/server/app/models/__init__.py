# SQLModel definitions: imported here to ensure metadata is populated for Alembic.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .profile import Profile  # noqa: F401
from .organization import Organization  # noqa: F401
from .user_role import UserRole  # noqa: F401
from .project import Project  # noqa: F401
from .sprint import Sprint  # noqa: F401
from .issue import Issue  # noqa: F401
from .board import Board  # noqa: F401
from .invite import Invite  # noqa: F401
from .deployment import Deployment  # noqa: F401
