"""Fizz schema: enums, tables, RLS policies, role helpers and issue keys.

Revision ID: 0001_fizz_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from typing import Optional, Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_fizz_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

DB_ROLE = "fizz_authenticated"

ENUMS = {
    "app_role": ("owner", "admin", "manager", "contributor", "viewer"),
    "issue_type": ("task", "bug", "story", "epic", "subtask", "spike"),
    "issue_priority": ("low", "medium", "high", "critical"),
    "issue_status": ("backlog", "todo", "in_progress", "in_review", "blocked", "done"),
    "sprint_status": ("planned", "active", "completed", "cancelled"),
}

TABLES = [
    "organizations",
    "profiles",
    "user_roles",
    "projects",
    "sprints",
    "issues",
    "boards",
    "invites",
    "deployments",
]

UPDATED_AT_TABLES = ["organizations", "profiles", "projects", "sprints", "issues", "boards"]

UID = "app_current_user_id()"

MANAGERS = "('owner', 'admin', 'manager')"
CONTRIBUTORS = "('owner', 'admin', 'manager', 'contributor')"
ADMINS = "('owner', 'admin')"


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _uuid() -> postgresql.UUID:
    return postgresql.UUID(as_uuid=True)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def _role_in(org_expr: str) -> str:
    return f"get_user_role({UID}, {org_expr})"


def _member(org_expr: str) -> str:
    return f"{_role_in(org_expr)} IS NOT NULL"


def _policy(
    table: str,
    name: str,
    command: str,
    using: Optional[str] = None,
    check: Optional[str] = None,
) -> None:
    sql = f"CREATE POLICY {name} ON {table} FOR {command} TO {DB_ROLE}"
    if using:
        sql += f" USING ({using})"
    if check:
        sql += f" WITH CHECK ({check})"
    op.execute(sql)


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    bind = op.get_bind()

    # -----------------------------------------------------------------------
    # 1. Enumerated types
    # -----------------------------------------------------------------------

    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    # -----------------------------------------------------------------------
    # 2. Tables
    # -----------------------------------------------------------------------

    # profiles.org_id -> organizations is added after both tables exist
    op.create_table(
        "profiles",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("org_id", _uuid(), nullable=True),
        sa.Column("role", _enum("app_role"), nullable=False, server_default="contributor"),
        sa.Column("github_username", sa.Text(), nullable=True),
        sa.Column("password_hash", sa.Text(), nullable=True),
        sa.Column("oidc_provider", sa.Text(), nullable=True),
        sa.Column("oidc_subject", sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("email", name="profiles_email_key"),
    )

    op.create_table(
        "organizations",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("owner_user_id", _uuid(), sa.ForeignKey("profiles.id"), nullable=False),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("slug", name="organizations_slug_key"),
    )

    op.create_foreign_key(
        "profiles_org_id_fkey", "profiles", "organizations", ["org_id"], ["id"], ondelete="SET NULL"
    )

    op.create_table(
        "user_roles",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("user_id", _uuid(), sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("org_id", _uuid(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", _enum("app_role"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("user_id", "org_id", name="user_roles_user_id_org_id_key"),
    )
    op.create_index("idx_user_roles_org", "user_roles", ["org_id"])

    op.create_table(
        "projects",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("org_id", _uuid(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("key", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("org_id", "key", name="projects_org_id_key_key"),
    )

    op.create_table(
        "sprints",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("project_id", _uuid(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("type", sa.Text(), nullable=False, server_default="sprint"),
        sa.Column("goal", sa.Text(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("status", _enum("sprint_status"), nullable=False, server_default="planned"),
        sa.Column("created_by", _uuid(), sa.ForeignKey("profiles.id"), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("type IN ('sprint', 'spike')", name="sprints_type_check"),
        sa.CheckConstraint("end_date IS NULL OR start_date IS NULL OR end_date >= start_date", name="sprints_dates_check"),
    )
    op.create_index("idx_sprints_project", "sprints", ["project_id"])
    op.create_index(
        "sprints_one_active_per_project",
        "sprints",
        ["project_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "issues",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("project_id", _uuid(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sprint_id", _uuid(), sa.ForeignKey("sprints.id", ondelete="SET NULL"), nullable=True),
        sa.Column("parent_issue_id", _uuid(), sa.ForeignKey("issues.id", ondelete="CASCADE"), nullable=True),
        sa.Column("issue_key", sa.Text(), nullable=False),
        sa.Column("type", _enum("issue_type"), nullable=False, server_default="task"),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("priority", _enum("issue_priority"), nullable=False, server_default="medium"),
        sa.Column("status", _enum("issue_status"), nullable=False, server_default="backlog"),
        sa.Column("estimate_points", sa.Integer(), nullable=True),
        sa.Column("estimate_hours", sa.Float(), nullable=True),
        sa.Column("reporter_id", _uuid(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("assignee_ids", postgresql.ARRAY(_uuid()), nullable=False, server_default="{}"),
        sa.Column("watcher_ids", postgresql.ARRAY(_uuid()), nullable=False, server_default="{}"),
        sa.Column("labels", postgresql.ARRAY(sa.Text()), nullable=False, server_default="{}"),
        sa.Column("metadata", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        *_timestamps(),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("project_id", "issue_key", name="issues_project_id_issue_key_key"),
    )
    op.create_index("idx_issues_project_status", "issues", ["project_id", "status"])
    op.create_index("idx_issues_sprint", "issues", ["sprint_id"])
    op.create_index("idx_issues_parent", "issues", ["parent_issue_id"])
    op.execute("CREATE INDEX idx_issues_assignees ON issues USING GIN (assignee_ids)")

    op.create_table(
        "boards",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("project_id", _uuid(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("columns", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("filter_query", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        *_timestamps(),
    )
    op.create_index("idx_boards_project", "boards", ["project_id"])

    op.create_table(
        "invites",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("org_id", _uuid(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("role", _enum("app_role"), nullable=False),
        sa.Column("token", sa.Text(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_by", _uuid(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("accepted_by", _uuid(), sa.ForeignKey("profiles.id"), nullable=True),
        sa.UniqueConstraint("token", name="invites_token_key"),
    )
    op.create_index("idx_invites_org", "invites", ["org_id"])
    op.create_index("idx_invites_email", "invites", ["email"])

    op.create_table(
        "deployments",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("issue_id", _uuid(), sa.ForeignKey("issues.id", ondelete="SET NULL"), nullable=True),
        sa.Column("project_id", _uuid(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("branch_name", sa.Text(), nullable=False),
        sa.Column("pr_number", sa.Integer(), nullable=True),
        sa.Column("vercel_preview_url", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="created"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("status IN ('created', 'building', 'ready', 'failed')", name="deployments_status_check"),
    )
    op.create_index("idx_deployments_project_branch", "deployments", ["project_id", "branch_name"])

    # -----------------------------------------------------------------------
    # 3. Functions
    # -----------------------------------------------------------------------

    # Per-transaction caller id, set by the API with set_config()
    op.execute("""
        CREATE OR REPLACE FUNCTION app_current_user_id()
        RETURNS uuid
        LANGUAGE sql STABLE
        AS $$
            SELECT NULLIF(current_setting('app.current_user_id', true), '')::uuid
        $$
    """)

    # SECURITY DEFINER: policies read user_roles without re-entering its own policies
    op.execute("""
        CREATE OR REPLACE FUNCTION has_role(_user_id uuid, _org_id uuid, _role app_role)
        RETURNS boolean
        LANGUAGE sql STABLE SECURITY DEFINER
        SET search_path = public
        AS $$
            SELECT EXISTS (
                SELECT 1 FROM user_roles
                WHERE user_id = _user_id AND org_id = _org_id AND role = _role
            )
        $$
    """)
    op.execute("""
        CREATE OR REPLACE FUNCTION get_user_role(_user_id uuid, _org_id uuid)
        RETURNS app_role
        LANGUAGE sql STABLE SECURITY DEFINER
        SET search_path = public
        AS $$
            SELECT role FROM user_roles
            WHERE user_id = _user_id AND org_id = _org_id
            LIMIT 1
        $$
    """)
    op.execute("""
        CREATE OR REPLACE FUNCTION project_org_id(_project_id uuid)
        RETURNS uuid
        LANGUAGE sql STABLE SECURITY DEFINER
        SET search_path = public
        AS $$
            SELECT org_id FROM projects WHERE id = _project_id
        $$
    """)
    op.execute("""
        CREATE OR REPLACE FUNCTION has_pending_invite(_user_id uuid, _org_id uuid, _role app_role)
        RETURNS boolean
        LANGUAGE sql STABLE SECURITY DEFINER
        SET search_path = public
        AS $$
            SELECT EXISTS (
                SELECT 1 FROM invites i
                JOIN profiles p ON lower(p.email) = lower(i.email)
                WHERE p.id = _user_id AND i.org_id = _org_id AND i.role = _role
                  AND i.accepted_at IS NULL AND i.expires_at > now()
            )
        $$
    """)

    # Next KEY-N for a project; keys not shaped KEY-<digits> are ignored
    op.execute("""
        CREATE OR REPLACE FUNCTION generate_issue_key(_project_id uuid)
        RETURNS text
        LANGUAGE plpgsql
        SECURITY DEFINER
        SET search_path = public
        AS $$
        DECLARE
            _key text;
            _next numeric;
        BEGIN
            SELECT key INTO _key FROM projects WHERE id = _project_id;
            IF _key IS NULL THEN
                RAISE EXCEPTION 'Project not found';
            END IF;

            SELECT COALESCE(MAX(substring(issue_key FROM length(_key) + 2)::numeric), 0) + 1
              INTO _next
              FROM issues
             WHERE project_id = _project_id
               AND issue_key ~ ('^' || _key || '-[0-9]+$');

            RETURN _key || '-' || _next;
        END;
        $$
    """)

    op.execute("""
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER
        LANGUAGE plpgsql
        AS $$
        BEGIN
            NEW.updated_at = now();
            RETURN NEW;
        END;
        $$
    """)
    for table in UPDATED_AT_TABLES:
        op.execute(f"""
            CREATE TRIGGER update_{table}_updated_at
            BEFORE UPDATE ON {table}
            FOR EACH ROW EXECUTE FUNCTION update_updated_at_column()
        """)

    # -----------------------------------------------------------------------
    # 4. Database role for end-user sessions
    # -----------------------------------------------------------------------

    op.execute(f"""
        DO $$
        BEGIN
            IF NOT EXISTS (SELECT 1 FROM pg_roles WHERE rolname = '{DB_ROLE}') THEN
                CREATE ROLE {DB_ROLE} NOLOGIN;
            END IF;
        END
        $$
    """)
    op.execute(f"GRANT USAGE ON SCHEMA public TO {DB_ROLE}")
    op.execute(f"GRANT SELECT, INSERT, UPDATE, DELETE ON {', '.join(TABLES)} TO {DB_ROLE}")

    # -----------------------------------------------------------------------
    # 5. Row Level Security (RLS) policies
    # -----------------------------------------------------------------------

    # ENABLE without FORCE: the owning API role bypasses these and applies
    # the same rules in its service layer.
    for table in TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")

    # organizations
    _policy("organizations", "orgs_select", "SELECT", using=f"owner_user_id = {UID} OR {_member('id')}")
    _policy("organizations", "orgs_insert", "INSERT", check=f"owner_user_id = {UID}")
    _policy("organizations", "orgs_update", "UPDATE", using=f"{_role_in('id')} IN {ADMINS}")
    _policy("organizations", "orgs_delete", "DELETE", using=f"has_role({UID}, id, 'owner')")

    # profiles
    _policy(
        "profiles",
        "profiles_select",
        "SELECT",
        using=(
            f"id = {UID} OR EXISTS ("
            f"SELECT 1 FROM user_roles theirs "
            f"WHERE theirs.user_id = profiles.id AND {_member('theirs.org_id')})"
        ),
    )
    _policy("profiles", "profiles_insert", "INSERT", check=f"id = {UID}")
    _policy("profiles", "profiles_update", "UPDATE", using=f"id = {UID}")

    # user_roles: admins manage; an org's creator and invitees add themselves
    _policy("user_roles", "user_roles_select", "SELECT", using=_member("org_id"))
    _policy(
        "user_roles",
        "user_roles_insert",
        "INSERT",
        check=(
            f"{_role_in('org_id')} IN {ADMINS}"
            f" OR (user_id = {UID} AND role = 'owner' AND EXISTS ("
            f"SELECT 1 FROM organizations o WHERE o.id = org_id AND o.owner_user_id = {UID}))"
            f" OR (user_id = {UID} AND has_pending_invite({UID}, org_id, role))"
        ),
    )
    _policy("user_roles", "user_roles_update", "UPDATE", using=f"{_role_in('org_id')} IN {ADMINS}")
    _policy(
        "user_roles",
        "user_roles_delete",
        "DELETE",
        using=f"{_role_in('org_id')} IN {ADMINS} OR user_id = {UID}",
    )

    # projects
    _policy("projects", "projects_select", "SELECT", using=_member("org_id"))
    _policy("projects", "projects_insert", "INSERT", check=f"{_role_in('org_id')} IN {MANAGERS}")
    _policy("projects", "projects_update", "UPDATE", using=f"{_role_in('org_id')} IN {MANAGERS}")
    _policy("projects", "projects_delete", "DELETE", using=f"{_role_in('org_id')} IN {ADMINS}")

    project_org = "project_org_id(project_id)"

    # sprints
    _policy("sprints", "sprints_select", "SELECT", using=_member(project_org))
    _policy(
        "sprints",
        "sprints_insert",
        "INSERT",
        check=f"{_role_in(project_org)} IN {CONTRIBUTORS} AND created_by = {UID}",
    )
    _policy("sprints", "sprints_update", "UPDATE", using=f"{_role_in(project_org)} IN {CONTRIBUTORS}")
    _policy("sprints", "sprints_delete", "DELETE", using=f"{_role_in(project_org)} IN {MANAGERS}")

    # issues
    _policy("issues", "issues_select", "SELECT", using=_member(project_org))
    _policy(
        "issues",
        "issues_insert",
        "INSERT",
        check=f"{_role_in(project_org)} IN {CONTRIBUTORS} AND reporter_id = {UID}",
    )
    _policy(
        "issues",
        "issues_update",
        "UPDATE",
        using=(
            f"reporter_id = {UID} OR {UID} = ANY(assignee_ids)"
            f" OR {_role_in(project_org)} IN {MANAGERS}"
        ),
    )
    _policy(
        "issues",
        "issues_delete",
        "DELETE",
        using=f"reporter_id = {UID} OR {_role_in(project_org)} IN {MANAGERS}",
    )

    # boards
    _policy("boards", "boards_select", "SELECT", using=_member(project_org))
    board_managers = f"{_role_in(project_org)} IN {MANAGERS}"
    _policy("boards", "boards_insert", "INSERT", check=board_managers)
    _policy("boards", "boards_update", "UPDATE", using=board_managers)
    _policy("boards", "boards_delete", "DELETE", using=board_managers)

    # invites
    _policy("invites", "invites_select", "SELECT", using=_member("org_id"))
    _policy("invites", "invites_insert", "INSERT", check=f"{_role_in('org_id')} IN {MANAGERS}")
    _policy("invites", "invites_delete", "DELETE", using=f"{_role_in('org_id')} IN {MANAGERS}")

    # deployments
    _policy("deployments", "deployments_select", "SELECT", using=_member(project_org))
    _policy("deployments", "deployments_insert", "INSERT", check=f"{_role_in(project_org)} IN {CONTRIBUTORS}")
    _policy("deployments", "deployments_update", "UPDATE", using=f"{_role_in(project_org)} IN {CONTRIBUTORS}")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Tables take their policies and triggers with them
    for table in reversed(TABLES):
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")

    for fn in (
        "update_updated_at_column()",
        "generate_issue_key(uuid)",
        "has_pending_invite(uuid, uuid, app_role)",
        "project_org_id(uuid)",
        "get_user_role(uuid, uuid)",
        "has_role(uuid, uuid, app_role)",
        "app_current_user_id()",
    ):
        op.execute(f"DROP FUNCTION IF EXISTS {fn}")

    op.execute(f"REVOKE USAGE ON SCHEMA public FROM {DB_ROLE}")
    # The role is cluster-wide and may serve other databases; it is left in place.

    for name in reversed(list(ENUMS)):
        op.execute(f"DROP TYPE IF EXISTS {name}")
