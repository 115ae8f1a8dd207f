"""
Tests for issues.

Covers:
- Issue key sequencing and branch-name key extraction
- Key allocation retry on a lost unique-constraint race
- Edit/delete permissions (reporter, assignee, manager+)
- closed_at bookkeeping on status changes
- Parent, sprint and assignee checks on create
- Route wiring for create, update and watchers
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError

from app.models.issue import Issue
from app.models.project import Project
from app.models.sprint import Sprint
from app.services import issues as issue_service
from app.services.issue_keys import (
    MAX_KEY_ATTEMPTS,
    extract_issue_key,
    insert_with_key,
)
from fizz_shared.schemas.common import IssueStatus, IssueType, Role
from fizz_shared.schemas.issues import IssueCreate, IssueUpdate

from conftest import make_auth, query_result


def _project(org_id: uuid.UUID | None = None) -> Project:
    return Project(org_id=org_id or uuid.uuid4(), name="Web App", key="WEB")


def _issue(project: Project, **overrides) -> Issue:
    data = dict(
        project_id=project.id,
        issue_key="WEB-1",
        title="Login page",
        reporter_id=uuid.uuid4(),
        assignee_ids=[],
        watcher_ids=[],
        labels=[],
    )
    data.update(overrides)
    return Issue(**data)


def _key_conflict() -> IntegrityError:
    return IntegrityError(
        "INSERT INTO issues",
        {},
        Exception('duplicate key value violates unique constraint "issues_project_id_issue_key_key"'),
    )


@asynccontextmanager
async def _savepoint():
    yield


# ---------------------------------------------------------------------------
# Issue keys
# ---------------------------------------------------------------------------

class TestExtractIssueKey:
    @pytest.mark.parametrize(
        "branch,expected",
        [
            ("feature/web-42-login", "WEB-42"),
            ("WEB-7", "WEB-7"),
            ("fix/WEB-13_crash", "WEB-13"),
            ("feature/login", None),
            ("feature/xweb-42", None),
            ("feature/api-42", None),
        ],
    )
    def test_extract(self, branch, expected):
        assert extract_issue_key(branch, "WEB") == expected


class TestInsertWithKey:
    @pytest.mark.asyncio
    async def test_first_attempt(self, db_session):
        db_session.begin_nested = _savepoint
        issue = _issue(_project(), issue_key="")
        with patch("app.services.issue_keys.generate_issue_key", return_value="WEB-5"):
            await insert_with_key(db_session, issue)
        assert issue.issue_key == "WEB-5"
        db_session.add.assert_called_once_with(issue)

    @pytest.mark.asyncio
    async def test_retries_lost_race(self, db_session):
        db_session.begin_nested = _savepoint
        db_session.flush = AsyncMock(side_effect=[_key_conflict(), None])
        issue = _issue(_project(), issue_key="")
        with patch(
            "app.services.issue_keys.generate_issue_key", side_effect=["WEB-5", "WEB-6"]
        ):
            await insert_with_key(db_session, issue)
        assert issue.issue_key == "WEB-6"

    @pytest.mark.asyncio
    async def test_gives_up_with_409(self, db_session):
        db_session.begin_nested = _savepoint
        db_session.flush = AsyncMock(side_effect=_key_conflict())
        issue = _issue(_project(), issue_key="")
        with patch("app.services.issue_keys.generate_issue_key", return_value="WEB-5") as gen:
            with pytest.raises(HTTPException) as exc_info:
                await insert_with_key(db_session, issue)
        assert exc_info.value.status_code == 409
        assert gen.await_count == MAX_KEY_ATTEMPTS

    @pytest.mark.asyncio
    async def test_other_integrity_errors_propagate(self, db_session):
        db_session.begin_nested = _savepoint
        db_session.flush = AsyncMock(
            side_effect=IntegrityError("INSERT", {}, Exception("issues_reporter_id_fkey"))
        )
        with patch("app.services.issue_keys.generate_issue_key", return_value="WEB-5"):
            with pytest.raises(IntegrityError):
                await insert_with_key(db_session, _issue(_project(), issue_key=""))


# ---------------------------------------------------------------------------
# Permissions and status
# ---------------------------------------------------------------------------

class TestIssuePermissions:
    def test_reporter_can_edit(self):
        issue = _issue(_project())
        assert issue_service.can_edit_issue(Role.CONTRIBUTOR, issue.reporter_id, issue)

    def test_assignee_can_edit(self):
        user = uuid.uuid4()
        issue = _issue(_project(), assignee_ids=[user])
        assert issue_service.can_edit_issue(Role.CONTRIBUTOR, user, issue)

    def test_unrelated_contributor_cannot_edit(self):
        issue = _issue(_project())
        assert not issue_service.can_edit_issue(Role.CONTRIBUTOR, uuid.uuid4(), issue)

    def test_manager_can_edit_anything(self):
        issue = _issue(_project())
        assert issue_service.can_edit_issue(Role.MANAGER, uuid.uuid4(), issue)

    def test_assignee_cannot_delete(self):
        user = uuid.uuid4()
        issue = _issue(_project(), assignee_ids=[user])
        assert not issue_service.can_delete_issue(Role.CONTRIBUTOR, user, issue)

    def test_reporter_and_manager_can_delete(self):
        issue = _issue(_project())
        assert issue_service.can_delete_issue(Role.VIEWER, issue.reporter_id, issue)
        assert issue_service.can_delete_issue(Role.ADMIN, uuid.uuid4(), issue)


class TestApplyStatus:
    NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

    def test_done_stamps_closed_at(self):
        issue = _issue(_project(), status=IssueStatus.IN_REVIEW)
        issue_service.apply_status(issue, IssueStatus.DONE, now=self.NOW)
        assert issue.status == IssueStatus.DONE
        assert issue.closed_at == self.NOW

    def test_staying_done_keeps_closed_at(self):
        issue = _issue(_project(), status=IssueStatus.DONE, closed_at=self.NOW)
        issue_service.apply_status(issue, IssueStatus.DONE, now=datetime.now(timezone.utc))
        assert issue.closed_at == self.NOW

    def test_reopening_clears_closed_at(self):
        issue = _issue(_project(), status=IssueStatus.DONE, closed_at=self.NOW)
        issue_service.apply_status(issue, IssueStatus.IN_PROGRESS)
        assert issue.closed_at is None


class TestLabels:
    def test_labels_trimmed_and_deduplicated(self):
        issue_in = IssueCreate(title="x", labels=[" ui ", "ui", "", "backend"])
        assert issue_in.labels == ["ui", "backend"]

    def test_update_labels_none_untouched(self):
        assert IssueUpdate(title="x").labels is None


# ---------------------------------------------------------------------------
# Service: create and update
# ---------------------------------------------------------------------------

class TestCreateIssue:
    @pytest.mark.asyncio
    async def test_defaults(self, db_session):
        auth = make_auth(Role.CONTRIBUTOR)
        project = _project(auth.org_id)
        with patch("app.services.issues.insert_with_key") as insert:
            issue = await issue_service.create_issue(
                db_session, project, IssueCreate(title="Login page"), auth
            )
        insert.assert_awaited_once()
        assert issue.status == IssueStatus.BACKLOG
        assert issue.reporter_id == auth.user_id
        assert issue.watcher_ids == [auth.user_id]
        assert issue.assignee_ids == []

    @pytest.mark.asyncio
    async def test_subtask_requires_parent(self, db_session):
        auth = make_auth()
        with pytest.raises(HTTPException) as exc_info:
            await issue_service.create_issue(
                db_session, _project(auth.org_id), IssueCreate(title="x", type=IssueType.SUBTASK), auth
            )
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_parent_from_other_project_rejected(self, db_session):
        auth = make_auth()
        project = _project(auth.org_id)
        db_session.get = AsyncMock(return_value=_issue(_project(auth.org_id)))
        with pytest.raises(HTTPException) as exc_info:
            await issue_service.create_issue(
                db_session,
                project,
                IssueCreate(title="x", type=IssueType.SUBTASK, parent_issue_id=uuid.uuid4()),
                auth,
            )
        assert exc_info.value.detail == "Parent issue must belong to the same project"

    @pytest.mark.asyncio
    async def test_subtask_of_subtask_rejected(self, db_session):
        auth = make_auth()
        project = _project(auth.org_id)
        db_session.get = AsyncMock(return_value=_issue(project, type=IssueType.SUBTASK))
        with pytest.raises(HTTPException) as exc_info:
            await issue_service.create_issue(
                db_session,
                project,
                IssueCreate(title="x", type=IssueType.SUBTASK, parent_issue_id=uuid.uuid4()),
                auth,
            )
        assert exc_info.value.detail == "Subtasks cannot have subtasks"

    @pytest.mark.asyncio
    async def test_sprint_from_other_project_rejected(self, db_session):
        auth = make_auth()
        other = _project(auth.org_id)
        db_session.get = AsyncMock(
            return_value=Sprint(project_id=other.id, name="S1", created_by=uuid.uuid4())
        )
        with pytest.raises(HTTPException) as exc_info:
            await issue_service.create_issue(
                db_session, _project(auth.org_id), IssueCreate(title="x", sprint_id=uuid.uuid4()), auth
            )
        assert exc_info.value.detail == "Sprint must belong to the same project"

    @pytest.mark.asyncio
    async def test_assignees_must_be_members(self, db_session):
        auth = make_auth()
        member, stranger = uuid.uuid4(), uuid.uuid4()
        db_session.execute = AsyncMock(return_value=query_result(rows=[(member,)]))
        with pytest.raises(HTTPException) as exc_info:
            await issue_service.create_issue(
                db_session,
                _project(auth.org_id),
                IssueCreate(title="x", assignee_ids=[member, stranger]),
                auth,
            )
        assert exc_info.value.status_code == 400
        assert str(stranger) in exc_info.value.detail
        assert str(member) not in exc_info.value.detail


class TestUpdateIssue:
    @pytest.mark.asyncio
    async def test_unrelated_contributor_forbidden(self, db_session):
        auth = make_auth(Role.CONTRIBUTOR)
        project = _project(auth.org_id)
        with pytest.raises(HTTPException) as exc_info:
            await issue_service.update_issue(
                db_session, project, _issue(project), IssueUpdate(title="New"), auth
            )
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_moving_to_done_stamps_closed_at(self, db_session):
        auth = make_auth(Role.MANAGER)
        project = _project(auth.org_id)
        issue = _issue(project, status=IssueStatus.IN_REVIEW)
        await issue_service.update_issue(
            db_session, project, issue, IssueUpdate(status=IssueStatus.DONE), auth
        )
        assert issue.status == IssueStatus.DONE
        assert issue.closed_at is not None

    @pytest.mark.asyncio
    async def test_clearing_sprint(self, db_session):
        auth = make_auth(Role.MANAGER)
        project = _project(auth.org_id)
        issue = _issue(project, sprint_id=uuid.uuid4())
        await issue_service.update_issue(
            db_session, project, issue, IssueUpdate(sprint_id=None), auth
        )
        assert issue.sprint_id is None

    @pytest.mark.asyncio
    async def test_metadata_replaced(self, db_session):
        auth = make_auth(Role.MANAGER)
        project = _project(auth.org_id)
        issue = _issue(project, meta={"old": 1})
        await issue_service.update_issue(
            db_session, project, issue, IssueUpdate(metadata={"figma": "link"}), auth
        )
        assert issue.meta == {"figma": "link"}


class TestWatchers:
    @pytest.mark.asyncio
    async def test_watch_is_idempotent(self, db_session):
        user = uuid.uuid4()
        issue = _issue(_project(), watcher_ids=[user])
        await issue_service.set_watching(db_session, issue, user, watch=True)
        assert issue.watcher_ids == [user]

    @pytest.mark.asyncio
    async def test_unwatch(self, db_session):
        user, other = uuid.uuid4(), uuid.uuid4()
        issue = _issue(_project(), watcher_ids=[user, other])
        await issue_service.set_watching(db_session, issue, user, watch=False)
        assert issue.watcher_ids == [other]


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

class TestIssueRoutes:
    def _url(self, project: Project, suffix: str = "") -> str:
        return f"/api/v1/orgs/acme/projects/{project.id}/issues{suffix}"

    def test_viewer_cannot_create(self, api, db_session):
        auth = make_auth(Role.VIEWER)
        project = _project(auth.org_id)
        db_session.get = AsyncMock(return_value=project)
        resp = api(auth).post(self._url(project), json={"title": "Login page"})
        assert resp.status_code == 403

    def test_create_returns_key(self, api, db_session):
        auth = make_auth(Role.CONTRIBUTOR)
        project = _project(auth.org_id)
        db_session.get = AsyncMock(return_value=project)
        created = _issue(project, issue_key="WEB-1", reporter_id=auth.user_id)
        with patch("app.services.issues.create_issue", return_value=created):
            resp = api(auth).post(self._url(project), json={"title": "Login page"})
        assert resp.status_code == 201
        assert resp.json()["issue_key"] == "WEB-1"

    def test_get_issue_in_other_project_is_404(self, api, db_session):
        auth = make_auth(Role.VIEWER)
        project = _project(auth.org_id)
        stray = _issue(_project(auth.org_id))
        db_session.get = AsyncMock(side_effect=[project, stray])
        resp = api(auth).get(self._url(project, f"/{stray.id}"))
        assert resp.status_code == 404

    def test_watch(self, api, db_session):
        auth = make_auth(Role.VIEWER)
        project = _project(auth.org_id)
        issue = _issue(project)
        db_session.get = AsyncMock(side_effect=[project, issue])
        resp = api(auth).post(self._url(project, f"/{issue.id}/watch"))
        assert resp.status_code == 200
        assert resp.json()["watcher_ids"] == [str(auth.user_id)]

    def test_search_paginates(self, api):
        auth = make_auth(Role.VIEWER)
        with patch("app.services.issues.list_issues", return_value=([], 0)) as search:
            resp = api(auth).get("/api/v1/orgs/acme/issues?q=login&page=3&per_page=10")
        assert resp.status_code == 200
        assert resp.json() == {"data": [], "total": 0}
        kwargs = search.await_args.kwargs
        assert kwargs["q"] == "login"
        assert kwargs["limit"] == 10
        assert kwargs["offset"] == 20
