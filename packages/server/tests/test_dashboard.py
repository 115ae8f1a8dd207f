"""
Tests for the dashboard: org stats and the onboarding checklist.
"""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.services import dashboard as dashboard_service
from fizz_shared.schemas.common import Role
from fizz_shared.schemas.dashboard import DashboardStats

from conftest import make_auth, query_result


class TestBuildChecklist:
    def test_fresh_user(self):
        checklist = dashboard_service.build_checklist(False, False, False, False)
        assert [i.id for i in checklist.items] == [
            "create_org", "create_project", "create_issue", "invite_team",
        ]
        assert checklist.progress == 0
        assert checklist.next_step.id == "create_org"
        assert [i.available for i in checklist.items] == [True, False, False, False]

    def test_org_only(self):
        checklist = dashboard_service.build_checklist(True, False, False, False)
        assert checklist.progress == 25
        assert checklist.next_step.id == "create_project"
        available = {i.id: i.available for i in checklist.items}
        assert available["create_project"] and available["invite_team"]
        assert not available["create_issue"]

    def test_skipped_step_is_next(self):
        checklist = dashboard_service.build_checklist(True, True, False, True)
        assert checklist.progress == 75
        assert checklist.next_step.id == "create_issue"

    def test_complete(self):
        checklist = dashboard_service.build_checklist(True, True, True, True)
        assert checklist.progress == 100
        assert checklist.next_step is None


class TestOnboarding:
    @pytest.mark.asyncio
    async def test_no_org(self, db_session):
        checklist = await dashboard_service.onboarding(db_session, None)
        assert checklist.progress == 0
        db_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pending_invite_counts_as_team(self, db_session):
        db_session.execute = AsyncMock(
            side_effect=[
                query_result((uuid.uuid4(),)),  # a project
                query_result(None),             # no issue yet
                query_result(1),                # only the owner
                query_result((uuid.uuid4(),)),  # an invite went out
            ]
        )
        checklist = await dashboard_service.onboarding(db_session, uuid.uuid4())
        done = {i.id: i.done for i in checklist.items}
        assert done == {
            "create_org": True,
            "create_project": True,
            "create_issue": False,
            "invite_team": True,
        }


class TestStats:
    @pytest.mark.asyncio
    async def test_counts(self, db_session):
        issue_counts = MagicMock()
        issue_counts.one.return_value = (5, 2)
        db_session.execute = AsyncMock(side_effect=[query_result(3), issue_counts])
        result = await dashboard_service.stats(db_session, uuid.uuid4())
        assert result == DashboardStats(projects=3, active_issues=5, completed_issues=2)


class TestDashboardRoutes:
    def test_stats(self, api):
        auth = make_auth(Role.VIEWER)
        stats = DashboardStats(projects=1, active_issues=4, completed_issues=0)
        with patch("app.services.dashboard.stats", return_value=stats) as get_stats:
            resp = api(auth).get("/api/v1/orgs/acme/dashboard/stats")
        assert resp.status_code == 200
        assert resp.json() == {"projects": 1, "active_issues": 4, "completed_issues": 0}
        assert get_stats.await_args.args[1] == auth.org_id

    def test_onboarding_without_org(self, api):
        auth = make_auth()
        auth.profile.org_id = None
        resp = api(auth).get("/api/v1/onboarding")
        assert resp.status_code == 200
        assert resp.json()["next_step"]["id"] == "create_org"
