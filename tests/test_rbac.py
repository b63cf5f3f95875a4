"""Tests for role-based access control dependencies."""

import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from sugarwatch.core.auth import AdminUser, AthleteUser, ParentUser
from sugarwatch.models import UserRole
from tests.conftest import auth_headers, make_user

guarded = FastAPI()


@guarded.get("/athlete-only")
async def athlete_only(user: AthleteUser) -> dict:
    return {"id": str(user.id)}


@guarded.get("/parent-only")
async def parent_only(user: ParentUser) -> dict:
    return {"id": str(user.id)}


@guarded.get("/admin-only")
async def admin_only(user: AdminUser) -> dict:
    return {"id": str(user.id)}


@pytest_asyncio.fixture
async def guarded_client():
    async with AsyncClient(
        transport=ASGITransport(app=guarded),
        base_url="http://test",
    ) as ac:
        yield ac


class TestRoleBasedAccessControl:
    async def test_athlete_route(self, guarded_client, parent, athlete):
        allowed = await guarded_client.get("/athlete-only", headers=auth_headers(athlete))
        denied = await guarded_client.get("/athlete-only", headers=auth_headers(parent))

        assert allowed.status_code == 200
        assert allowed.json() == {"id": str(athlete.id)}
        assert denied.status_code == 403
        assert "permission" in denied.json()["detail"].lower()

    async def test_parent_route(self, guarded_client, parent, athlete):
        allowed = await guarded_client.get("/parent-only", headers=auth_headers(parent))
        denied = await guarded_client.get("/parent-only", headers=auth_headers(athlete))

        assert allowed.status_code == 200
        assert denied.status_code == 403

    async def test_admin_requires_flag(self, guarded_client, db_session, parent):
        plain = await make_user(db_session, UserRole.PARENT, is_admin=False)

        allowed = await guarded_client.get("/admin-only", headers=auth_headers(parent))
        denied = await guarded_client.get("/admin-only", headers=auth_headers(plain))

        assert allowed.status_code == 200
        assert denied.status_code == 403

    async def test_unauthenticated(self, guarded_client):
        response = await guarded_client.get("/athlete-only")

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
