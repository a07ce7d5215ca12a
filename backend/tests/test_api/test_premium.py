"""Tests for the usage-limit endpoints."""

import pytest
from httpx import AsyncClient

from conftest import headers_for
from course_review.models.user import User

pytestmark = pytest.mark.asyncio

URL = "/api/v1/premium/usage-limits"


class TestGetUsageLimits:
    async def test_fresh_free_user(self, client: AsyncClient, auth_headers: dict) -> None:
        response = await client.get(URL, params={"feature": "reviews_per_month"}, headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert (data["limit"], data["used"], data["remaining"]) == (5, 0, 5)
        assert data["is_premium"] is False
        assert data["reset_date"].endswith("-01T00:00:00")

    async def test_premium_user(self, client: AsyncClient, premium_user: User) -> None:
        response = await client.get(URL, params={"feature": "searches_per_day"}, headers=headers_for(premium_user))
        data = response.json()
        assert data["limit"] == -1
        assert data["remaining"] == -1
        assert data["is_premium"] is True

    async def test_unknown_feature_is_400(self, client: AsyncClient, auth_headers: dict) -> None:
        response = await client.get(URL, params={"feature": "exports"}, headers=auth_headers)
        assert response.status_code == 400

    async def test_requires_auth(self, client: AsyncClient) -> None:
        response = await client.get(URL, params={"feature": "reviews_per_month"})
        assert response.status_code == 401


class TestIncrementUsage:
    async def test_increment_then_deny(self, client: AsyncClient, auth_headers: dict) -> None:
        allowed = await client.post(URL, json={"feature": "reviews_per_month", "increment": 4}, headers=auth_headers)
        assert allowed.json()["allowed"] is True
        assert allowed.json()["remaining"] == 1

        denied = await client.post(URL, json={"feature": "reviews_per_month", "increment": 2}, headers=auth_headers)
        assert denied.status_code == 200
        assert denied.json()["allowed"] is False
        assert denied.json()["used"] == 4

        current = await client.get(URL, params={"feature": "reviews_per_month"}, headers=auth_headers)
        assert current.json()["used"] == 4

    async def test_negative_increment_rejected(self, client: AsyncClient, auth_headers: dict) -> None:
        response = await client.post(URL, json={"feature": "searches_per_day", "increment": -1}, headers=auth_headers)
        assert response.status_code == 400
