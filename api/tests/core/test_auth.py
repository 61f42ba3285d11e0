"""Tests for the admin key gate."""

import pytest
from fastapi import HTTPException

from core.auth import require_admin

pytestmark = pytest.mark.unit


class TestRequireAdmin:
    async def test_accepts_matching_key(self):
        await require_admin(x_admin_key="test-admin-key")

    @pytest.mark.parametrize("key", [None, "", "wrong-key"])
    async def test_rejects_missing_or_wrong_key(self, key):
        with pytest.raises(HTTPException) as exc_info:
            await require_admin(x_admin_key=key)

        assert exc_info.value.status_code == 401

    async def test_open_in_debug_without_key(self, monkeypatch):
        monkeypatch.setenv("ADMIN_API_KEY", "")
        monkeypatch.setenv("DEBUG", "true")

        await require_admin(x_admin_key=None)
