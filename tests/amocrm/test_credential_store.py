"""Tests for the database-backed credential store."""

import pytest

from formbridge.amocrm.client import KV_ACCESS, KV_REFRESH
from formbridge.amocrm.storage import CredentialStore


@pytest.fixture
def store(session_factory):
    return CredentialStore(session_factory)


class TestCredentialStore:
    """Tests for CredentialStore."""

    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        assert await store.get(KV_ACCESS) is None

    @pytest.mark.asyncio
    async def test_set_and_overwrite(self, store):
        """set() upserts by key."""
        await store.set(KV_ACCESS, "first")
        await store.set(KV_ACCESS, "second")

        assert await store.get(KV_ACCESS) == "second"

    @pytest.mark.asyncio
    async def test_save_tokens_writes_both(self, store):
        await store.save_tokens("access_1", "refresh_1")
        await store.save_tokens("access_2", "refresh_2")

        assert await store.get(KV_ACCESS) == "access_2"
        assert await store.get(KV_REFRESH) == "refresh_2"

    @pytest.mark.asyncio
    async def test_get_status(self, store):
        """Status lists both keys, None for the missing one."""
        await store.set(KV_ACCESS, "access_1")

        status = await store.get_status()

        assert status[KV_ACCESS]["value"] == "access_1"
        assert status[KV_ACCESS]["updated_at"] is not None
        assert status[KV_REFRESH] is None
