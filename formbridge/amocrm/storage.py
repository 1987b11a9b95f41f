"""amoCRM credential storage in the ``kv_store`` table."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..database import upsert_insert
from ..models.base import utcnow
from ..models.kv import KVEntry
from .client import KV_ACCESS, KV_REFRESH


class CredentialStore:
    """Persistent holder for the current amoCRM access and refresh tokens.

    Opens a short session per call so a single store can be shared by every
    in-flight webhook. Expiry is not tracked; the API client learns a token
    went stale from a 401.

    Usage:
        store = CredentialStore(async_session_factory)
        token = await store.get(KV_ACCESS)
        await store.save_tokens(access_token, refresh_token)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, key: str) -> str | None:
        async with self._session_factory() as db:
            result = await db.execute(select(KVEntry.value).where(KVEntry.key == key))
            return result.scalar_one_or_none()

    async def set(self, key: str, value: str) -> None:
        async with self._session_factory() as db:
            await self._put(db, key, value)
            await db.commit()

    async def save_tokens(self, access_token: str, refresh_token: str) -> None:
        """Overwrite both tokens in one transaction."""
        async with self._session_factory() as db:
            await self._put(db, KV_ACCESS, access_token)
            await self._put(db, KV_REFRESH, refresh_token)
            await db.commit()

    async def get_status(self) -> dict[str, dict | None]:
        """Stored token entries with their last update time."""
        async with self._session_factory() as db:
            result = await db.execute(select(KVEntry).where(KVEntry.key.in_((KV_ACCESS, KV_REFRESH))))
            rows = {row.key: row for row in result.scalars()}

        status: dict[str, dict | None] = {}
        for key in (KV_ACCESS, KV_REFRESH):
            row = rows.get(key)
            status[key] = {"value": row.value, "updated_at": row.updated_at} if row else None
        return status

    @staticmethod
    async def _put(db: AsyncSession, key: str, value: str) -> None:
        now = utcnow()
        stmt = upsert_insert(db, KVEntry).values(key=key, value=value, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=[KVEntry.key],
            set_={"value": stmt.excluded.value, "updated_at": now},
        )
        await db.execute(stmt)
