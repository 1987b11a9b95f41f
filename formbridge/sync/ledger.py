"""Submission ledger queries and merge-upsert."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import upsert_insert
from ..models.base import utcnow
from ..models.submission import TypeformSubmission

# Columns that keep their stored value when an upsert does not supply one.
_COALESCED = (
    "landing_id",
    "submitted_at",
    "last_event_id",
    "last_event_type",
    "amo_lead_id",
    "amo_contact_id",
)


async def find_by_token(db: AsyncSession, response_token: str) -> TypeformSubmission | None:
    """Exact lookup by response token."""
    stmt = (
        select(TypeformSubmission)
        .where(TypeformSubmission.response_token == response_token)
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def find_latest_by_form_and_landing(
    db: AsyncSession,
    form_id: str,
    landing_id: str,
) -> TypeformSubmission | None:
    """Most recently updated submission for a form/landing pair.

    Used when a token has never been seen. A landing page reused by two
    different people resolves to the earlier person's row, so their CRM ids
    get reused; accepted trade-off for multi-step forms that mint new tokens.
    """
    stmt = (
        select(TypeformSubmission)
        .where(
            TypeformSubmission.form_id == form_id,
            TypeformSubmission.landing_id == landing_id,
        )
        .order_by(TypeformSubmission.updated_at.desc(), TypeformSubmission.id.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def upsert_submission(
    db: AsyncSession,
    *,
    form_id: str,
    response_token: str,
    last_payload: dict[str, Any] | None,
    landing_id: str | None = None,
    submitted_at: datetime | None = None,
    last_event_id: str | None = None,
    last_event_type: str | None = None,
    amo_lead_id: int | None = None,
    amo_contact_id: int | None = None,
) -> TypeformSubmission | None:
    """Insert a submission or merge into the existing row for the token.

    ``form_id`` and ``last_payload`` are always overwritten; every other
    column is only overwritten by a non-null value, so a later event that
    lacks e.g. a landing id or a contact id never erases what is known.
    Commits and returns the merged row.
    """
    now = utcnow()
    stmt = upsert_insert(db, TypeformSubmission).values(
        form_id=form_id,
        response_token=response_token,
        landing_id=landing_id,
        submitted_at=submitted_at,
        last_event_id=last_event_id,
        last_event_type=last_event_type,
        amo_lead_id=amo_lead_id,
        amo_contact_id=amo_contact_id,
        last_payload=last_payload,
        updated_at=now,
    )
    merged = {
        name: func.coalesce(getattr(stmt.excluded, name), getattr(TypeformSubmission, name))
        for name in _COALESCED
    }
    stmt = stmt.on_conflict_do_update(
        index_elements=[TypeformSubmission.response_token],
        set_={
            "form_id": stmt.excluded.form_id,
            "last_payload": stmt.excluded.last_payload,
            "updated_at": now,
            **merged,
        },
    )
    await db.execute(stmt)
    await db.commit()

    return await find_by_token(db, response_token)
