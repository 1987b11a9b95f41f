"""Liveness and readiness checks."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from ..amocrm.client import KV_ACCESS, KV_REFRESH
from ..config import settings
from ..database import get_db
from ..models.kv import KVEntry

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    await db.execute(text("SELECT 1"))
    return {"status": "healthy", "service": "formbridge"}


@router.get("/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Database reachable, plus where the amoCRM credentials would come from.

    ``access_token`` is ``"stored"``, ``"env"`` or ``"missing"``; the service
    is only ready to reconcile when it is not missing.
    """
    result = await db.execute(
        select(KVEntry.key).where(KVEntry.key.in_((KV_ACCESS, KV_REFRESH)))
    )
    stored = set(result.scalars())
    config = settings.amo_config

    if KV_ACCESS in stored:
        access = "stored"
    elif config.access_token:
        access = "env"
    else:
        access = "missing"

    return {
        "status": "ready" if access != "missing" else "degraded",
        "service": "formbridge",
        "amocrm": {
            "access_token": access,
            "can_refresh": config.oauth_configured and (KV_REFRESH in stored or bool(config.refresh_token)),
        },
    }
