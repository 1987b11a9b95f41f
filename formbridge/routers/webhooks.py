"""Typeform webhook route."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..amocrm.client import AmoClient
from ..config import settings
from ..database import get_db
from ..schemas.typeform import MalformedEventError, parse_event
from ..security.webhooks import InvalidSignatureError, verify_typeform_signature
from ..sync.reconciler import Reconciler

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


def get_amo_client(request: Request) -> AmoClient:
    """The process-wide amoCRM client built at startup."""
    return request.app.state.amo


@router.post("/webhooks/typeform")
async def typeform_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    amo: AmoClient = Depends(get_amo_client),
):
    body = await request.body()
    try:
        verify_typeform_signature(request, body)
    except InvalidSignatureError as exc:
        logger.warning("Rejected Typeform webhook: %s", exc)
        return JSONResponse({"ok": False, "error": "Invalid signature"}, status_code=401)

    try:
        event = parse_event(body)
    except MalformedEventError as exc:
        logger.warning("Rejected Typeform webhook: %s", exc)
        return JSONResponse({"ok": False, "error": "Invalid payload"}, status_code=400)

    logger.info(
        "Typeform webhook %s received for form %s, token %s",
        event.event_id, event.form_id, event.response_token,
    )

    try:
        result = await Reconciler(db, amo, settings.field_map).run(event)
    except Exception as exc:
        logger.exception("Typeform webhook %s failed", event.event_id)
        return JSONResponse({"ok": False, "error": str(exc)}, status_code=500)

    return {
        "ok": True,
        "leadId": result.lead_id,
        "contactId": result.contact_id,
        "duplicate": result.duplicate,
    }
