"""Typeform event -> amoCRM lead/contact reconciliation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from ..amocrm.client import AmoClient
from ..schemas.typeform import TypeformEvent, ensure_identifiable
from .answers import ContactDetails, extract_contact, summarize_answers
from .field_mapper import CustomFieldValue, build_lead_custom_fields
from .ledger import find_by_token, find_latest_by_form_and_landing, upsert_submission

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    lead_id: int | None
    contact_id: int | None = None
    duplicate: bool = False


class Reconciler:
    """Applies one webhook delivery to amoCRM and records it in the ledger.

    The ledger row is written only after every remote call succeeded. If a
    step fails the row keeps the ids from the last complete run, and the
    source's redelivery starts over from those ids.
    """

    def __init__(
        self,
        db: AsyncSession,
        amo: AmoClient,
        field_map: Mapping[str, int] | None = None,
    ):
        self.db = db
        self.amo = amo
        self.field_map = field_map or {}

    async def run(self, event: TypeformEvent, force: bool = False) -> ReconcileResult:
        """Reconcile an event.

        Args:
            event: Parsed Typeform event.
            force: Re-apply even if the event id was already recorded.

        Raises:
            MalformedEventError: If the event has no token or form id.
            AmoError: If any amoCRM call fails; the ledger is left untouched.
        """
        ensure_identifiable(event)
        token = event.response_token
        form_id = event.form_id
        landing_id = event.landing_id

        existing = await find_by_token(self.db, token)
        if existing is None and landing_id:
            existing = await find_latest_by_form_and_landing(self.db, form_id, landing_id)

        lead_id = existing.amo_lead_id if existing else None
        contact_id = existing.amo_contact_id if existing else None

        if not force and existing and event.event_id and existing.last_event_id == event.event_id:
            logger.info(
                "Typeform event %s for token %s already applied (lead %s), skipping",
                event.event_id, token, lead_id,
            )
            await self._record(event, lead_id, contact_id)
            return ReconcileResult(lead_id=lead_id, contact_id=contact_id, duplicate=True)

        contact = extract_contact(event)
        custom_fields = build_lead_custom_fields(event, self.field_map)
        summary = summarize_answers(event)

        lead_id, contact_id = await self._apply(lead_id, contact_id, contact, custom_fields, summary)
        await self._record(event, lead_id, contact_id)

        logger.info(
            "Typeform event %s for token %s applied: lead %s, contact %s",
            event.event_id, token, lead_id, contact_id,
        )
        return ReconcileResult(lead_id=lead_id, contact_id=contact_id)

    async def _apply(
        self,
        lead_id: int | None,
        contact_id: int | None,
        contact: ContactDetails,
        custom_fields: list[CustomFieldValue],
        summary: str,
    ) -> tuple[int, int | None]:
        """Run the remote calls; returns the lead and contact ids."""
        if lead_id is None:
            lead_id = await self.amo.create_lead(contact.lead_name)
            contact_id = None
            if contact:
                contact_id = await self.amo.create_contact(contact.name, contact.email, contact.phone)
        elif contact:
            if contact_id is None:
                contact_id = await self.amo.create_contact(contact.name, contact.email, contact.phone)
            else:
                await self.amo.update_contact(contact_id, contact.name, contact.email, contact.phone)

        if contact_id is not None:
            await self.amo.link_lead_to_contact(lead_id, contact_id)
        if custom_fields:
            await self.amo.update_lead_custom_fields(lead_id, custom_fields)
        await self.amo.add_lead_note(lead_id, summary)

        return lead_id, contact_id

    async def _record(self, event: TypeformEvent, lead_id: int | None, contact_id: int | None) -> None:
        await upsert_submission(
            self.db,
            form_id=event.form_id,
            response_token=event.response_token,
            landing_id=event.landing_id,
            submitted_at=event.form_response.submitted_at,
            last_event_id=event.event_id,
            last_event_type=event.event_type,
            amo_lead_id=lead_id,
            amo_contact_id=contact_id,
            last_payload=event.to_payload(),
        )
