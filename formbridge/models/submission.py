"""Typeform submission ledger.

One row per Typeform response token. The row remembers the last webhook
delivery applied for that response and the amoCRM ids it produced, which is
what makes redelivered webhooks safe to process.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, DateTime, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntPK, TimestampMixin


class TypeformSubmission(TimestampMixin, Base):
    __tablename__ = "typeform_submissions"
    __table_args__ = (
        Index("typeform_submissions_landing_idx", "form_id", "landing_id", "updated_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    form_id: Mapped[str] = mapped_column(String(100))
    response_token: Mapped[str] = mapped_column(String(200), unique=True)
    landing_id: Mapped[str | None] = mapped_column(String(200), default=None)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    last_event_id: Mapped[str | None] = mapped_column(String(200), default=None)
    last_event_type: Mapped[str | None] = mapped_column(String(100), default=None)

    amo_lead_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    amo_contact_id: Mapped[int | None] = mapped_column(BigInteger, default=None)

    last_payload: Mapped[dict[str, Any] | None] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), default=None
    )
