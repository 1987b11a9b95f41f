"""Typeform webhook payload schemas."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, PrivateAttr, ValidationError


class MalformedEventError(ValueError):
    """Raised when a webhook body is not a usable Typeform event."""


class _Lenient(BaseModel):
    # Unknown keys are kept so the ledger can store the full event.
    model_config = {"extra": "allow"}


class FieldRef(_Lenient):
    id: str
    ref: str | None = None
    type: str | None = None

    @property
    def key(self) -> str:
        return self.ref or self.id


class FieldDefinition(_Lenient):
    id: str
    ref: str | None = None
    title: str | None = None


class Definition(_Lenient):
    fields: list[FieldDefinition] = []


class Choice(_Lenient):
    label: str | None = None
    other: str | None = None


class Choices(_Lenient):
    labels: list[str] = []
    other: str | None = None


class Answer(_Lenient):
    type: str
    field: FieldRef
    text: str | None = None
    email: str | None = None
    phone_number: str | None = None
    boolean: bool | None = None
    number: int | float | None = None
    date: str | None = None
    choice: Choice | None = None
    choices: Choices | None = None

    @property
    def key(self) -> str:
        return self.field.key


class FormResponse(_Lenient):
    form_id: str | None = None
    token: str | None = None
    landing_id: str | None = None
    submitted_at: datetime | None = None
    hidden: dict[str, str | None] = {}
    definition: Definition | None = None
    answers: list[Answer] = []


class TypeformEvent(_Lenient):
    event_id: str | None = None
    event_type: str | None = None
    form_response: FormResponse

    # Decoded webhook body exactly as received.
    _raw: dict[str, Any] | None = PrivateAttr(default=None)

    @property
    def response_token(self) -> str | None:
        return self.form_response.token

    @property
    def form_id(self) -> str | None:
        return self.form_response.form_id

    @property
    def landing_id(self) -> str | None:
        return self.form_response.landing_id

    @property
    def hidden(self) -> dict[str, str | None]:
        return self.form_response.hidden

    @property
    def answers(self) -> list[Answer]:
        return self.form_response.answers

    def to_payload(self) -> dict[str, Any]:
        """The event as stored in the ledger.

        The body as it was received when parsed from a delivery; otherwise a
        JSON dump of the model.
        """
        if self._raw is not None:
            return self._raw
        return self.model_dump(mode="json", exclude_none=True)


def parse_event(body: bytes | str | dict[str, Any]) -> TypeformEvent:
    """Parse and validate a webhook body.

    Raises:
        MalformedEventError: On invalid JSON, an unexpected shape, or a
            missing response token / form id.
    """
    if isinstance(body, (bytes, str)):
        try:
            body = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise MalformedEventError(f"Invalid JSON body: {exc}") from exc

    if not isinstance(body, dict):
        raise MalformedEventError("Webhook body must be a JSON object")

    try:
        event = TypeformEvent.model_validate(body)
    except ValidationError as exc:
        raise MalformedEventError(f"Invalid Typeform payload: {exc.error_count()} error(s)") from exc

    event._raw = body
    ensure_identifiable(event)
    return event


def ensure_identifiable(event: TypeformEvent) -> None:
    """Reject events that cannot be keyed in the ledger."""
    if not event.response_token or not event.form_id:
        raise MalformedEventError("Typeform payload is missing form_response.token or form_id")
