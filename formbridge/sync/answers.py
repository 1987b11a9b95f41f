"""Answer rendering helpers: note summaries and contact extraction."""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..schemas.typeform import Answer, TypeformEvent

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def to_amo_datetime(value: str | None) -> str | None:
    """Expand a bare ``YYYY-MM-DD`` date to the timestamp form amoCRM accepts."""
    if not value:
        return None
    s = value.strip()
    if not _ISO_DATE.match(s):
        return s
    return f"{s}T00:00:00+00:00"


def _format_number(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def answer_text(answer: Answer, *, amo_dates: bool = False) -> str | None:
    """Render the populated value slot of an answer, or None."""
    if answer.text:
        return answer.text
    if answer.email:
        return answer.email
    if answer.phone_number:
        return answer.phone_number
    if answer.boolean is not None:
        return "true" if answer.boolean else "false"
    if answer.number is not None:
        return _format_number(answer.number)
    if answer.date:
        return to_amo_datetime(answer.date) if amo_dates else answer.date
    if answer.choice and answer.choice.label:
        return answer.choice.label
    if answer.choices and answer.choices.labels:
        return ", ".join(answer.choices.labels)
    return None


def summarize_answers(event: TypeformEvent) -> str:
    """Human-readable dump of a response, used as the lead note."""
    titles: dict[str, str] = {}
    definition = event.form_response.definition
    for f in definition.fields if definition else []:
        if f.title:
            if f.ref:
                titles[f.ref] = f.title
            titles[f.id] = f.title

    lines: list[str] = []
    for a in event.answers:
        value = answer_text(a)
        if value is None:
            value = "(unsupported)"
        lines.append(f"{titles.get(a.key, a.key)}: {value}")

    if event.hidden:
        lines.append("")
        lines.append("hidden:")
        for key in sorted(event.hidden):
            value = event.hidden[key]
            lines.append(f"{key}: {'' if value is None else value}")

    return "\n".join(lines)


@dataclass(frozen=True)
class ContactDetails:
    """Contact bits pulled out of a form response."""

    name: str | None = None
    email: str | None = None
    phone: str | None = None

    def __bool__(self) -> bool:
        return bool(self.name or self.email or self.phone)

    @property
    def lead_name(self) -> str:
        return f"Typeform: {self.email or self.phone or 'submission'}"


def extract_contact(event: TypeformEvent) -> ContactDetails:
    """First email, first phone and first non-trivial text answer.

    Hidden ``email`` / ``phone`` / ``name`` parameters fill whatever the
    answers did not provide.
    """
    name = email = phone = None

    for a in event.answers:
        if not email and a.email:
            email = a.email
        if not phone and a.phone_number:
            phone = a.phone_number
        if not name and a.type == "text" and a.text and len(a.text.strip()) > 1:
            name = a.text.strip()

    hidden = event.hidden
    email = email or hidden.get("email") or None
    phone = phone or hidden.get("phone") or None
    name = name or hidden.get("name") or None

    return ContactDetails(name=name, email=email, phone=phone)
