"""Typeform response -> amoCRM lead custom field values.

Assignments are produced by an ordered list of rules and collected into a
dict keyed by amoCRM field id, so a later rule overrides an earlier one for
the same field: hidden parameters first, the built-in answer refs second and
the ``TYPEFORM_FIELD_MAP`` table last.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping

from ..schemas.typeform import TypeformEvent
from .answers import answer_text, to_amo_datetime

# Hidden (UTM / analytics) parameter -> lead field id
HIDDEN_TO_LEAD_FIELD: dict[str, int] = {
    "utm_content": 214691,
    "utm_medium": 214693,
    "utm_campaign": 214695,
    "utm_source": 214697,
    "utm_term": 214699,
    "utm_referrer": 214701,
    "roistat": 214703,
    "referrer": 214705,
    "openstat_service": 214707,
    "openstat_campaign": 214709,
    "openstat_ad": 214711,
    "openstat_source": 214713,
    "from": 214715,
    "gclientid": 214717,
    "_ym_uid": 214719,
    "_ym_counter": 214721,
    "gclid": 214723,
    "yclid": 214725,
    "fbclid": 214727,
}

# Answer refs of the admission forms (RU and EN versions)
FULL_NAME_REFS = ("fd704be3-ad3e-4290-b60d-7f975b55ae84", "3e231887-ca36-4afd-aefa-119d3c7e710d")
CHILD_NAME_REFS = ("8c517346-f61c-4275-ae57-1a088af15cfe", "2fa4a64a-dac4-4ace-98a3-18419435d831")
CHILD_DOB_REFS = ("d35af5e7-1255-485c-a445-d49d2c682fd2", "98e1c79c-bdb2-4534-bf70-5894ed7e9c2b")
DESIRED_PROGRAM_REFS = ("f1da7df1-b0b0-4fc7-8cd4-0bf95cfdcd2b", "c90719d9-e6d8-4fbe-9d4b-c05953644281")
CURRENT_EDUCATION_REFS = ("658c6abe-395a-4362-9124-6304202d443b", "b1a6060f-4d88-4be0-ae79-8944452c3c1a")

LEAD_FULL_NAME = 985897
LEAD_CHILD_NAME = 995889
LEAD_CHILD_DOB = 995891
LEAD_DESIRED_PROGRAM = 995887
LEAD_CURRENT_EDUCATION = 985895

PROGRAM_KINDERGARTEN = 1222831
PROGRAM_IB_SCHOOL = 1222835
PROGRAM_CONSULTATION = 1222837


@dataclass(frozen=True)
class CustomFieldValue:
    """One amoCRM custom field assignment."""

    field_id: int
    value: str | None = None
    enum_id: int | None = None

    def to_amo(self) -> dict[str, Any]:
        item: dict[str, Any] = {}
        if self.value:
            item["value"] = self.value
        if self.enum_id is not None:
            item["enum_id"] = self.enum_id
        return {"field_id": self.field_id, "values": [item]}


def _assignment(field_id: int, value: str | None = None, enum_id: int | None = None) -> CustomFieldValue | None:
    """Build an assignment; blank values without an enum produce nothing."""
    text = value.strip() if isinstance(value, str) else None
    if not text and enum_id is None:
        return None
    return CustomFieldValue(field_id=field_id, value=text or None, enum_id=enum_id)


def desired_program_enum(label: str | None) -> int | None:
    if not label:
        return None
    s = label.strip().lower()
    if s.startswith("ib kg"):
        return PROGRAM_KINDERGARTEN
    if s.startswith(("pyp", "myp", "dp")):
        return PROGRAM_IB_SCHOOL
    if "not sure" in s or "не уверен" in s:
        return PROGRAM_CONSULTATION
    return None


def _hidden_rule(event: TypeformEvent, field_map: Mapping[str, int]) -> Iterable[CustomFieldValue | None]:
    for key, value in event.hidden.items():
        field_id = HIDDEN_TO_LEAD_FIELD.get(key)
        if field_id is None or not isinstance(value, str):
            continue
        yield _assignment(field_id, value)


def _builtin_answer_rule(event: TypeformEvent, field_map: Mapping[str, int]) -> Iterable[CustomFieldValue | None]:
    for a in event.answers:
        key = a.key
        label = a.choice.label if a.choice else None
        if key in FULL_NAME_REFS:
            yield _assignment(LEAD_FULL_NAME, a.text)
        if key in CHILD_NAME_REFS:
            yield _assignment(LEAD_CHILD_NAME, a.text)
        if key in CHILD_DOB_REFS:
            yield _assignment(LEAD_CHILD_DOB, to_amo_datetime(a.date))
        if key in DESIRED_PROGRAM_REFS:
            yield _assignment(LEAD_DESIRED_PROGRAM, enum_id=desired_program_enum(label))
        if key in CURRENT_EDUCATION_REFS:
            yield _assignment(LEAD_CURRENT_EDUCATION, label)


def _configured_answer_rule(event: TypeformEvent, field_map: Mapping[str, int]) -> Iterable[CustomFieldValue | None]:
    for a in event.answers:
        field_id = field_map.get(a.key)
        if field_id is None:
            continue
        yield _assignment(field_id, answer_text(a, amo_dates=True))


Rule = Callable[[TypeformEvent, Mapping[str, int]], Iterable[CustomFieldValue | None]]

RULES: tuple[Rule, ...] = (
    _hidden_rule,
    _builtin_answer_rule,
    _configured_answer_rule,
)


def build_lead_custom_fields(
    event: TypeformEvent,
    field_map: Mapping[str, int] | None = None,
) -> list[CustomFieldValue]:
    """Map a response onto lead custom fields.

    Args:
        event: Parsed Typeform event.
        field_map: Answer ref -> lead field id table (``TYPEFORM_FIELD_MAP``).

    Returns:
        One assignment per field id, in first-seen order.
    """
    by_field: dict[int, CustomFieldValue] = {}
    for rule in RULES:
        for item in rule(event, field_map or {}):
            if item is not None:
                by_field[item.field_id] = item
    return list(by_field.values())
