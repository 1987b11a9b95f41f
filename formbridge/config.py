"""Service configuration via pydantic-settings."""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import urlsplit

from pydantic import field_validator
from pydantic_settings import BaseSettings

from .amocrm.client import AmoConfig

DEFAULT_PIPELINE_ID = 10482294


class BridgeSettings(BaseSettings):
    port: int = 3000
    database_url: str = "sqlite+aiosqlite:///formbridge.db"
    echo_sql: bool = False
    log_level: str = "INFO"

    # Typeform
    typeform_webhook_secret: str | None = None
    # JSON object: {"<answer ref>": {"entity": "lead", "fieldId": 123}}
    typeform_field_map: str | None = None

    # amoCRM
    amocrm_base_url: str = "https://example.amocrm.ru"
    amocrm_client_id: str | None = None
    amocrm_client_secret: str | None = None
    amocrm_redirect_uri: str | None = None
    amocrm_access_token: str | None = None
    amocrm_refresh_token: str | None = None
    amocrm_pipeline_id: int = DEFAULT_PIPELINE_ID
    amocrm_initial_status_id: int | None = None

    model_config = {"env_file": ".env", "extra": "ignore"}

    @field_validator(
        "typeform_webhook_secret",
        "typeform_field_map",
        "amocrm_client_id",
        "amocrm_client_secret",
        "amocrm_redirect_uri",
        "amocrm_access_token",
        "amocrm_refresh_token",
        "amocrm_initial_status_id",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("amocrm_base_url")
    @classmethod
    def _normalize_base_url(cls, value: str) -> str:
        raw = value.strip()
        if "://" not in raw:
            raw = f"https://{raw}"
        parts = urlsplit(raw)
        if parts.scheme.lower() not in {"http", "https"} or not parts.netloc:
            raise ValueError(f"Invalid amoCRM base URL: {value!r}")
        return f"{parts.scheme.lower()}://{parts.netloc}"

    @field_validator("database_url")
    @classmethod
    def _async_database_url(cls, value: str) -> str:
        # Hosting providers hand out driverless URLs; the engine is async-only.
        for prefix in ("postgres://", "postgresql://"):
            if value.startswith(prefix):
                return "postgresql+asyncpg://" + value[len(prefix):]
        return value

    @field_validator("typeform_field_map")
    @classmethod
    def _validate_field_map(cls, value: str | None) -> str | None:
        if value is not None:
            parse_field_map(value)
        return value

    @property
    def field_map(self) -> dict[str, int]:
        """Answer ref -> amoCRM lead field id."""
        return parse_field_map(self.typeform_field_map)

    @property
    def amo_config(self) -> AmoConfig:
        return AmoConfig(
            base_url=self.amocrm_base_url,
            pipeline_id=self.amocrm_pipeline_id,
            initial_status_id=self.amocrm_initial_status_id,
            client_id=self.amocrm_client_id,
            client_secret=self.amocrm_client_secret,
            redirect_uri=self.amocrm_redirect_uri,
            access_token=self.amocrm_access_token,
            refresh_token=self.amocrm_refresh_token,
        )


def parse_field_map(raw: str | None) -> dict[str, int]:
    """Parse the dynamic answer-ref table.

    Only ``"entity": "lead"`` entries are kept; leads are the only entity
    that receives answer-driven custom fields.
    """
    if not raw:
        return {}

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"TYPEFORM_FIELD_MAP is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError("TYPEFORM_FIELD_MAP must be a JSON object")

    mapping: dict[str, int] = {}
    for ref, target in data.items():
        if not isinstance(target, dict):
            raise ValueError(f"TYPEFORM_FIELD_MAP[{ref!r}] must be an object")
        if target.get("entity") != "lead":
            continue
        field_id = target.get("fieldId")
        if isinstance(field_id, bool) or not isinstance(field_id, int):
            raise ValueError(f"TYPEFORM_FIELD_MAP[{ref!r}].fieldId must be an integer")
        mapping[ref] = field_id
    return mapping


settings = BridgeSettings()
