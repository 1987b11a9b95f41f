"""Shared test fixtures for the formbridge test suite."""

import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from formbridge.amocrm.client import KV_ACCESS, KV_REFRESH, AmoClient, AmoConfig
from formbridge.models import Base

# Sample IDs used across tests
SAMPLE_BASE_URL = "https://school.amocrm.ru"
SAMPLE_PIPELINE_ID = 10482294
SAMPLE_FORM_ID = "frm_Ab12Cd"
SAMPLE_TOKEN = "tok_5f3a9c1e"
SAMPLE_LANDING_ID = "land_77e0b2"
SAMPLE_EVENT_ID = "01HQZ0EVT0001"
SAMPLE_LEAD_ID = 501
SAMPLE_CONTACT_ID = 601

NAME_FIELD = {"id": "fld_name", "ref": "name_ref", "type": "short_text"}
EMAIL_FIELD = {"id": "fld_email", "ref": "email_ref", "type": "email"}
PHONE_FIELD = {"id": "fld_phone", "ref": "phone_ref", "type": "phone_number"}


# ============================================================================
# Typeform payloads
# ============================================================================

def default_answers() -> list[dict[str, Any]]:
    return [
        {"type": "text", "field": NAME_FIELD, "text": "Jane Doe"},
        {"type": "email", "field": EMAIL_FIELD, "email": "jane@example.com"},
        {"type": "phone_number", "field": PHONE_FIELD, "phone_number": "+79990001122"},
    ]


@pytest.fixture
def make_event():
    """Factory fixture building Typeform webhook bodies."""
    def _make_event(
        *,
        event_id: str | None = SAMPLE_EVENT_ID,
        event_type: str = "form_response",
        token: str | None = SAMPLE_TOKEN,
        form_id: str | None = SAMPLE_FORM_ID,
        landing_id: str | None = SAMPLE_LANDING_ID,
        answers: list[dict[str, Any]] | None = None,
        hidden: dict[str, Any] | None = None,
        definition: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        form_response: dict[str, Any] = {
            "submitted_at": "2024-05-02T10:15:00Z",
            "answers": default_answers() if answers is None else answers,
        }
        if token is not None:
            form_response["token"] = token
        if form_id is not None:
            form_response["form_id"] = form_id
        if landing_id is not None:
            form_response["landing_id"] = landing_id
        if hidden is not None:
            form_response["hidden"] = hidden
        if definition is not None:
            form_response["definition"] = definition

        body: dict[str, Any] = {"event_type": event_type, "form_response": form_response}
        if event_id is not None:
            body["event_id"] = event_id
        return body
    return _make_event


# ============================================================================
# Database
# ============================================================================

@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ============================================================================
# amoCRM
# ============================================================================

class MemoryTokenStore:
    """In-memory stand-in for the credential store."""

    def __init__(self, access_token: str | None = None, refresh_token: str | None = None):
        self.values: dict[str, str] = {}
        if access_token:
            self.values[KV_ACCESS] = access_token
        if refresh_token:
            self.values[KV_REFRESH] = refresh_token
        self.saved: list[tuple[str, str]] = []

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def save_tokens(self, access_token: str, refresh_token: str) -> None:
        self.values[KV_ACCESS] = access_token
        self.values[KV_REFRESH] = refresh_token
        self.saved.append((access_token, refresh_token))


@pytest.fixture
def mock_response():
    """Factory fixture to create mock HTTP responses."""
    def _create_response(data: Any = None, status_code: int = 200):
        response = MagicMock()
        response.status_code = status_code
        response.json.return_value = data if data is not None else {}
        response.text = json.dumps(data) if data is not None else ""
        response.content = response.text.encode("utf-8")
        return response
    return _create_response


@pytest.fixture
def mock_http_client():
    """Mock httpx.AsyncClient."""
    client = MagicMock(spec=httpx.AsyncClient)
    client.request = AsyncMock()
    client.post = AsyncMock()
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def amo_config():
    return AmoConfig(
        base_url=SAMPLE_BASE_URL,
        pipeline_id=SAMPLE_PIPELINE_ID,
        client_id="client_123",
        client_secret="secret_456",
        redirect_uri="https://bridge.example.com/amocrm/callback",
    )


@pytest.fixture
def token_store():
    return MemoryTokenStore(access_token="access_old", refresh_token="refresh_old")


@pytest.fixture
def amo_client(amo_config, token_store, mock_http_client):
    """AmoClient wired to a mock HTTP client and an in-memory token store."""
    return AmoClient(amo_config, token_store, http_client=mock_http_client)
