"""amoCRM API v4 client.

Wraps the handful of object endpoints the Typeform bridge needs (contacts,
leads, lead links, lead notes). Every call authenticates with the token from
the credential store and, on a 401, refreshes once and replays the request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable, Protocol

import httpx

from .errors import AmoAuthError, AmoConfigError, AmoRequestError
from .oauth import AmoOAuthClient

if TYPE_CHECKING:
    from ..sync.field_mapper import CustomFieldValue

logger = logging.getLogger(__name__)

KV_ACCESS = "amocrm.access_token"
KV_REFRESH = "amocrm.refresh_token"

# Built-in multitext contact fields and their WORK enum values
CONTACT_PHONE_FIELD_ID = 214683
CONTACT_PHONE_ENUM_ID = 115921
CONTACT_EMAIL_FIELD_ID = 214685
CONTACT_EMAIL_ENUM_ID = 115933


@dataclass(frozen=True)
class AmoConfig:
    """amoCRM account configuration."""

    base_url: str
    pipeline_id: int
    initial_status_id: int | None = None
    client_id: str | None = None
    client_secret: str | None = None
    redirect_uri: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None

    @property
    def oauth_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)


class TokenStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def save_tokens(self, access_token: str, refresh_token: str) -> None: ...


class AmoClient:
    """amoCRM client bound to one account.

    Usage:
        async with AmoClient(settings.amo_config, CredentialStore(factory)) as amo:
            lead_id = await amo.create_lead("Typeform: jane@example.com")
            contact_id = await amo.create_contact(name="Jane", email="jane@example.com")
            await amo.link_lead_to_contact(lead_id, contact_id)
            await amo.add_lead_note(lead_id, "Full name: Jane")
    """

    def __init__(
        self,
        config: AmoConfig,
        store: TokenStore,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.config = config
        self.store = store
        self._client = http_client or httpx.AsyncClient(
            base_url=config.base_url,
            headers={"Content-Type": "application/json"},
            timeout=30.0,
        )
        self._oauth: AmoOAuthClient | None = None
        if config.oauth_configured:
            self._oauth = AmoOAuthClient(
                base_url=config.base_url,
                client_id=config.client_id,
                client_secret=config.client_secret,
                redirect_uri=config.redirect_uri,
                http_client=self._client,
            )

    async def __aenter__(self) -> "AmoClient":
        return self

    async def __aexit__(self, *args):
        await self.close()

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    # =========================================================================
    # Tokens
    # =========================================================================

    async def get_access_token(self) -> str:
        """Stored token first, then the statically configured one.

        Raises:
            AmoConfigError: If neither is available.
        """
        token = await self.store.get(KV_ACCESS)
        if token:
            return token
        if self.config.access_token:
            return self.config.access_token
        raise AmoConfigError(
            "No amoCRM access token. Set AMOCRM_ACCESS_TOKEN or configure the refresh flow."
        )

    async def refresh_access_token(self) -> bool:
        """Trade the refresh token for a new pair and persist both.

        A no-op (returns False) when OAuth client credentials or a refresh
        token are not configured; a static token is then assumed long-lived.

        Raises:
            OAuthError: If amoCRM refuses the refresh.
        """
        if self._oauth is None:
            return False

        refresh_token = await self.store.get(KV_REFRESH) or self.config.refresh_token
        if not refresh_token:
            return False

        tokens = await self._oauth.refresh_tokens(refresh_token)
        await self.store.save_tokens(tokens.access_token, tokens.refresh_token)
        logger.info("amoCRM access token refreshed")
        return True

    # =========================================================================
    # HTTP
    # =========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        payload: Any,
        action: str,
        retry_on_401: bool = True,
    ) -> httpx.Response:
        """Authenticated request; at most one refresh-and-replay on 401."""
        token = await self.get_access_token()
        response = await self._client.request(
            method,
            path,
            json=payload,
            headers={"Authorization": f"Bearer {token}"},
        )

        if response.status_code == 401:
            if retry_on_401:
                logger.info("amoCRM returned 401 on %s, refreshing token and retrying once", action)
                await self.refresh_access_token()
                return await self._request(method, path, payload, action, retry_on_401=False)
            raise AmoAuthError(
                f"amoCRM {action} unauthorized after token refresh",
                401,
                response.text,
            )

        if not 200 <= response.status_code < 300:
            raise AmoRequestError(
                f"amoCRM {action} failed: {response.status_code} {response.text}",
                response.status_code,
                response.text,
            )

        return response

    @staticmethod
    def _created_id(response: httpx.Response, collection: str) -> int | None:
        try:
            data = response.json() if response.content else {}
        except ValueError:
            return None
        embedded = data.get("_embedded") if isinstance(data, dict) else None
        items = embedded.get(collection) if isinstance(embedded, dict) else None
        if not isinstance(items, list):
            return None
        if not items or not isinstance(items[0], dict):
            return None
        return items[0].get("id")

    # =========================================================================
    # Contacts
    # =========================================================================

    @staticmethod
    def contact_custom_fields(email: str | None = None, phone: str | None = None) -> list[dict[str, Any]]:
        """Phone/email multitext values for a contact payload."""
        fields: list[dict[str, Any]] = []
        if phone:
            fields.append({
                "field_id": CONTACT_PHONE_FIELD_ID,
                "values": [{"value": phone, "enum_id": CONTACT_PHONE_ENUM_ID}],
            })
        if email:
            fields.append({
                "field_id": CONTACT_EMAIL_FIELD_ID,
                "values": [{"value": email, "enum_id": CONTACT_EMAIL_ENUM_ID}],
            })
        return fields

    async def create_contact(
        self,
        name: str | None = None,
        email: str | None = None,
        phone: str | None = None,
    ) -> int:
        """Create a contact and return its id."""
        contact: dict[str, Any] = {"name": name or email or phone or "Typeform contact"}
        custom_fields = self.contact_custom_fields(email=email, phone=phone)
        if custom_fields:
            contact["custom_fields_values"] = custom_fields

        response = await self._request("POST", "/api/v4/contacts", [contact], "contact create")
        contact_id = self._created_id(response, "contacts")
        if not contact_id:
            raise AmoRequestError("amoCRM did not return created contact id.", response.status_code, response.text)
        return contact_id

    async def update_contact(
        self,
        contact_id: int,
        name: str | None = None,
        email: str | None = None,
        phone: str | None = None,
    ) -> None:
        """Partially update a contact; skipped when there is nothing to send."""
        custom_fields = self.contact_custom_fields(email=email, phone=phone)
        if not name and not custom_fields:
            return

        contact: dict[str, Any] = {"id": contact_id}
        if name:
            contact["name"] = name
        if custom_fields:
            contact["custom_fields_values"] = custom_fields
        await self._request("PATCH", "/api/v4/contacts", [contact], "contact update")

    # =========================================================================
    # Leads
    # =========================================================================

    async def create_lead(self, name: str) -> int:
        """Create a lead in the configured pipeline and return its id."""
        lead: dict[str, Any] = {"name": name, "pipeline_id": self.config.pipeline_id}
        if self.config.initial_status_id:
            lead["status_id"] = self.config.initial_status_id

        response = await self._request("POST", "/api/v4/leads", [lead], "lead create")
        lead_id = self._created_id(response, "leads")
        if not lead_id:
            raise AmoRequestError("amoCRM did not return created lead id.", response.status_code, response.text)
        return lead_id

    async def link_lead_to_contact(self, lead_id: int, contact_id: int) -> None:
        """Attach a contact to a lead (amoCRM ignores an existing link)."""
        await self._request(
            "POST",
            f"/api/v4/leads/{lead_id}/link",
            [{"to_entity_id": contact_id, "to_entity_type": "contacts"}],
            "link",
        )

    async def update_lead_custom_fields(
        self,
        lead_id: int,
        fields: Iterable["CustomFieldValue | dict[str, Any]"],
    ) -> None:
        """Set lead custom fields; skipped when the set is empty."""
        values = [f if isinstance(f, dict) else f.to_amo() for f in fields]
        if not values:
            return
        await self._request(
            "PATCH",
            "/api/v4/leads",
            [{"id": lead_id, "custom_fields_values": values}],
            "lead update",
        )

    async def add_lead_note(self, lead_id: int, text: str) -> None:
        """Append a common (free text) note to a lead."""
        await self._request(
            "POST",
            f"/api/v4/leads/{lead_id}/notes",
            [{"note_type": "common", "params": {"text": text}}],
            "note create",
        )
