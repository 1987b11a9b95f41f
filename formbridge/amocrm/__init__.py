"""amoCRM API module.

Usage:
    from formbridge.amocrm import AmoClient, AmoConfig
    from formbridge.amocrm.storage import CredentialStore

    async with AmoClient(config, CredentialStore(session_factory)) as amo:
        lead_id = await amo.create_lead("Typeform: jane@example.com")
"""

from .client import AmoClient, AmoConfig, KV_ACCESS, KV_REFRESH
from .errors import AmoAuthError, AmoConfigError, AmoError, AmoRequestError, OAuthError
from .oauth import AmoOAuthClient, OAuthTokens

__all__ = [
    "AmoClient",
    "AmoConfig",
    "AmoOAuthClient",
    "OAuthTokens",
    "AmoError",
    "AmoAuthError",
    "AmoConfigError",
    "AmoRequestError",
    "OAuthError",
    "KV_ACCESS",
    "KV_REFRESH",
]
