"""Webhook validation helpers."""

from __future__ import annotations

import base64
import hashlib
import hmac

from fastapi import Request

from ..config import settings

SIGNATURE_HEADER = "typeform-signature"


class InvalidSignatureError(Exception):
    """The Typeform-Signature header is missing or does not match the body."""


def typeform_signature(body: bytes, secret: str) -> str:
    """Header value Typeform sends for ``body``: ``sha256=<base64 digest>``."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return "sha256=" + base64.b64encode(digest).decode("utf-8")


def verify_typeform_signature(request: Request, body: bytes, secret: str | None = None) -> None:
    """Verify the Typeform webhook signature when a secret is configured.

    Raises:
        InvalidSignatureError: If the header is absent or wrong.
    """
    secret = secret if secret is not None else settings.typeform_webhook_secret
    if not secret:
        return

    provided = request.headers.get(SIGNATURE_HEADER, "").strip()
    if not provided:
        raise InvalidSignatureError("Missing Typeform signature")

    expected = typeform_signature(body, secret)
    if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        raise InvalidSignatureError("Invalid Typeform signature")
