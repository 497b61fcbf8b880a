"""
Webhook signature verification.

OpenAI signs webhooks per the Standard Webhooks scheme:

- ``webhook-id``        unique delivery id
- ``webhook-timestamp`` Unix epoch seconds
- ``webhook-signature`` space-separated ``v1,<base64 HMAC-SHA256>`` entries

The signed content is ``{webhook_id}.{webhook_timestamp}.{body}``. A secret
with the ``whsec_`` prefix is base64-decoded after the prefix; any other
secret is used as raw UTF-8 bytes.
"""

import base64
import binascii
import hashlib
import hmac
import json
import time
from typing import Any, Callable, Dict, Mapping, Union

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_TOLERANCE_SEC = 300
SECRET_PREFIX = "whsec_"


class WebhookVerificationError(Exception):
    """Signature, timestamp or payload rejected."""


def _signing_key(secret: str) -> bytes:
    if secret.startswith(SECRET_PREFIX):
        try:
            return base64.b64decode(secret[len(SECRET_PREFIX):])
        except (binascii.Error, ValueError) as exc:
            raise WebhookVerificationError("Webhook secret is not valid base64") from exc
    return secret.encode("utf-8")


def compute_signature(secret: str, webhook_id: str, timestamp: str, body: bytes) -> str:
    """Base64 HMAC-SHA256 over ``{id}.{timestamp}.{body}``."""
    signed_content = f"{webhook_id}.{timestamp}.".encode("utf-8") + body
    digest = hmac.new(_signing_key(secret), signed_content, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def _header(headers: Mapping[str, str], name: str) -> str:
    value = headers.get(name)
    if value is None:
        lower = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lower:
                return candidate
        return ""
    return value


class WebhookVerifier:
    def __init__(self, secret: str, tolerance_sec: int = DEFAULT_TOLERANCE_SEC,
                 clock: Callable[[], float] = time.time):
        if not secret:
            raise ValueError("Webhook secret is required for verification")
        self._secret = secret
        self.tolerance_sec = tolerance_sec
        self._clock = clock

    def verify(self, headers: Mapping[str, str], body: Union[bytes, str]) -> None:
        """
        Raise WebhookVerificationError unless the delivery is authentic and fresh.
        """
        if isinstance(body, str):
            body = body.encode("utf-8")

        webhook_id = _header(headers, "webhook-id")
        timestamp = _header(headers, "webhook-timestamp")
        signature = _header(headers, "webhook-signature")
        if not (webhook_id and timestamp and signature):
            raise WebhookVerificationError("Missing required webhook headers")

        try:
            ts = int(timestamp)
        except ValueError:
            raise WebhookVerificationError("Invalid webhook-timestamp header")
        drift = abs(self._clock() - ts)
        if drift > self.tolerance_sec:
            raise WebhookVerificationError(f"Webhook timestamp outside tolerance ({int(drift)}s)")

        expected = compute_signature(self._secret, webhook_id, timestamp, body)
        for part in signature.split():
            version, _, value = part.partition(",")
            if version != "v1" or not value:
                continue
            if hmac.compare_digest(expected, value):
                return
        raise WebhookVerificationError("Webhook signature mismatch")

    def unwrap(self, headers: Mapping[str, str], body: Union[bytes, str]) -> Dict[str, Any]:
        """Verify, then decode the JSON body."""
        self.verify(headers, body)
        return parse_webhook_body(body)


def parse_webhook_body(body: Union[bytes, str]) -> Dict[str, Any]:
    """Decode a webhook body; empty body is {} and non-object JSON is rejected."""
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if not body.strip():
        return {}
    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise WebhookVerificationError("Webhook body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise WebhookVerificationError("Webhook body must be a JSON object")
    return payload
