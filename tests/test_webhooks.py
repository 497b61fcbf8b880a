"""
Unit tests for webhook signature verification.
"""

import base64
import json

import pytest

from voicebridge.webhooks import (
    WebhookVerificationError,
    WebhookVerifier,
    compute_signature,
    parse_webhook_body,
)

RAW_KEY = b"super-secret-signing-key"
SECRET = "whsec_" + base64.b64encode(RAW_KEY).decode("ascii")
NOW = 1_700_000_000


def signed_headers(body, secret=SECRET, webhook_id="wh_1", timestamp=NOW):
    signature = compute_signature(secret, webhook_id, str(timestamp), body)
    return {
        "webhook-id": webhook_id,
        "webhook-timestamp": str(timestamp),
        "webhook-signature": f"v1,{signature}",
    }


@pytest.fixture
def verifier():
    return WebhookVerifier(SECRET, clock=lambda: NOW)


@pytest.fixture
def body():
    return json.dumps({"type": "realtime.call.incoming", "data": {"call_id": "rtc_1"}}).encode("utf-8")


class TestWebhookVerifier:
    """Standard Webhooks signature checks."""

    def test_valid_signature_unwraps(self, verifier, body):
        event = verifier.unwrap(signed_headers(body), body)

        assert event["data"]["call_id"] == "rtc_1"

    def test_header_names_case_insensitive(self, verifier, body):
        headers = {k.title(): v for k, v in signed_headers(body).items()}

        verifier.verify(headers, body)

    def test_any_matching_signature_accepted(self, verifier, body):
        """Rotated secrets send several space-separated signatures."""
        headers = signed_headers(body)
        headers["webhook-signature"] = "v1,bm9wZQ== " + headers["webhook-signature"]

        verifier.verify(headers, body)

    def test_tampered_body_rejected(self, verifier, body):
        headers = signed_headers(body)

        with pytest.raises(WebhookVerificationError):
            verifier.verify(headers, body + b" ")

    def test_wrong_secret_rejected(self, verifier, body):
        headers = signed_headers(body, secret="whsec_" + base64.b64encode(b"other").decode("ascii"))

        with pytest.raises(WebhookVerificationError):
            verifier.verify(headers, body)

    @pytest.mark.parametrize("missing", ["webhook-id", "webhook-timestamp", "webhook-signature"])
    def test_missing_header_rejected(self, verifier, body, missing):
        headers = signed_headers(body)
        del headers[missing]

        with pytest.raises(WebhookVerificationError):
            verifier.verify(headers, body)

    def test_stale_timestamp_rejected(self, verifier, body):
        """Deliveries older than the tolerance fail even when correctly signed."""
        headers = signed_headers(body, timestamp=NOW - 301)

        with pytest.raises(WebhookVerificationError):
            verifier.verify(headers, body)

    def test_non_integer_timestamp_rejected(self, verifier, body):
        headers = signed_headers(body)
        headers["webhook-timestamp"] = "soon"

        with pytest.raises(WebhookVerificationError):
            verifier.verify(headers, body)

    def test_plain_secret_used_as_bytes(self, body):
        verifier = WebhookVerifier("plain-secret", clock=lambda: NOW)

        verifier.verify(signed_headers(body, secret="plain-secret"), body)

    def test_empty_secret_refused(self):
        with pytest.raises(ValueError):
            WebhookVerifier("")


class TestParseWebhookBody:
    def test_empty_body_is_empty_object(self):
        assert parse_webhook_body(b"") == {}

    @pytest.mark.parametrize("raw", [b"{not json", b"[1, 2]", b'"text"'])
    def test_invalid_bodies_rejected(self, raw):
        with pytest.raises(WebhookVerificationError):
            parse_webhook_body(raw)
