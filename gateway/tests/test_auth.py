"""
Signature helpers and dashboard JWT.
"""

import hashlib
import hmac
import time

from gateway.core.auth import (
    create_access_token,
    sign_payload,
    verify_hub_signature,
    verify_slack_signature,
    verify_token,
)


def _slack_signature(secret: str, timestamp: str, body: bytes) -> str:
    base = f"v0:{timestamp}:{body.decode()}".encode()
    return "v0=" + hmac.new(secret.encode(), base, hashlib.sha256).hexdigest()


class TestHubSignature:

    def test_valid(self):
        body = b'{"object":"whatsapp_business_account"}'
        assert verify_hub_signature(body, "app-secret", sign_payload(body, "app-secret"))

    def test_wrong_secret(self):
        body = b'{"a":1}'
        assert not verify_hub_signature(body, "app-secret", sign_payload(body, "other"))

    def test_missing_or_malformed_header(self):
        assert not verify_hub_signature(b"{}", "app-secret", None)
        assert not verify_hub_signature(b"{}", "app-secret", "md5=abc")


class TestSlackSignature:

    def test_valid(self):
        body = b'{"type":"event_callback"}'
        ts = str(int(time.time()))
        assert verify_slack_signature(body, _slack_signature("s3cret", ts, body), ts, "s3cret")

    def test_stale_timestamp_rejected(self):
        body = b"{}"
        ts = str(int(time.time()) - 600)
        assert not verify_slack_signature(body, _slack_signature("s3cret", ts, body), ts, "s3cret")

    def test_non_numeric_timestamp_rejected(self):
        assert not verify_slack_signature(b"{}", "v0=abc", "yesterday", "s3cret")

    def test_tampered_body_rejected(self):
        ts = str(int(time.time()))
        signature = _slack_signature("s3cret", ts, b'{"a":1}')
        assert not verify_slack_signature(b'{"a":2}', signature, ts, "s3cret")


class TestAccessToken:

    def test_round_trip(self):
        token = create_access_token({"sub": "alice", "tenant_id": "tenant-1"})
        payload = verify_token(token)
        assert payload["sub"] == "alice"
        assert payload["tenant_id"] == "tenant-1"

    def test_invalid(self):
        assert verify_token("garbage") is None
