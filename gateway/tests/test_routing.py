"""
Routing token tests - the only thing that decides which tenant a public
webhook delivery belongs to.
"""

import pytest
from jose import jwt

from gateway.core.errors import RoutingError
from gateway.core.routing import RoutingTarget, decode_routing_token, encode_routing_token


class TestRoutingToken:

    def test_round_trip(self):
        token = encode_routing_token("tenant-1", "cred-9")
        assert decode_routing_token(token) == RoutingTarget("tenant-1", "cred-9")

    def test_token_is_url_path_safe(self):
        token = encode_routing_token("tenant/with?odd chars", "cred-1")
        assert "/" not in token and "?" not in token and " " not in token
        assert decode_routing_token(token).tenant_id == "tenant/with?odd chars"

    def test_tampered_token_rejected(self):
        token = encode_routing_token("tenant-1", "cred-1")
        header, payload, signature = token.split(".")
        forged = jwt.encode({"tid": "tenant-2", "cid": "cred-1", "typ": "webhook"}, "guess")
        tampered = ".".join([header, forged.split(".")[1], signature])

        with pytest.raises(RoutingError):
            decode_routing_token(tampered)

    def test_token_signed_with_other_secret_rejected(self):
        token = encode_routing_token("tenant-1", "cred-1", secret="someone-else")
        with pytest.raises(RoutingError):
            decode_routing_token(token)

    def test_dashboard_jwt_is_not_a_routing_token(self):
        from gateway.core.config import settings
        token = jwt.encode({"tid": "tenant-1", "cid": "cred-1", "typ": "access"},
                           settings.WEBHOOK_SIGNING_SECRET, algorithm="HS256")
        with pytest.raises(RoutingError):
            decode_routing_token(token)

    @pytest.mark.parametrize("token", [None, "", "not-a-token", "a.b.c"])
    def test_garbage_rejected(self, token):
        with pytest.raises(RoutingError):
            decode_routing_token(token)

    def test_encode_requires_both_parts(self):
        with pytest.raises(ValueError):
            encode_routing_token("", "cred-1")
        with pytest.raises(ValueError):
            encode_routing_token("tenant-1", "")
