"""
Webhook routing identifiers.

Every provider gets one public callback URL per channel type, so the owning
tenant and credential must be recoverable from the URL alone. The identifier
is an HS256-signed JWS over the pair: anyone can read it, nobody without
WEBHOOK_SIGNING_SECRET can mint or alter one.
"""

from typing import NamedTuple, Optional

from jose import JWTError, jwt

from gateway.core.config import settings
from gateway.core.errors import RoutingError

ALGORITHM = "HS256"
TOKEN_TYPE = "webhook"


class RoutingTarget(NamedTuple):
    tenant_id: str
    credential_id: str


def encode_routing_token(tenant_id: str, credential_id: str, secret: Optional[str] = None) -> str:
    """Sign (tenant_id, credential_id) into a URL-safe token."""
    if not tenant_id or not credential_id:
        raise ValueError("tenant_id and credential_id are required")
    claims = {"tid": str(tenant_id), "cid": str(credential_id), "typ": TOKEN_TYPE}
    return jwt.encode(claims, secret or settings.WEBHOOK_SIGNING_SECRET, algorithm=ALGORITHM)


def decode_routing_token(token: Optional[str], secret: Optional[str] = None) -> RoutingTarget:
    """
    Verify and unpack a routing token.
    Raises RoutingError for anything that is not a token we signed.
    """
    if not token:
        raise RoutingError("Webhook identifier required")

    try:
        claims = jwt.decode(token, secret or settings.WEBHOOK_SIGNING_SECRET, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise RoutingError("Invalid webhook identifier") from exc

    tenant_id = claims.get("tid")
    credential_id = claims.get("cid")
    if claims.get("typ") != TOKEN_TYPE or not isinstance(tenant_id, str) or not isinstance(credential_id, str):
        raise RoutingError("Invalid webhook identifier")
    if not tenant_id or not credential_id:
        raise RoutingError("Invalid webhook identifier")

    return RoutingTarget(tenant_id, credential_id)
