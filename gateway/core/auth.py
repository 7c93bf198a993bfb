"""
Authentication utilities for the gateway.
Handles JWT for the dashboard-facing API and signature verification for
provider webhooks.
"""

from datetime import datetime, timedelta
from typing import Optional, Dict, Any
import hashlib
import hmac
import time

from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from gateway.core.config import settings

security = HTTPBearer(auto_error=False)

# JWT Settings
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_DAYS = 7

# Slack rejects requests older than this
SLACK_REPLAY_WINDOW_SECONDS = 300


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    """Create JWT token for dashboard authentication."""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(days=ACCESS_TOKEN_EXPIRE_DAYS)

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Verify JWT token and return payload."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """
    Dependency to get current authenticated user from JWT.
    Used for protected API routes.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # A user's tenant defaults to the user itself (single-member account)
    user_id = payload.get("user_id") or payload.get("sub")
    return {
        "user_id": user_id,
        "username": payload.get("sub"),
        "tenant_id": payload.get("tenant_id") or user_id,
        "is_active": payload.get("is_active", True),
    }


async def get_current_tenant(current_user: Dict[str, Any] = Depends(get_current_user)) -> str:
    """Resolve the tenant every channel-config operation is scoped to."""
    if not current_user.get("is_active"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Inactive user")
    if not current_user.get("tenant_id"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token carries no tenant")
    return current_user["tenant_id"]


def verify_hub_signature(body: bytes, app_secret: str, signature: Optional[str]) -> bool:
    """
    Verify a Meta (WhatsApp) webhook signature.
    Meta sends: X-Hub-Signature-256: sha256=<hexdigest>
    """
    if not signature or not signature.startswith("sha256="):
        return False
    expected = "sha256=" + hmac.new(app_secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


def verify_slack_signature(request_body: bytes, signature: Optional[str], timestamp: Optional[str],
                           signing_secret: str) -> bool:
    """
    Verify Slack webhook signature.
    Slack sends: X-Slack-Signature and X-Slack-Request-Timestamp
    """
    if not signature or not timestamp:
        return False

    try:
        request_timestamp = int(timestamp)
    except ValueError:
        return False

    # Prevent replay attacks
    current_timestamp = int(time.time())
    if abs(current_timestamp - request_timestamp) > SLACK_REPLAY_WINDOW_SECONDS:
        return False

    base = f"v0:{timestamp}:{request_body.decode('utf-8', errors='replace')}"
    expected = "v0=" + hmac.new(signing_secret.encode(), base.encode(), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


def sign_payload(body: bytes, secret: str) -> str:
    """Signature attached to outbound generic-webhook deliveries."""
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
