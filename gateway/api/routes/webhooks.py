"""
Public provider webhook endpoints.

One URL per channel type is shared by every tenant; the last path segment
is the signed routing token that says whose channel a delivery is for.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse

from gateway.api.dependencies import get_webhook_router
from gateway.core.errors import RoutingError, SignatureError
from gateway.services.webhook_router import WebhookRouter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


def _param(request: Request, name: str):
    """Meta sends hub.* query params; other providers use the bare names."""
    params = request.query_params
    return params.get(f"hub.{name}") or params.get(name)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Verification handshake
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.get("/{channel_type}/{token}")
async def verify_webhook(
    channel_type: str,
    token: str,
    request: Request,
    webhook_router: WebhookRouter = Depends(get_webhook_router),
):
    """
    Subscription check (GET).
    Echoes the challenge only when mode is subscribe and the verify token matches.
    """
    try:
        challenge = webhook_router.verify_subscription(
            channel_type,
            token,
            mode=_param(request, "mode"),
            verify_token=_param(request, "verify_token"),
            challenge=_param(request, "challenge"),
        )
    except RoutingError as e:
        logger.info(f"{channel_type} webhook verification rejected: {e.message}")
        raise HTTPException(status_code=403, detail="Verification failed")

    return PlainTextResponse(challenge)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Event delivery
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("/{channel_type}/{token}")
async def receive_webhook(
    channel_type: str,
    token: str,
    request: Request,
    webhook_router: WebhookRouter = Depends(get_webhook_router),
):
    """
    Receive a provider event (POST).
    Acknowledged with 200 once logged, even if processing failed; the failure
    is kept on the webhook event for replay.
    """
    body = await request.body()

    try:
        receipt = webhook_router.receive(channel_type, token, body, request.headers)
    except SignatureError:
        raise HTTPException(status_code=401, detail="Invalid signature")
    except RoutingError as e:
        logger.info(f"{channel_type} webhook rejected: {e.message}")
        raise HTTPException(status_code=400, detail="Invalid webhook identifier")

    if receipt.handshake is not None:
        return receipt.handshake
    return {"message": "ok"}
