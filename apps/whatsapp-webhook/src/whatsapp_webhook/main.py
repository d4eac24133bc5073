"""
WhatsApp Webhook Service

FastAPI app that receives WhatsApp webhooks from Meta Cloud API.

Responsibilities:
- Answer the hub.challenge subscription handshake
- Verify webhook signature (when an app secret is configured)
- Parse the payload into delivery statuses and inbound messages
- Apply delivery statuses to blast recipients
"""

import json
import logging

from fastapi import FastAPI, HTTPException, Query, Request, Response

from basecore.db import get_db
from basecore.logging import setup_logging
from basecore.settings import get_settings
from messaging_whatsapp.providers import get_provider
from messaging_whatsapp.providers.meta_cloud.webhook import validate_signature
from messaging_whatsapp.service.status_updates import StatusUpdateHandler

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="WhatsApp Webhook",
    description="Receives WhatsApp webhooks and records delivery statuses",
    version="1.0.0",
)


@app.on_event("startup")
async def startup():
    settings = get_settings()
    logger.info(
        "WhatsApp webhook service started",
        extra={
            "provider": settings.WHATSAPP_PROVIDER,
            "signature_check": bool(settings.WHATSAPP_APP_SECRET),
        },
    )


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "service": "whatsapp-webhook"}


@app.get("/webhook")
async def verify_webhook(
    hub_mode: str = Query(None, alias="hub.mode"),
    hub_verify_token: str = Query(None, alias="hub.verify_token"),
    hub_challenge: str = Query(None, alias="hub.challenge"),
):
    """
    Handle Meta webhook verification.

    Meta sends a GET request with hub.mode, hub.verify_token, and hub.challenge.
    We must return hub.challenge if the token matches.
    """
    logger.info(
        "Webhook verification request",
        extra={
            "mode": hub_mode,
            "token_received": bool(hub_verify_token),
        },
    )

    challenge = get_provider().verify_webhook_challenge(
        mode=hub_mode or "",
        token=hub_verify_token or "",
        challenge=hub_challenge or "",
        verify_token=get_settings().WHATSAPP_VERIFY_TOKEN,
    )

    if challenge:
        logger.info("Webhook verification successful")
        return Response(content=challenge, media_type="text/plain")

    logger.warning("Webhook verification failed")
    raise HTTPException(status_code=403, detail="Verification failed")


@app.post("/webhook")
async def receive_webhook(request: Request):
    """
    Receive a webhook delivery.

    Flow:
    1. Validate signature against the raw body
    2. Parse payload
    3. Update recipients by provider message id
    4. Return 200 (Meta retries anything else)
    """
    body = await request.body()

    app_secret = get_settings().WHATSAPP_APP_SECRET
    if app_secret:
        signature = request.headers.get("X-Hub-Signature-256", "")
        if not validate_signature(body, signature, app_secret):
            logger.warning("Invalid webhook signature")
            raise HTTPException(status_code=403, detail="Invalid signature")

    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        logger.warning("Invalid JSON payload")
        raise HTTPException(status_code=400, detail="Invalid JSON")

    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON")

    messages, statuses = get_provider().parse_webhook(payload)

    db = next(get_db())
    try:
        counts = StatusUpdateHandler(db).handle(messages, statuses)
    finally:
        db.close()

    logger.info("Webhook processed", extra=counts)
    return {"success": True, **counts}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8090)
