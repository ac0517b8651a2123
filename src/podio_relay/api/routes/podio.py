import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse

from ...core.config import Settings
from ...core.dependencies import get_event_relay, get_settings
from ...core.signature import verify
from ...models.schemas import InboundEvent
from ...services.event_relay import EventRelay

router = APIRouter(tags=["Podio"])
logger = logging.getLogger(__name__)

VERIFICATION_TYPE = "subscription_verification"
SIGNATURE_HEADERS = ("X-Signature", "X-Podio-Signature")


@router.post("/podio/push", response_model=None)
async def podio_push(
    request: Request,
    relay: EventRelay = Depends(get_event_relay),
    config: Settings = Depends(get_settings),
) -> Dict[str, Any] | PlainTextResponse:
    """
    Receive a push delivery from Podio.

    Verification handshakes are answered with the echoed challenge. Every
    other delivery must carry a valid signature; accepted events are handed
    to the relay and acknowledged without waiting for the forwards.
    """
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body must be JSON")

    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")

    if body.get("type") == VERIFICATION_TYPE and "challenge" in body:
        logger.info("Handshake challenge received")
        return {
            "status": "ok",
            "subscribe_url": f"{config.app_base_url.rstrip('/')}/podio/push",
            "challenge": body["challenge"],
        }

    signature = next((request.headers[h] for h in SIGNATURE_HEADERS if request.headers.get(h)), None)
    if not verify(body, signature, config.podio_push_secret, config.podio_signature_algorithm):
        logger.error(f"Invalid Podio signature (present: {signature is not None})")
        return PlainTextResponse("Invalid signature", status_code=401)

    logger.info("Valid Podio event received")
    logger.debug(json.dumps(body, indent=2))

    relay.relay(InboundEvent.from_webhook(body))

    return PlainTextResponse("OK", status_code=200)
