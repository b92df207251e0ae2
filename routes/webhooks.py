# routes/webhooks.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from app.webhooks.errors import WebhookPayloadError, WebhookSignatureError
from app.webhooks.processor import WebhookEventProcessor
from deps.services import get_webhook_processor
from services.metrics import increment_webhook_event
from services.redaction import redact_text


router = APIRouter(prefix="/v1/webhooks", tags=["webhooks"])
logger = logging.getLogger("memories.webhooks")


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    processor: WebhookEventProcessor = Depends(get_webhook_processor),
):
    # signature is computed over the raw body, never the parsed JSON
    payload = await request.body()
    signature = request.headers.get("Stripe-Signature")

    try:
        outcome = processor.process(payload, signature)
    except WebhookSignatureError as e:
        logger.info("stripe webhook rejected reason=%s", redact_text(str(e)))
        raise HTTPException(status_code=400, detail="INVALID_SIGNATURE")
    except WebhookPayloadError as e:
        logger.info("stripe webhook bad payload reason=%s", e)
        raise HTTPException(status_code=400, detail="INVALID_PAYLOAD")
    except Exception:
        increment_webhook_event("unknown", "handler_error")
        logger.exception("stripe webhook handler failed")
        raise HTTPException(status_code=500, detail="WEBHOOK_HANDLER_FAILED")

    logger.info(
        "stripe webhook ok event_id=%s type=%s outcome=%s",
        outcome.event_id,
        outcome.event_type,
        outcome.outcome,
    )
    return {"received": True}
