"""
Inbound marketplace notifications.

Every delivery is acknowledged as soon as it is queued; processing happens
on the reconciler's background worker so marketplaces never retry because
of a slow or failing sync. No authentication: WooCommerce deliveries can be
verified with WOOCOMMERCE_WEBHOOK_SECRET.
"""

import json
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from marketsync.core.config import Settings, get_settings
from marketsync.dependencies import get_webhook_reconciler
from marketsync.schemas.sync import WebhookLogEntry
from marketsync.services.webhook_reconciler import (
    WebhookReconciler,
    is_woocommerce_ping,
    verify_woocommerce_signature,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


async def _json_body(request: Request) -> Dict[str, Any]:
    body = await request.body()
    if not body:
        return {}
    try:
        data = json.loads(body)
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


@router.post("/mercadolibre")
async def mercadolibre_webhook(
    request: Request,
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
):
    body = await _json_body(request)
    logger.info(f"[Webhook ML] Received: {json.dumps(body)[:200]}")
    await reconciler.handle_mercadolibre(body)
    return {"received": True}


@router.get("/woocommerce")
async def woocommerce_verify():
    logger.info("[Webhook WC] GET request received (verification ping)")
    return {"status": "ok", "message": "WooCommerce webhook endpoint ready"}


@router.head("/woocommerce")
async def woocommerce_verify_head():
    return Response(status_code=200)


@router.post("/woocommerce")
async def woocommerce_webhook(
    request: Request,
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
    settings: Settings = Depends(get_settings),
):
    raw = await request.body()
    body = await _json_body(request)
    topic = request.headers.get("x-wc-webhook-topic", "unknown")

    if is_woocommerce_ping(topic, body):
        logger.info("[Webhook WC] Ping received, responding OK")
        return {"status": "ok", "message": "Ping received"}

    if settings.WOOCOMMERCE_WEBHOOK_SECRET:
        signature = request.headers.get("x-wc-webhook-signature")
        if not verify_woocommerce_signature(raw, signature, settings.WOOCOMMERCE_WEBHOOK_SECRET):
            raise HTTPException(status_code=401, detail="Invalid signature")

    logger.info(f"[Webhook WC] Received {topic}: {raw[:200]!r}")
    await reconciler.handle_woocommerce(topic, body)
    return {"received": True}


@router.get("/logs", response_model=List[WebhookLogEntry])
async def webhook_logs(limit: int = 20, reconciler: WebhookReconciler = Depends(get_webhook_reconciler)):
    return reconciler.get_logs(limit)


@router.get("/test")
async def webhook_test():
    return {
        "status": "ok",
        "message": "Webhook endpoint is active",
        "endpoints": {
            "mercadolibre": "/api/webhooks/mercadolibre",
            "woocommerce": "/api/webhooks/woocommerce",
        },
    }
