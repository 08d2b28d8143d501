"""Webhook HTTP handlers: FastAPI routes for the bridge.

Security contract:
- Raw body is read before anything else (needed for HMAC verification)
- Return 401 only for signature failures, with no payload processing
- 200 for every verified, well-formed order, whatever happened downstream
- 500 for a signed body that is not an order, or an unexpected failure
- Never return error details to the webhook caller
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from honeybridge.errors import AuthenticationError, MalformedPayloadError
from honeybridge.webhooks.ingest import IngestOrchestrator
from honeybridge.webhooks.verification import SHOPIFY_SIGNATURE_HEADER

logger = logging.getLogger(__name__)

HEALTH_TEXT = "Honey's Place Automation running"


def _log_webhook(request: Request, provider: str, order_id: str, status: str) -> None:
    """Audit log for webhook activity, counted per app in ``app.state.webhook_counts``."""
    counts: dict[str, int] = request.app.state.webhook_counts
    counts[status] = counts.get(status, 0) + 1
    logger.info(
        "WEBHOOK_AUDIT provider=%s order=%s status=%s count=%d",
        provider,
        order_id,
        status,
        counts[status],
    )


async def _handle_orders_paid(request: Request) -> JSONResponse:
    start = time.time()
    ingest: IngestOrchestrator = request.app.state.ingest

    body = await request.body()
    signature = request.headers.get(SHOPIFY_SIGNATURE_HEADER)

    try:
        result = await ingest.handle(body, signature)
    except AuthenticationError:
        _log_webhook(request, "shopify", "unknown", "signature_failed")
        return JSONResponse({"status": "unauthorized"}, status_code=401)
    except MalformedPayloadError:
        logger.warning("Webhook body failed order validation", exc_info=True)
        _log_webhook(request, "shopify", "unknown", "invalid_payload")
        return JSONResponse({"status": "error"}, status_code=500)
    except Exception:
        logger.exception("Webhook error")
        _log_webhook(request, "shopify", "unknown", "error")
        return JSONResponse({"status": "error"}, status_code=500)

    _log_webhook(request, "shopify", str(result.order_id), result.outcome.value)
    elapsed_ms = (time.time() - start) * 1000
    logger.debug("Webhook processed in %.1fms: %s", elapsed_ms, result.outcome.value)
    return JSONResponse({"status": "received"}, status_code=200)


def register_routes(app: FastAPI) -> None:
    """Register health and webhook routes on the FastAPI app.

    ``app.state.ingest`` must hold an IngestOrchestrator before the first
    delivery arrives (the application lifespan sets it).
    """

    @app.get("/", response_class=PlainTextResponse)
    async def health() -> str:
        return HEALTH_TEXT

    @app.post("/webhooks/shopify/orders-paid")
    async def shopify_orders_paid(request: Request):
        """Receive Shopify orders/paid webhooks (signature-verified)."""
        return await _handle_orders_paid(request)

    logger.info("Routes registered: GET /, POST /webhooks/shopify/orders-paid")
