"""Payment provider webhook endpoint."""

from uuid import uuid4

from fastapi import FastAPI, Header, HTTPException, Request

from marketpay.common.context import SettlementContext
from marketpay.common.errors import SignatureError, StorageError
from marketpay.common.logging import logger, trace_id_ctx
from marketpay.common.metrics import metrics_response, webhook_requests_total
from marketpay.services.fulfillment.schemas import CHECKOUT_COMPLETED, parse_checkout_completed
from marketpay.services.fulfillment.service import FulfillmentService
from marketpay.services.fulfillment.webhook import StripeWebhookVerifier


def create_app(context: SettlementContext, lifespan=None) -> FastAPI:
    verifier = StripeWebhookVerifier(context.settings)
    service = FulfillmentService(context)
    app = FastAPI(title="Marketpay Fulfillment", lifespan=lifespan)

    @app.post("/webhooks/stripe")
    async def stripe_webhook(request: Request, stripe_signature: str | None = Header(default=None)):
        """Verify the raw body, then fulfill `checkout.session.completed` events.

        Anything other than a signature failure or a transient storage error is
        acknowledged so the sender stops redelivering.
        """

        trace_id_ctx.set(str(uuid4()))
        payload = await request.body()
        try:
            event = verifier.verify(payload, stripe_signature)
        except SignatureError as exc:
            webhook_requests_total.labels(event_type="unverified", status_code="400").inc()
            logger.warning("webhook signature rejected error=%s", exc)
            raise HTTPException(status_code=400, detail=f"Webhook Error: {exc}") from exc

        event_type = event.get("type", "unknown")
        if event_type != CHECKOUT_COMPLETED:
            webhook_requests_total.labels(event_type=event_type, status_code="200").inc()
            logger.info("webhook ignored event_type=%s event_id=%s", event_type, event.get("id"))
            return {"received": True}

        checkout = parse_checkout_completed(event)
        if checkout is None:
            webhook_requests_total.labels(event_type=event_type, status_code="200").inc()
            _log_missing_metadata(event)
            return {"received": True}

        try:
            outcome = await service.handle_checkout_completed(checkout)
        except StorageError as exc:
            webhook_requests_total.labels(event_type=event_type, status_code="503").inc()
            logger.error("fulfillment deferred session_id=%s error=%s", checkout.app_session_id, exc)
            raise HTTPException(status_code=503, detail="storage unavailable, retry later") from exc

        webhook_requests_total.labels(event_type=event_type, status_code="200").inc()
        return {"received": True, "outcome": outcome}

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.get("/health")
    def health():
        return {"ok": True}

    return app


def _log_missing_metadata(event: dict) -> None:
    obj = (event.get("data") or {}).get("object") or {}
    logger.error("fulfillment skipped reason=missing_metadata event_id=%s session=%s", event.get("id"), obj.get("id"))
