"""Buyer- and seller-facing HTTP surface: listings, checkout and content access."""

from uuid import uuid4

from fastapi import FastAPI, Header, HTTPException, Query

from marketpay.common.clock import as_utc
from marketpay.common.context import SettlementContext
from marketpay.common.errors import MarketpayError, http_status
from marketpay.common.logging import logger, trace_id_ctx
from marketpay.common.metrics import metrics_response
from marketpay.services.catalog.service import CatalogService
from marketpay.services.fulfillment.access import AccessService
from marketpay.services.storefront.schemas import (
    BuyerEmailRequest,
    CheckoutStartRequest,
    CheckoutStartResponse,
    PaymentSessionResponse,
    ProductCreateRequest,
    ProductCreateResponse,
)


def _http_error(exc: MarketpayError) -> HTTPException:
    status = http_status(exc)
    if status >= 500:
        logger.error("request failed status=%s error=%s", status, exc)
    return HTTPException(status_code=status, detail=str(exc) or type(exc).__name__)


def create_app(context: SettlementContext) -> FastAPI:
    catalog = CatalogService(context)
    access = AccessService(context)
    app = FastAPI(title="Marketpay Storefront")

    @app.middleware("http")
    async def trace_context(request, call_next):
        trace_id_ctx.set(request.headers.get("x-trace-id") or str(uuid4()))
        return await call_next(request)

    @app.post("/products", response_model=ProductCreateResponse)
    def create_product(req: ProductCreateRequest):
        """Create a listing; it expires one TTL from now."""

        try:
            product = catalog.create_product(**req.model_dump())
        except MarketpayError as exc:
            raise _http_error(exc) from exc
        return ProductCreateResponse(product_id=product.id, expires_at=as_utc(product.expires_at).isoformat())

    @app.get("/products/{product_id}")
    async def get_product(product_id: str):
        try:
            return await catalog.get_product_details(product_id)
        except MarketpayError as exc:
            raise _http_error(exc) from exc

    @app.post("/products/{product_id}/views")
    def record_view(product_id: str):
        try:
            catalog.record_view(product_id)
        except MarketpayError as exc:
            raise _http_error(exc) from exc
        return {"ok": True}

    @app.delete("/products/{product_id}")
    async def delete_product(product_id: str, x_user_id: str = Header()):
        """Owner-only delete through the shared product cascade."""

        try:
            return await catalog.delete_product(x_user_id, product_id)
        except MarketpayError as exc:
            raise _http_error(exc) from exc

    @app.post("/checkout/sessions", response_model=PaymentSessionResponse)
    def open_payment_session(req: BuyerEmailRequest):
        try:
            session = catalog.collect_buyer_email(req.product_id, str(req.email))
        except MarketpayError as exc:
            raise _http_error(exc) from exc
        return PaymentSessionResponse(session_id=session.id)

    @app.post("/checkout/sessions/{session_id}/stripe", response_model=CheckoutStartResponse)
    async def start_stripe_checkout(session_id: str, req: CheckoutStartRequest):
        try:
            checkout = await catalog.start_checkout(session_id, req.product_id, req.success_url, req.cancel_url)
        except MarketpayError as exc:
            raise _http_error(exc) from exc
        return CheckoutStartResponse(checkout_session_id=checkout.external_id, url=checkout.url)

    @app.get("/access")
    async def access_content(
        token: str = Query(min_length=1),
        user_agent: str | None = Query(default=None, alias="userAgent"),
        user_agent_header: str | None = Header(default=None, alias="User-Agent"),
    ):
        """Signed content URLs for the device bound to this order."""

        try:
            grant = await access.access_content(token, user_agent or user_agent_header)
        except MarketpayError as exc:
            raise _http_error(exc) from exc
        return {
            "order_id": grant.order_id,
            "product": {
                "title": grant.title,
                "description": grant.description,
                "category": grant.category,
                "content_type": grant.content_type,
                "file_extension": grant.file_extension,
                "file_url": grant.file_url,
                "cover_url": grant.cover_url,
            },
            "first_access": grant.first_access,
        }

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.get("/health")
    def health():
        return {"ok": True}

    return app
