"""Fulfillment processor for checkout-completed payment events.

Reads and external checks happen first, outside the write transaction. The
write transaction claims the payment session with a `completed = false`
guard, so of two concurrent deliveries at most one creates an order. Order,
product counters, ledger credit, session link and notification intents
commit together; seller stats are refreshed afterwards on a best-effort basis.
"""

import secrets
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from marketpay.common.context import SettlementContext
from marketpay.common.errors import InvalidAmount
from marketpay.common.logging import entity_id_ctx, logger
from marketpay.common.metrics import duplicate_events_skipped_total, fulfillment_events_total
from marketpay.common.tracing import tracer
from marketpay.services.catalog.models import PaymentSession, Product
from marketpay.services.catalog.service import is_expired
from marketpay.services.catalog.stats import recompute_user_stats
from marketpay.services.fulfillment.models import InboxEvent, Order
from marketpay.services.fulfillment.schemas import CheckoutCompleted
from marketpay.services.ledger.fees import FeeSchedule, compute_sale_split
from marketpay.services.ledger.models import UserAccount
from marketpay.services.ledger.service import LedgerWriter
from marketpay.services.notification.service import enqueue_notification


def new_access_token() -> str:
    return secrets.token_urlsafe(32)


class FulfillmentService:
    """Turns a captured payment into an order, a seller credit and an access link."""

    def __init__(self, context: SettlementContext, ledger: LedgerWriter | None = None, service_name: str = "fulfillment") -> None:
        self.context = context
        self.settings = context.settings
        self.session_factory = context.session_factory
        self.fees = FeeSchedule.from_settings(context.settings)
        self.ledger = ledger or LedgerWriter()
        self.service_name = service_name

    def _inbox_seen(self, db, event_id: str) -> bool:
        existing = db.execute(
            select(InboxEvent).where(
                InboxEvent.event_id == event_id,
                InboxEvent.consumed_by_service == self.service_name,
            )
        ).scalar_one_or_none()
        return existing is not None

    def _mark_inbox(self, db, event_id: str) -> None:
        db.add(InboxEvent(event_id=event_id, consumed_by_service=self.service_name))

    def _finish(self, outcome: str, event: CheckoutCompleted, **fields) -> str:
        fulfillment_events_total.labels(outcome=outcome).inc()
        extra = " ".join(f"{key}={value}" for key, value in fields.items())
        if outcome == "fulfilled":
            logger.info("fulfillment done session_id=%s event_id=%s %s", event.app_session_id, event.event_id, extra)
        elif outcome == "duplicate":
            duplicate_events_skipped_total.labels(source="webhook").inc()
            logger.info("fulfillment duplicate session_id=%s event_id=%s", event.app_session_id, event.event_id)
        else:
            logger.warning(
                "fulfillment skipped reason=%s session_id=%s product_id=%s %s",
                outcome,
                event.app_session_id,
                event.product_id,
                extra,
            )
        return outcome

    def _skip(self, outcome: str, event: CheckoutCompleted, **fields) -> str:
        """Acknowledge a business skip so redelivery of the same event is a no-op."""

        with self.session_factory() as db:
            if not self._inbox_seen(db, event.event_id):
                self._mark_inbox(db, event.event_id)
                try:
                    db.commit()
                except IntegrityError:
                    db.rollback()
        return self._finish(outcome, event, **fields)

    async def handle_checkout_completed(self, event: CheckoutCompleted) -> str:
        """Process one verified event and return its outcome label.

        `StorageError` from the asset check propagates so the sender redelivers.
        """

        entity_id_ctx.set(event.app_session_id)
        with tracer.start_as_current_span("fulfillment.checkout_completed") as span:
            span.set_attribute("payment_session_id", event.app_session_id)
            now = self.context.clock()

            with self.session_factory() as db:
                if self._inbox_seen(db, event.event_id):
                    return self._finish("duplicate", event)
                session = db.get(PaymentSession, event.app_session_id)
                if session is None:
                    return self._skip("session_missing", event)
                if session.completed:
                    return self._finish("duplicate", event)
                if session.product_id != event.product_id:
                    return self._skip("session_mismatch", event, session_product_id=session.product_id)
                product = db.get(Product, event.product_id)
                if product is None:
                    return self._skip("product_missing", event)
                if is_expired(product, now):
                    return self._skip("product_expired", event)
                seller = db.get(UserAccount, product.owner_id)
                seller_email = seller.email if seller else None

            if product.owner_id != event.seller_id:
                logger.warning(
                    "seller metadata mismatch product_id=%s owner_id=%s event_seller_id=%s",
                    product.id,
                    product.owner_id,
                    event.seller_id,
                )

            if not await self.context.storage.exists(product.file_path):
                return self._skip("asset_missing", event, file_path=product.file_path)

            try:
                split = compute_sale_split(product.price_cents, event.channel, self.fees)
            except InvalidAmount as exc:
                return self._skip("invalid_amount", event, error=exc)

            order_id = str(uuid4())
            access_token = new_access_token()
            with self.session_factory() as db:
                claimed = db.execute(
                    update(PaymentSession)
                    .where(PaymentSession.id == session.id, PaymentSession.completed.is_(False))
                    .values(
                        completed=True,
                        completed_at=now,
                        order_id=order_id,
                        external_status="completed",
                        external_session_id=event.external_session_id or session.external_session_id,
                    )
                )
                if claimed.rowcount != 1:
                    db.rollback()
                    return self._finish("duplicate", event)

                db.add(
                    Order(
                        id=order_id,
                        product_id=product.id,
                        product_title=event.product_title,
                        seller_id=product.owner_id,
                        buyer_email=str(event.buyer_email),
                        payment_session_id=session.id,
                        external_session_id=event.external_session_id,
                        payment_intent_id=event.payment_intent_id,
                        channel=event.channel,
                        gross_cents=split.gross_cents,
                        channel_fee_cents=split.channel_fee_cents,
                        commission_cents=split.commission_cents,
                        net_cents=split.net_cents,
                        status="completed",
                        access_token=access_token,
                        created_at=now,
                    )
                )
                db.execute(
                    update(Product)
                    .where(Product.id == product.id)
                    .values(
                        sales_count=Product.sales_count + 1,
                        revenue_cents=Product.revenue_cents + split.net_cents,
                    )
                )
                self.ledger.credit_sale(
                    db,
                    user_id=product.owner_id,
                    split=split,
                    idempotency_key=f"sale:{session.id}",
                    product_id=product.id,
                    order_id=order_id,
                )
                enqueue_notification(
                    db,
                    "purchase_confirmation",
                    str(event.buyer_email),
                    {
                        "order_id": order_id,
                        "product_title": event.product_title,
                        "gross_cents": split.gross_cents,
                        "access_url": f"{self.settings.public_base_url}/access.html?token={access_token}",
                    },
                )
                if seller_email:
                    enqueue_notification(
                        db,
                        "sale_notification",
                        seller_email,
                        {
                            "order_id": order_id,
                            "product_title": event.product_title,
                            "gross_cents": split.gross_cents,
                            "net_cents": split.net_cents,
                        },
                    )
                self._mark_inbox(db, event.event_id)
                try:
                    db.commit()
                except IntegrityError:
                    db.rollback()
                    return self._finish("duplicate", event)

            try:
                with self.session_factory() as db:
                    recompute_user_stats(db, product.owner_id)
                    db.commit()
            except Exception as exc:
                logger.warning("seller stats refresh failed seller_id=%s error=%s", product.owner_id, exc)

            return self._finish("fulfilled", event, order_id=order_id, net_cents=split.net_cents)
