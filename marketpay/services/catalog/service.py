"""Listing lifecycle on the seller and buyer side.

Every read path applies `is_expired` itself; the hourly sweep only removes
rows after the fact.
"""

from datetime import datetime, timedelta
from uuid import uuid4

from marketpay.common.clock import as_utc
from marketpay.common.context import SettlementContext
from marketpay.common.errors import (
    Forbidden,
    InvalidAmount,
    ProductExpired,
    ProductNotFound,
    SessionAlreadyCompleted,
    SessionNotFound,
)
from marketpay.common.logging import logger
from marketpay.common.metrics import products_purged_total
from marketpay.services.catalog.models import LinkGenerationDetail, PaymentSession, Product, ProductView
from marketpay.services.catalog.stats import bump_user_stats, recompute_user_stats
from marketpay.services.ledger.models import UserAccount
from marketpay.services.lifecycle.cascade import purge_product
from marketpay.services.storefront.checkout import CheckoutRequest, CheckoutSession


def is_expired(product: Product, now: datetime) -> bool:
    """True once the listing's expiration time has passed, swept or not."""

    return as_utc(product.expires_at) <= now


def hours_remaining(product: Product, now: datetime) -> int:
    return max(0, int((as_utc(product.expires_at) - now).total_seconds() // 3600))


class CatalogService:
    """Listing creation, public details, buyer sessions and owner deletion."""

    def __init__(self, context: SettlementContext) -> None:
        self.context = context
        self.settings = context.settings
        self.session_factory = context.session_factory

    def _live_product(self, db, product_id: str) -> Product:
        product = db.get(Product, product_id)
        if product is None:
            raise ProductNotFound(product_id)
        if is_expired(product, self.context.clock()):
            raise ProductExpired(product_id)
        return product

    def _add_view(self, db, product: Product, now: datetime) -> None:
        db.add(ProductView(product_id=product.id, seller_id=product.owner_id, created_at=now))
        bump_user_stats(db, product.owner_id, views_count=1)

    def create_product(
        self,
        *,
        owner_id: str,
        title: str,
        price_cents: int,
        file_path: str,
        description: str = "",
        category: str | None = None,
        cover_path: str | None = None,
        currency: str = "usd",
    ) -> Product:
        """Create a listing that expires one TTL after creation."""

        if price_cents <= 0:
            raise InvalidAmount(f"price must be positive, got {price_cents}")
        now = self.context.clock()
        expires_at = now + timedelta(seconds=self.settings.product_ttl_seconds)
        with self.session_factory() as db:
            product = Product(
                id=str(uuid4()),
                owner_id=owner_id,
                title=title,
                description=description,
                category=category,
                price_cents=price_cents,
                currency=currency.lower(),
                file_path=file_path,
                cover_path=cover_path,
                created_at=now,
                expires_at=expires_at,
            )
            db.add(product)
            db.add(
                LinkGenerationDetail(
                    owner_id=owner_id,
                    product_id=product.id,
                    created_at=now,
                    expires_at=expires_at,
                )
            )
            db.flush()
            recompute_user_stats(db, owner_id)
            db.commit()
        logger.info("product created product_id=%s owner_id=%s expires_at=%s", product.id, owner_id, expires_at)
        return product

    def record_view(self, product_id: str) -> None:
        with self.session_factory() as db:
            product = self._live_product(db, product_id)
            self._add_view(db, product, self.context.clock())
            db.commit()

    async def get_product_details(self, product_id: str) -> dict:
        """Public listing view; counts as one view."""

        now = self.context.clock()
        with self.session_factory() as db:
            product = self._live_product(db, product_id)
            self._add_view(db, product, now)
            seller = db.get(UserAccount, product.owner_id)
            db.commit()
        cover_url = None
        if product.cover_path:
            cover_url = await self.context.storage.signed_url(product.cover_path, self.settings.signed_url_ttl_seconds)
        return {
            "id": product.id,
            "title": product.title,
            "description": product.description,
            "category": product.category,
            "price_cents": product.price_cents,
            "currency": product.currency,
            "cover_url": cover_url,
            "expires_at": as_utc(product.expires_at).isoformat(),
            "hours_remaining": hours_remaining(product, now),
            "seller_name": (seller.display_name if seller and seller.display_name else "Seller"),
        }

    def collect_buyer_email(self, product_id: str, email: str) -> PaymentSession:
        """Open a payment session for a buyer on a live listing."""

        with self.session_factory() as db:
            product = self._live_product(db, product_id)
            session = PaymentSession(
                id=f"ps_{uuid4().hex}",
                product_id=product.id,
                buyer_email=email,
                created_at=self.context.clock(),
            )
            db.add(session)
            db.commit()
        logger.info("payment session opened session_id=%s product_id=%s", session.id, product_id)
        return session

    async def start_checkout(
        self, session_id: str, product_id: str, success_url: str, cancel_url: str
    ) -> CheckoutSession:
        """Create the hosted checkout page for an open payment session."""

        with self.session_factory() as db:
            session = db.get(PaymentSession, session_id)
            if session is None or session.product_id != product_id:
                raise SessionNotFound(session_id)
            if session.completed:
                raise SessionAlreadyCompleted(session_id)
            product = self._live_product(db, product_id)

        checkout = await self.context.checkout.create_session(
            CheckoutRequest(
                session_id=session.id,
                product_id=product.id,
                seller_id=product.owner_id,
                product_title=product.title,
                price_cents=product.price_cents,
                currency=product.currency,
                buyer_email=session.buyer_email,
                success_url=success_url,
                cancel_url=cancel_url,
            )
        )
        with self.session_factory() as db:
            stored = db.get(PaymentSession, session_id)
            stored.external_session_id = checkout.external_id
            stored.external_status = checkout.status
            db.commit()
        logger.info("checkout started session_id=%s external_session_id=%s", session_id, checkout.external_id)
        return checkout

    async def delete_product(self, owner_id: str, product_id: str) -> dict:
        """Owner-initiated removal through the shared product cascade."""

        with self.session_factory() as db:
            product = db.get(Product, product_id)
            if product is None:
                raise ProductNotFound(product_id)
            if product.owner_id != owner_id:
                raise Forbidden(f"user {owner_id} does not own product {product_id}")

        result = await purge_product(
            self.session_factory,
            self.context.storage,
            product,
            batch_size=self.settings.delete_batch_size,
        )
        with self.session_factory() as db:
            recompute_user_stats(db, owner_id)
            db.commit()
        if result.complete:
            products_purged_total.labels(reason="owner").inc()
        return {"product_id": product_id, "deleted": result.complete, "rows_deleted": result.rows_deleted}

