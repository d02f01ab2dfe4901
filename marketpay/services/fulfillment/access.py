"""Buyer content access bound to the first device that opens it."""

import posixpath
from dataclasses import dataclass

from sqlalchemy import select, update
from user_agents import parse as parse_user_agent

from marketpay.common.context import SettlementContext
from marketpay.common.errors import AccessDenied, OrderNotFound, ProductExpired, ProductNotFound
from marketpay.common.logging import entity_id_ctx, logger
from marketpay.common.metrics import access_attempts_total
from marketpay.common.state_machine import validate_transition
from marketpay.services.catalog.models import Product
from marketpay.services.catalog.service import is_expired
from marketpay.services.catalog.stats import bump_user_stats
from marketpay.services.fulfillment.models import AccessAttempt, AccessLog, Order

CONTENT_TYPES = {
    "audio": {"mp3", "wav", "ogg"},
    "video": {"mp4", "webm", "mov"},
    "document": {"pdf", "epub"},
}


@dataclass(frozen=True)
class DeviceInfo:
    browser: str
    os: str
    device: str

    def matches(self, browser: str | None, os: str | None) -> bool:
        return self.browser == (browser or "") and self.os == (os or "")


@dataclass(frozen=True)
class ContentGrant:
    order_id: str
    product_id: str
    title: str
    description: str
    category: str | None
    content_type: str
    file_extension: str
    file_url: str
    cover_url: str | None
    first_access: bool


def classify_device(user_agent: str | None) -> DeviceInfo:
    """Coarse fingerprint: browser family and OS family only."""

    ua = parse_user_agent(user_agent or "")
    if ua.is_tablet:
        device = "Tablet"
    elif ua.is_mobile:
        device = "Mobile"
    elif ua.is_pc:
        device = "Desktop"
    else:
        device = "Unknown"
    return DeviceInfo(browser=ua.browser.family, os=ua.os.family, device=device)


def content_type_for(path: str) -> tuple[str, str]:
    name = posixpath.basename(path)
    ext = name.rpartition(".")[2].lower() if "." in name else ""
    for content_type, extensions in CONTENT_TYPES.items():
        if ext in extensions:
            return content_type, ext
    return "other", ext


class AccessService:
    def __init__(self, context: SettlementContext) -> None:
        self.context = context
        self.settings = context.settings

    async def access_content(self, token: str, user_agent: str | None) -> ContentGrant:
        """Grant access for an order token from the bound (or first) device."""

        device = classify_device(user_agent)
        now = self.context.clock()
        first_access = False
        with self.context.session_factory() as db:
            order = db.execute(select(Order).where(Order.access_token == token)).scalar_one_or_none()
            if order is None:
                access_attempts_total.labels(result="unknown_token").inc()
                raise OrderNotFound("invalid access token")
            entity_id_ctx.set(order.id)
            product = db.get(Product, order.product_id)
            if product is None:
                raise ProductNotFound(order.product_id)
            if is_expired(product, now):
                raise ProductExpired(order.product_id)

            if order.device_browser is None:
                bound = db.execute(
                    update(Order)
                    .where(Order.id == order.id, Order.device_browser.is_(None))
                    .values(device_browser=device.browser, device_os=device.os, device_bound_at=now)
                )
                if bound.rowcount == 1:
                    first_access = True
                    logger.info("device bound order_id=%s browser=%s os=%s", order.id, device.browser, device.os)
                db.refresh(order)

            if not device.matches(order.device_browser, order.device_os):
                db.add(
                    AccessAttempt(
                        order_id=order.id,
                        bound_browser=order.device_browser,
                        bound_os=order.device_os,
                        attempt_browser=device.browser,
                        attempt_os=device.os,
                        allowed=False,
                        created_at=now,
                    )
                )
                db.commit()
                access_attempts_total.labels(result="denied").inc()
                logger.warning(
                    "access denied order_id=%s bound=%s/%s attempt=%s/%s",
                    order.id,
                    order.device_browser,
                    order.device_os,
                    device.browser,
                    device.os,
                )
                raise AccessDenied("content can only be accessed from the device used for the first access")

            db.add(
                AccessLog(
                    order_id=order.id,
                    product_id=product.id,
                    buyer_email=order.buyer_email,
                    browser=device.browser,
                    os=device.os,
                    device=device.device,
                    created_at=now,
                )
            )
            if order.status == "completed":
                validate_transition(order.status, "shipped")
                shipped = db.execute(
                    update(Order)
                    .where(Order.id == order.id, Order.status == "completed")
                    .values(status="shipped", delivered_at=now)
                )
                if shipped.rowcount == 1:
                    bump_user_stats(db, order.seller_id, shipped_count=1)
            db.commit()

        access_attempts_total.labels(result="allowed").inc()
        content_type, ext = content_type_for(product.file_path)
        ttl = self.settings.signed_url_ttl_seconds
        file_url = await self.context.storage.signed_url(product.file_path, ttl)
        cover_url = await self.context.storage.signed_url(product.cover_path, ttl) if product.cover_path else None
        return ContentGrant(
            order_id=order.id,
            product_id=product.id,
            title=product.title,
            description=product.description,
            category=product.category,
            content_type=content_type,
            file_extension=ext,
            file_url=file_url,
            cover_url=cover_url,
            first_access=first_access,
        )
