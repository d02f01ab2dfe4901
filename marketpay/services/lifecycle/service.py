"""Scheduled listing lifecycle jobs: expiration sweep and expiry warnings."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select

from marketpay.common.clock import as_utc
from marketpay.common.context import SettlementContext
from marketpay.common.errors import ExternalServiceError
from marketpay.common.logging import logger
from marketpay.common.metrics import emails_total, products_purged_total
from marketpay.common.tracing import tracer
from marketpay.services.catalog.models import Product
from marketpay.services.catalog.stats import recompute_user_stats
from marketpay.services.ledger.models import UserAccount
from marketpay.services.lifecycle.cascade import purge_product
from marketpay.services.lifecycle.models import CleanupLog
from marketpay.services.notification.mailer import EmailMessage
from marketpay.services.notification.models import EmailSentLog
from marketpay.services.notification.templates import render

EXPIRATION_WARNING = "expiration_warning"


@dataclass
class SweepReport:
    candidates: int = 0
    purged: list[str] = field(default_factory=list)
    incomplete: list[str] = field(default_factory=list)
    sellers: set[str] = field(default_factory=set)


class ExpirationSweeper:
    """Purges listings older than the TTL, leaving ledger history intact."""

    def __init__(self, context: SettlementContext) -> None:
        self.context = context
        self.settings = context.settings

    def _write_cleanup(self, report: SweepReport, now: datetime) -> None:
        """Audit row plus stats refresh for every seller the sweep touched."""

        with self.context.session_factory() as db:
            db.add(CleanupLog(product_ids=report.purged, count=len(report.purged), created_at=now))
            for seller_id in sorted(report.sellers):
                recompute_user_stats(db, seller_id)
            db.commit()

    async def run(self, now: datetime | None = None) -> SweepReport:
        now = now or self.context.clock()
        cutoff = now - timedelta(seconds=self.settings.product_ttl_seconds)
        report = SweepReport()
        with tracer.start_as_current_span("expiration_sweep"):
            with self.context.session_factory() as db:
                products = db.execute(select(Product).where(Product.created_at < cutoff)).scalars().all()
            report.candidates = len(products)
            if not products:
                logger.info("expiration sweep found nothing cutoff=%s", cutoff.isoformat())
                return report

            try:
                for product in products:
                    report.sellers.add(product.owner_id)
                    try:
                        result = await purge_product(
                            self.context.session_factory,
                            self.context.storage,
                            product,
                            batch_size=self.settings.delete_batch_size,
                        )
                    except Exception as exc:
                        logger.exception("product purge crashed product_id=%s error=%s", product.id, exc)
                        report.incomplete.append(product.id)
                        continue
                    if result.complete:
                        report.purged.append(product.id)
                        products_purged_total.labels(reason="expired").inc()
                    else:
                        report.incomplete.append(product.id)
            finally:
                self._write_cleanup(report, now)

        logger.info(
            "expiration sweep done candidates=%s purged=%s incomplete=%s sellers=%s",
            report.candidates,
            len(report.purged),
            len(report.incomplete),
            len(report.sellers),
        )
        return report


def _valid_email(address: str | None) -> bool:
    if not address:
        return False
    try:
        validate_email(address, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


class ExpirationNotifier:
    """Warns sellers once per listing shortly before it expires."""

    def __init__(self, context: SettlementContext) -> None:
        self.context = context
        self.settings = context.settings

    async def _warn(self, product: Product, recipient: str, now: datetime) -> None:
        """Send one warning and record it so later runs skip the listing."""

        expires_at = as_utc(product.expires_at)
        subject, body = render(
            EXPIRATION_WARNING,
            {
                "product_title": product.title,
                "hours_left": max(1, round((expires_at - now).total_seconds() / 3600)),
                "expiration_date": expires_at.strftime("%Y-%m-%d %H:%M UTC"),
            },
        )
        await self.context.mailer.send(EmailMessage(to=recipient, subject=subject, html=body))
        with self.context.session_factory() as db:
            db.add(
                EmailSentLog(
                    kind=EXPIRATION_WARNING,
                    product_id=product.id,
                    seller_id=product.owner_id,
                    recipient=recipient,
                    expires_at=expires_at,
                    sent_at=now,
                )
            )
            db.commit()

    async def run(self, now: datetime | None = None) -> int:
        now = now or self.context.clock()
        window_start = now + timedelta(seconds=self.settings.expiration_warning_lead_seconds)
        window_end = window_start + timedelta(seconds=self.settings.expiration_warning_window_seconds)
        sent = 0
        with tracer.start_as_current_span("expiration_warnings"):
            with self.context.session_factory() as db:
                products = (
                    db.execute(
                        select(Product)
                        .where(Product.expires_at >= window_start, Product.expires_at < window_end)
                        .order_by(Product.expires_at)
                    )
                    .scalars()
                    .all()
                )
                already_warned = set(
                    db.execute(
                        select(EmailSentLog.product_id).where(
                            EmailSentLog.kind == EXPIRATION_WARNING,
                            EmailSentLog.product_id.in_([p.id for p in products]),
                        )
                    )
                    .scalars()
                    .all()
                )
                owners = {
                    account.id: account
                    for account in db.execute(
                        select(UserAccount).where(UserAccount.id.in_({p.owner_id for p in products}))
                    )
                    .scalars()
                    .all()
                }

            for product in products:
                if product.id in already_warned:
                    continue
                owner = owners.get(product.owner_id)
                recipient = owner.email if owner else None
                if not _valid_email(recipient):
                    logger.warning("expiration warning skipped product_id=%s reason=invalid_seller_email", product.id)
                    continue

                if sent:
                    await asyncio.sleep(self.settings.email_throttle_seconds)
                try:
                    await self._warn(product, recipient, now)
                except ExternalServiceError as exc:
                    emails_total.labels(kind=EXPIRATION_WARNING, result="failed").inc()
                    logger.warning("expiration warning failed product_id=%s error=%s", product.id, exc)
                    continue
                except Exception as exc:
                    emails_total.labels(kind=EXPIRATION_WARNING, result="failed").inc()
                    logger.exception("expiration warning crashed product_id=%s error=%s", product.id, exc)
                    continue
                emails_total.labels(kind=EXPIRATION_WARNING, result="sent").inc()
                sent += 1

        logger.info("expiration warnings sent=%s window_start=%s", sent, window_start.isoformat())
        return sent
