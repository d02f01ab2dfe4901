"""Weekly payout batch.

Users are processed one at a time, largest balance first, in fixed-size
chunks with a pause between chunks. A failed payout is recorded and the run
moves on. The debit is always the full gross balance; the network fee comes
out of the transferred amount.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select

from marketpay.common.context import SettlementContext
from marketpay.common.errors import InvalidAmount, PayoutNetworkError
from marketpay.common.logging import entity_id_ctx, logger
from marketpay.common.metrics import payout_amount_cents_total, payouts_total
from marketpay.common.tracing import tracer
from marketpay.services.catalog.stats import recompute_user_stats
from marketpay.services.ledger.fees import FeeSchedule, compute_payout_split, format_amount
from marketpay.services.ledger.models import PayoutRecord, UserAccount
from marketpay.services.ledger.service import LedgerWriter
from marketpay.services.notification.service import enqueue_notification
from marketpay.services.payouts.client import PayoutRequest
from marketpay.services.payouts.models import PayoutError, PayoutSession


@dataclass(frozen=True)
class PayeeSnapshot:
    user_id: str
    balance_cents: int
    destination: str
    display_name: str | None
    email: str | None = None


@dataclass
class PayoutSummary:
    session_id: str
    processed_users: int = 0
    successful_payouts: int = 0
    failed_payouts: int = 0
    below_minimum_notices: int = 0
    total_amount_cents: int = 0
    failed_user_ids: list[str] = field(default_factory=list)


def _is_valid_destination(address: str) -> bool:
    try:
        validate_email(address, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def _first_name(display_name: str | None) -> str:
    return ((display_name or "").split(" ")[0]) or "Seller"


class PayoutBatchProcessor:
    """Pays out every seller balance at or above the minimum."""

    def __init__(self, context: SettlementContext, ledger: LedgerWriter | None = None) -> None:
        self.context = context
        self.settings = context.settings
        self.session_factory = context.session_factory
        self.fees = FeeSchedule.from_settings(context.settings)
        self.ledger = ledger or LedgerWriter()

    def _load_payees(self) -> list[PayeeSnapshot]:
        with self.session_factory() as db:
            rows = db.execute(
                select(UserAccount)
                .where(UserAccount.balance_cents > 0, UserAccount.payout_email.is_not(None))
                .order_by(UserAccount.balance_cents.desc(), UserAccount.id)
            ).scalars()
            return [
                PayeeSnapshot(row.id, row.balance_cents, row.payout_email.strip(), row.display_name, row.email)
                for row in rows
                if row.payout_email and row.payout_email.strip()
            ]

    def _record_error(self, payee: PayeeSnapshot, session_id: str, error_type: str, message: str) -> None:
        with self.session_factory() as db:
            db.add(
                PayoutError(
                    user_id=payee.user_id,
                    session_id=session_id,
                    amount_cents=payee.balance_cents,
                    destination=payee.destination,
                    error_type=error_type,
                    error_message=message[:500],
                )
            )
            if error_type == "invalid_receiver":
                enqueue_notification(
                    db,
                    "payout_failed",
                    payee.destination,
                    {
                        "gross_cents": payee.balance_cents,
                        "destination": payee.destination,
                        "error": "Your payout email is not able to receive payments. Please update it in your dashboard.",
                    },
                )
            db.commit()
        payouts_total.labels(result=error_type).inc()
        logger.warning(
            "payout failed user_id=%s error_type=%s amount_cents=%s error=%s",
            payee.user_id,
            error_type,
            payee.balance_cents,
            message,
        )

    async def _pay_one(self, payee: PayeeSnapshot, summary: PayoutSummary, run_ms: int) -> None:
        entity_id_ctx.set(payee.user_id)
        summary.processed_users += 1
        try:
            split = compute_payout_split(payee.balance_cents, self.fees)
        except InvalidAmount as exc:
            self._record_error(payee, summary.session_id, "invalid_amount", str(exc))
            summary.failed_payouts += 1
            summary.failed_user_ids.append(payee.user_id)
            return

        sender_batch_id = f"payout_{run_ms}_{payee.user_id}"
        try:
            receipt = await self.context.payout_network.send_payout(
                PayoutRequest(
                    user_id=payee.user_id,
                    destination=payee.destination,
                    amount=format_amount(split.net_cents),
                    currency=self.settings.payout_currency,
                    sender_batch_id=sender_batch_id,
                )
            )
        except PayoutNetworkError as exc:
            self._record_error(payee, summary.session_id, exc.error_type, str(exc))
            summary.failed_payouts += 1
            summary.failed_user_ids.append(payee.user_id)
            return

        with self.session_factory() as db:
            self.ledger.debit_payout(
                db,
                user_id=payee.user_id,
                split=split,
                idempotency_key=f"payout:{sender_batch_id}",
                batch_id=receipt.batch_id,
            )
            db.add(
                PayoutRecord(
                    user_id=payee.user_id,
                    net_cents=split.net_cents,
                    gross_cents=split.gross_cents,
                    fee_cents=split.fee_cents,
                    destination=payee.destination,
                    batch_id=receipt.batch_id,
                    sender_batch_id=sender_batch_id,
                    status="completed",
                )
            )
            stats = recompute_user_stats(db, payee.user_id)
            enqueue_notification(
                db,
                "payout_notification",
                payee.destination,
                {
                    "first_name": _first_name(payee.display_name),
                    "net_cents": split.net_cents,
                    "gross_cents": split.gross_cents,
                    "destination": payee.destination,
                    "listings_count": stats.listings_count,
                    "orders_count": stats.orders_count,
                    "views_count": stats.views_count,
                },
            )
            db.commit()

        summary.successful_payouts += 1
        summary.total_amount_cents += split.gross_cents
        payouts_total.labels(result="success").inc()
        payout_amount_cents_total.inc(split.gross_cents)
        logger.info(
            "payout sent user_id=%s gross_cents=%s net_cents=%s batch_id=%s",
            payee.user_id,
            split.gross_cents,
            split.net_cents,
            receipt.batch_id,
        )

    async def _pay_isolated(self, payee: PayeeSnapshot, summary: PayoutSummary, run_ms: int) -> None:
        """Pay one seller; any failure is recorded against that seller only."""

        processed_before = summary.processed_users
        try:
            await self._pay_one(payee, summary, run_ms)
        except Exception as exc:
            logger.exception("payout crashed user_id=%s error=%s", payee.user_id, exc)
            if summary.processed_users == processed_before:
                summary.processed_users += 1
            summary.failed_payouts += 1
            summary.failed_user_ids.append(payee.user_id)
            try:
                self._record_error(payee, summary.session_id, "unknown", str(exc) or type(exc).__name__)
            except Exception as log_exc:
                logger.error("payout error write failed user_id=%s error=%s", payee.user_id, log_exc)

    def _notify_below_minimum(self, below: list[PayeeSnapshot], minimum: int) -> None:
        with self.session_factory() as db:
            for payee in below:
                recipient = payee.email if payee.email and _is_valid_destination(payee.email) else payee.destination
                enqueue_notification(
                    db,
                    "min_balance_not_reached",
                    recipient,
                    {"balance_cents": payee.balance_cents, "minimum_cents": minimum},
                )
            db.commit()

    def _close_session(self, summary: PayoutSummary, status: str) -> None:
        with self.session_factory() as db:
            stored = db.get(PayoutSession, summary.session_id)
            stored.status = status
            stored.processed_users = summary.processed_users
            stored.successful_payouts = summary.successful_payouts
            stored.failed_payouts = summary.failed_payouts
            stored.below_minimum_notices = summary.below_minimum_notices
            stored.total_amount_cents = summary.total_amount_cents
            stored.finished_at = self.context.clock()
            db.commit()

    async def run(self, now: datetime | None = None) -> PayoutSummary:
        now = now or self.context.clock()
        run_ms = int(now.timestamp() * 1000)
        with self.session_factory() as db:
            payout_session = PayoutSession(status="running", started_at=now)
            db.add(payout_session)
            db.commit()
        summary = PayoutSummary(session_id=payout_session.id)

        status = "failed"
        try:
            with tracer.start_as_current_span("payout_batch") as span:
                payees = self._load_payees()
                minimum = self.settings.min_payout_cents
                eligible: list[PayeeSnapshot] = []
                below: list[PayeeSnapshot] = []
                for payee in payees:
                    if not _is_valid_destination(payee.destination):
                        if payee.balance_cents >= minimum:
                            summary.processed_users += 1
                            summary.failed_payouts += 1
                            summary.failed_user_ids.append(payee.user_id)
                            self._record_error(
                                payee, summary.session_id, "invalid_destination", "payout email is not valid"
                            )
                        continue
                    if payee.balance_cents >= minimum:
                        eligible.append(payee)
                    else:
                        below.append(payee)

                if below:
                    try:
                        self._notify_below_minimum(below, minimum)
                        summary.below_minimum_notices = len(below)
                    except Exception as exc:
                        logger.exception("below-minimum notices failed count=%s error=%s", len(below), exc)

                chunk_size = max(1, self.settings.payout_chunk_size)
                chunks = [eligible[i : i + chunk_size] for i in range(0, len(eligible), chunk_size)]
                span.set_attribute("eligible_users", len(eligible))
                for index, chunk in enumerate(chunks):
                    if index:
                        logger.info(
                            "payout chunk pause index=%s seconds=%s", index, self.settings.payout_chunk_pause_seconds
                        )
                        await asyncio.sleep(self.settings.payout_chunk_pause_seconds)
                    for payee in chunk:
                        await self._pay_isolated(payee, summary, run_ms)
                        await asyncio.sleep(self.settings.payout_throttle_seconds)
            status = "completed"
        finally:
            self._close_session(summary, status)

        logger.info(
            "payout batch done session_id=%s processed=%s succeeded=%s failed=%s below_minimum=%s total_cents=%s",
            summary.session_id,
            summary.processed_users,
            summary.successful_payouts,
            summary.failed_payouts,
            summary.below_minimum_notices,
            summary.total_amount_cents,
        )
        return summary
