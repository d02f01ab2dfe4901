"""Idempotent ledger posting for sale credits and payout debits.

Every posting pairs a balance delta on `user_accounts` with one append-only
row in `transactions`. The pair is staged on the caller's session and lands
in the caller's commit; the idempotency key makes re-executing the pair after
a partial failure a no-op.
"""

from sqlalchemy import func, select, update

from marketpay.common.clock import utcnow
from marketpay.common.logging import logger
from marketpay.common.metrics import duplicate_events_skipped_total, ledger_postings_total
from marketpay.services.ledger.fees import PayoutSplit, SaleSplit
from marketpay.services.ledger.models import LedgerTransaction, UserAccount


class LedgerWriter:
    """Applies balance deltas with at-most-once semantics per idempotency key."""

    def already_applied(self, db, idempotency_key: str) -> bool:
        return (
            db.execute(
                select(LedgerTransaction.id).where(LedgerTransaction.idempotency_key == idempotency_key)
            ).scalar_one_or_none()
            is not None
        )

    def _apply_delta(self, db, user_id: str, delta: int, **touch) -> None:
        """Move the balance by `delta` without reading it first."""

        result = db.execute(
            update(UserAccount)
            .where(UserAccount.id == user_id)
            .values(balance_cents=UserAccount.balance_cents + delta, **touch)
        )
        if result.rowcount == 0:
            db.add(UserAccount(id=user_id, balance_cents=delta, **touch))
            db.flush()

    def credit_sale(
        self,
        db,
        *,
        user_id: str,
        split: SaleSplit,
        idempotency_key: str,
        product_id: str,
        order_id: str,
    ) -> bool:
        """Credit the seller net amount and append a `sale` line."""

        if self.already_applied(db, idempotency_key):
            logger.info("ledger duplicate skipped key=%s", idempotency_key)
            duplicate_events_skipped_total.labels(source="ledger").inc()
            return False
        self._apply_delta(db, user_id, split.net_cents, last_sale_at=utcnow())
        db.add(
            LedgerTransaction(
                user_id=user_id,
                type="sale",
                idempotency_key=idempotency_key,
                amount_cents=split.net_cents,
                gross_cents=split.gross_cents,
                fee_cents=split.channel_fee_cents,
                commission_cents=split.commission_cents,
                balance_delta_cents=split.net_cents,
                product_id=product_id,
                order_id=order_id,
            )
        )
        ledger_postings_total.labels(type="sale").inc()
        return True

    def debit_payout(
        self,
        db,
        *,
        user_id: str,
        split: PayoutSplit,
        idempotency_key: str,
        batch_id: str,
    ) -> bool:
        """Debit exactly the gross amount and append a `payout` line."""

        if self.already_applied(db, idempotency_key):
            logger.info("ledger duplicate skipped key=%s", idempotency_key)
            duplicate_events_skipped_total.labels(source="ledger").inc()
            return False
        self._apply_delta(db, user_id, -split.gross_cents, last_payout_at=utcnow())
        db.add(
            LedgerTransaction(
                user_id=user_id,
                type="payout",
                idempotency_key=idempotency_key,
                amount_cents=split.net_cents,
                gross_cents=split.gross_cents,
                fee_cents=split.fee_cents,
                balance_delta_cents=-split.gross_cents,
                payout_batch_id=batch_id,
            )
        )
        ledger_postings_total.labels(type="payout").inc()
        return True

    def reconcile(self, db, user_id: str) -> dict:
        """Compare the account balance with the sum of its ledger lines."""

        balance = db.execute(select(UserAccount.balance_cents).where(UserAccount.id == user_id)).scalar_one_or_none()
        rows = db.execute(
            select(LedgerTransaction.type, func.sum(LedgerTransaction.balance_delta_cents))
            .where(LedgerTransaction.user_id == user_id)
            .group_by(LedgerTransaction.type)
        ).all()
        totals = {row[0]: int(row[1] or 0) for row in rows}
        ledger_total = sum(totals.values())
        balance = balance or 0
        return {
            "user_id": user_id,
            "balance_cents": balance,
            "ledger_cents": ledger_total,
            "sales_cents": totals.get("sale", 0),
            "payouts_cents": -totals.get("payout", 0),
            "balanced": balance == ledger_total,
        }

    def reconciliation_report(self, db, limit: int = 1000) -> dict:
        """Return every account whose balance drifted from its ledger."""

        ledger_sums = (
            select(
                LedgerTransaction.user_id.label("user_id"),
                func.sum(LedgerTransaction.balance_delta_cents).label("ledger_cents"),
            )
            .group_by(LedgerTransaction.user_id)
            .subquery()
        )
        rows = db.execute(
            select(UserAccount.id, UserAccount.balance_cents, ledger_sums.c.ledger_cents)
            .outerjoin(ledger_sums, ledger_sums.c.user_id == UserAccount.id)
            .order_by(UserAccount.id)
            .limit(limit)
        ).all()
        drifted = [
            {
                "user_id": row.id,
                "balance_cents": int(row.balance_cents or 0),
                "ledger_cents": int(row.ledger_cents or 0),
            }
            for row in rows
            if int(row.balance_cents or 0) != int(row.ledger_cents or 0)
        ]
        return {
            "accounts_checked": len(rows),
            "drifted_count": len(drifted),
            "drifted_accounts": drifted,
        }
