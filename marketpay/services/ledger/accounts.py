"""Seller-facing account reads and the payout destination setting."""

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select

from marketpay.common.clock import as_utc, utcnow
from marketpay.common.errors import InvalidPayoutDestination
from marketpay.common.logging import logger
from marketpay.services.ledger.models import LedgerTransaction, PayoutRecord, UserAccount


def _iso(value) -> str | None:
    return as_utc(value).isoformat() if value else None


def set_payout_destination(db, user_id: str, payout_email: str) -> UserAccount:
    """Validate and store the payout email; the seller counts as onboarded afterwards."""

    try:
        normalized = validate_email(payout_email.strip(), check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise InvalidPayoutDestination(str(exc)) from exc

    account = db.get(UserAccount, user_id)
    if account is None:
        account = UserAccount(id=user_id, balance_cents=0, created_at=utcnow())
        db.add(account)
    account.payout_email = normalized
    account.payout_onboarded = True
    db.flush()
    logger.info("payout destination updated user_id=%s", user_id)
    return account


def payout_status(db, user_id: str) -> dict:
    account = db.get(UserAccount, user_id)
    if account is None:
        return {
            "user_id": user_id,
            "exists": False,
            "onboarding_complete": False,
            "payout_email": None,
            "balance_cents": 0,
            "last_payout_at": None,
        }
    return {
        "user_id": user_id,
        "exists": True,
        "onboarding_complete": bool(account.payout_onboarded and account.payout_email),
        "payout_email": account.payout_email,
        "balance_cents": account.balance_cents or 0,
        "last_payout_at": _iso(account.last_payout_at),
    }


def transaction_history(db, user_id: str, limit: int = 200) -> list[dict]:
    """Sales and completed payouts for one seller, newest first.

    Payout ledger lines are not listed separately; the payout record carries
    the destination and network batch id the seller recognises.
    """

    sales = db.execute(
        select(LedgerTransaction)
        .where(LedgerTransaction.user_id == user_id, LedgerTransaction.type == "sale")
        .order_by(LedgerTransaction.created_at.desc())
        .limit(limit)
    ).scalars()
    payouts = db.execute(
        select(PayoutRecord)
        .where(PayoutRecord.user_id == user_id)
        .order_by(PayoutRecord.created_at.desc())
        .limit(limit)
    ).scalars()

    entries = [
        {
            "id": line.id,
            "type": "sale",
            "amount_cents": line.amount_cents,
            "gross_cents": line.gross_cents,
            "fee_cents": line.fee_cents,
            "commission_cents": line.commission_cents,
            "product_id": line.product_id,
            "order_id": line.order_id,
            "created_at": as_utc(line.created_at),
        }
        for line in sales
    ]
    entries += [
        {
            "id": record.id,
            "type": "payout",
            "amount_cents": record.net_cents,
            "gross_cents": record.gross_cents,
            "fee_cents": record.fee_cents,
            "destination": record.destination,
            "batch_id": record.batch_id,
            "status": record.status,
            "created_at": as_utc(record.created_at),
        }
        for record in payouts
    ]
    entries = sorted(entries, key=lambda entry: entry["created_at"], reverse=True)[:limit]
    for entry in entries:
        entry["created_at"] = entry["created_at"].isoformat()
    return entries
