"""Ledger reads, seller payout settings and reconciliation endpoints."""

from fastapi import FastAPI, HTTPException, Query

from marketpay.common.context import SettlementContext
from marketpay.common.errors import InvalidPayoutDestination
from marketpay.common.metrics import metrics_response
from marketpay.services.ledger.accounts import payout_status, set_payout_destination, transaction_history
from marketpay.services.ledger.schemas import PayoutDestinationRequest
from marketpay.services.ledger.service import LedgerWriter


def create_app(context: SettlementContext) -> FastAPI:
    ledger = LedgerWriter()
    app = FastAPI(title="Marketpay Ledger")

    @app.get("/reconciliation/{user_id}")
    def reconcile_user(user_id: str):
        """Balance vs. sum of ledger deltas for one account."""

        with context.session_factory() as db:
            return ledger.reconcile(db, user_id)

    @app.get("/reconciliation")
    def reconciliation_report(limit: int = Query(default=1000, ge=1, le=10000)):
        """Accounts whose balance no longer matches their ledger lines."""

        with context.session_factory() as db:
            return ledger.reconciliation_report(db, limit=limit)

    @app.get("/transactions/{user_id}")
    def transactions(user_id: str, limit: int = Query(default=200, ge=1, le=1000)):
        """Sales and payouts for one seller, newest first."""

        with context.session_factory() as db:
            return {"user_id": user_id, "transactions": transaction_history(db, user_id, limit=limit)}

    @app.put("/accounts/{user_id}/payout-destination")
    def update_payout_destination(user_id: str, req: PayoutDestinationRequest):
        with context.session_factory() as db:
            try:
                set_payout_destination(db, user_id, req.payout_email)
            except InvalidPayoutDestination as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
            db.commit()
            return payout_status(db, user_id)

    @app.get("/accounts/{user_id}/payout-status")
    def get_payout_status(user_id: str):
        with context.session_factory() as db:
            return payout_status(db, user_id)

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.get("/health")
    def health():
        return {"ok": True}

    return app
