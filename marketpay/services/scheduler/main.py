"""Entrypoint for the scheduler process (`uvicorn marketpay.services.scheduler.main:app`)."""

from marketpay.bootstrap import startup
from marketpay.common.config import get_settings
from marketpay.common.tracing import instrument_app
from marketpay.services.scheduler.api import create_app

context = startup(
    get_settings(),
    "scheduler",
    [
        "database_url",
        "cleanup_cron",
        "expiration_warning_cron",
        "payout_cron",
        "paypal_base_url",
        "paypal_client_secret",
        "min_payout_cents",
    ],
)
app = create_app(context)
instrument_app(app)
