"""Entrypoint for the fulfillment process (`uvicorn marketpay.services.fulfillment.main:app`)."""

from marketpay.bootstrap import startup
from marketpay.common.config import get_settings
from marketpay.common.tracing import instrument_app
from marketpay.services.fulfillment.api import create_app

context = startup(
    get_settings(),
    "fulfillment",
    [
        "database_url",
        "public_base_url",
        "storage_bucket",
        "stripe_webhook_secret",
        "stripe_signature_tolerance_seconds",
    ],
)
app = create_app(context)
instrument_app(app)
