"""Entrypoint for the notification process (`uvicorn marketpay.services.notification.main:app`)."""

from marketpay.bootstrap import startup
from marketpay.common.config import get_settings
from marketpay.common.tracing import instrument_app
from marketpay.services.notification.api import create_app

context = startup(
    get_settings(),
    "notification",
    [
        "database_url",
        "sendgrid_api_key",
        "email_from_address",
        "outbox_batch_size",
        "outbox_max_attempts",
    ],
)
app = create_app(context)
instrument_app(app)
