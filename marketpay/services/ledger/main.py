"""Entrypoint for the ledger process (`uvicorn marketpay.services.ledger.main:app`)."""

from marketpay.bootstrap import startup
from marketpay.common.config import get_settings
from marketpay.common.tracing import instrument_app
from marketpay.services.ledger.api import create_app

context = startup(
    get_settings(),
    "ledger",
    ["database_url"],
)
app = create_app(context)
instrument_app(app)
