"""Entrypoint for the storefront process (`uvicorn marketpay.services.storefront.main:app`)."""

from marketpay.bootstrap import startup
from marketpay.common.config import get_settings
from marketpay.common.tracing import instrument_app
from marketpay.services.storefront.api import create_app

context = startup(
    get_settings(),
    "storefront",
    [
        "database_url",
        "public_base_url",
        "storage_bucket",
        "stripe_secret_key",
        "product_ttl_seconds",
    ],
)
app = create_app(context)
instrument_app(app)
