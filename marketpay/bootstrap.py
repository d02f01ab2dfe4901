"""Process-level wiring of the production `SettlementContext`."""

from marketpay.common.config import Settings
from marketpay.common.context import SettlementContext
from marketpay.common.db import make_engine, make_session_factory
from marketpay.common.logging import configure_logging
from marketpay.common.startup import log_startup_config
from marketpay.common.storage import S3ObjectStorage
from marketpay.common.tracing import setup_tracing
from marketpay.services.notification.mailer import SendGridMailer
from marketpay.services.payouts.client import PayPalPayoutClient
from marketpay.services.storefront.checkout import StripeCheckoutGateway


def build_context(settings: Settings) -> SettlementContext:
    engine = make_engine(settings.database_url)
    return SettlementContext(
        settings=settings,
        session_factory=make_session_factory(engine),
        storage=S3ObjectStorage(settings),
        payout_network=PayPalPayoutClient(settings),
        mailer=SendGridMailer(settings),
        checkout=StripeCheckoutGateway(settings),
    )


def startup(settings: Settings, service_name: str, fields: list[str]) -> SettlementContext:
    """Logging, tracing and context for one process entrypoint."""

    settings = settings.model_copy(update={"service_name": service_name})
    configure_logging(settings)
    setup_tracing(settings)
    log_startup_config(settings, fields)
    return build_context(settings)
