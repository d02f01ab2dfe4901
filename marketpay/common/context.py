"""Explicit dependency bundle handed to every component.

Built once per process (`marketpay.bootstrap.build_context`) and replaced with
fakes in tests.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy.orm import sessionmaker

from marketpay.common.clock import utcnow
from marketpay.common.config import Settings
from marketpay.common.storage import ObjectStorage

if TYPE_CHECKING:
    from marketpay.services.notification.mailer import Mailer
    from marketpay.services.payouts.client import PayoutNetwork
    from marketpay.services.storefront.checkout import CheckoutGateway


@dataclass
class SettlementContext:
    settings: Settings
    session_factory: sessionmaker
    storage: ObjectStorage
    payout_network: "PayoutNetwork"
    mailer: "Mailer"
    checkout: "CheckoutGateway"
    clock: Callable[[], datetime] = field(default=utcnow)
