"""Shared fixtures: in-memory database, fake external clients, factories."""

from datetime import datetime, timedelta, timezone

import pytest

from marketpay.common.config import Settings
from marketpay.common.context import SettlementContext
from marketpay.common.db import Base, make_engine, make_session_factory
from marketpay.common.errors import DeliveryError, StorageError
from marketpay.services.catalog import models as catalog_models  # noqa: F401
from marketpay.services.catalog.models import PaymentSession, Product
from marketpay.services.fulfillment import models as fulfillment_models  # noqa: F401
from marketpay.services.ledger.models import UserAccount
from marketpay.services.lifecycle import models as lifecycle_models  # noqa: F401
from marketpay.services.notification import models as notification_models  # noqa: F401
from marketpay.services.payouts import models as payout_models  # noqa: F401
from marketpay.services.payouts.client import PayoutReceipt
from marketpay.services.scheduler import models as scheduler_models  # noqa: F401
from marketpay.services.storefront.checkout import CheckoutSession

NOW = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)
WEBHOOK_SECRET = "whsec_test_secret"


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeStorage:
    def __init__(self) -> None:
        self.objects: set[str] = set()
        self.deleted: list[str] = []
        self.failing_paths: set[str] = set()
        self.unavailable = False

    async def exists(self, path: str) -> bool:
        if self.unavailable:
            raise StorageError("storage unavailable")
        return path in self.objects

    async def delete(self, path: str) -> None:
        if self.unavailable or path in self.failing_paths:
            raise StorageError(f"delete failed for {path}")
        self.objects.discard(path)
        self.deleted.append(path)

    async def signed_url(self, path: str, ttl_seconds: int) -> str:
        return f"https://storage.test/{path}?expires={ttl_seconds}"


class FakePayoutNetwork:
    def __init__(self) -> None:
        self.requests = []
        self.failures: dict[str, Exception] = {}

    async def send_payout(self, request):
        self.requests.append(request)
        if request.user_id in self.failures:
            raise self.failures[request.user_id]
        return PayoutReceipt(batch_id=f"PB-{len(self.requests)}", status="SUCCESS")


class FakeMailer:
    def __init__(self) -> None:
        self.sent = []
        self.failing_recipients: set[str] = set()

    async def send(self, message) -> None:
        if message.to in self.failing_recipients:
            raise DeliveryError(f"rejected {message.to}")
        self.sent.append(message)


class FakeCheckout:
    def __init__(self) -> None:
        self.requests = []

    async def create_session(self, request) -> CheckoutSession:
        self.requests.append(request)
        return CheckoutSession(
            external_id=f"cs_test_{len(self.requests)}",
            url=f"https://checkout.test/pay/{len(self.requests)}",
            status="open",
        )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        tracing_enabled=False,
        public_base_url="https://shop.test",
        stripe_webhook_secret=WEBHOOK_SECRET,
        payout_chunk_pause_seconds=0,
        payout_throttle_seconds=0,
        email_throttle_seconds=0,
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def session_factory(settings):
    engine = make_engine(settings.database_url)
    Base.metadata.create_all(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def payout_network() -> FakePayoutNetwork:
    return FakePayoutNetwork()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def checkout() -> FakeCheckout:
    return FakeCheckout()


@pytest.fixture
def context(settings, session_factory, storage, payout_network, mailer, checkout, clock) -> SettlementContext:
    return SettlementContext(
        settings=settings,
        session_factory=session_factory,
        storage=storage,
        payout_network=payout_network,
        mailer=mailer,
        checkout=checkout,
        clock=clock,
    )


def add_account(session_factory, user_id: str, **fields) -> UserAccount:
    fields.setdefault("email", f"{user_id}@sellers.example.com")
    fields.setdefault("display_name", "Ada Lovelace")
    fields.setdefault("balance_cents", 0)
    with session_factory() as db:
        account = UserAccount(id=user_id, **fields)
        db.add(account)
        db.commit()
    return account


def add_product(context, storage: FakeStorage | None = None, **fields) -> Product:
    """Insert a listing directly, optionally registering its file in storage."""

    created_at = fields.pop("created_at", context.clock())
    fields.setdefault("id", "prod-1")
    fields.setdefault("owner_id", "seller-1")
    fields.setdefault("title", "Lo-fi Beats Vol. 1")
    fields.setdefault("price_cents", 10000)
    fields.setdefault("file_path", f"{fields['owner_id']}/{fields['id']}.mp3")
    fields.setdefault("cover_path", f"{fields['owner_id']}/{fields['id']}-cover.png")
    fields.setdefault("expires_at", created_at + timedelta(seconds=context.settings.product_ttl_seconds))
    with context.session_factory() as db:
        product = Product(created_at=created_at, **fields)
        db.add(product)
        db.commit()
    if storage is not None:
        storage.objects.add(product.file_path)
        if product.cover_path:
            storage.objects.add(product.cover_path)
    return product


def add_payment_session(context, session_id: str = "ps_1", product_id: str = "prod-1", **fields) -> PaymentSession:
    fields.setdefault("buyer_email", "buyer@example.com")
    with context.session_factory() as db:
        session = PaymentSession(id=session_id, product_id=product_id, created_at=context.clock(), **fields)
        db.add(session)
        db.commit()
    return session


def checkout_event(
    event_id: str = "evt_1",
    session_id: str = "ps_1",
    product_id: str = "prod-1",
    seller_id: str = "seller-1",
    buyer_email: str | None = "buyer@example.com",
    title: str | None = "Lo-fi Beats Vol. 1",
) -> dict:
    metadata = {
        "app_session_id": session_id,
        "app_product_id": product_id,
        "app_seller_uid": seller_id,
    }
    if title is not None:
        metadata["app_product_title"] = title
    obj = {"id": "cs_test_abc", "payment_intent": "pi_test_abc", "metadata": metadata}
    if buyer_email is not None:
        obj["customer_details"] = {"email": buyer_email}
    return {"id": event_id, "type": "checkout.session.completed", "data": {"object": obj}}
