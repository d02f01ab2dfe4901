"""Content access with device binding."""

import pytest
import pytest_asyncio
from sqlalchemy import select

from conftest import add_account, add_payment_session, add_product, checkout_event
from marketpay.common.errors import AccessDenied, OrderNotFound, ProductExpired
from marketpay.services.catalog.models import UserStats
from marketpay.services.fulfillment.access import AccessService, classify_device, content_type_for
from marketpay.services.fulfillment.models import AccessAttempt, AccessLog, Order
from marketpay.services.fulfillment.schemas import parse_checkout_completed
from marketpay.services.fulfillment.service import FulfillmentService

CHROME_MAC = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
CHROME_MAC_NEWER = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36"
)
FIREFOX_WINDOWS = "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) Gecko/20100101 Firefox/125.0"
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_4 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.4 Mobile/15E148 Safari/604.1"
)


@pytest_asyncio.fixture
async def token(context, storage):
    add_account(context.session_factory, "seller-1")
    add_product(context, storage)
    add_payment_session(context)
    await FulfillmentService(context).handle_checkout_completed(parse_checkout_completed(checkout_event()))
    with context.session_factory() as db:
        return db.execute(select(Order.access_token)).scalar_one()


def test_classify_device_uses_browser_and_os_family():
    desktop = classify_device(CHROME_MAC)
    phone = classify_device(SAFARI_IPHONE)

    assert (desktop.browser, desktop.os, desktop.device) == ("Chrome", "Mac OS X", "Desktop")
    assert (phone.browser, phone.os, phone.device) == ("Mobile Safari", "iOS", "Mobile")


def test_classify_device_tolerates_missing_user_agent():
    info = classify_device(None)
    assert info.browser == "Other" and info.os == "Other"


@pytest.mark.parametrize(
    "path,expected",
    [
        ("u/track.MP3", ("audio", "mp3")),
        ("u/clip.webm", ("video", "webm")),
        ("u/book.epub", ("document", "epub")),
        ("u/tool.zip", ("other", "zip")),
        ("u/README", ("other", "")),
    ],
)
def test_content_type_by_extension(path, expected):
    assert content_type_for(path) == expected


@pytest.mark.asyncio
async def test_first_access_binds_device_and_ships_order(context, token):
    grant = await AccessService(context).access_content(token, CHROME_MAC)

    assert grant.first_access is True
    assert grant.content_type == "audio"
    assert grant.file_url.startswith("https://storage.test/seller-1/prod-1.mp3")
    assert grant.cover_url is not None
    with context.session_factory() as db:
        order = db.execute(select(Order)).scalar_one()
        stats = db.get(UserStats, "seller-1")
        logs = db.execute(select(AccessLog)).scalars().all()
    assert (order.device_browser, order.device_os) == ("Chrome", "Mac OS X")
    assert order.status == "shipped" and order.delivered_at is not None
    assert stats.shipped_count == 1
    assert len(logs) == 1


@pytest.mark.asyncio
async def test_same_device_family_keeps_access_and_ships_once(context, token):
    """A browser upgrade on the same machine is still the bound device."""

    service = AccessService(context)
    await service.access_content(token, CHROME_MAC)
    grant = await service.access_content(token, CHROME_MAC_NEWER)

    assert grant.first_access is False
    with context.session_factory() as db:
        assert db.get(UserStats, "seller-1").shipped_count == 1
        assert len(db.execute(select(AccessLog)).scalars().all()) == 2


@pytest.mark.asyncio
async def test_other_device_is_refused_and_logged(context, token):
    service = AccessService(context)
    await service.access_content(token, CHROME_MAC)

    with pytest.raises(AccessDenied):
        await service.access_content(token, FIREFOX_WINDOWS)

    with context.session_factory() as db:
        attempt = db.execute(select(AccessAttempt)).scalar_one()
    assert attempt.allowed is False
    assert (attempt.bound_browser, attempt.attempt_browser) == ("Chrome", "Firefox")

    # The original device is still let in.
    grant = await service.access_content(token, CHROME_MAC)
    assert grant.order_id


@pytest.mark.asyncio
async def test_unknown_token_is_rejected(context, token):
    with pytest.raises(OrderNotFound):
        await AccessService(context).access_content("not-a-token", CHROME_MAC)


@pytest.mark.asyncio
async def test_expired_product_is_not_served_before_the_sweep(context, token, clock):
    clock.advance(days=7, seconds=1)

    with pytest.raises(ProductExpired):
        await AccessService(context).access_content(token, CHROME_MAC)
