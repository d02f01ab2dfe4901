"""Fee math for sale splits and payout splits."""

from decimal import Decimal

import pytest

from marketpay.common.errors import InvalidAmount
from marketpay.services.ledger.fees import (
    ChannelRates,
    FeeSchedule,
    compute_payout_split,
    compute_sale_split,
    format_amount,
)


@pytest.fixture
def schedule(settings):
    return FeeSchedule.from_settings(settings)


def test_stripe_sale_of_100_dollars_nets_84_80(schedule):
    split = compute_sale_split(10000, "stripe", schedule)

    assert split.channel_fee_cents == 320
    assert split.commission_cents == 1200
    assert split.net_cents == 8480
    assert format_amount(split.net_cents) == "84.80"


def test_paypal_sale_uses_paypal_rates(schedule):
    split = compute_sale_split(10000, "paypal", schedule)

    assert split.channel_fee_cents == 398
    assert split.net_cents == 10000 - 398 - 1200


def test_sale_fee_rounds_half_up():
    schedule = FeeSchedule(
        channels={"stripe": ChannelRates(Decimal("0.029"), 30)},
        platform_rate=Decimal("0.12"),
        payout=ChannelRates(Decimal("0.0349"), 49),
    )
    # 1050 * 0.029 = 30.45 -> 60.45 -> 60; 1050 * 0.12 = 126
    split = compute_sale_split(1050, "stripe", schedule)
    assert split.channel_fee_cents == 60
    assert split.commission_cents == 126
    assert split.gross_cents == split.channel_fee_cents + split.commission_cents + split.net_cents


@pytest.mark.parametrize("gross", [0, -100])
def test_non_positive_gross_is_rejected(schedule, gross):
    with pytest.raises(InvalidAmount):
        compute_sale_split(gross, "stripe", schedule)


def test_tiny_sale_with_non_positive_net_is_rejected(schedule):
    """Fixed fee alone eats a 30 cent sale."""

    with pytest.raises(InvalidAmount):
        compute_sale_split(30, "stripe", schedule)


def test_unknown_channel_is_rejected(schedule):
    with pytest.raises(InvalidAmount):
        compute_sale_split(10000, "bitcoin", schedule)


def test_payout_fee_is_absorbed_into_net(schedule):
    split = compute_payout_split(1000, schedule)

    # 49 + 1000 * 0.0349 = 83.9 -> 84
    assert split.gross_cents == 1000
    assert split.fee_cents == 84
    assert split.net_cents == 916


def test_payout_below_fixed_fee_is_rejected(schedule):
    with pytest.raises(InvalidAmount):
        compute_payout_split(40, schedule)


def test_format_amount_keeps_two_decimals():
    assert format_amount(5) == "0.05"
    assert format_amount(123400) == "1234.00"
