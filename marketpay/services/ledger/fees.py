"""Fee math for sales and payouts.

All inputs and outputs are integer cents; intermediate math is done in
`Decimal` and rounded half-up to the cent.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from marketpay.common.config import Settings
from marketpay.common.errors import InvalidAmount


@dataclass(frozen=True)
class ChannelRates:
    rate: Decimal
    fixed_cents: int


@dataclass(frozen=True)
class FeeSchedule:
    channels: dict[str, ChannelRates]
    platform_rate: Decimal
    payout: ChannelRates

    @classmethod
    def from_settings(cls, settings: Settings) -> "FeeSchedule":
        return cls(
            channels={
                "stripe": ChannelRates(settings.stripe_fee_rate, settings.stripe_fee_fixed_cents),
                "paypal": ChannelRates(settings.paypal_fee_rate, settings.paypal_fee_fixed_cents),
            },
            platform_rate=settings.platform_commission_rate,
            payout=ChannelRates(settings.payout_fee_rate, settings.payout_fee_fixed_cents),
        )


@dataclass(frozen=True)
class SaleSplit:
    gross_cents: int
    channel_fee_cents: int
    commission_cents: int
    net_cents: int


@dataclass(frozen=True)
class PayoutSplit:
    gross_cents: int
    fee_cents: int
    net_cents: int


def _to_cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_sale_split(gross_cents: int, channel: str, schedule: FeeSchedule) -> SaleSplit:
    """Split a sale into (channel fee, platform commission, seller net)."""

    if gross_cents <= 0:
        raise InvalidAmount(f"gross amount must be positive, got {gross_cents}")
    rates = schedule.channels.get(channel)
    if rates is None:
        raise InvalidAmount(f"unknown payment channel {channel!r}")
    gross = Decimal(gross_cents)
    channel_fee = _to_cents(gross * rates.rate + rates.fixed_cents)
    commission = _to_cents(gross * schedule.platform_rate)
    net = gross_cents - channel_fee - commission
    if net <= 0:
        raise InvalidAmount(f"seller net is not positive (gross={gross_cents} net={net})")
    return SaleSplit(gross_cents, channel_fee, commission, net)


def compute_payout_split(gross_cents: int, schedule: FeeSchedule) -> PayoutSplit:
    """Split a payout into (network fee, net transferred). The fee is absorbed, not added."""

    fee = _to_cents(Decimal(gross_cents) * schedule.payout.rate + schedule.payout.fixed_cents)
    net = gross_cents - fee
    if net <= 0:
        raise InvalidAmount(f"payout net is not positive (gross={gross_cents} fee={fee})")
    return PayoutSplit(gross_cents, fee, net)


def format_amount(cents: int) -> str:
    """Two-decimal currency string, e.g. 8480 -> "84.80"."""

    return str((Decimal(cents) / 100).quantize(Decimal("0.01")))
