"""Minimal subject/body rendering for each notification kind."""

import html

from marketpay.services.ledger.fees import format_amount


def _money(cents) -> str:
    return f"${format_amount(int(cents or 0))}"


def _wrap(title: str, paragraphs: list[str]) -> str:
    body = "".join(f"<p>{p}</p>" for p in paragraphs)
    return f"<div><h2>{html.escape(title)}</h2>{body}</div>"


def render(kind: str, payload: dict) -> tuple[str, str]:
    """Return (subject, html) for one notification intent."""

    e = {key: html.escape(str(value)) for key, value in payload.items()}
    if kind == "purchase_confirmation":
        return (
            f"Your purchase of {payload.get('product_title', 'your product')} is confirmed!",
            _wrap(
                "Purchase Confirmed",
                [
                    f"You have successfully purchased <strong>{e.get('product_title', '')}</strong>.",
                    f"Price: {_money(payload.get('gross_cents'))}",
                    f'<a href="{e.get("access_url", "")}">Access Content</a>',
                    "This link is unique to you and should not be shared.",
                ],
            ),
        )
    if kind == "sale_notification":
        return (
            f"New Sale: {payload.get('product_title', '')}",
            _wrap(
                "New Sale!",
                [
                    f"Product: {e.get('product_title', '')}",
                    f"Amount: {_money(payload.get('gross_cents'))}",
                    f"Your Earnings: {_money(payload.get('net_cents'))}",
                    "Weekly payouts every Friday for balances at or above the minimum.",
                ],
            ),
        )
    if kind == "payout_notification":
        return (
            "Your Payout Has Been Processed",
            _wrap(
                f"Hello {payload.get('first_name', 'Seller')},",
                [
                    f"We've sent {_money(payload.get('net_cents'))} to {e.get('destination', '')}.",
                    f"Total products: {e.get('listings_count', 0)}, orders: {e.get('orders_count', 0)}, "
                    f"views: {e.get('views_count', 0)}.",
                ],
            ),
        )
    if kind == "payout_failed":
        return (
            "Action Required: Problem with Your Payout",
            _wrap(
                "Payment Issue",
                [
                    f"Amount: {_money(payload.get('gross_cents'))}",
                    f"Payout email: {e.get('destination', '')}",
                    f"Issue: {e.get('error', '')}",
                    "Please update your payout email to receive future payments.",
                ],
            ),
        )
    if kind == "min_balance_not_reached":
        return (
            "Payment Day: Balance Below Threshold",
            _wrap(
                "Payment Day, However...",
                [
                    f"Your current balance of {_money(payload.get('balance_cents'))} is below the "
                    f"{_money(payload.get('minimum_cents'))} minimum payout.",
                    "Your balance carries over until it reaches the minimum.",
                ],
            ),
        )
    if kind == "expiration_warning":
        return (
            "Your Product Link Will Expire Soon",
            _wrap(
                "Link Expiration Warning",
                [
                    f'Your product link for "{e.get("product_title", "")}" will expire in '
                    f"{e.get('hours_left', 24)} hours.",
                    f"Expires on: {e.get('expiration_date', '')}",
                ],
            ),
        )
    raise ValueError(f"unknown notification kind {kind!r}")
