"""Seller aggregate recompute.

`UserStats` is a projection: it is rebuilt from surviving rows and
overwritten wholesale, never adjusted from a previously cached value.
"""

from sqlalchemy import func, select, update

from marketpay.common.clock import utcnow
from marketpay.common.state_machine import FULFILLED_STATUSES
from marketpay.services.catalog.models import Product, ProductView, UserStats
from marketpay.services.fulfillment.models import Order


def recompute_user_stats(db, user_id: str) -> UserStats:
    """Full recount of one seller's listings, views, orders and revenue."""

    listings = db.execute(select(func.count()).select_from(Product).where(Product.owner_id == user_id)).scalar_one()
    views = db.execute(
        select(func.count()).select_from(ProductView).where(ProductView.seller_id == user_id)
    ).scalar_one()
    orders = db.execute(select(func.count()).select_from(Order).where(Order.seller_id == user_id)).scalar_one()
    shipped = db.execute(
        select(func.count())
        .select_from(Order)
        .where(Order.seller_id == user_id, Order.status.in_(FULFILLED_STATUSES))
    ).scalar_one()
    revenue = db.execute(
        select(func.coalesce(func.sum(Order.net_cents), 0)).where(
            Order.seller_id == user_id, Order.status != "cancelled"
        )
    ).scalar_one()

    stats = db.get(UserStats, user_id)
    if stats is None:
        stats = UserStats(user_id=user_id)
        db.add(stats)
    stats.listings_count = int(listings)
    stats.views_count = int(views)
    stats.orders_count = int(orders)
    stats.shipped_count = int(shipped)
    stats.revenue_cents = int(revenue)
    stats.updated_at = utcnow()
    return stats


def bump_user_stats(db, user_id: str, **deltas: int) -> None:
    """Apply counter deltas to a seller's stats row, creating it if absent."""

    result = db.execute(
        update(UserStats)
        .where(UserStats.user_id == user_id)
        .values(
            updated_at=utcnow(),
            **{name: getattr(UserStats, name) + delta for name, delta in deltas.items()},
        )
    )
    if result.rowcount == 0:
        db.add(UserStats(user_id=user_id, **deltas))
        db.flush()
