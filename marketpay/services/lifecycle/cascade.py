"""Declarative product cascade shared by the sweeper and owner deletion.

Each step names a model and the column tying it to a product. Steps marked
`via_orders` hold an order id instead and are matched through the product's
orders, so they must run before `Order` itself. Ledger tables
(`transactions`, `payout_records`) have no step here and are never deleted.
"""

from dataclasses import dataclass, field

from sqlalchemy import delete, select
from sqlalchemy.orm import sessionmaker

from marketpay.common.errors import StorageError
from marketpay.common.logging import logger
from marketpay.common.metrics import cascade_rows_deleted_total, storage_failures_total
from marketpay.common.storage import ObjectStorage
from marketpay.services.catalog.models import LinkGenerationDetail, PaymentSession, Product, ProductView
from marketpay.services.fulfillment.models import AccessAttempt, AccessLog, Order
from marketpay.services.notification.models import EmailSentLog


@dataclass(frozen=True)
class CascadeStep:
    model: type
    column: str
    via_orders: bool = False

    def criterion(self, product_id: str):
        column = getattr(self.model, self.column)
        if self.via_orders:
            return column.in_(select(Order.id).where(Order.product_id == product_id))
        return column == product_id


PRODUCT_CASCADE: tuple[CascadeStep, ...] = (
    CascadeStep(ProductView, "product_id"),
    CascadeStep(AccessLog, "order_id", via_orders=True),
    CascadeStep(AccessAttempt, "order_id", via_orders=True),
    CascadeStep(Order, "product_id"),
    CascadeStep(PaymentSession, "product_id"),
    CascadeStep(EmailSentLog, "product_id"),
    CascadeStep(LinkGenerationDetail, "product_id"),
)


@dataclass
class PurgeResult:
    product_id: str
    owner_id: str
    rows_deleted: dict[str, int] = field(default_factory=dict)
    failed_steps: list[str] = field(default_factory=list)
    complete: bool = False


def delete_in_batches(session_factory: sessionmaker, model, criterion, batch_size: int) -> int:
    """Delete matching rows in primary-key slices, committing each slice."""

    pk = model.__mapper__.primary_key[0]
    total = 0
    while True:
        with session_factory() as db:
            ids = db.execute(select(pk).where(criterion).limit(batch_size)).scalars().all()
            if not ids:
                return total
            db.execute(delete(model).where(pk.in_(ids)).execution_options(synchronize_session=False))
            db.commit()
        total += len(ids)
        if len(ids) < batch_size:
            return total


async def _delete_object(storage: ObjectStorage, path: str | None, product_id: str) -> None:
    if not path:
        return
    try:
        await storage.delete(path)
    except StorageError as exc:
        storage_failures_total.labels(operation="delete").inc()
        logger.warning("storage delete failed product_id=%s path=%s error=%s", product_id, path, exc)


async def purge_product(
    session_factory: sessionmaker,
    storage: ObjectStorage,
    product: Product,
    batch_size: int,
    cascade: tuple[CascadeStep, ...] = PRODUCT_CASCADE,
) -> PurgeResult:
    """Remove a product's objects and dependent rows, then the product row.

    A failing step is logged and the remaining steps still run. The product
    row is only deleted when every step succeeded, so a later sweep picks the
    leftovers up again.
    """

    result = PurgeResult(product_id=product.id, owner_id=product.owner_id)
    await _delete_object(storage, product.file_path, product.id)
    await _delete_object(storage, product.cover_path, product.id)

    for step in cascade:
        table = step.model.__tablename__
        try:
            count = delete_in_batches(session_factory, step.model, step.criterion(product.id), batch_size)
        except Exception as exc:
            logger.exception("cascade step failed product_id=%s table=%s error=%s", product.id, table, exc)
            result.failed_steps.append(table)
            continue
        result.rows_deleted[table] = count
        if count:
            cascade_rows_deleted_total.labels(table=table).inc(count)

    if result.failed_steps:
        logger.error("product purge incomplete product_id=%s failed_steps=%s", product.id, result.failed_steps)
        return result

    with session_factory() as db:
        db.execute(delete(Product).where(Product.id == product.id))
        db.commit()
    result.complete = True
    logger.info("product purged product_id=%s rows_deleted=%s", product.id, result.rows_deleted)
    return result
