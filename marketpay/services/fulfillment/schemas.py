"""Typed view of the payment provider's checkout-completed event."""

from pydantic import BaseModel, EmailStr, ValidationError

CHECKOUT_COMPLETED = "checkout.session.completed"


class CheckoutCompleted(BaseModel):
    event_id: str
    external_session_id: str
    app_session_id: str
    product_id: str
    seller_id: str
    product_title: str = "Product"
    buyer_email: EmailStr
    payment_intent_id: str | None = None
    channel: str = "stripe"


def parse_checkout_completed(event: dict) -> CheckoutCompleted | None:
    """Extract fulfillment fields, or None when required metadata is missing."""

    obj = (event.get("data") or {}).get("object") or {}
    metadata = obj.get("metadata") or {}
    buyer_email = (obj.get("customer_details") or {}).get("email") or obj.get("customer_email")
    required = (
        metadata.get("app_session_id"),
        metadata.get("app_product_id"),
        metadata.get("app_seller_uid"),
        buyer_email,
    )
    if not all(required) or not event.get("id"):
        return None
    try:
        return CheckoutCompleted(
            event_id=event["id"],
            external_session_id=obj.get("id") or "",
            app_session_id=metadata["app_session_id"],
            product_id=metadata["app_product_id"],
            seller_id=metadata["app_seller_uid"],
            product_title=metadata.get("app_product_title") or "Product",
            buyer_email=buyer_email,
            payment_intent_id=obj.get("payment_intent"),
        )
    except ValidationError:
        return None
