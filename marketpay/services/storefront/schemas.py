"""Request bodies for the storefront API."""

from pydantic import BaseModel, EmailStr, Field


class ProductCreateRequest(BaseModel):
    owner_id: str
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    category: str | None = None
    price_cents: int = Field(gt=0)
    currency: str = "usd"
    file_path: str
    cover_path: str | None = None


class ProductCreateResponse(BaseModel):
    product_id: str
    expires_at: str


class BuyerEmailRequest(BaseModel):
    product_id: str
    email: EmailStr


class PaymentSessionResponse(BaseModel):
    session_id: str


class CheckoutStartRequest(BaseModel):
    product_id: str
    success_url: str
    cancel_url: str


class CheckoutStartResponse(BaseModel):
    checkout_session_id: str
    url: str
