"""Request bodies for the ledger API."""

from pydantic import BaseModel, Field


class PayoutDestinationRequest(BaseModel):
    payout_email: str = Field(min_length=3, max_length=320)
