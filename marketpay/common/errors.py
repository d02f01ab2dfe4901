"""Domain exception taxonomy.

HTTP layers map these to status codes; scheduled jobs catch them per item so
one failure never aborts a batch.
"""


class MarketpayError(Exception):
    """Base class for all domain errors."""


class InvalidAmount(MarketpayError):
    """Fee math produced a non-positive or otherwise unusable amount."""


class SignatureError(MarketpayError):
    """Inbound webhook payload failed signature verification."""


class ProductNotFound(MarketpayError):
    pass


class ProductExpired(MarketpayError):
    """Listing is past its expiration time, swept or not."""


class SessionNotFound(MarketpayError):
    pass


class SessionAlreadyCompleted(MarketpayError):
    pass


class OrderNotFound(MarketpayError):
    pass


class AccessDenied(MarketpayError):
    """Content access attempted from a device other than the bound one."""


class Forbidden(MarketpayError):
    pass


class InvalidPayoutDestination(MarketpayError):
    """Payout email failed syntax validation."""


class ExternalServiceError(MarketpayError):
    """A call to storage, payout network, email or checkout provider failed."""


class StorageError(ExternalServiceError):
    pass


class DeliveryError(ExternalServiceError):
    pass


class CheckoutError(ExternalServiceError):
    pass


class PayoutNetworkError(ExternalServiceError):
    """Payout call failed; `error_type` is a coarse classification."""

    def __init__(self, message: str, error_type: str = "unknown") -> None:
        super().__init__(message)
        self.error_type = error_type


HTTP_STATUS: dict[type[MarketpayError], int] = {
    InvalidAmount: 400,
    InvalidPayoutDestination: 400,
    SignatureError: 400,
    SessionAlreadyCompleted: 400,
    AccessDenied: 403,
    Forbidden: 403,
    ProductNotFound: 404,
    SessionNotFound: 404,
    OrderNotFound: 404,
    ProductExpired: 410,
    ExternalServiceError: 502,
}


def http_status(exc: MarketpayError) -> int:
    """Status code for a domain error, resolved along its class hierarchy."""

    for cls in type(exc).__mro__:
        if cls in HTTP_STATUS:
            return HTTP_STATUS[cls]
    return 500
