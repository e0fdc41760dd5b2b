# app/domain/errors.py


class CheckoutError(Exception):
    """
    Bazowy blad domeny checkout.
    Kazdy blad niesie kod, komunikat dla klienta i status HTTP.
    """

    status_code = 500
    code = "CHECKOUT_FAILED"
    retryable = False

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_detail(self) -> dict:
        return {"code": self.code, "message": self.message, "retryable": self.retryable}


class ValidationError(CheckoutError):
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(ValidationError):
    status_code = 404
    code = "NOT_FOUND"


class EmptyCartError(ValidationError):
    code = "EMPTY_CART"


class CouponRejected(ValidationError):
    code = "INVALID_COUPON"


class GiftCardRejected(ValidationError):
    code = "INVALID_GIFT_CARD"


class NegativeTotalError(ValidationError):
    code = "NEGATIVE_TOTAL"


class ResourceExhaustionError(ValidationError):
    code = "RESOURCE_EXHAUSTED"


class InsufficientStockError(ResourceExhaustionError):
    code = "INSUFFICIENT_STOCK"


class GiftCardBalanceError(ResourceExhaustionError):
    code = "INSUFFICIENT_GIFT_CARD_BALANCE"


class CouponUsageExhausted(ResourceExhaustionError):
    code = "COUPON_EXHAUSTED"


class ConflictError(CheckoutError):
    """Przejsciowy - mozna ponowic z tym samym kluczem idempotencji."""

    status_code = 409
    code = "CONFLICT"
    retryable = True


class FatalError(CheckoutError):
    status_code = 500
    code = "INTERNAL_ERROR"
