from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

from common.utils.json_model import JsonModel


class ErrorDetails(JsonModel):
    scope: str
    code: str
    message: str
    details: dict[str, Any] | None = None


class ErrorConfig(JsonModel):
    """A registered error kind. ``create`` builds a raisable AppException of this kind.

    When the cause is itself an AppException the new error keeps the cause's scope, code,
    status and retryability, prefixes its message and merges the details. Wrapping never
    hides what actually went wrong.
    """

    scope: str
    code: str
    default_message: str
    http_status: int | None = None
    retryable: bool = False

    def create(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        http_status: int | None = None,
        cause: BaseException | None = None,
        retryable: bool | None = None,
    ) -> AppException:
        message = self.default_message if message is None else message
        if isinstance(cause, AppException):
            inner = cause.details
            merged = {**(inner.details or {}), **(details or {})} or None
            error = AppError(
                details=ErrorDetails(scope=inner.scope, code=inner.code, message=f"{message}: {inner.message}", details=merged),
                http_status=cause.http_status,
                retryable=cause.retryable,
                cause=cause,
            )
        else:
            error = AppError(
                details=ErrorDetails(scope=self.scope, code=self.code, message=message, details=details),
                http_status=self.http_status if http_status is None else http_status,
                retryable=(self.retryable if retryable is None else retryable) and (cause is None or should_retry_exception(cause)),
                cause=cause,
            )
        return AppException(error)

    def is_(self, error: BaseException) -> bool:
        return isinstance(error, AppException) and (error.details.scope, error.details.code) == (self.scope, self.code)


class Errors:
    class Generic:
        INVALID_INPUT = ErrorConfig(scope="generic", code="invalid_input", default_message="Invalid input", http_status=400)
        ACCESS_DENIED = ErrorConfig(scope="generic", code="access_denied", default_message="Access denied", http_status=401)
        INTERNAL_ERROR = ErrorConfig(
            scope="generic", code="internal_error", default_message="Unable to complete your request.", http_status=500
        )

    class Store:
        CATALOG_UNAVAILABLE = ErrorConfig(
            scope="store", code="catalog_unavailable", default_message="Unable to load the catalog", http_status=503, retryable=True
        )
        DISCOUNT_UNAVAILABLE = ErrorConfig(
            scope="store", code="discount_unavailable", default_message="Unable to compute discount", http_status=503, retryable=True
        )
        UNKNOWN_OFFER = ErrorConfig(scope="store", code="unknown_offer", default_message="Requested offer does not exist", http_status=400)
        OUT_OF_STOCK = ErrorConfig(scope="store", code="out_of_stock", default_message="Requested items are out of stock", http_status=409)
        INSUFFICIENT_INVENTORY = ErrorConfig(
            scope="store", code="insufficient_inventory", default_message="You do not own the items you are trying to ascend", http_status=400
        )
        EMPTY_ASCENSION_REQUEST = ErrorConfig(
            scope="store", code="empty_ascension_request", default_message="No items selected for ascension", http_status=400
        )
        ASCENSION_DISABLED = ErrorConfig(scope="store", code="ascension_disabled", default_message="Ascension is disabled", http_status=400)
        PAYMENT_METHOD_DISABLED = ErrorConfig(
            scope="store", code="payment_method_disabled", default_message="This payment method is disabled", http_status=400
        )
        UNKNOWN_PAYMENT_METHOD = ErrorConfig(
            scope="store", code="unknown_payment_method", default_message="Unknown payment method", http_status=400
        )
        PAYMENT_PROVIDER_ERROR = ErrorConfig(
            scope="store", code="payment_provider_error", default_message="Unable to complete your request.", http_status=500, retryable=True
        )
        PAYMENT_VERIFICATION_FAILED = ErrorConfig(
            scope="store", code="payment_verification_failed", default_message="Payment could not be verified", http_status=400
        )
        ZERO_ADDRESS = ErrorConfig(
            scope="store", code="zero_address", default_message="Link a wallet before completing this purchase", http_status=400
        )
        FULFILLMENT_PARTIAL_FAILURE = ErrorConfig(
            scope="store", code="fulfillment_partial_failure", default_message="Some items could not be delivered", http_status=500
        )
        ORDER_NOT_FOUND = ErrorConfig(scope="store", code="order_not_found", default_message="Order not found", http_status=404)
        ORDER_BUSY = ErrorConfig(
            scope="store", code="order_busy", default_message="Order is already being processed", http_status=409, retryable=True
        )
        TRANSACTION_PENDING = ErrorConfig(
            scope="store", code="transaction_pending", default_message="Transaction is not mined yet", http_status=409, retryable=True
        )
        ORDER_NEEDS_RECONCILIATION = ErrorConfig(
            scope="store", code="order_needs_reconciliation", default_message="Order delivery was interrupted", http_status=409
        )
        INVENTORY_UNAVAILABLE = ErrorConfig(
            scope="store", code="inventory_unavailable", default_message="Unable to read player inventory", http_status=503, retryable=True
        )
        EXCHANGE_RATE_UNAVAILABLE = ErrorConfig(
            scope="store", code="exchange_rate_unavailable", default_message="Unable to fetch exchange rate", http_status=503, retryable=True
        )
        CHAIN_UNAVAILABLE = ErrorConfig(
            scope="store", code="chain_unavailable", default_message="Unable to reach the blockchain", http_status=503, retryable=True
        )
        IDENTITY_UNAVAILABLE = ErrorConfig(
            scope="store", code="identity_unavailable", default_message="Unable to reach the identity platform", http_status=503, retryable=True
        )


class AppError(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    details: ErrorDetails
    http_status: int | None = None
    retryable: bool = False
    cause: BaseException | None = None


class AppException(Exception):
    """Raisable wrapper around an AppError."""

    def __init__(self, app_error: AppError) -> None:
        self.app_error = app_error
        super().__init__(app_error.details.message)

    @property
    def details(self) -> ErrorDetails:
        return self.app_error.details

    @property
    def message(self) -> str:
        return self.app_error.details.message

    @property
    def code(self) -> str:
        return self.app_error.details.code

    @property
    def http_status(self) -> int | None:
        return self.app_error.http_status

    @property
    def retryable(self) -> bool:
        return self.app_error.retryable

    @property
    def cause(self) -> BaseException | None:
        return self.app_error.cause


def should_retry_exception(exception: BaseException) -> bool:
    """Registered errors decide for themselves; anything unexpected is assumed transient."""
    if isinstance(exception, AppException):
        return exception.retryable
    return True
