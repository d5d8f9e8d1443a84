"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Auth/Staff
  2xxx: Order ledger
  3xxx: Payment / gateway
  4xxx: Checkout / composer
  5xxx: Customer blocking
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Auth/Staff ---

class UsernameExistsError(AppError):
    def __init__(self) -> None:
        super().__init__(1001, "Username already exists", 409)


class EmailExistsError(AppError):
    def __init__(self) -> None:
        super().__init__(1002, "Email already exists", 409)


class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1003, "Invalid username or password", 401)


class AccountDisabledError(AppError):
    def __init__(self) -> None:
        super().__init__(1004, "Account is disabled", 403)


class InvalidRefreshTokenError(AppError):
    def __init__(self) -> None:
        super().__init__(1005, "Refresh token is invalid or expired", 401)


class AdminRequiredError(AppError):
    def __init__(self) -> None:
        super().__init__(1006, "Administrator privileges required", 403)


# --- 2xxx: Order ledger ---

class OrderNotFoundError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(2001, f"Order not found: {order_id}", 404)


class InvalidTransitionError(AppError):
    def __init__(self, axis: str, current: str, target: str) -> None:
        self.axis = axis
        self.current = current
        self.target = target
        super().__init__(
            2002,
            f"Invalid {axis} transition: {current} -> {target}",
            422,
        )


class ConcurrentModificationError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(
            2003,
            f"Order {order_id} was modified concurrently, please retry",
            409,
        )


class OrderNotEditableError(AppError):
    def __init__(self, order_id: str, status: str) -> None:
        super().__init__(
            2004, f"Items of order {order_id} cannot be changed in status {status}", 422
        )


class OrderItemNotFoundError(AppError):
    def __init__(self, item_id: str) -> None:
        super().__init__(2005, f"Order item not found: {item_id}", 404)


class InvalidOrderEditError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(2006, detail, 422)


class RefundValidationError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(2007, f"Refund rejected: {detail}", 422)


# --- 3xxx: Payment / gateway ---

class GatewayNotConfiguredError(AppError):
    def __init__(self, method: str) -> None:
        super().__init__(3001, f"Payment gateway not available: {method}", 400)


class GatewayUnavailableError(AppError):
    """Timeout / network failure. Outcome unknown; never a payment failure."""

    def __init__(self, method: str, detail: str) -> None:
        super().__init__(
            3002, f"Gateway {method} unreachable, reconciliation pending: {detail}", 503
        )


class AdapterError(AppError):
    """Provider answered with something we cannot interpret."""

    def __init__(self, method: str, detail: str) -> None:
        super().__init__(3003, f"Unexpected response from {method}: {detail}", 502)


class PaymentDeclinedError(AppError):
    def __init__(self, method: str, detail: str) -> None:
        super().__init__(3004, f"Payment rejected by {method}: {detail}", 402)


class PaymentLinkageError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(3005, f"Callback does not match a known payment: {detail}", 400)


class PaymentAmountMismatchError(AppError):
    def __init__(self, order_id: str, expected: int, reported: int) -> None:
        super().__init__(
            3006,
            f"Verified amount {reported} does not match order {order_id} total {expected}",
            409,
        )


class PaymentNotInitiableError(AppError):
    def __init__(self, order_id: str, payment_status: str) -> None:
        super().__init__(
            3007,
            f"Order {order_id} cannot start a payment in payment status {payment_status}",
            422,
        )


# --- 4xxx: Checkout / composer ---

class IncompleteOrderNotFoundError(AppError):
    def __init__(self, incomplete_id: str) -> None:
        super().__init__(4001, f"Incomplete order not found: {incomplete_id}", 404)


class IncompleteOrderNotOpenError(AppError):
    def __init__(self, incomplete_id: str, status: str) -> None:
        super().__init__(
            4002, f"Incomplete order {incomplete_id} is already {status}", 409
        )


class ProductUnavailableError(AppError):
    def __init__(self, product_id: str) -> None:
        super().__init__(4003, f"Product not available: {product_id}", 422)


class ShippingOptionNotFoundError(AppError):
    def __init__(self, code: str) -> None:
        super().__init__(4004, f"Shipping option not found: {code}", 422)


class EmptyCartError(AppError):
    def __init__(self) -> None:
        super().__init__(4005, "Cart is empty", 422)


class OrderNumberExhaustedError(AppError):
    def __init__(self) -> None:
        super().__init__(4006, "Could not allocate a unique order number", 503)


# --- 5xxx: Customer blocking ---

class BlockedCustomerError(AppError):
    _DEFAULT_MESSAGE = "We are unable to accept orders from this customer."

    def __init__(self, custom_message: str | None = None) -> None:
        super().__init__(5001, custom_message or self._DEFAULT_MESSAGE, 403)


class BlockNotFoundError(AppError):
    def __init__(self, block_id: str) -> None:
        super().__init__(5002, f"Block not found: {block_id}", 404)


class InvalidIdentityError(AppError):
    def __init__(self) -> None:
        super().__init__(
            5003, "At least one of email, phone, device_id or ip_address is required", 422
        )
