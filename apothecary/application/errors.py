"""Error taxonomy raised by the application services.

Every error carries the user-facing message and the HTTP status the API
layer answers with. Soft failures (stock decrement, batch allocation,
credit release, email) are logged by the services and never raised.
"""


class ApothecaryError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(ApothecaryError):
    status_code = 400


class Forbidden(ApothecaryError):
    status_code = 403


class NotFound(ApothecaryError):
    status_code = 404


class Conflict(ApothecaryError):
    """State conflicts: stock, credits, expired or inactive records, taken slots."""
    status_code = 409


class UpstreamError(ApothecaryError):
    """The data store or an outbound RPC failed; the raw detail is embedded."""
    status_code = 502


# Order placement

class OrderError(ApothecaryError):
    status_code = 400


class ProductsUnavailable(OrderError):
    def __init__(self):
        super().__init__("Some products not found or inactive")


class ProductFetchFailed(OrderError):
    status_code = 502

    def __init__(self, detail: str):
        super().__init__(f"Failed to fetch products: {detail}")


class ProductInactive(OrderError):
    def __init__(self, name: str):
        super().__init__(f"{name} is no longer available")


class InsufficientStock(OrderError):
    status_code = 409

    def __init__(self, name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {name}. Available: {available}, Requested: {requested}"
        )
        self.available = available
        self.requested = requested


class CompoundNotFound(OrderError):
    status_code = 404

    def __init__(self):
        super().__init__("Compound not found")


class CompoundNotOwned(OrderError):
    status_code = 403

    def __init__(self):
        super().__init__("Compound not available for this account")


class CompoundPriceUnavailable(OrderError):
    def __init__(self):
        super().__init__("Compound price unavailable - please resave the blend")


class EmptyOrder(OrderError):
    def __init__(self):
        super().__init__("No valid items to order")


class OrderInsertFailed(OrderError):
    status_code = 502

    def __init__(self, detail: str):
        super().__init__(f"Failed to create order: {detail}")


class OrderItemsInsertFailed(OrderError):
    status_code = 502

    def __init__(self, detail: str):
        super().__init__(f"Failed to create order items: {detail}")
