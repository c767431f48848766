class CheckoutError(Exception):
    """Base for every business failure the service reports to its callers."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CheckoutError):
    status_code = 400


class IllegalTransition(ValidationError):
    def __init__(self, entity: str, current: str, target: str):
        super().__init__(f"Cannot move {entity} from '{current}' to '{target}'.")
        self.current = current
        self.target = target


class InsufficientStock(CheckoutError):
    status_code = 400

    def __init__(self, product_id: int, name: str, requested: int, available: int):
        super().__init__(
            f"Not enough stock for product: {name}. "
            f"Requested: {requested}, Available: {available}"
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class EmptyOrder(CheckoutError):
    status_code = 400

    def __init__(self, message: str = "Cart is empty. Cannot create order."):
        super().__init__(message)


class InvalidAddress(CheckoutError):
    status_code = 400


class Forbidden(CheckoutError):
    status_code = 403


class NotFound(CheckoutError):
    status_code = 404


class PersistenceFailure(CheckoutError):
    status_code = 500
