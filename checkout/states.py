from enum import Enum

from checkout.errors import IllegalTransition


class OrderStatus(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    PAYMENT_FAILED = "payment_failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


ORDER_TRANSITIONS = {
    OrderStatus.PENDING_PAYMENT: {
        OrderStatus.PROCESSING,
        OrderStatus.PAYMENT_FAILED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PROCESSING: {
        OrderStatus.SHIPPED,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
    },
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.REFUNDED},
    OrderStatus.PAYMENT_FAILED: {OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.REFUNDED: set(),
}

PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {
        PaymentStatus.SUCCEEDED,
        PaymentStatus.FAILED,
        PaymentStatus.REFUNDED,
    },
    PaymentStatus.SUCCEEDED: {PaymentStatus.REFUNDED},
    # A capture can still complete after an earlier denial
    PaymentStatus.FAILED: {PaymentStatus.SUCCEEDED},
    PaymentStatus.REFUNDED: set(),
}


def order_sources(target: OrderStatus) -> list:
    """Every order status from which ``target`` may be reached."""
    return [s.value for s, allowed in ORDER_TRANSITIONS.items() if target in allowed]


def payment_sources(target: PaymentStatus) -> list:
    return [s.value for s, allowed in PAYMENT_TRANSITIONS.items() if target in allowed]


def ensure_order_transition(current: str, target: str) -> None:
    current, target = OrderStatus(current), OrderStatus(target)
    if target not in ORDER_TRANSITIONS[current]:
        raise IllegalTransition("order", current.value, target.value)
