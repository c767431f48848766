from dataclasses import dataclass

import structlog

from checkout.payments import PaymentLedger
from checkout.states import OrderStatus, PaymentStatus

logger = structlog.get_logger(__name__)

# event_type -> (payment status, order status)
EVENT_TRANSITIONS = {
    "PAYMENT.CAPTURE.COMPLETED": (PaymentStatus.SUCCEEDED, OrderStatus.PROCESSING),
    "PAYMENT.CAPTURE.DENIED": (PaymentStatus.FAILED, OrderStatus.PAYMENT_FAILED),
    "PAYMENT.CAPTURE.REFUNDED": (PaymentStatus.REFUNDED, OrderStatus.REFUNDED),
    "PAYMENT.CAPTURE.REVERSED": (PaymentStatus.REFUNDED, OrderStatus.REFUNDED),
}


@dataclass(frozen=True)
class Ack:
    received: bool = True
    applied: bool = False


class WebhookReconciler:
    """Applies payment gateway callbacks to stored payments.

    Delivery is at-least-once and may be out of order, so every event is
    acknowledged and every status move is a compare-and-set: a replayed
    event finds its target status already in place and changes nothing.
    Payments are matched by the gateway transaction id only.
    """

    def __init__(self, payments: PaymentLedger):
        self.payments = payments

    def apply(self, event: dict) -> Ack:
        if not isinstance(event, dict):
            logger.warning("Malformed webhook payload")
            return Ack()
        event_type = event.get("event_type")
        log = logger.bind(event_type=event_type, event_id=event.get("id"))

        if not isinstance(event_type, str):
            log.warning("Webhook event without a usable event type")
            return Ack()
        if event_type not in EVENT_TRANSITIONS:
            log.info("Unhandled webhook event type")
            return Ack()

        resource = event.get("resource") or {}
        transaction_id = resource.get("id") if isinstance(resource, dict) else None
        if not isinstance(transaction_id, str) or not transaction_id:
            log.warning("Webhook event without a resource id")
            return Ack()
        log = log.bind(transaction_id=transaction_id)

        payment = self.payments.find_by_transaction(transaction_id)
        if payment is None:
            log.info("No payment matches webhook transaction")
            return Ack()

        payment_status, order_status = EVENT_TRANSITIONS[event_type]
        if not self.payments.transition_payment(transaction_id, payment_status, event):
            log.info("Webhook already applied or not applicable", payment_status=payment.status)
            return Ack()

        if not self.payments.advance_order(payment.order_id, order_status):
            log.warning(
                "Order status left unchanged by webhook",
                order_id=payment.order_id,
                target=order_status.value,
            )

        log.info("Webhook applied", order_id=payment.order_id, payment_status=payment_status.value)
        return Ack(applied=True)
