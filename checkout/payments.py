import json
from decimal import Decimal
from typing import Any, List, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from checkout.errors import NotFound, ValidationError
from checkout.models import Order, Payment
from checkout.states import OrderStatus, PaymentStatus, order_sources, payment_sources

logger = structlog.get_logger(__name__)


def encode_gateway_response(gateway_response: Any) -> Optional[str]:
    if gateway_response is None or isinstance(gateway_response, str):
        return gateway_response
    return json.dumps(gateway_response, default=str)


class PaymentLedger:
    """Payment attempts against orders, and the order/payment status moves they drive."""

    def __init__(self, db: Session):
        self.db = db

    def record_payment(
        self,
        order_id: int,
        amount: Decimal,
        payment_method: str,
        transaction_id: str,
        status: str,
        gateway_response: Any = None,
    ) -> Payment:
        if not (order_id and amount and payment_method and transaction_id and status):
            raise ValidationError(
                "Order ID, amount, payment method, transaction ID, and status are required."
            )
        status = PaymentStatus(status)

        order = self.db.get(Order, order_id)
        if order is None:
            raise NotFound(f"Order with id={order_id} not found.")
        if self.find_by_transaction(transaction_id) is not None:
            raise ValidationError(f"Transaction {transaction_id} has already been recorded.")

        payment = Payment(
            order_id=order.id,
            amount=amount,
            payment_method=payment_method,
            transaction_id=transaction_id,
            status=status.value,
            gateway_response=encode_gateway_response(gateway_response),
        )
        self.db.add(payment)
        try:
            self.db.flush()
        except IntegrityError as e:
            # Another writer recorded this transaction after our lookup
            raise ValidationError(f"Transaction {transaction_id} has already been recorded.") from e
        logger.info(
            "Payment recorded",
            order_id=order.id,
            transaction_id=transaction_id,
            status=status.value,
        )

        if status is PaymentStatus.SUCCEEDED:
            self.advance_order(order.id, OrderStatus.PROCESSING, only_from=[OrderStatus.PENDING_PAYMENT.value])
        return payment

    def find_by_transaction(self, transaction_id: str) -> Optional[Payment]:
        return self.db.scalar(select(Payment).where(Payment.transaction_id == transaction_id))

    def list_payments(self, order_id: int) -> List[Payment]:
        if self.db.get(Order, order_id) is None:
            raise NotFound(f"Order with id={order_id} not found.")
        return list(self.db.scalars(
            select(Payment)
            .where(Payment.order_id == order_id)
            .order_by(Payment.payment_date.desc(), Payment.id.desc())
        ))

    def get_payment(self, order_id: int, payment_id: int) -> Payment:
        payment = self.db.scalar(
            select(Payment).where(Payment.id == payment_id, Payment.order_id == order_id)
        )
        if payment is None:
            raise NotFound(f"Payment with id={payment_id} for order {order_id} not found.")
        return payment

    def transition_payment(self, transaction_id: str, target: PaymentStatus, gateway_response: Any = None) -> bool:
        """Compare-and-set a payment's status.

        Only applies when the current status may legally move to ``target``;
        a payment already in ``target`` is left alone. Returns whether a row
        changed.
        """
        values = {"status": target.value}
        if gateway_response is not None:
            values["gateway_response"] = encode_gateway_response(gateway_response)
        result = self.db.execute(
            update(Payment)
            .where(
                Payment.transaction_id == transaction_id,
                Payment.status.in_(payment_sources(target)),
            )
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount > 0

    def advance_order(self, order_id: int, target: OrderStatus, only_from: Optional[List[str]] = None) -> bool:
        """Compare-and-set an order's status along a legal transition."""
        sources = order_sources(target)
        if only_from is not None:
            sources = [s for s in sources if s in only_from]
        result = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status.in_(sources))
            .values(status=target.value)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount:
            logger.info("Order status changed", order_id=order_id, status=target.value)
        return result.rowcount > 0
