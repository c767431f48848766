from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

import structlog
from sqlalchemy import update
from sqlalchemy.orm import Session

from checkout.addresses import AddressResolver
from checkout.collaborators import CartMutator, CartReader, ProductReader
from checkout.errors import EmptyOrder, InsufficientStock, NotFound, ValidationError
from checkout.inventory import InventoryLedger
from checkout.models import Order, OrderItem
from checkout.payments import PaymentLedger
from checkout.schemas import CheckoutRequest, SameAsShipping
from checkout.states import OrderStatus, ensure_order_transition

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Line:
    product_id: int
    quantity: int
    price: Decimal


class OrderAssembler:
    """Turns a cart or an explicit item list into a persisted order.

    Every write goes through the session handed in; the caller owns the
    transaction and commits only once ``checkout`` returns, so any failure
    leaves no order, no items, no stock decrement and an untouched cart.
    """

    def __init__(
        self,
        db: Session,
        addresses: AddressResolver,
        inventory: InventoryLedger,
        payments: PaymentLedger,
        cart: CartReader,
        cart_mutator: CartMutator,
        products: ProductReader,
    ):
        self.db = db
        self.addresses = addresses
        self.inventory = inventory
        self.payments = payments
        self.cart = cart
        self.cart_mutator = cart_mutator
        self.products = products

    def checkout(self, owner_id: Optional[int], request: CheckoutRequest) -> Order:
        if owner_id is None and not request.email:
            raise ValidationError("An email address is required for guest checkout.")

        shipping_address_id = self.addresses.resolve(owner_id, request.shipping_address, "shipping")
        if isinstance(request.billing_address, SameAsShipping):
            billing_address_id = shipping_address_id
        else:
            billing_address_id = self.addresses.resolve(owner_id, request.billing_address, "billing")

        from_cart = not request.items
        lines = self._cart_lines(owner_id) if from_cart else self._direct_lines(request)
        if not lines:
            if owner_id is None:
                raise EmptyOrder("No items provided for order.")
            raise EmptyOrder()

        for line in lines:
            if not self.inventory.reserve(line.product_id, line.quantity):
                product = self.products.get_product(line.product_id)
                if product is None:
                    raise ValidationError(f"Product with id={line.product_id} not found.")
                raise InsufficientStock(
                    line.product_id, product.name, line.quantity, product.stock_quantity
                )

        order = Order(
            user_id=owner_id,
            status=OrderStatus.PENDING_PAYMENT.value,
            total_amount=sum((line.price * line.quantity for line in lines), Decimal("0")),
            shipping_address_id=shipping_address_id,
            billing_address_id=billing_address_id,
            shipping_method=request.shipping_method or "standard",
            customer_notes=request.notes,
            email=request.email,
        )
        order.items = [
            OrderItem(product_id=line.product_id, quantity=line.quantity, price_at_purchase=line.price)
            for line in lines
        ]
        self.db.add(order)
        self.db.flush()

        if request.payment is not None:
            self.payments.record_payment(
                order.id,
                request.payment.amount,
                request.payment.payment_method,
                request.payment.transaction_id,
                request.payment.status,
                request.payment.gateway_response,
            )

        if from_cart:
            self.cart_mutator.clear_cart(owner_id)

        logger.info(
            "Order created",
            order_id=order.id,
            owner_id=owner_id,
            lines=len(lines),
            total_amount=str(order.total_amount),
            from_cart=from_cart,
        )
        return order

    def _cart_lines(self, owner_id: Optional[int]) -> List[Line]:
        if owner_id is None:
            return []
        # The cart's captured price is authoritative, not the product's live price
        return [
            Line(c.product_id, c.quantity, Decimal(c.price_at_addition))
            for c in self.cart.get_cart_lines(owner_id)
        ]

    def _direct_lines(self, request: CheckoutRequest) -> List[Line]:
        lines = []
        for item in request.items:
            product = self.products.get_product(item.product_id)
            if product is None:
                raise ValidationError(f"Product with id={item.product_id} not found.")
            lines.append(Line(item.product_id, item.quantity, Decimal(product.price)))
        return lines


def get_order(db: Session, order_id: int) -> Order:
    order = db.get(Order, order_id)
    if order is None:
        raise NotFound(f"Order with id={order_id} not found.")
    return order


def update_status(db: Session, order_id: int, status: str, tracking_number: Optional[str] = None) -> Order:
    """Admin status change, checked against the order state machine."""
    order = get_order(db, order_id)
    current = order.status
    ensure_order_transition(current, status)

    values = {"status": OrderStatus(status).value}
    if tracking_number and status == OrderStatus.SHIPPED:
        values["tracking_number"] = tracking_number

    result = db.execute(
        update(Order)
        .where(Order.id == order_id, Order.status == current)
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount == 0:
        # Someone else moved the order between our read and write
        raise ValidationError(f"Order {order_id} changed status concurrently; retry the update.")

    logger.info("Order status updated", order_id=order_id, previous=current, status=values["status"])
    return order
