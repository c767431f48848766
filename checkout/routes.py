from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool

from checkout.addresses import AddressBook, AddressResolver
from checkout.auth import Principal, optional_user, require_admin, verify_token
from checkout.collaborators import SqlCart, SqlProducts
from checkout.database import session_scope
from checkout.errors import Forbidden
from checkout.inventory import InventoryLedger
from checkout.orders import OrderAssembler, get_order, update_status
from checkout.payments import PaymentLedger
from checkout.schemas import (
    CheckoutRequest, OrderCreated, OrderOut, PaymentIn, PaymentOut, StatusUpdate,
)
from checkout.webhooks import WebhookReconciler

logger = structlog.get_logger(__name__)

router = APIRouter()


def build_assembler(db) -> OrderAssembler:
    cart = SqlCart(db)
    return OrderAssembler(
        db,
        addresses=AddressResolver(AddressBook(db)),
        inventory=InventoryLedger(db),
        payments=PaymentLedger(db),
        cart=cart,
        cart_mutator=cart,
        products=SqlProducts(db),
    )


def check_access(order, principal: Principal):
    if not principal.is_admin and order.user_id != principal.user_id:
        raise Forbidden("Access denied. You can only view your own orders.")


@router.post("/orders", status_code=201, response_model=OrderCreated)
def create_order(
    request: CheckoutRequest,
    principal: Optional[Principal] = Depends(optional_user),
):
    owner_id = principal.user_id if principal else None
    with session_scope() as db:
        order = build_assembler(db).checkout(owner_id, request)
        created = OrderCreated(order_id=order.id, status=order.status, total_amount=order.total_amount)
    return created


@router.get("/orders/{order_id}", response_model=OrderOut)
def read_order(order_id: int, principal: Principal = Depends(verify_token)):
    with session_scope() as db:
        order = get_order(db, order_id)
        check_access(order, principal)
        return OrderOut.model_validate(order)


@router.put("/orders/{order_id}/status", response_model=OrderOut)
def change_status(order_id: int, body: StatusUpdate, admin: Principal = Depends(require_admin)):
    with session_scope() as db:
        order = update_status(db, order_id, body.status, body.tracking_number)
        return OrderOut.model_validate(order)


@router.post("/orders/{order_id}/payments", status_code=201, response_model=PaymentOut)
def create_payment(order_id: int, body: PaymentIn, principal: Principal = Depends(verify_token)):
    with session_scope() as db:
        check_access(get_order(db, order_id), principal)
        payment = PaymentLedger(db).record_payment(
            order_id,
            body.amount,
            body.payment_method,
            body.transaction_id,
            body.status,
            body.gateway_response,
        )
        return PaymentOut.model_validate(payment)


@router.get("/orders/{order_id}/payments", response_model=List[PaymentOut])
def list_payments(order_id: int, principal: Principal = Depends(verify_token)):
    with session_scope() as db:
        check_access(get_order(db, order_id), principal)
        return [PaymentOut.model_validate(p) for p in PaymentLedger(db).list_payments(order_id)]


@router.get("/orders/{order_id}/payments/{payment_id}", response_model=PaymentOut)
def read_payment(order_id: int, payment_id: int, principal: Principal = Depends(verify_token)):
    with session_scope() as db:
        check_access(get_order(db, order_id), principal)
        return PaymentOut.model_validate(PaymentLedger(db).get_payment(order_id, payment_id))


def reconcile(event):
    with session_scope() as db:
        return WebhookReconciler(PaymentLedger(db)).apply(event)


@router.post("/webhooks/payment-gateway")
async def payment_gateway_webhook(request: Request):
    # The gateway always gets an ack; redelivery would not fix a business mismatch
    try:
        event = await request.json()
    except ValueError:
        logger.warning("Undecodable webhook body")
        return {"received": True}

    try:
        await run_in_threadpool(reconcile, event)
    except Exception:
        logger.exception("Webhook processing failed")
    return {"received": True}
