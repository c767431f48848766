from datetime import datetime
from decimal import Decimal
from typing import Any, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, PositiveInt

from checkout.states import OrderStatus, PaymentStatus


# Address input is a tagged variant: a reference to a stored address,
# a full set of inline fields, or (billing only) "same as shipping".

class ExistingAddress(BaseModel):
    address_id: PositiveInt


class InlineAddress(BaseModel):
    full_name: str
    address_line1: str
    address_line2: Optional[str] = None
    city: str
    state_province: str = Field(validation_alias=AliasChoices("state_province", "state"))
    postal_code: str
    country: str
    phone: Optional[str] = None


class SameAsShipping(BaseModel):
    same_as_shipping: Literal[True]


AddressInput = Union[ExistingAddress, InlineAddress]


class OrderLineIn(BaseModel):
    product_id: PositiveInt
    quantity: PositiveInt


class PaymentIn(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    payment_method: str = Field(min_length=1, max_length=50)
    transaction_id: str = Field(min_length=1, max_length=255)
    status: PaymentStatus
    gateway_response: Optional[Any] = None


class CheckoutRequest(BaseModel):
    shipping_address: AddressInput
    billing_address: Union[SameAsShipping, ExistingAddress, InlineAddress]
    email: Optional[EmailStr] = None
    shipping_method: str = "standard"
    notes: Optional[str] = None
    items: Optional[List[OrderLineIn]] = None
    payment: Optional[PaymentIn] = None


class StatusUpdate(BaseModel):
    status: OrderStatus
    tracking_number: Optional[str] = None


class OrderCreated(BaseModel):
    order_id: int
    status: OrderStatus
    total_amount: Decimal


class OrderItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    quantity: int
    price_at_purchase: Decimal


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    amount: Decimal
    payment_method: str
    transaction_id: str
    status: PaymentStatus
    gateway_response: Optional[str] = None
    payment_date: Optional[datetime] = None


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: Optional[int] = None
    status: OrderStatus
    total_amount: Decimal
    shipping_address_id: int
    billing_address_id: int
    shipping_method: Optional[str] = None
    tracking_number: Optional[str] = None
    customer_notes: Optional[str] = None
    email: Optional[str] = None
    created_at: Optional[datetime] = None
    items: List[OrderItemOut] = []
    payments: List[PaymentOut] = []
