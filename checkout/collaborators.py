"""Narrow interfaces to the cart and catalogue, which live outside checkout.

OrderAssembler only ever talks to these; the SQL-backed classes are the
default wiring used by the HTTP routes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from checkout.models import CartItem, Product


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    price_at_addition: Decimal


@dataclass(frozen=True)
class ProductInfo:
    product_id: int
    name: str
    price: Decimal
    stock_quantity: int


class CartReader(ABC):
    @abstractmethod
    def get_cart_lines(self, owner_id: int) -> List[CartLine]:
        ...


class CartMutator(ABC):
    @abstractmethod
    def clear_cart(self, owner_id: int) -> None:
        ...


class ProductReader(ABC):
    @abstractmethod
    def get_product(self, product_id: int) -> Optional[ProductInfo]:
        ...


class SqlCart(CartReader, CartMutator):
    def __init__(self, db: Session):
        self.db = db

    def get_cart_lines(self, owner_id: int) -> List[CartLine]:
        rows = self.db.scalars(
            select(CartItem).where(CartItem.user_id == owner_id).order_by(CartItem.id)
        )
        return [CartLine(r.product_id, r.quantity, r.price_at_addition) for r in rows]

    def clear_cart(self, owner_id: int) -> None:
        self.db.execute(
            delete(CartItem)
            .where(CartItem.user_id == owner_id)
            .execution_options(synchronize_session=False)
        )


class SqlProducts(ProductReader):
    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: int) -> Optional[ProductInfo]:
        product = self.db.get(Product, product_id)
        if product is None:
            return None
        return ProductInfo(product.id, product.name, product.price, product.stock_quantity)
