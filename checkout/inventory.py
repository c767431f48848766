import structlog
from sqlalchemy import update
from sqlalchemy.orm import Session

from checkout.errors import ValidationError
from checkout.models import Product

logger = structlog.get_logger(__name__)


class InventoryLedger:
    """Stock reservations over ``products.stock_quantity``."""

    def __init__(self, db: Session):
        self.db = db

    def reserve(self, product_id: int, quantity: int) -> bool:
        """Take ``quantity`` units of a product out of stock.

        The decrement is a single conditional UPDATE, so two concurrent
        reservations can never both pass the stock check. Returns False,
        leaving stock untouched, when fewer than ``quantity`` units remain.
        """
        if quantity <= 0:
            raise ValidationError(f"Quantity for product {product_id} must be positive.")

        result = self.db.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock_quantity >= quantity)
            .values(stock_quantity=Product.stock_quantity - quantity)
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount == 0:
            logger.info("Stock reservation refused", product_id=product_id, quantity=quantity)
            return False
        return True
