# storefront/schemas/cart.py
from sqlmodel import SQLModel, Field

from storefront.schemas.keys import EntryKey
from storefront.schemas.product import ProductSnapshot


class LineItem(SQLModel):
    """
    One cart row for a product.

    Invariant: quantity is always > 0. A request for <= 0 is a removal.
    """

    key: EntryKey
    product_ref: str
    quantity: int = Field(gt=0)
    unit_price: float = Field(ge=0)
    sale_price: float | None = None
    product: ProductSnapshot | None = None

    @property
    def effective_price(self) -> float:
        return self.sale_price if self.sale_price is not None else self.unit_price

    @property
    def line_total(self) -> float:
        return self.effective_price * self.quantity


class CartSummary(SQLModel):
    """
    Full cart view with totals.
    """

    items: list[LineItem]
    total_quantity: int
    total_price: float
