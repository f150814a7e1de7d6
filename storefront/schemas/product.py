# storefront/schemas/product.py
from typing import Any

from pydantic import ConfigDict
from sqlmodel import SQLModel, Field


class ProductSnapshot(SQLModel):
    """
    Denormalized copy of catalog fields, taken when the entry was loaded
    or saved. Display only: never re-validated against the catalog.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    price: float = Field(default=0.0, ge=0)
    sale_price: float | None = None
    image: str | None = None
    category: str | None = None
    description: str | None = None
    discount: float | None = None

    @property
    def effective_price(self) -> float:
        """Sale price when one is set, list price otherwise."""
        return self.sale_price if self.sale_price is not None else self.price

    @classmethod
    def from_row(cls, product_id: Any, row: dict[str, Any] | None) -> "ProductSnapshot":
        """
        Build a snapshot from an embedded `products(...)` row.

        The join can come back empty when the catalog row was deleted;
        we still keep the reference so the entry stays addressable.
        """
        data = dict(row or {})
        data["id"] = str(data.get("id") or product_id)
        return cls.model_validate(data)
