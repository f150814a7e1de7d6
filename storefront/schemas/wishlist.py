# storefront/schemas/wishlist.py
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field

from storefront.schemas.keys import EntryKey
from storefront.schemas.product import ProductSnapshot


class WishlistEntry(SQLModel):
    """
    A saved product reference. At most one entry per product_ref.
    """

    key: EntryKey
    product_ref: str
    saved_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    product: ProductSnapshot
