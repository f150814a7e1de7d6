# storefront/repositories/wishlist_repo.py
from typing import Any

from supabase import AsyncClient

from storefront.core.supabase_client import run_query
from storefront.repositories.base import CollectionGateway
from storefront.schemas.keys import PersistedKey
from storefront.schemas.product import ProductSnapshot
from storefront.schemas.wishlist import WishlistEntry


class WishlistGateway(CollectionGateway):
    """
    Wishlist access over the `wishlists` table.

    Rows: id, user_id, product_id, created_at.
    The table is unique on (user_id, product_id).
    """

    def __init__(
        self,
        client: AsyncClient,
        table: str = "wishlists",
        products_table: str = "products",
    ):
        super().__init__(client, table)
        self.products_table = products_table

    @property
    def _columns(self) -> str:
        return (
            "id, product_id, created_at, "
            f"{self.products_table}(id, name, price, sale_price, image, category, discount)"
        )

    def _to_entry(self, row: dict[str, Any]) -> WishlistEntry:
        return WishlistEntry(
            key=PersistedKey(id=str(row["id"])),
            product_ref=str(row["product_id"]),
            saved_at=row["created_at"],
            product=ProductSnapshot.from_row(row["product_id"], row.get(self.products_table)),
        )

    # Most recently saved first
    async def list_all(self, owner_id: str | None) -> list[WishlistEntry]:
        owner_id = self._require_owner(owner_id, "list_all")
        rows = await run_query(
            self._query()
            .select(self._columns)
            .eq("user_id", owner_id)
            .order("created_at", desc=True),
            operation="list_all",
        )
        return [self._to_entry(row) for row in rows]

    async def upsert(self, owner_id: str | None, product_ref: str) -> PersistedKey:
        """
        Save a product for the owner.

        Saving an already saved product returns the existing row's key
        (conflict on user_id, product_id).
        """
        owner_id = self._require_owner(owner_id, "upsert")
        rows = await run_query(
            self._query().upsert(
                {"user_id": owner_id, "product_id": product_ref},
                on_conflict="user_id,product_id",
            ),
            operation="upsert",
        )
        return self._first_id(rows, "upsert")
