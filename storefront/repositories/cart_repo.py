# storefront/repositories/cart_repo.py
from typing import Any

from supabase import AsyncClient

from storefront.core.errors import NotFound
from storefront.core.supabase_client import run_query
from storefront.repositories.base import CollectionGateway
from storefront.schemas.cart import LineItem
from storefront.schemas.keys import EntryKey, PersistedKey
from storefront.schemas.product import ProductSnapshot


class CartGateway(CollectionGateway):
    """
    Cart access over the `cart_items` table.

    Rows: id, user_id, product_id, quantity, created_at.
    Reads embed the catalog row so line items carry prices and a snapshot.
    """

    def __init__(
        self,
        client: AsyncClient,
        table: str = "cart_items",
        products_table: str = "products",
    ):
        super().__init__(client, table)
        self.products_table = products_table

    @property
    def _columns(self) -> str:
        return (
            "id, product_id, quantity, created_at, "
            f"{self.products_table}(id, name, price, sale_price, image, description, category)"
        )

    def _to_line_item(self, row: dict[str, Any]) -> LineItem:
        product = ProductSnapshot.from_row(row["product_id"], row.get(self.products_table))
        return LineItem(
            key=PersistedKey(id=str(row["id"])),
            product_ref=str(row["product_id"]),
            quantity=row["quantity"],
            unit_price=product.price,
            sale_price=product.sale_price,
            product=product,
        )

    # Get items for a user, oldest first (stable checkout order)
    async def list_all(self, owner_id: str | None) -> list[LineItem]:
        owner_id = self._require_owner(owner_id, "list_all")
        rows = await run_query(
            self._query()
            .select(self._columns)
            .eq("user_id", owner_id)
            .order("created_at", desc=False),
            operation="list_all",
        )
        # Guard the snapshot invariant against bad rows.
        return [self._to_line_item(row) for row in rows if (row.get("quantity") or 0) > 0]

    async def upsert(
        self,
        owner_id: str | None,
        product_ref: str,
        quantity_delta: int,
    ) -> PersistedKey:
        """
        Add quantity_delta of a product to the owner's cart.

        If a row already exists for (owner, product) its quantity becomes
        stored + delta, computed from the store's current value rather than
        the client's, so adds from other sessions are not overwritten.

        Returns:
            Key of the row that now holds the product.
        """
        owner_id = self._require_owner(owner_id, "upsert")

        existing = await run_query(
            self._query()
            .select("id, quantity")
            .eq("user_id", owner_id)
            .eq("product_id", product_ref)
            .limit(1),
            operation="upsert",
        )

        if existing:
            row = existing[0]
            new_qty = (row.get("quantity") or 0) + quantity_delta
            updated = await run_query(
                self._query()
                .update({"quantity": new_qty})
                .eq("id", row["id"])
                .eq("user_id", owner_id),
                operation="upsert",
            )
            if not updated:
                raise NotFound("Cart row vanished during merge", operation="upsert")
            return PersistedKey(id=str(row["id"]))

        inserted = await run_query(
            self._query().insert(
                {"user_id": owner_id, "product_id": product_ref, "quantity": quantity_delta}
            ),
            operation="upsert",
        )
        return self._first_id(inserted, "upsert")

    async def update_one(
        self,
        owner_id: str | None,
        key: EntryKey,
        quantity: int,
    ) -> None:
        """
        Set the quantity of one owned row.

        quantity <= 0 is a removal, never a zero-quantity row.

        Raises:
            NotFound: row no longer exists (deleted elsewhere).
            OwnershipViolation: row belongs to another identity.
        """
        if quantity <= 0:
            await self.delete_one(owner_id, key)
            return

        owner_id = self._require_owner(owner_id, "update_one")
        item_id = self._persisted(key)

        updated = await run_query(
            self._query()
            .update({"quantity": quantity})
            .eq("id", item_id)
            .eq("user_id", owner_id),
            operation="update_one",
        )
        if not updated:
            await self._ensure_not_foreign(owner_id, item_id, "update_one")
            raise NotFound(operation="update_one")
