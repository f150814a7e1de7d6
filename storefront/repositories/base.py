# storefront/repositories/base.py
from typing import Any

from supabase import AsyncClient

from storefront.core.errors import AuthRequired, NotFound, OwnershipViolation
from storefront.core.supabase_client import run_query
from storefront.schemas.keys import EntryKey, PersistedKey


class CollectionGateway:
    """
    Shared data access for one per-user Supabase table.

    - One round trip per operation, scoped by owner id.
    - No retries, no caching: that is the engine's job.
    - Every mutation filters on both the row id and user_id, so a stale or
      foreign key can never touch another identity's rows.
    """

    def __init__(self, client: AsyncClient, table: str):
        self.client = client
        self.table = table

    # ---- internal helpers ----

    def _query(self):
        return self.client.table(self.table)

    @staticmethod
    def _require_owner(owner_id: str | None, operation: str) -> str:
        if not owner_id:
            raise AuthRequired(operation=operation)
        return str(owner_id)

    @staticmethod
    def _persisted(key: EntryKey) -> str:
        """
        Only persisted keys may reach the store.
        Provisional keys have no server row behind them.
        """
        if not isinstance(key, PersistedKey):
            raise TypeError(f"Refusing to send provisional key {key} to the store")
        return key.id

    async def _ensure_not_foreign(
        self, owner_id: str, item_id: str, operation: str
    ) -> bool:
        """
        Look up a row that a scoped mutation did not match.

        Returns:
            True if the row still exists for this owner, False if it is gone.

        Raises:
            OwnershipViolation: if the row belongs to a different identity.
        """
        rows = await run_query(
            self._query().select("id, user_id").eq("id", item_id).limit(1),
            operation=operation,
        )
        if not rows:
            return False
        if str(rows[0].get("user_id")) != owner_id:
            raise OwnershipViolation(operation=operation)
        return True

    # ---- shared operations ----

    async def delete_one(self, owner_id: str | None, key: EntryKey) -> None:
        """
        Delete one row owned by owner_id.

        Deleting a row that is already gone counts as success, so a fast
        double remove is harmless.
        """
        owner_id = self._require_owner(owner_id, "delete_one")
        item_id = self._persisted(key)

        deleted = await run_query(
            self._query().delete().eq("id", item_id).eq("user_id", owner_id),
            operation="delete_one",
        )
        if not deleted:
            await self._ensure_not_foreign(owner_id, item_id, "delete_one")

    async def delete_all(self, owner_id: str | None) -> None:
        """Delete every row of the collection owned by owner_id."""
        owner_id = self._require_owner(owner_id, "delete_all")
        await run_query(
            self._query().delete().eq("user_id", owner_id),
            operation="delete_all",
        )

    @staticmethod
    def _first_id(rows: list[dict[str, Any]], operation: str) -> PersistedKey:
        if not rows or rows[0].get("id") is None:
            raise NotFound("Store returned no row id", operation=operation)
        return PersistedKey(id=str(rows[0]["id"]))
