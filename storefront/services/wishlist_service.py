# storefront/services/wishlist_service.py
import asyncio
import logging

from storefront.core.errors import CollectionError
from storefront.core.notifications import NoticeKind, Severity
from storefront.repositories.wishlist_repo import WishlistGateway
from storefront.schemas.keys import EntryKey, PersistedKey, ProvisionalKey, is_provisional
from storefront.schemas.product import ProductSnapshot
from storefront.schemas.wishlist import WishlistEntry
from storefront.services.sync_engine import SyncEngine

logger = logging.getLogger(__name__)


class WishlistEngine(SyncEngine[WishlistEntry]):
    """
    Optimistic wishlist, most recently saved first.

    Rules:
      - at most one entry per product; a re-add is reported, never sent
      - new entries appear at once under a provisional key, which is swapped
        in place for the store's key once the save succeeds
      - a failed save keeps the provisional entry (no automatic retry)
      - provisional entries are removed locally only
    """

    collection_name = "wishlist"
    gateway: WishlistGateway

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # Provisional keys whose save is in flight, and those of them the
        # user removed before the save returned.
        self._saving: set[ProvisionalKey] = set()
        self._abandoned: set[ProvisionalKey] = set()

    def reset(self) -> None:
        super().reset()
        self._saving = set()
        self._abandoned = set()

    def count(self) -> int:
        return len(self._items)

    def find(self, product_ref: str) -> WishlistEntry | None:
        return self._find_by_product(product_ref)

    # ---- mutations ----

    def add(self, product: ProductSnapshot) -> asyncio.Task | None:
        owner_id = self._require_owner()
        if owner_id is None:
            return None

        if self.contains(product.id):
            self._notify(
                NoticeKind.ADD_DUPLICATE,
                Severity.INFO,
                f"{product.name or product.id} is already in your wishlist.",
                product.id,
            )
            return None

        key = self.keys.mint()
        self._items.insert(0, WishlistEntry(key=key, product_ref=product.id, product=product))
        self._saving.add(key)
        return self._spawn(self._add(owner_id, self._generation, key, product))

    async def _add(
        self,
        owner_id: str,
        generation: int,
        provisional: ProvisionalKey,
        product: ProductSnapshot,
    ) -> None:
        try:
            persisted = await self.gateway.upsert(owner_id, product.id)
        except CollectionError as exc:
            if self._is_current(generation):
                self._saving.discard(provisional)
                self._abandoned.discard(provisional)
                logger.warning("wishlist: keeping unsaved entry %s: %s", provisional, exc)
                self._report_error(
                    exc, NoticeKind.ADD_FAILURE, f"{product.name or product.id} was only saved on this device.", product.id
                )
            return

        if not self._is_current(generation):
            return

        self._saving.discard(provisional)
        if provisional in self._abandoned:
            self._abandoned.discard(provisional)
            logger.info("wishlist: %s removed before save completed, deleting %s", provisional, persisted)
            await self._delete(owner_id, generation, persisted, product.id)
            return

        if self._replace(provisional, key=persisted) is None and self._find_by_product(product.id) is None:
            # A load replaced the snapshot before the row existed.
            logger.info("wishlist: restoring %s after a concurrent load", persisted)
            self._items.insert(0, WishlistEntry(key=persisted, product_ref=product.id, product=product))

        self._notify(NoticeKind.ADD_SUCCESS, Severity.INFO, f"{product.name or product.id} was added to your wishlist.", product.id)

    def remove(self, key: EntryKey) -> asyncio.Task | None:
        owner_id = self._require_owner()
        if owner_id is None:
            return None

        entry = self._pop(key)
        if entry is None:
            return None

        if is_provisional(key):
            if key in self._saving:
                self._abandoned.add(key)
            self._notify(NoticeKind.REMOVE_SUCCESS, Severity.INFO, "Removed from wishlist.", entry.product_ref)
            return None

        return self._spawn(self._remove(owner_id, self._generation, key, entry.product_ref))

    async def _remove(self, owner_id: str, generation: int, key: PersistedKey, product_ref: str) -> None:
        if await self._delete(owner_id, generation, key, product_ref):
            if self._is_current(generation):
                self._notify(NoticeKind.REMOVE_SUCCESS, Severity.INFO, "Removed from wishlist.", product_ref)

    async def _delete(self, owner_id: str, generation: int, key: PersistedKey, product_ref: str) -> bool:
        try:
            await self.gateway.delete_one(owner_id, key)
        except CollectionError as exc:
            if self._is_current(generation):
                self._report_error(exc, NoticeKind.REMOVE_FAILURE, "Could not remove from wishlist.", product_ref)
            return False
        return True

    def remove_product(self, product_ref: str) -> asyncio.Task | None:
        entry = self._find_by_product(product_ref)
        if entry is None:
            return None
        return self.remove(entry.key)

    def toggle(self, product: ProductSnapshot) -> asyncio.Task | None:
        if self.contains(product.id):
            return self.remove_product(product.id)
        return self.add(product)

    def clear(self) -> asyncio.Task | None:
        owner_id = self._require_owner()
        if owner_id is None:
            return None

        self._items = []
        return self._spawn(self._clear(owner_id, self._generation))

    async def _clear(self, owner_id: str, generation: int) -> None:
        try:
            await self.gateway.delete_all(owner_id)
        except CollectionError as exc:
            if self._is_current(generation):
                self._report_error(exc, NoticeKind.CLEAR_FAILURE, "Could not clear the wishlist.")
