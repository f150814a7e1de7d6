# storefront/services/cart_service.py
import asyncio
import logging

from storefront.core.errors import CollectionError, NotFound
from storefront.core.notifications import NoticeKind, Severity
from storefront.repositories.cart_repo import CartGateway
from storefront.schemas.cart import CartSummary, LineItem
from storefront.schemas.keys import EntryKey, is_provisional
from storefront.schemas.product import ProductSnapshot
from storefront.services.sync_engine import SyncEngine

logger = logging.getLogger(__name__)


class CartEngine(SyncEngine[LineItem]):
    """
    Optimistic cart.

    Rules:
      - one line item per product; re-adds merge by quantity
      - quantity in the snapshot is always > 0
      - after every add the cart is re-read from the store, because only
        the store serializes concurrent adds from other sessions
      - a failed quantity update forces a full reload (it drives the total)
      - remove/clear are never rolled back
    """

    collection_name = "cart"
    gateway: CartGateway

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # Provisional lines removed while their add was still in flight.
        self._abandoned: set[EntryKey] = set()
        # Quantities set on provisional lines, sent once their add lands.
        self._pending_quantity: dict[EntryKey, int] = {}

    def reset(self) -> None:
        super().reset()
        self._abandoned = set()
        self._pending_quantity = {}

    # ---- derived views ----

    def total_price(self) -> float:
        return sum(item.line_total for item in self._items)

    def count(self) -> int:
        return sum(item.quantity for item in self._items)

    def summary(self) -> CartSummary:
        return CartSummary(
            items=list(self._items),
            total_quantity=self.count(),
            total_price=self.total_price(),
        )

    # ---- mutations ----

    def add(self, product: ProductSnapshot, quantity: int | None = 1) -> asyncio.Task | None:
        """
        Add quantity of a product (missing or <= 0 counts as 1).

        The snapshot changes immediately: an existing line is bumped,
        otherwise a provisional line is appended. The store is then asked
        to add the same delta and the whole cart is reloaded.
        """
        owner_id = self._require_owner()
        if owner_id is None:
            return None

        if not quantity or quantity <= 0:
            quantity = 1

        existing = self._find_by_product(product.id)
        if existing is not None:
            self._replace(existing.key, quantity=existing.quantity + quantity)
            local_key = existing.key
        else:
            local_key = self.keys.mint()
            self._items.append(
                LineItem(
                    key=local_key,
                    product_ref=product.id,
                    quantity=quantity,
                    unit_price=product.price,
                    sale_price=product.sale_price,
                    product=product,
                )
            )

        return self._spawn(
            self._add(owner_id, self._generation, product, quantity, local_key)
        )

    async def _add(
        self,
        owner_id: str,
        generation: int,
        product: ProductSnapshot,
        quantity: int,
        local_key: EntryKey,
    ) -> None:
        try:
            persisted = await self.gateway.upsert(owner_id, product.id, quantity)
        except CollectionError as exc:
            if self._is_current(generation):
                self._abandoned.discard(local_key)
                if self._pending_quantity.pop(local_key, None) is not None:
                    # The line never reached the store.
                    self._pop(local_key)
                else:
                    self._undo_add(local_key, quantity)
                self._report_error(
                    exc, NoticeKind.ADD_FAILURE, f"Could not add {product.name or product.id} to cart.", product.id
                )
            return

        if not self._is_current(generation):
            return

        if local_key in self._abandoned:
            self._abandoned.discard(local_key)
            if self._find_by_product(product.id) is None:
                # Removed locally while the add was in flight: undo it remotely.
                logger.info("cart: %s removed before add completed, deleting %s", local_key, persisted)
                try:
                    await self.gateway.delete_one(owner_id, persisted)
                except CollectionError as exc:
                    self._report_error(exc, NoticeKind.REMOVE_FAILURE, "Could not remove item.", product.id)
            else:
                # Re-added meanwhile; the row holds that quantity too.
                logger.info("cart: %s re-added before add completed, keeping %s", product.id, persisted)
            await self._refresh(owner_id, generation)
            return

        self._notify(
            NoticeKind.ADD_SUCCESS,
            Severity.INFO,
            f"{product.name or product.id} was added to your cart.",
            product.id,
        )

        pending = self._pending_quantity.pop(local_key, None)
        if pending is not None:
            try:
                await self.gateway.update_one(owner_id, persisted, pending)
            except CollectionError as exc:
                if self._is_current(generation):
                    self._report_error(exc, NoticeKind.QUANTITY_UPDATE_FAILURE, "Could not update quantity.", product.id)

        await self._refresh(owner_id, generation)

    def _undo_add(self, local_key: EntryKey, quantity: int) -> None:
        item = self.get(local_key)
        if item is None:
            return
        remaining = item.quantity - quantity
        if remaining <= 0:
            self._pop(local_key)
        else:
            self._replace(local_key, quantity=remaining)

    def update_quantity(self, key: EntryKey, quantity: int) -> asyncio.Task | None:
        """
        Set a line's quantity; <= 0 removes the line.

        On any store failure the optimistic value is dropped by reloading.
        """
        if quantity <= 0:
            return self.remove(key)

        owner_id = self._require_owner()
        if owner_id is None:
            return None

        if self._replace(key, quantity=quantity) is None:
            logger.info("update_quantity: %s not in cart", key)
            return None

        if is_provisional(key):
            # Not persisted yet; sent by the pending add once it lands.
            self._pending_quantity[key] = quantity
            return None

        return self._spawn(self._update(owner_id, self._generation, key, quantity))

    async def _update(self, owner_id: str, generation: int, key: EntryKey, quantity: int) -> None:
        try:
            await self.gateway.update_one(owner_id, key, quantity)
        except CollectionError as exc:
            if not self._is_current(generation):
                return
            if isinstance(exc, NotFound):
                logger.info("update_quantity: %s deleted elsewhere, reloading", key)
            self._report_error(exc, NoticeKind.QUANTITY_UPDATE_FAILURE, "Could not update quantity.")
            await self._refresh(owner_id, generation)

    def remove(self, key: EntryKey) -> asyncio.Task | None:
        """
        Drop a line now; delete it on the store in the background.
        No rollback: on failure the UI may diverge until the next load.
        """
        owner_id = self._require_owner()
        if owner_id is None:
            return None

        item = self._pop(key)
        if item is None:
            return None

        if is_provisional(key):
            self._abandoned.add(key)
            self._pending_quantity.pop(key, None)
            self._notify(NoticeKind.REMOVE_SUCCESS, Severity.INFO, "Item removed from cart.", item.product_ref)
            return None

        return self._spawn(self._remove(owner_id, self._generation, item))

    async def _remove(self, owner_id: str, generation: int, item: LineItem) -> None:
        try:
            await self.gateway.delete_one(owner_id, item.key)
        except CollectionError as exc:
            if self._is_current(generation):
                self._report_error(exc, NoticeKind.REMOVE_FAILURE, "Could not remove item.", item.product_ref)
            return

        if self._is_current(generation):
            self._notify(NoticeKind.REMOVE_SUCCESS, Severity.INFO, "Item removed from cart.", item.product_ref)

    def clear(self) -> asyncio.Task | None:
        """
        Empty the cart now; bulk delete on the store in the background.
        """
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
                self._report_error(exc, NoticeKind.CLEAR_FAILURE, "Could not empty the cart.")
