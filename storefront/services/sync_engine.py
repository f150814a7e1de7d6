# storefront/services/sync_engine.py
import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Generic, TypeVar

from storefront.core.errors import AuthRequired, CollectionError, OwnershipViolation
from storefront.core.notifications import (
    LoggingNotificationSink,
    Notice,
    NoticeKind,
    NotificationSink,
    Severity,
)
from storefront.schemas.keys import EntryKey, ProvisionalKeyFactory

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CollectionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"


class SyncEngine(Generic[T]):
    """
    Optimistic, in-memory snapshot of one remote per-user collection.

    Responsibilities:
      - own the snapshot (nobody else mutates it)
      - apply every mutation synchronously, then reconcile with the gateway
        in a background task
      - run the Uninitialized -> Loading -> Ready state machine
      - drop responses that belong to an identity we no longer serve
      - turn every CollectionError into a notice instead of raising

    Mutating methods return the background asyncio.Task (or None when no
    network call was needed) so callers may await completion, but they
    never have to.
    """

    collection_name = "collection"

    def __init__(
        self,
        gateway: Any,
        sink: NotificationSink | None = None,
        key_factory: ProvisionalKeyFactory | None = None,
    ):
        self.gateway = gateway
        self.sink = sink or LoggingNotificationSink()
        self.keys = key_factory or ProvisionalKeyFactory()

        self._items: list[T] = []
        self._state = CollectionState.UNINITIALIZED
        self._owner_id: str | None = None
        # Bumped on every identity change; background work started under an
        # older generation must not touch the snapshot.
        self._generation = 0
        self._load_seq = 0
        self._tasks: set[asyncio.Task] = set()

    # ---- read-only views ----

    @property
    def state(self) -> CollectionState:
        return self._state

    @property
    def loading(self) -> bool:
        return self._state is CollectionState.LOADING

    @property
    def owner_id(self) -> str | None:
        return self._owner_id

    @property
    def items(self) -> tuple[T, ...]:
        return tuple(self._items)

    def contains(self, product_ref: str) -> bool:
        return self._find_by_product(product_ref) is not None

    def get(self, key: EntryKey) -> T | None:
        index = self._index_of(key)
        return None if index is None else self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    # ---- identity lifecycle ----

    def bind(self, owner_id: str) -> None:
        """
        Serve a (new) identity. Previous data is discarded, never merged.
        """
        self.reset()
        self._owner_id = str(owner_id)

    def reset(self) -> None:
        """
        Back to Uninitialized with an empty snapshot (logout).
        """
        self._generation += 1
        self._items = []
        self._owner_id = None
        self._state = CollectionState.UNINITIALIZED

    # ---- load ----

    def load(self) -> asyncio.Task | None:
        """
        Replace the snapshot with the store's full collection.

        Only valid with an identity bound; otherwise a no-op.
        """
        if self._owner_id is None:
            logger.debug("%s load skipped: no identity", self.collection_name)
            return None
        self._state = CollectionState.LOADING
        return self._spawn(self._refresh(self._owner_id, self._generation))

    async def _refresh(self, owner_id: str, generation: int) -> None:
        if not self._is_current(generation):
            return
        self._load_seq += 1
        seq = self._load_seq
        self._state = CollectionState.LOADING

        try:
            items = await self.gateway.list_all(owner_id)
        except CollectionError as exc:
            if not self._is_current(generation):
                return
            if seq == self._load_seq:
                # Stale-but-consistent: keep what we had.
                self._state = CollectionState.READY
            self._report_error(exc, NoticeKind.LOAD_FAILURE, f"Could not load {self.collection_name}.")
            return

        if not self._is_current(generation):
            logger.info("Discarding %s load for previous identity %s", self.collection_name, owner_id)
            return
        if seq != self._load_seq:
            logger.info("Discarding superseded %s load #%d", self.collection_name, seq)
            return

        self._items = list(items)
        self._state = CollectionState.READY
        logger.info("Loaded %d %s entries for %s", len(self._items), self.collection_name, owner_id)

    # ---- background work ----

    async def drain(self) -> None:
        """
        Wait until every in-flight reconciliation has finished, including
        follow-up work those tasks started.
        """
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _require_owner(self) -> str | None:
        if self._owner_id is None:
            self._notify(
                NoticeKind.AUTH_REQUIRED,
                Severity.WARNING,
                f"Please sign in to change your {self.collection_name}.",
            )
            return None
        return self._owner_id

    # ---- snapshot helpers ----

    def _index_of(self, key: EntryKey) -> int | None:
        for index, item in enumerate(self._items):
            if item.key == key:
                return index
        return None

    def _find_by_product(self, product_ref: str) -> T | None:
        product_ref = str(product_ref)
        for item in self._items:
            if item.product_ref == product_ref:
                return item
        return None

    def _replace(self, target: EntryKey, /, **changes: Any) -> T | None:
        """
        Patch one entry in place (same position), returning the new value.

        `changes` may include `key` to swap the entry's own key.
        """
        index = self._index_of(target)
        if index is None:
            return None
        self._items[index] = self._items[index].model_copy(update=changes)
        return self._items[index]

    def _pop(self, key: EntryKey) -> T | None:
        index = self._index_of(key)
        if index is None:
            return None
        return self._items.pop(index)

    # ---- notices ----

    def _notify(
        self,
        kind: NoticeKind,
        severity: Severity,
        message: str,
        product_ref: str | None = None,
    ) -> None:
        notice = Notice(
            kind=kind,
            severity=severity,
            message=message,
            collection=self.collection_name,
            product_ref=product_ref,
        )
        try:
            self.sink(notice)
        except Exception:
            # Notices are advisory; a broken sink must not break the engine.
            logger.exception("Notification sink failed for %s", kind.value)

    def _report_error(
        self,
        exc: CollectionError,
        kind: NoticeKind,
        message: str,
        product_ref: str | None = None,
    ) -> None:
        if isinstance(exc, OwnershipViolation):
            logger.error("%s: %s", self.collection_name, exc)
            self._notify(
                NoticeKind.OWNERSHIP_VIOLATION,
                Severity.ERROR,
                "This item belongs to another account.",
                product_ref,
            )
            return
        if isinstance(exc, AuthRequired):
            logger.warning("%s: %s", self.collection_name, exc)
            self._notify(NoticeKind.AUTH_REQUIRED, Severity.WARNING, "Please sign in again.", product_ref)
            return

        logger.warning("%s: %s", self.collection_name, exc)
        self._notify(kind, Severity.ERROR, message, product_ref)

