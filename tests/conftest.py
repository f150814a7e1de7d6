"""Shared fakes and fixtures for the storefront tests."""

import asyncio
import itertools
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from storefront.core.config import Settings
from storefront.core.errors import OwnershipViolation
from storefront.core.notifications import RecordingNotificationSink
from storefront.schemas.cart import LineItem
from storefront.schemas.keys import PersistedKey
from storefront.schemas.product import ProductSnapshot
from storefront.schemas.wishlist import WishlistEntry
from storefront.services.cart_service import CartEngine
from storefront.services.wishlist_service import WishlistEngine

OWNER = "user-1"
OTHER_OWNER = "user-2"


class FakeGateway:
    """
    In-memory remote store with the gateway's operation set.

    - `calls` records every operation in order.
    - `failures[op]` makes that operation raise until removed.
    - `gates[op]` holds that operation until the event is set.
    """

    def __init__(self, catalog: dict[str, ProductSnapshot]):
        self.catalog = catalog
        self.rows: dict[str, dict] = {}
        self.calls: list[str] = []
        self.failures: dict[str, Exception] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self._ids = itertools.count(1)
        self._clock = itertools.count(1)

    async def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        gate = self.gates.get(operation)
        if gate is not None:
            await gate.wait()
        if operation in self.failures:
            raise self.failures[operation]

    def seed(self, owner_id: str, product_ref: str, quantity: int = 1) -> PersistedKey:
        row_id = str(next(self._ids))
        self.rows[row_id] = {
            "user_id": owner_id,
            "product_id": product_ref,
            "quantity": quantity,
            "created_at": next(self._clock),
        }
        return PersistedKey(id=row_id)

    def owned(self, owner_id: str) -> list[tuple[str, dict]]:
        return sorted(
            ((row_id, row) for row_id, row in self.rows.items() if row["user_id"] == owner_id),
            key=lambda pair: pair[1]["created_at"],
        )

    async def delete_one(self, owner_id, key) -> None:
        await self._enter("delete_one")
        row = self.rows.get(key.id)
        if row is None:
            return
        if row["user_id"] != owner_id:
            raise OwnershipViolation(operation="delete_one")
        del self.rows[key.id]

    async def delete_all(self, owner_id) -> None:
        await self._enter("delete_all")
        for row_id, _ in self.owned(owner_id):
            del self.rows[row_id]


class FakeCartGateway(FakeGateway):
    async def list_all(self, owner_id) -> list[LineItem]:
        await self._enter("list_all")
        items = []
        for row_id, row in self.owned(owner_id):
            product = self.catalog[row["product_id"]]
            items.append(
                LineItem(
                    key=PersistedKey(id=row_id),
                    product_ref=row["product_id"],
                    quantity=row["quantity"],
                    unit_price=product.price,
                    sale_price=product.sale_price,
                    product=product,
                )
            )
        return items

    async def upsert(self, owner_id, product_ref, quantity_delta) -> PersistedKey:
        await self._enter("upsert")
        for row_id, row in self.owned(owner_id):
            if row["product_id"] == product_ref:
                row["quantity"] += quantity_delta
                return PersistedKey(id=row_id)
        return self.seed(owner_id, product_ref, quantity_delta)

    async def update_one(self, owner_id, key, quantity) -> None:
        await self._enter("update_one")
        self.rows[key.id]["quantity"] = quantity


class FakeWishlistGateway(FakeGateway):
    async def list_all(self, owner_id) -> list[WishlistEntry]:
        await self._enter("list_all")
        entries = [
            WishlistEntry(
                key=PersistedKey(id=row_id),
                product_ref=row["product_id"],
                saved_at=datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=row["created_at"]),
                product=self.catalog[row["product_id"]],
            )
            for row_id, row in self.owned(owner_id)
        ]
        return list(reversed(entries))

    async def upsert(self, owner_id, product_ref) -> PersistedKey:
        await self._enter("upsert")
        for row_id, row in self.owned(owner_id):
            if row["product_id"] == product_ref:
                return PersistedKey(id=row_id)
        return self.seed(owner_id, product_ref)


class FakeRequest:
    """Just enough of the async PostgREST request builder."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.action = "select"
        self.columns = "*"
        self.payload = None
        self.filters: list[tuple[str, object]] = []
        self.order_by: tuple[str, bool] | None = None
        self.max_rows: int | None = None
        self.on_conflict = ""

    def select(self, columns="*"):
        self.columns = columns
        return self

    def insert(self, payload):
        self.action, self.payload = "insert", payload
        return self

    def update(self, payload):
        self.action, self.payload = "update", payload
        return self

    def upsert(self, payload, on_conflict=""):
        self.action, self.payload, self.on_conflict = "upsert", payload, on_conflict
        return self

    def delete(self):
        self.action = "delete"
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, size):
        self.max_rows = size
        return self

    def _matches(self, row, filters):
        return all(str(row.get(column)) == str(value) for column, value in filters)

    def _project(self, row):
        result = dict(row)
        if "products(" in self.columns:
            result["products"] = next(
                (dict(p) for p in self.db.tables["products"] if p["id"] == row["product_id"]),
                None,
            )
        return result

    async def execute(self):
        self.db.requests.append((self.table, self.action))
        if self.db.error is not None:
            raise self.db.error

        rows = self.db.tables.setdefault(self.table, [])
        matched = [row for row in rows if self._matches(row, self.filters)]

        if self.action == "select":
            if self.order_by:
                column, desc = self.order_by
                matched.sort(key=lambda row: row[column], reverse=desc)
            if self.max_rows is not None:
                matched = matched[: self.max_rows]
            data = [self._project(row) for row in matched]
        elif self.action == "insert":
            data = [self.db.insert(self.table, self.payload)]
        elif self.action == "update":
            for row in matched:
                row.update(self.payload)
            data = [dict(row) for row in matched]
        elif self.action == "delete":
            for row in matched:
                rows.remove(row)
            data = [dict(row) for row in matched]
        else:
            keys = [(k, self.payload[k]) for k in self.on_conflict.split(",")]
            existing = [row for row in rows if self._matches(row, keys)]
            if existing:
                existing[0].update(self.payload)
                data = [dict(existing[0])]
            else:
                data = [self.db.insert(self.table, self.payload)]
        return SimpleNamespace(data=data)


class FakeSupabase:
    def __init__(self):
        self.tables: dict[str, list[dict]] = {"products": []}
        self.requests: list[tuple[str, str]] = []
        self.error: Exception | None = None
        self._ids = itertools.count(100)
        self._clock = itertools.count(1)

    def table(self, name):
        return FakeRequest(self, name)

    def insert(self, table, payload):
        created = datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=next(self._clock))
        row = {"id": next(self._ids), "created_at": created.isoformat(), **payload}
        self.tables.setdefault(table, []).append(row)
        return dict(row)


class FakeAuth:
    def __init__(self, session=None):
        self.session = session
        self.callback = None
        self.unsubscribed = False

    async def get_session(self):
        return self.session

    def on_auth_state_change(self, callback):
        self.callback = callback
        return SimpleNamespace(unsubscribe=self._unsubscribe)

    def _unsubscribe(self):
        self.unsubscribed = True


def session_for(owner_id):
    return SimpleNamespace(user=SimpleNamespace(id=owner_id))


@pytest.fixture
def catalog() -> dict[str, ProductSnapshot]:
    products = [
        ProductSnapshot(id="rice", name="Jasmine rice 5kg", price=10.0),
        ProductSnapshot(id="milk", name="Fresh milk 1L", price=20.0, sale_price=15.0),
        ProductSnapshot(id="eggs", name="Eggs (10)", price=3.5),
    ]
    return {p.id: p for p in products}


@pytest.fixture
def sink() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def cart_gateway(catalog) -> FakeCartGateway:
    return FakeCartGateway(catalog)


@pytest.fixture
def wishlist_gateway(catalog) -> FakeWishlistGateway:
    return FakeWishlistGateway(catalog)


@pytest.fixture
def cart(cart_gateway, sink) -> CartEngine:
    engine = CartEngine(cart_gateway, sink=sink)
    engine.bind(OWNER)
    return engine


@pytest.fixture
def wishlist(wishlist_gateway, sink) -> WishlistEngine:
    engine = WishlistEngine(wishlist_gateway, sink=sink)
    engine.bind(OWNER)
    return engine


@pytest.fixture
def settings() -> Settings:
    return Settings(
        SUPABASE_URL="http://localhost:54321",
        SUPABASE_KEY="anon-key",
        SUPABASE_JWT_SECRET="test-secret",
        _env_file=None,
    )


@pytest.fixture
def db() -> FakeSupabase:
    db = FakeSupabase()
    db.tables["products"] = [
        {"id": "rice", "name": "Jasmine rice 5kg", "price": 10.0, "sale_price": None},
        {"id": "milk", "name": "Fresh milk 1L", "price": 20.0, "sale_price": 15.0},
    ]
    return db
