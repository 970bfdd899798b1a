# tests/conftest.py
import copy
import pytest
import re
from decimal import Decimal
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core import Base, settings
from app.core.exceptions import RemoteApiError
from app.integrations.base import (
    BaseCatalogClient, MediaStatus, RemoteLocation, RemoteMedia, RemoteOption,
    RemoteOptionValue, RemoteProduct, RemoteVariant,
)
from app.models import (
    Product, ProductOption, ProductOptionValue, ProductVariant, ProductVariantOption, Store,
)


class FakeCatalogClient(BaseCatalogClient):
    """
    In-memory catalog for one store. Every call is appended to `calls` as
    (method, args) in order; `fail_on[method] = exc` makes a method raise.
    """
    PLATFORM_NAME = "fake"

    def __init__(self, shop_domain: str = "fake.myshopify.com", access_token: str = "token"):
        super().__init__(shop_domain, access_token)
        self.calls = []
        self.fail_on = {}
        self.fail_once = {}
        self.products = {}
        self.media_status = MediaStatus.READY
        self.locations = [RemoteLocation(id="gid://shopify/Location/1", name="Main")]
        self.quantities = {}
        self._counter = 0

    def _next(self, kind: str) -> str:
        self._counter += 1
        return f"gid://shopify/{kind}/{self._counter}"

    def _record(self, method: str, *args):
        self.calls.append((method, args))
        if method in self.fail_once:
            raise self.fail_once.pop(method)
        if method in self.fail_on:
            raise self.fail_on[method]

    def call_names(self):
        return [name for name, _ in self.calls]

    def calls_to(self, method: str):
        return [args for name, args in self.calls if name == method]

    def _find_variant(self, variant_id: str):
        for product in self.products.values():
            for variant in product.variants:
                if variant.id == variant_id:
                    return product, variant
        return None, None

    # ========== Products ==========

    async def create_product(self, product_input):
        self._record("create_product", product_input)
        title = product_input.get("title") or "product"
        handle = product_input.get("handle") or re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
        if any(p.handle == handle for p in self.products.values()):
            raise RemoteApiError(f"Shopify Error: Handle '{handle}' has already been taken", "productCreate")

        product = RemoteProduct(id=self._next("Product"), title=title, handle=handle, status=product_input.get("status"))
        for position, option in enumerate(product_input.get("productOptions") or [], start=1):
            product.options.append(RemoteOption(
                id=self._next("ProductOption"),
                name=option["name"],
                position=position,
                values=[RemoteOptionValue(id=self._next("ProductOptionValue"), name=v["name"]) for v in option["values"]],
            ))

        if product.options:
            selected = [{"name": o.name, "value": o.values[0].name} for o in product.options]
        else:
            selected = [{"name": "Title", "value": "Default Title"}]
        product.variants.append(RemoteVariant(
            id=self._next("ProductVariant"),
            price="0.00",
            inventory_item_id=self._next("InventoryItem"),
            selected_options=selected,
        ))

        for item in product_input.get("media") or []:
            product.media.append(RemoteMedia(id=self._next("MediaImage"), status=self.media_status, url=item.get("originalSource"), alt=item.get("alt")))

        self.products[product.id] = product
        return copy.deepcopy(product)

    async def update_product(self, product_id, product_input):
        self._record("update_product", product_id, product_input)
        product = self.products[product_id]
        product.title = product_input.get("title", product.title)
        product.status = product_input.get("status", product.status)
        return RemoteProduct(id=product.id, title=product.title, handle=product.handle, status=product.status)

    async def get_product_details(self, product_id):
        self._record("get_product_details", product_id)
        product = self.products.get(product_id)
        return copy.deepcopy(product) if product else None

    async def update_product_option(self, product_id, option_id, name, position=None):
        self._record("update_product_option", product_id, option_id, name, position)
        product = self.products[product_id]
        for option in product.options:
            if option.id == option_id:
                for variant in product.variants:
                    for selected in variant.selected_options:
                        if selected["name"] == option.name:
                            selected["name"] = name
                option.name = name
        return copy.deepcopy(product.options)

    # ========== Variants ==========

    async def create_variants(self, product_id, variants):
        self._record("create_variants", product_id, variants)
        product = self.products[product_id]
        existing = {v.signature for v in product.variants}
        created = []
        for item in variants:
            selected = [{"name": o["optionName"], "value": o["name"]} for o in item.get("optionValues", [])]
            variant = RemoteVariant(
                id=self._next("ProductVariant"),
                sku=item.get("inventoryItem", {}).get("sku"),
                price=item.get("price"),
                inventory_item_id=self._next("InventoryItem"),
                selected_options=selected,
            )
            if variant.signature in existing:
                raise RemoteApiError(f"Shopify Error: The variant '{variant.signature}' already exists.", "productVariantsBulkCreate")
            created.append(variant)
        product.variants.extend(created)
        return copy.deepcopy(created)

    async def update_variants(self, product_id, variants):
        self._record("update_variants", product_id, variants)
        updated = []
        for item in variants:
            _, variant = self._find_variant(item["id"])
            if "price" in item:
                variant.price = item["price"]
            if item.get("inventoryItem", {}).get("sku"):
                variant.sku = item["inventoryItem"]["sku"]
            updated.append(copy.deepcopy(variant))
        return updated

    async def delete_variant(self, variant_id):
        self._record("delete_variant", variant_id)
        product, variant = self._find_variant(variant_id)
        product.variants.remove(variant)
        return variant_id

    # ========== Media ==========

    async def create_media(self, product_id, media):
        self._record("create_media", product_id, media)
        created = [
            RemoteMedia(id=self._next("MediaImage"), status=self.media_status, url=item.get("originalSource"), alt=item.get("alt"))
            for item in media
        ]
        self.products[product_id].media.extend(created)
        return copy.deepcopy(created)

    async def get_media_status(self, product_id):
        self._record("get_media_status", product_id)
        return copy.deepcopy(self.products[product_id].media)

    async def attach_media_to_variants(self, product_id, variant_media):
        self._record("attach_media_to_variants", product_id, variant_media)
        for entry in variant_media:
            _, variant = self._find_variant(entry["variantId"])
            variant.media_ids.extend(entry["mediaIds"])
        return [entry["variantId"] for entry in variant_media]

    async def detach_media_from_variants(self, product_id, variant_media):
        self._record("detach_media_from_variants", product_id, variant_media)
        for entry in variant_media:
            _, variant = self._find_variant(entry["variantId"])
            variant.media_ids = [m for m in variant.media_ids if m not in entry["mediaIds"]]
        return [entry["variantId"] for entry in variant_media]

    async def delete_media(self, product_id, media_ids):
        self._record("delete_media", product_id, media_ids)
        product = self.products[product_id]
        product.media = [m for m in product.media if m.id not in media_ids]
        return list(media_ids)

    # ========== Inventory ==========

    async def enable_inventory_tracking(self, inventory_item_id):
        self._record("enable_inventory_tracking", inventory_item_id)

    async def activate_inventory_at_location(self, inventory_item_id, location_id):
        self._record("activate_inventory_at_location", inventory_item_id, location_id)
        return True

    async def set_inventory_quantity(self, inventory_item_id, location_id, quantity):
        self._record("set_inventory_quantity", inventory_item_id, location_id, quantity)
        self.quantities[(inventory_item_id, location_id)] = quantity

    async def get_locations(self):
        self._record("get_locations")
        return list(self.locations)


class FakeClientRegistry:
    """One FakeCatalogClient per store domain; usable as a client factory"""

    def __init__(self):
        self.clients = {}

    def __call__(self, store):
        return self.for_domain(store.shopify_domain)

    def for_domain(self, domain):
        if domain not in self.clients:
            self.clients[domain] = FakeCatalogClient(domain)
        return self.clients[domain]


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    """No real waiting in tests"""
    monkeypatch.setattr(settings, "SYNC_BATCH_DELAY_SECONDS", 0)
    monkeypatch.setattr(settings, "SYNC_FETCH_BACKOFF_SECONDS", 0)
    monkeypatch.setattr(settings, "MEDIA_POLL_INTERVAL_SECONDS", 0)
    monkeypatch.setattr(settings, "MEDIA_READY_TIMEOUT_SECONDS", 0.05)


@pytest.fixture(scope="function")
def db_engine():
    """In-memory SQLite shared by every session of one test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(scope="function")
def clients():
    return FakeClientRegistry()


@pytest.fixture(scope="function")
def make_store(db_session):
    def _make(name="Store", domain=None, code="US", token="shpat_test", location_id=None):
        store = Store(
            store_name=name,
            shopify_domain=domain or f"{name.lower().replace(' ', '-')}.myshopify.com",
            shopify_access_token=token,
            store_code=code,
            default_location_id=location_id,
        )
        db_session.add(store)
        db_session.commit()
        return store
    return _make


@pytest.fixture(scope="function")
def make_product(db_session):
    """
    make_product(options={"Size": ["S", "M"]}) builds the cartesian
    variants with option links; without options a single variant.
    """
    def _make(title="Test Shirt", vendor="Cool Co", options=None, price="10.00", stock=5, image_urls=None):
        product = Product(title=title, vendor=vendor, product_type="Shirts", description="A shirt")
        option_rows = []
        for position, (name, values) in enumerate((options or {}).items(), start=1):
            option = ProductOption(name=name, position=position)
            for value_position, value in enumerate(values, start=1):
                option.values.append(ProductOptionValue(value=value, position=value_position))
            product.options.append(option)
            option_rows.append(option)

        combos = [[]]
        for option in option_rows:
            combos = [combo + [value] for combo in combos for value in option.values]

        for position, combo in enumerate(combos, start=1):
            variant = ProductVariant(
                sku=f"LOCAL-{position:03d}",
                position=position,
                price=Decimal(price),
                stock_quantity=stock,
                is_default=position == 1,
                image_url=(image_urls or {}).get(position),
            )
            for value in combo:
                variant.variant_options.append(ProductVariantOption(option_value=value))
            product.variants.append(variant)

        db_session.add(product)
        db_session.commit()
        return product
    return _make
