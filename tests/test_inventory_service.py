# tests/test_inventory_service.py
import asyncio

from app.core.exceptions import RemoteApiError
from app.integrations.base import RemoteLocation
from app.models import ProductLocation
from app.services.inventory_service import InventoryActivator
from tests.conftest import FakeCatalogClient


def _items(product):
    return {v.id: f"gid://shopify/InventoryItem/{v.position}" for v in product.variants}


def test_tracking_then_activation_then_quantity(db_session, make_product):
    product = make_product(options={"Size": ["S", "M"]}, stock=4)
    product.variants[1].stock_quantity = 0
    client = FakeCatalogClient()

    stats = asyncio.run(InventoryActivator(db_session, client).activate_variants(product, "store-1", _items(product)))

    assert client.calls == [
        ("get_locations", ()),
        ("enable_inventory_tracking", ("gid://shopify/InventoryItem/1",)),
        ("activate_inventory_at_location", ("gid://shopify/InventoryItem/1", "gid://shopify/Location/1")),
        ("set_inventory_quantity", ("gid://shopify/InventoryItem/1", "gid://shopify/Location/1", 4)),
    ]
    assert stats["updated"] == 1
    row = db_session.query(ProductLocation).one()
    assert (row.store_id, row.location_name, row.stock_quantity) == ("store-1", "Main", 4)
    assert row.variant_sku == "LOCAL-001"


def test_tracking_failure_skips_only_that_variant(db_session, make_product):
    product = make_product(options={"Size": ["S", "M"]})
    client = FakeCatalogClient()
    client.fail_once["enable_inventory_tracking"] = RemoteApiError("Tracking rejected")

    stats = asyncio.run(InventoryActivator(db_session, client).activate_variants(product, "store-1", _items(product)))

    assert stats["skipped"] == 1
    assert stats["updated"] == 1
    assert client.calls_to("set_inventory_quantity") == [
        ("gid://shopify/InventoryItem/2", "gid://shopify/Location/1", 5)
    ]


def test_location_failure_does_not_stop_other_locations(db_session, make_product):
    product = make_product()
    client = FakeCatalogClient()
    client.locations.append(RemoteLocation(id="gid://shopify/Location/2", name="Warehouse"))
    client.fail_once["activate_inventory_at_location"] = RemoteApiError("Location inactive")

    stats = asyncio.run(InventoryActivator(db_session, client).activate_variants(product, "store-1", _items(product)))

    assert stats == {"variants": 1, "locations": 2, "updated": 1, "skipped": 0, "errors": 1}
    assert [r.location_id for r in db_session.query(ProductLocation).all()] == ["gid://shopify/Location/2"]


def test_requested_location_is_used_when_present(db_session, make_product):
    product = make_product()
    client = FakeCatalogClient()
    client.locations.append(RemoteLocation(id="gid://shopify/Location/2", name="Warehouse"))
    activator = InventoryActivator(db_session, client)

    asyncio.run(activator.activate_variants(product, "store-1", _items(product), "gid://shopify/Location/2"))
    assert [args[1] for args in client.calls_to("set_inventory_quantity")] == ["gid://shopify/Location/2"]

    locations = asyncio.run(activator.resolve_locations("gid://shopify/Location/404"))
    assert len(locations) == 2


def test_location_row_is_upserted(db_session, make_product):
    product = make_product()
    activator = InventoryActivator(db_session, FakeCatalogClient())

    asyncio.run(activator.activate_variants(product, "store-1", _items(product)))
    product.variants[0].stock_quantity = 9
    asyncio.run(activator.activate_variants(product, "store-1", _items(product)))

    rows = db_session.query(ProductLocation).all()
    assert len(rows) == 1
    assert rows[0].stock_quantity == 9


def test_first_sync_skips_zero_stock(db_session, make_product):
    product = make_product(stock=0)
    client = FakeCatalogClient()

    stats = asyncio.run(InventoryActivator(db_session, client).activate_variants(product, "store-1", _items(product)))

    assert stats["variants"] == 0
    assert client.calls == []


def test_lowered_stock_is_pushed_as_zero(db_session, make_product):
    product = make_product(stock=0)
    client = FakeCatalogClient()
    activator = InventoryActivator(db_session, client)
    activator.upsert_location(
        product, product.variants[0], "LOCAL-001", "store-1", client.locations[0], 5
    )

    stats = asyncio.run(activator.activate_variants(product, "store-1", _items(product), include_zero=True))

    assert stats["updated"] == 1
    assert client.call_names() == [
        "get_locations",
        "enable_inventory_tracking",
        "activate_inventory_at_location",
        "set_inventory_quantity",
    ]
    assert client.calls_to("set_inventory_quantity") == [
        ("gid://shopify/InventoryItem/1", "gid://shopify/Location/1", 0)
    ]
    assert db_session.query(ProductLocation).one().stock_quantity == 0
