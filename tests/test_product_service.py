# tests/test_product_service.py
import asyncio
import re
from decimal import Decimal

import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.models import Product, ProductLocation, ProductSyncStatus
from app.services.product_service import ProductService
from app.services.sync_service import ProductSyncService


# ========== Ingestion ==========

def test_ingest_requires_title_and_type(db_session):
    with pytest.raises(ValidationError, match="Title and Product Type are required"):
        ProductService.ingest_product(db_session, {"title": "Shirt"})


def test_ingest_rejects_malformed_variants(db_session):
    with pytest.raises(ValidationError, match="Invalid variants JSON format"):
        ProductService.ingest_product(db_session, {"title": "Shirt", "product_type": "Tops"}, variants="[{oops")
    assert db_session.query(Product).count() == 0


def test_ingest_stores_images_and_variants(db_session):
    result = ProductService.ingest_product(
        db_session,
        {"title": "Shirt", "product_type": "Tops", "tags": '["summer", "cotton"]'},
        images=["https://cdn.example.com/a.jpg"],
        variants='[{"sku": "A-1", "price": "10", "stock_quantity": 2, "image_url": "https://cdn.example.com/v.jpg"}]',
    )

    product = ProductService.get_product_with_details(db_session, result["product_id"])
    assert product.unique_reference_code == result["reference_code"]
    assert product.tags == ["summer", "cotton"]
    assert product.sync_status == ProductSyncStatus.NOT_SYNCED
    assert [v.sku for v in product.variants] == ["A-1"]
    assert product.variants[0].price == Decimal("10")
    assert product.all_image_urls == ["https://cdn.example.com/a.jpg", "https://cdn.example.com/v.jpg"]


# ========== Creation ==========

def test_create_generates_cartesian_variants(db_session):
    product = ProductService.create_product(
        db_session,
        {"title": "Shirt", "vendor": "Cool Co"},
        [
            {"name": "Size", "values": ["S", "M"]},
            {"name": "Color", "values": [{"value": "Red", "price": "15.00"}, "Blue"]},
        ],
    )

    skus = [v.sku for v in product.variants]
    assert len(skus) == 4
    for sku, expected in zip(skus, ["S-RED", "S-BLUE", "M-RED", "M-BLUE"]):
        assert re.fullmatch(rf"{expected}-\d{{6}}-\d{{3}}", sku)
    assert [v.price for v in product.variants] == [Decimal("15.00"), None, Decimal("15.00"), None]
    assert all(len(v.variant_options) == 2 for v in product.variants)
    assert [o.name for o in product.options] == ["Size", "Color"]


def test_create_simple_product(db_session):
    product = ProductService.create_product(db_session, {"title": "Mug", "price": "5"})

    assert len(product.variants) == 1
    assert re.fullmatch(r"SIMPLE-\d{6}-001", product.variants[0].sku)
    assert product.variants[0].price == Decimal("5")
    assert product.variants[0].is_default


def test_create_with_explicit_variants(db_session):
    product = ProductService.create_product(db_session, {
        "title": "Poster",
        "variants": [{"price": "3"}, {"sku": "KEEP-ME", "price": "4", "image_url": "https://cdn.example.com/p.jpg"}],
    })

    assert re.fullmatch(r"VAR-\d{6}-001", product.variants[0].sku)
    assert product.variants[1].sku == "KEEP-ME"
    assert product.images[0].variant_id == product.variants[1].id
    assert product.all_image_urls == ["https://cdn.example.com/p.jpg"]


def test_create_rejects_bad_input(db_session):
    with pytest.raises(ValidationError, match="Title is required"):
        ProductService.create_product(db_session, {"title": ""})
    with pytest.raises(ValidationError, match="Invalid price"):
        ProductService.create_product(db_session, {"title": "Mug", "price": "cheap"})


def test_bulk_create_reports_each_product(db_session):
    results = ProductService.create_bulk_products(db_session, [
        {"title": "A"},
        {"title": ""},
        {"title": "B", "options": [{"name": "Size", "values": ["S"]}]},
    ])

    assert [r["success"] for r in results] == [True, False, True]
    assert results[1]["error"] == "Title is required"
    assert db_session.query(Product).count() == 2


# ========== Update ==========

def test_local_update_without_remote_config(db_session, make_product):
    product = make_product()

    result = asyncio.run(ProductService.update_product(db_session, product.id, {"title": "Better Shirt", "tags": "sale"}))

    assert result["sync"] is None
    assert result["product"].title == "Better Shirt"
    assert result["product"].tags == ["sale"]


def test_update_propagates_to_synced_store(db_session, clients, make_store, make_product):
    store = make_store("US Store")
    product = make_product(options={"Colour": ["Red", "Blue"]}, image_urls={1: "https://cdn.example.com/red.jpg"})
    asyncio.run(ProductSyncService(db_session, clients).sync_product(product.id, store_ids=[store.id]))
    db_session.expire_all()
    red = product.variants[0]
    red_id = red.id
    inventory_item = red.inventory_item_ids[str(store.id)]
    client = clients.for_domain(store.shopify_domain)
    before = len(client.calls)

    result = asyncio.run(ProductService.update_product(
        db_session,
        product.id,
        {
            "options": [{"name": "Color", "values": ["Red", "Blue"]}],
            "variants": [{"id": str(red_id), "image_url": "https://cdn.example.com/red-new.jpg", "stock_quantity": 9}],
        },
        remote_config={"location_id": None},
        client_factory=clients,
    ))
    db_session.expire_all()

    assert result["sync"]["summary"]["successful_syncs"] == 1
    calls = client.call_names()[before:]
    assert "create_product" not in calls
    assert client.calls_to("update_product_option")[0][2] == "Color"

    detached_at = calls.index("detach_media_from_variants")
    assert "attach_media_to_variants" in calls[detached_at + 1:]
    remote = next(iter(client.products.values()))
    new_media = next(m for m in remote.media if m.url == "https://cdn.example.com/red-new.jpg")
    red = next(v for v in product.variants if v.id == red_id)
    assert red.shopify_media_ids == {str(store.id): new_media.id}
    assert client.quantities[(inventory_item, "gid://shopify/Location/1")] == 9


def test_update_pushes_stock_lowered_to_zero(db_session, clients, make_store, make_product):
    store = make_store("US Store")
    product = make_product(options={"Colour": ["Red", "Blue"]}, stock=5)
    asyncio.run(ProductSyncService(db_session, clients).sync_product(product.id, store_ids=[store.id]))
    db_session.expire_all()
    red_id = product.variants[0].id
    inventory_item = product.variants[0].inventory_item_ids[str(store.id)]
    client = clients.for_domain(store.shopify_domain)
    assert client.quantities[(inventory_item, "gid://shopify/Location/1")] == 5

    asyncio.run(ProductService.update_product(
        db_session,
        product.id,
        {"variants": [{"id": str(red_id), "stock_quantity": 0}]},
        remote_config={"location_id": None},
        client_factory=clients,
    ))
    db_session.expire_all()

    assert client.quantities[(inventory_item, "gid://shopify/Location/1")] == 0
    row = db_session.query(ProductLocation).filter(ProductLocation.variant_id == red_id).one()
    assert row.stock_quantity == 0
    # a catalog edit to 0 keeps the variant; removal belongs to the stock-change path
    assert len(product.variants) == 2
    assert client.calls_to("delete_variant") == []


def test_update_unknown_product(db_session):
    with pytest.raises(NotFoundError):
        asyncio.run(ProductService.update_product(db_session, "not-a-uuid", {"title": "x"}))


# ========== Delete ==========

def test_delete_product(db_session, make_product):
    product = make_product(options={"Size": ["S", "M"]})
    product_id = product.id

    assert ProductService.delete_product(db_session, product_id) is True
    with pytest.raises(NotFoundError):
        ProductService.get_product_with_details(db_session, product_id)
    with pytest.raises(NotFoundError):
        ProductService.delete_product(db_session, product_id)
