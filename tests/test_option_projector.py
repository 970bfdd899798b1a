# tests/test_option_projector.py
from decimal import Decimal

from app.models import ProductImage
from app.services.option_projector import (
    cartesian_product, collect_image_entries, format_optional_price, format_price,
    product_options_input, project_options, project_variants, retained_options, variant_input,
)


def test_cartesian_product_first_list_varies_slowest():
    assert cartesian_product([["S", "M"], ["Red", "Blue"]]) == [
        ("S", "Red"), ("S", "Blue"), ("M", "Red"), ("M", "Blue"),
    ]
    assert cartesian_product([]) == [()]


def test_format_price():
    assert format_price(Decimal("10")) == "10.00"
    assert format_price(None) == "0.00"
    assert format_price("12.5") == "12.5"
    assert format_optional_price(None) is None
    assert format_optional_price(Decimal("3.1")) == "3.10"


def test_project_options_orders_values_and_drops_blank(db_session, make_product):
    product = make_product(options={"Size": ["S", "M"], "Color": ["Red", "Blue"]})

    options = project_options(product.options)

    assert [o.name for o in options] == ["Size", "Color"]
    assert options[0].values == ["S", "M"]
    assert options[1].values == ["Red", "Blue"]


def test_retained_options_keeps_first_three(db_session, make_product):
    product = make_product(options={"A": ["1"], "B": ["1"], "C": ["1"], "D": ["1"]})
    assert [o.name for o in retained_options(product.options)] == ["A", "B", "C"]


def test_missing_option_link_falls_back_to_first_value(db_session, make_product):
    product = make_product(options={"Size": ["S", "M"], "Color": ["Red", "Blue"]})
    last = product.variants[-1]
    color_link = next(link for link in last.variant_options if link.option_value.option.name == "Color")
    db_session.delete(color_link)
    db_session.commit()
    db_session.expire_all()

    options = project_options(product.options)
    variants = project_variants(product, options)

    assert [v.options for v in variants] == [["S", "Red"], ["S", "Blue"], ["M", "Red"], ["M", "Red"]]
    assert variants[0].price == "10.00"
    assert variants[0].signature(options) == "Size:S / Color:Red"


def test_project_variants_uses_store_sku(db_session, make_product):
    product = make_product(options={"Size": ["S"]})
    product.variants[0].store_specific_skus = {"store-1": "CC-ABC-001-US"}

    options = project_options(product.options)
    assert project_variants(product, options, "store-1")[0].sku == "CC-ABC-001-US"
    assert project_variants(product, options, "store-2")[0].sku == "LOCAL-001"


def test_product_options_input_is_none_without_options():
    assert product_options_input([]) is None


def test_variant_input_payload(db_session, make_product):
    product = make_product(options={"Size": ["S"]})
    options = project_options(product.options)
    payload = variant_input(project_variants(product, options)[0], options)

    assert payload == {
        "optionValues": [{"name": "S", "optionName": "Size"}],
        "price": "10.00",
        "inventoryItem": {"sku": "LOCAL-001"},
    }
    assert product_options_input(options) == [{"name": "Size", "position": 1, "values": [{"name": "S"}]}]


def test_collect_image_entries_dedupes_in_order(db_session, make_product):
    product = make_product(
        options={"Size": ["S", "M"]},
        image_urls={1: "https://cdn.example.com/a.jpg", 2: "https://cdn.example.com/b.jpg"},
    )
    product.images.append(ProductImage(original_url="https://cdn.example.com/a.jpg", display_order=1))
    product.images.append(ProductImage(original_url="https://cdn.example.com/main.jpg", display_order=2))
    db_session.commit()

    entries = collect_image_entries(product)

    assert [e["url"] for e in entries] == [
        "https://cdn.example.com/a.jpg",
        "https://cdn.example.com/main.jpg",
        "https://cdn.example.com/b.jpg",
    ]
    assert entries[2]["alt"] == "Variant image 1"
