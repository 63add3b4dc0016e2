"""
Tests for catalog filtering and cart pricing.
"""

import pytest

from cart import Cart
from catalog import ProductFilters, filter_products, facets
from utils import slugify, validate_email


def names(products):
    return [p.name for p in products]


def test_default_order_puts_featured_first(db_session, catalog):
    products = filter_products(db_session, ProductFilters())
    assert products[0].name == "SONOFF Smart Bulb"
    assert len(products) == 4


def test_search_matches_name_description_and_brand(db_session, catalog):
    assert names(filter_products(db_session, ProductFilters(search="MOTION"))) == ["Zigbee Motion Sensor"]
    assert names(filter_products(db_session, ProductFilters(search="rgb"))) == ["LED Strip 5m"]
    assert set(names(filter_products(db_session, ProductFilters(search="sonoff")))) == {
        "SONOFF Smart Bulb", "Security Camera Pro",
    }


def test_category_filter_ignores_unknown_slug(db_session, catalog):
    sensors = filter_products(db_session, ProductFilters(category="sensors"))
    assert set(names(sensors)) == {"Zigbee Motion Sensor", "Security Camera Pro"}
    assert len(filter_products(db_session, ProductFilters(category="no-such-thing"))) == 4


def test_price_brand_protocol_and_availability(db_session, catalog):
    f = ProductFilters(min_price=500, max_price=1000, sort="price-asc")
    assert names(filter_products(db_session, f)) == ["Zigbee Motion Sensor", "LED Strip 5m"]

    f = ProductFilters(brands=["SONOFF"], availability="in-stock")
    assert names(filter_products(db_session, f)) == ["SONOFF Smart Bulb"]

    f = ProductFilters(protocols=["Zigbee"])
    assert names(filter_products(db_session, f)) == ["Zigbee Motion Sensor"]

    f = ProductFilters(availability="out-of-stock")
    assert names(filter_products(db_session, f)) == ["Security Camera Pro"]


def test_sorting(db_session, catalog):
    by_price = filter_products(db_session, ProductFilters(sort="price-desc"))
    assert [p.price for p in by_price] == [1500.0, 850.0, 550.0, 450.0]

    by_name = filter_products(db_session, ProductFilters(sort="name-asc"))
    assert names(by_name) == sorted(names(by_name))


def test_invalid_filters():
    with pytest.raises(ValueError, match="sort"):
        ProductFilters(sort="cheapest")
    with pytest.raises(ValueError, match="availability"):
        ProductFilters(availability="soon")
    with pytest.raises(ValueError, match="min_price"):
        ProductFilters(min_price=100, max_price=10)


def test_facets(catalog):
    result = facets(list(catalog.values()))
    assert result == {
        "brands": ["Aqara", "Govee", "SONOFF"],
        "protocols": ["WiFi", "Zigbee"],
        "max_price": 1500.0,
    }
    assert facets([]) == {"brands": [], "protocols": [], "max_price": 0.0}


# ── Cart ──────────────────────────────────────────────────────────

def test_cart_merges_and_caps_at_stock(catalog):
    cart = Cart()
    cart.add_item(catalog["strip"], 3)
    cart.add_item(catalog["strip"], 4)

    assert len(cart.lines) == 1
    assert cart.lines[0].quantity == 5  # only 5 in stock


def test_cart_skips_sold_out_and_removes_on_zero(catalog):
    cart = Cart()
    assert cart.add_item(catalog["camera"]) is None
    cart.add_item(catalog["bulb"], 2)
    cart.update_quantity(catalog["bulb"].id, 0)

    assert cart.lines == []
    assert cart.shipping_cost == 0.0
    with pytest.raises(ValueError, match="not in the cart"):
        cart.update_quantity(catalog["bulb"].id, 1)


def test_cart_totals(catalog):
    cart = Cart()
    cart.add_item(catalog["bulb"], 1)
    cart.add_item(catalog["motion"], 1)
    assert cart.subtotal == 1000.0
    assert cart.shipping_cost == 0.0
    assert cart.free_shipping_remaining == 0.0

    cart.remove_item(catalog["motion"].id)
    assert cart.shipping_cost == 50.0
    assert cart.free_shipping_remaining == 550.0

    cart.discount = 1000.0  # capped at the subtotal
    summary = cart.summary()
    assert summary["discount"] == 450.0
    assert summary["total"] == 50.0
    assert summary["item_count"] == 1


# ── Helpers ───────────────────────────────────────────────────────

def test_slugify():
    assert slugify("SONOFF S26 Smart Plug") == "sonoff-s26-smart-plug"
    assert slugify("  Switches & Plugs! ") == "switches-plugs"


def test_validate_email():
    assert validate_email("a@example.com")
    assert not validate_email("a@example")
    assert not validate_email("")
