"""
Bulk product import from a store export CSV.

Each published, simple product row becomes a catalog product. Brand,
protocol and category are read off the product name and description, and
prices are mapped to the Egyptian market: known SONOFF models get a
researched EGP price, low prices are treated as USD and converted, and
brands sold locally keep their price.
"""

import csv
import html
import io
import logging
import re

from sqlalchemy.orm import Session

from calculator import round_half_up
from models import Category, Product
from services import ShopError
from utils import slugify

logger = logging.getLogger(__name__)

USD_TO_EGP = 50
USD_PRICE_THRESHOLD = 100
IMPORT_STOCK = 100
MAX_DESCRIPTION = 500
MAX_SLUG = 100

# EGP street prices for SONOFF models, matched as substrings of the name
# in this order.
EGYPT_PRICE_MAP = {
    # WiFi switches
    "basic": 420,
    "basicr2": 420,
    "basicr3": 450,
    "minir2": 546,
    "minir4": 808,
    "minir4m": 1000,
    "mini-d": 890,
    "s26": 560,
    "th origin": 650,
    "th elite": 750,
    "pow origin": 850,
    "powr2": 750,
    "powr3": 950,
    "4ch": 1500,
    "4chr3": 1800,
    "4chpror3": 2018,
    "dualr3": 900,
    # Touch switches
    "tx": 850,
    "t0": 750,
    "t1": 850,
    "t2": 950,
    "t3": 1100,
    "t5": 1484,
    "m5": 1334,
    "m5 1c": 850,
    "m5 2c": 1100,
    "m5 3c": 1334,
    # Sensors
    "dw2": 799,
    "snzb-01": 350,
    "snzb-02": 450,
    "snzb-02d": 600,
    "snzb-02p": 500,
    "snzb-03": 400,
    "snzb-03p": 450,
    "snzb-04": 350,
    "snzb-05": 550,
    "snzb-06": 650,
    "snzb-06p": 750,
    # Hubs and bridges
    "zbbridge": 800,
    "zb bridge": 800,
    "zbbridge-p": 950,
    "zbbridge-u": 1500,
    "zbdongle": 750,
    "zbdongle-e": 950,
    "zbdongle-p": 850,
    "ihost": 2500,
    "nspanel": 2200,
    "nspanel pro": 4500,
    # Accessories
    "nfc": 200,
    "ths01": 300,
    "r5": 500,
    "s-mate": 450,
    "s-mate2": 550,
    "rf bridge": 600,
}

# Brands whose export prices are already in EGP.
EGP_BRANDS = ("moes", "lezn", "akubela", "aruba", "tp-link", "archer", "tapo")

BRAND_KEYWORDS = [
    ("SONOFF", ("sonoff",)),
    ("MOES", ("moes",)),
    ("Lezn", ("lezn",)),
    ("Akubela", ("akubela", "hypanel")),
    ("Aruba", ("aruba",)),
    ("TP-Link", ("tp-link", "archer", "tapo")),
]

PROTOCOL_KEYWORDS = [
    ("Zigbee", ("zigbee",)),
    ("Z-Wave", ("z-wave",)),
    ("Matter", ("matter",)),
    ("Thread", ("thread",)),
    ("WiFi", ("wifi", "wi-fi")),
    ("Bluetooth", ("bluetooth",)),
    ("RF 433MHz", ("rf ", "433")),
]

CATEGORY_NAMES = {
    "smart-locks": "Smart Locks",
    "smart-panels": "Smart Panels",
    "smart-hubs": "Smart Hubs",
    "smart-sensors": "Smart Sensors",
    "smart-plugs": "Smart Plugs",
    "networking": "Networking",
    "smart-switches": "Smart Switches",
    "accessories": "Accessories",
}

SKIPPED_NAME_WORDS = ("chair", "table", "furniture", "drawer", "vitra", "magisso")
SKIPPED_TYPES = ("variable", "variation")


def _has_any(text: str, words) -> bool:
    return any(word in text for word in words)


def detect_brand(name: str) -> str:
    """Brand named in a product title, or "" when none is recognised."""
    lowered = name.lower()
    for brand, words in BRAND_KEYWORDS:
        if _has_any(lowered, words):
            return brand
    return ""


def detect_protocol(name: str, description: str = "") -> str:
    text = f"{name} {description}".lower()
    for protocol, words in PROTOCOL_KEYWORDS:
        if _has_any(text, words):
            return protocol
    return "WiFi"


def detect_category(name: str, description: str = "") -> str:
    """Category slug for a product, "accessories" when nothing fits."""
    text = f"{name} {description}".lower()
    if "lock" in text:
        return "smart-locks"
    if _has_any(text, ("panel", "hypanel", "nspanel")):
        return "smart-panels"
    if _has_any(text, ("hub", "gateway", "bridge", "ihost", "dongle")):
        return "smart-hubs"
    if _has_any(text, ("sensor", "snzb", "motion", "temperature", "humidity", "leak", "door/window", "pir")):
        return "smart-sensors"
    if _has_any(text, ("plug", "socket", "s26", "s40", "s31")):
        return "smart-plugs"
    if (_has_any(text, ("router", "access point", "aruba", "archer"))
            or ("switch" in text and "port" in text)):
        return "networking"
    if _has_any(text, ("switch", "mini", "basic", "relay", "dimmer")):
        return "smart-switches"
    return "accessories"


def egypt_price(price: float, name: str) -> float:
    """Map an export price to the EGP shelf price."""
    lowered = name.lower()
    if _has_any(lowered, EGP_BRANDS):
        return price
    for keyword, egp in EGYPT_PRICE_MAP.items():
        if keyword in lowered:
            return egp
    if price < USD_PRICE_THRESHOLD:
        return round_half_up(price * USD_TO_EGP)
    return price


def parse_price(raw: str | None) -> float | None:
    """Read "1,5" or "EGP 450" style cells; None when there is no number."""
    if not raw:
        return None
    cleaned = re.sub(r"[^0-9.]", "", raw.replace(",", ".", 1))
    try:
        return float(cleaned)
    except ValueError:
        return None


def clean_description(text: str) -> str:
    text = re.sub(r"<[^>]*>", "", text)
    text = html.unescape(re.sub(r"\s+", " ", text))
    return text.strip()[:MAX_DESCRIPTION]


def _unique_slug(base: str, taken: set[str]) -> str:
    slug = base
    n = 1
    while slug in taken:
        slug = f"{base}-{n}"
        n += 1
    taken.add(slug)
    return slug


def _category_ids(db: Session) -> dict[str, int]:
    return {slug: id_ for id_, slug in db.query(Category.id, Category.slug).all()}


def _product_from_row(row: dict, taken: set[str]) -> dict | None:
    """Product fields for a CSV row, or None when the row is not imported."""
    if (row.get("type") or "").strip().lower() in SKIPPED_TYPES:
        return None
    if "published" in row and (row.get("published") or "").strip() != "1":
        return None

    name = (row.get("name") or "").strip()
    if len(name) < 3 or _has_any(name.lower(), SKIPPED_NAME_WORDS):
        return None

    price = parse_price(row.get("regular price"))
    if not price or price <= 0:
        return None
    sale_price = parse_price(row.get("sale price")) or None

    description = clean_description(row.get("description") or row.get("short description") or "")
    images = [url.strip() for url in (row.get("images") or "").split(",") if url.strip()]

    egp = egypt_price(price, name)
    egp_sale = egypt_price(sale_price, name) if sale_price else None
    on_sale = egp_sale is not None and egp_sale < egp

    return {
        "name": name,
        "slug": _unique_slug(slugify(name)[:MAX_SLUG], taken),
        "description": description,
        "price": float(egp_sale if on_sale else egp),
        "original_price": float(egp) if on_sale else None,
        "category": detect_category(name, description),
        "brand": detect_brand(name) or None,
        "protocol": detect_protocol(name, description),
        "sku": (row.get("sku") or "").strip() or None,
        "image_url": images[0] if images else None,
        "images": images[1:],
    }


def import_products(db: Session, csv_content: str) -> dict:
    """Create catalog products from a store export CSV.

    Column names are matched case-insensitively. ``Name`` and
    ``Regular price`` are required; ``Type``, ``Published``, ``SKU``,
    ``Description``, ``Short description``, ``Sale price`` and ``Images``
    are used when present. Missing categories are created.

    Returns:
        Counts of parsed, inserted and skipped rows, the categories created
        and a sample of the first imported products.

    Raises:
        ShopError: Empty content or a required column is missing.
    """
    if not csv_content or not csv_content.strip():
        raise ShopError("No CSV content provided")

    reader = csv.DictReader(io.StringIO(csv_content))
    reader.fieldnames = [h.strip().lower() for h in reader.fieldnames or []]
    for column in ("name", "regular price"):
        if column not in reader.fieldnames:
            raise ShopError(f"CSV is missing required column: {column}")

    taken = {slug for (slug,) in db.query(Product.slug).all()}
    parsed = []
    skipped = 0
    for row in reader:
        if not any((value or "").strip() for value in row.values() if isinstance(value, str)):
            continue
        fields = _product_from_row(row, taken)
        if fields is None:
            skipped += 1
        else:
            parsed.append(fields)

    categories = _category_ids(db)
    created = []
    for slug in sorted({p["category"] for p in parsed} - set(categories)):
        category = Category(name=CATEGORY_NAMES[slug], slug=slug)
        db.add(category)
        db.flush()
        categories[slug] = category.id
        created.append(slug)

    products = []
    for fields in parsed:
        category_slug = fields.pop("category")
        products.append(Product(
            category_id=categories[category_slug],
            stock=IMPORT_STOCK,
            featured=False,
            specifications={},
            **fields,
        ))
    db.add_all(products)
    db.commit()

    logger.info("Imported %d products (%d rows skipped, %d categories created)",
                len(products), skipped, len(created))
    return {
        "total_parsed": len(parsed),
        "inserted": len(products),
        "skipped": skipped,
        "categories_created": created,
        "sample": [
            {"name": p.name, "slug": p.slug, "price": p.price, "category_id": p.category_id}
            for p in products[:5]
        ],
    }
