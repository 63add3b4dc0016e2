"""
Product browsing: search, filters, sorting and filter facets.
"""

from dataclasses import dataclass, field

from sqlalchemy import or_
from sqlalchemy.orm import Session

from models import Category, Product

SORT_OPTIONS = ("featured", "price-asc", "price-desc", "newest", "name-asc")
AVAILABILITY_OPTIONS = ("all", "in-stock", "out-of-stock")


@dataclass
class ProductFilters:
    search: str | None = None
    category: str | None = None  # category slug
    min_price: float | None = None
    max_price: float | None = None
    brands: list[str] = field(default_factory=list)
    protocols: list[str] = field(default_factory=list)
    availability: str = "all"
    sort: str = "featured"

    def __post_init__(self):
        if self.sort not in SORT_OPTIONS:
            raise ValueError(f"Unknown sort option: {self.sort}")
        if self.availability not in AVAILABILITY_OPTIONS:
            raise ValueError(f"Unknown availability filter: {self.availability}")
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValueError("min_price cannot be greater than max_price")


def filter_products(db: Session, filters: ProductFilters) -> list[Product]:
    """Return the products matching ``filters`` in the requested order.

    An unknown category slug is ignored rather than returning nothing,
    so a stale link still lands on the full catalog.
    """
    query = db.query(Product)

    if filters.category:
        category = db.query(Category).filter(Category.slug == filters.category).first()
        if category:
            query = query.filter(Product.category_id == category.id)

    if filters.search:
        pattern = f"%{filters.search.strip().lower()}%"
        query = query.filter(
            or_(
                Product.name.ilike(pattern),
                Product.description.ilike(pattern),
                Product.brand.ilike(pattern),
            )
        )

    if filters.min_price is not None:
        query = query.filter(Product.price >= filters.min_price)
    if filters.max_price is not None:
        query = query.filter(Product.price <= filters.max_price)
    if filters.brands:
        query = query.filter(Product.brand.in_(filters.brands))
    if filters.protocols:
        query = query.filter(Product.protocol.in_(filters.protocols))

    if filters.availability == "in-stock":
        query = query.filter(Product.stock > 0)
    elif filters.availability == "out-of-stock":
        query = query.filter(Product.stock <= 0)

    if filters.sort == "price-asc":
        query = query.order_by(Product.price.asc(), Product.id.asc())
    elif filters.sort == "price-desc":
        query = query.order_by(Product.price.desc(), Product.id.asc())
    elif filters.sort == "newest":
        query = query.order_by(Product.created_at.desc(), Product.id.desc())
    elif filters.sort == "name-asc":
        query = query.order_by(Product.name.asc())
    else:
        query = query.order_by(Product.featured.desc(), Product.id.asc())

    return query.all()


def facets(products: list[Product]) -> dict:
    """Collect the filter values offered by a product list."""
    brands = sorted({p.brand for p in products if p.brand})
    protocols = sorted({p.protocol for p in products if p.protocol})
    max_price = max((p.price for p in products), default=0.0)
    return {"brands": brands, "protocols": protocols, "max_price": max_price}
