"""
Storefront API routes: catalog, cart, checkout, quote calculator, loyalty.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

import calculator
import loyalty
from catalog import ProductFilters, filter_products, facets
from models import get_db, Category, Product, Order, Quote
from services import (
    NotFoundError, build_cart, place_order, get_order, submit_quote,
)
from utils import normalize_email

router = APIRouter(prefix="/api")


# ── Pydantic schemas ─────────────────────────────────────────────

class CartItemIn(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)


class CartIn(BaseModel):
    items: list[CartItemIn]
    redeem_points: int = Field(default=0, ge=0)


class PlaceOrderIn(BaseModel):
    email: str
    items: list[CartItemIn]
    shipping_address: dict | None = None
    payment_method: str = "cod"
    redeem_points: int = Field(default=0, ge=0)


class RoomFeatureIn(BaseModel):
    type: str
    enabled: bool = True
    quantity: int = Field(default=1, ge=1)


class RoomIn(BaseModel):
    type: str
    name: str | None = None
    features: list[RoomFeatureIn] | None = None  # None keeps the room defaults


class RoomDetectedIn(BaseModel):
    type: str
    name: str | None = None
    count: int = Field(default=1, ge=1)


class SuggestedFeaturesIn(BaseModel):
    room_type: str
    features: list[str] = []


class FloorPlanAnalysisIn(BaseModel):
    rooms_detected: list[RoomDetectedIn] = []
    suggested_features: list[SuggestedFeaturesIn] = []
    estimated_area: float | None = None
    notes: str | None = None


class QuoteIn(BaseModel):
    property_type: str
    rooms: list[RoomIn] = []
    analysis: FloorPlanAnalysisIn | None = None
    floor_plan_url: str | None = None
    email: str | None = None
    phone: str | None = None


# ── Serializers ──────────────────────────────────────────────────

def category_out(c: Category) -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "slug": c.slug,
        "description": c.description,
        "image_url": c.image_url,
    }


def product_out(p: Product) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "slug": p.slug,
        "description": p.description,
        "price": p.price,
        "original_price": p.original_price,
        "category_id": p.category_id,
        "brand": p.brand,
        "protocol": p.protocol,
        "sku": p.sku,
        "image_url": p.image_url,
        "images": p.images or [],
        "specifications": p.specifications or {},
        "stock": p.stock,
        "featured": bool(p.featured),
    }


def order_out(o: Order) -> dict:
    return {
        "id": o.id,
        "email": o.email,
        "status": o.status,
        "subtotal": o.subtotal,
        "shipping_cost": o.shipping_cost,
        "discount_amount": o.discount_amount,
        "points_redeemed": o.points_redeemed,
        "points_earned": o.points_earned,
        "total": o.total,
        "shipping_address": o.shipping_address,
        "payment_method": o.payment_method,
        "created_at": o.created_at.isoformat() if o.created_at else None,
        "items": [
            {
                "product_id": item.product_id,
                "product_name": item.product_name,
                "price": item.price,
                "quantity": item.quantity,
            }
            for item in o.items
        ],
    }


def quote_out(q: Quote) -> dict:
    return {
        "id": q.id,
        "property_type": q.property_type,
        "rooms": q.rooms,
        "devices": q.devices,
        "subtotal": q.subtotal,
        "installation_fee": q.installation_fee,
        "total": q.total,
        "email": q.email,
        "phone": q.phone,
        "floor_plan_url": q.floor_plan_url,
        "status": q.status,
        "created_at": q.created_at.isoformat() if q.created_at else None,
    }


# ── Health ───────────────────────────────────────────────────────

health_router = APIRouter()


@health_router.get("/health")
def health():
    return {"status": "ok"}


# ── Catalog ──────────────────────────────────────────────────────

@router.get("/categories")
def list_categories(db: Session = Depends(get_db)):
    return [category_out(c) for c in db.query(Category).order_by(Category.name).all()]


def product_filters(
    search: str | None = None,
    category: str | None = None,
    min_price: float | None = None,
    max_price: float | None = None,
    brand: list[str] = Query(default=[]),
    protocol: list[str] = Query(default=[]),
    availability: str = "all",
    sort: str = "featured",
) -> ProductFilters:
    try:
        return ProductFilters(
            search=search,
            category=category,
            min_price=min_price,
            max_price=max_price,
            brands=brand,
            protocols=protocol,
            availability=availability,
            sort=sort,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/products")
def list_products(filters: ProductFilters = Depends(product_filters), db: Session = Depends(get_db)):
    return [product_out(p) for p in filter_products(db, filters)]


@router.get("/products/facets")
def product_facets(db: Session = Depends(get_db)):
    return facets(db.query(Product).all())


@router.get("/products/{slug}")
def get_product(slug: str, db: Session = Depends(get_db)):
    product = db.query(Product).filter(Product.slug == slug).first()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product_out(product)


# ── Cart & checkout ──────────────────────────────────────────────

@router.post("/cart")
def price_cart(body: CartIn, db: Session = Depends(get_db)):
    try:
        cart = build_cart(db, [item.model_dump() for item in body.items], strict=False)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if body.redeem_points:
        try:
            loyalty.check_redeemable(body.redeem_points)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        cart.discount = loyalty.discount_for_points(body.redeem_points)
    return cart.summary()


@router.post("/orders")
def create_order(body: PlaceOrderIn, db: Session = Depends(get_db)):
    try:
        order = place_order(
            db=db,
            email=body.email,
            items=[item.model_dump() for item in body.items],
            shipping_address=body.shipping_address,
            payment_method=body.payment_method,
            redeem_points=body.redeem_points,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return order_out(order)


@router.get("/orders/{order_id}")
def get_order_detail(order_id: int, email: str, db: Session = Depends(get_db)):
    # The e-mail acts as the order lookup secret for guests.
    try:
        order = get_order(db, order_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    if order.email != normalize_email(email):
        raise HTTPException(status_code=404, detail="Order not found")
    return order_out(order)


# ── Quote calculator ─────────────────────────────────────────────

@router.get("/calculator/options")
def calculator_options():
    return {
        "property_types": calculator.PROPERTY_TYPES,
        "room_types": calculator.ROOM_TYPES,
        "feature_types": calculator.FEATURE_TYPES,
        "default_room_features": calculator.DEFAULT_ROOM_FEATURES,
        "installation": {
            "rate": float(calculator.INSTALLATION_RATE),
            "minimum": calculator.MIN_INSTALLATION_FEE,
        },
    }


def draft_from_body(body: QuoteIn) -> calculator.QuoteDraft:
    """Replay the wizard steps described by ``body``."""
    draft = calculator.QuoteDraft()
    draft.set_property_type(body.property_type)
    if body.analysis is not None:
        draft.apply_analysis(calculator.FloorPlanAnalysis.from_dict(body.analysis.model_dump()))
    for room_in in body.rooms:
        room = draft.add_room(room_in.type, room_in.name)
        if room_in.features is not None:
            chosen = {f.type: f for f in room_in.features}
            for feature_type in calculator.FEATURE_TYPES:
                f = chosen.pop(feature_type, None)
                draft.update_room_feature(
                    room.id, feature_type,
                    enabled=bool(f and f.enabled),
                    quantity=f.quantity if f else 1,
                )
            if chosen:
                raise ValueError(f"Unknown feature type: {next(iter(chosen))}")
    draft.floor_plan_url = body.floor_plan_url
    draft.email = body.email or ""
    draft.phone = body.phone or ""
    draft.generate_devices()
    return draft


@router.post("/calculator/estimate")
def estimate_quote(body: QuoteIn):
    try:
        draft = draft_from_body(body)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return draft.to_quote_data()


@router.post("/calculator/match")
def match_quote_products(body: QuoteIn, db: Session = Depends(get_db)):
    try:
        draft = draft_from_body(body)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    matched = calculator.match_products(draft.devices, db.query(Product).filter(Product.stock > 0).all())
    rooms = calculator.group_by_room(matched)
    return {
        "rooms": [
            {
                "room_id": room_id,
                "room_name": items[0].room_name,
                "products": [
                    {
                        "feature_type": m.feature_type,
                        "quantity": m.quantity,
                        "product": product_out(m.product),
                    }
                    for m in items
                ],
            }
            for room_id, items in rooms.items()
        ],
        "cart_items": [{"product_id": m.product.id, "quantity": m.quantity} for m in matched],
        "unmatched": len(draft.devices) - len(matched),
        **calculator.matched_totals(matched),
    }


@router.post("/quotes", status_code=201)
def create_quote(body: QuoteIn, db: Session = Depends(get_db)):
    try:
        quote = submit_quote(db, draft_from_body(body))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return quote_out(quote)


# ── Loyalty ──────────────────────────────────────────────────────

def account_out(account, db: Session) -> dict:
    return {
        "email": account.email,
        "points_balance": account.points_balance,
        "lifetime_points": account.lifetime_points,
        "tier": account.tier,
        "next_tier": loyalty.next_tier(account.tier, account.lifetime_points),
        "transactions": [
            {
                "points": t.points,
                "transaction_type": t.transaction_type,
                "description": t.description,
                "order_id": t.order_id,
                "created_at": t.created_at.isoformat() if t.created_at else None,
            }
            for t in loyalty.history(db, account)
        ],
    }


@router.get("/loyalty/{email}")
def get_loyalty(email: str, db: Session = Depends(get_db)):
    account = loyalty.get_account(db, normalize_email(email))
    if not account:
        raise HTTPException(status_code=404, detail="No loyalty account for this e-mail")
    return account_out(account, db)


@router.get("/loyalty/{email}/redemption")
def redemption_preview(email: str, max_discount: float = Query(ge=0), db: Session = Depends(get_db)):
    account = loyalty.get_account(db, normalize_email(email))
    balance = account.points_balance if account else 0
    points = loyalty.max_redeemable_points(balance, max_discount)
    return {
        "available_points": balance,
        "max_redeemable_points": points,
        "max_discount": loyalty.discount_for_points(points),
        "points_per_egp": loyalty.POINTS_PER_EGP_REDEEMED,
    }
