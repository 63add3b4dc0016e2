"""
Business logic for the storefront.

Handles:
  - Checkout: stock validation, shipping, loyalty redemption and earning
  - Order status changes, with cancellation restoring stock and points
  - Quote submission from the calculator
  - Site settings for the admin console
"""

import logging

from sqlalchemy.orm import Session

import loyalty
from cart import Cart
from calculator import QuoteDraft
from models import Product, Order, OrderItem, Quote, AdminSetting
from utils import validate_email, normalize_email

logger = logging.getLogger(__name__)


class ShopError(ValueError):
    """A request the shop refuses to carry out."""


class NotFoundError(ShopError):
    pass


class InsufficientStockError(ShopError):
    pass


PAYMENT_METHODS = ("cod", "card")

ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")
ORDER_TRANSITIONS = {
    "pending": {"processing", "cancelled"},
    "processing": {"shipped", "cancelled"},
    "shipped": {"delivered"},
    "delivered": set(),
    "cancelled": set(),
}

QUOTE_STATUSES = ("submitted", "contacted", "converted", "closed")

SESSION_KEY_PREFIX = "admin_session_"


# ── Checkout ──────────────────────────────────────────────────────

def build_cart(db: Session, items: list[dict], strict: bool = True) -> Cart:
    """Price ``items`` ({"product_id", "quantity"}) from the catalog.

    Raises:
        NotFoundError: A product does not exist.
        InsufficientStockError: With ``strict``, a quantity exceeds stock.
    """
    cart = Cart()
    for item in items:
        product = db.query(Product).filter(Product.id == item["product_id"]).first()
        if not product:
            raise NotFoundError(f"Product {item['product_id']} not found")

        quantity = item["quantity"]
        if quantity <= 0:
            raise ShopError(f"Quantity for '{product.name}' must be positive")
        if strict:
            line = next((l for l in cart.lines if l.product.id == product.id), None)
            wanted = quantity + (line.quantity if line else 0)
            if product.stock < wanted:
                raise InsufficientStockError(
                    f"Insufficient stock for '{product.name}': "
                    f"requested {wanted}, available {product.stock}"
                )
        cart.add_item(product, quantity)
    return cart


def place_order(
    db: Session,
    email: str,
    items: list[dict],
    shipping_address: dict | None = None,
    payment_method: str = "cod",
    redeem_points: int = 0,
) -> Order:
    """Place a new order.

    Args:
        db: Database session.
        email: Customer e-mail, also the loyalty account key.
        items: List of {"product_id": int, "quantity": int}.
        shipping_address: Free-form address fields.
        payment_method: "cod" or "card".
        redeem_points: Loyalty points to spend on this order.

    Returns:
        The created Order, status "pending".

    Raises:
        ShopError: Invalid input, unknown product, insufficient stock or
            points.
    """
    if not validate_email(email):
        raise ShopError(f"Invalid e-mail address: {email}")
    email = normalize_email(email)
    if not items:
        raise ShopError("Order has no items")
    if payment_method not in PAYMENT_METHODS:
        raise ShopError(f"Unknown payment method: {payment_method}")
    try:
        loyalty.check_redeemable(redeem_points)
    except ValueError as e:
        raise ShopError(str(e)) from e

    cart = build_cart(db, items)

    # Loyalty redemption
    if redeem_points:
        account = loyalty.get_account(db, email)
        balance = account.points_balance if account else 0
        allowed = loyalty.max_redeemable_points(balance, cart.subtotal)
        if redeem_points > allowed:
            raise ShopError(
                f"Cannot redeem {redeem_points} points: at most {allowed} available for this order"
            )
        cart.discount = loyalty.discount_for_points(redeem_points)

    order = Order(
        email=email,
        status="pending",
        subtotal=cart.subtotal,
        shipping_cost=cart.shipping_cost,
        discount_amount=round(min(cart.discount, cart.subtotal), 2),
        points_redeemed=redeem_points,
        total=cart.total,
        shipping_address=shipping_address,
        payment_method=payment_method,
    )
    db.add(order)
    db.flush()

    for line in cart.lines:
        db.add(OrderItem(
            order_id=order.id,
            product_id=line.product.id,
            product_name=line.product.name,
            price=line.product.price,
            quantity=line.quantity,
        ))
        # Decrement stock
        line.product.stock -= line.quantity

    if redeem_points and not loyalty.redeem_points(db, email, redeem_points, order.id):
        db.rollback()
        raise ShopError("Loyalty points could not be redeemed")

    order.points_earned = loyalty.award_points(db, email, order.id, order.total)

    db.commit()
    db.refresh(order)
    logger.info("Order %s placed by %s: total %.2f", order.id, email, order.total)
    return order


# ── Order lifecycle ───────────────────────────────────────────────

def get_order(db: Session, order_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError("Order not found")
    return order


def list_orders(db: Session, status: str | None = None, email: str | None = None) -> list[Order]:
    query = db.query(Order)
    if status:
        query = query.filter(Order.status == status)
    if email:
        query = query.filter(Order.email == normalize_email(email))
    return query.order_by(Order.created_at.desc(), Order.id.desc()).all()


def update_order_status(db: Session, order_id: int, status: str) -> Order:
    """Move an order to ``status``.

    Cancelling puts the items back in stock and reverses loyalty points.

    Raises:
        NotFoundError: If the order does not exist.
        ShopError: If the transition is not allowed.
    """
    if status not in ORDER_STATUSES:
        raise ShopError(f"Unknown order status: {status}")
    order = get_order(db, order_id)
    if status == order.status:
        return order
    if status not in ORDER_TRANSITIONS[order.status]:
        raise ShopError(f"Cannot move order from {order.status} to {status}")

    if status == "cancelled":
        for item in order.items:
            if item.product is not None:
                item.product.stock += item.quantity
        loyalty.reverse_order(db, order)

    previous = order.status
    order.status = status
    db.commit()
    db.refresh(order)
    logger.info("Order %s moved from %s to %s", order.id, previous, status)
    return order


# ── Quotes ────────────────────────────────────────────────────────

def submit_quote(db: Session, draft: QuoteDraft) -> Quote:
    """Save a finished calculator quote for follow-up by sales."""
    if draft.property_type is None:
        raise ShopError("Quote has no property type")
    if not draft.devices:
        raise ShopError("Quote has no devices")
    if not draft.email and not draft.phone:
        raise ShopError("An e-mail address or phone number is required")
    if draft.email and not validate_email(draft.email):
        raise ShopError(f"Invalid e-mail address: {draft.email}")

    data = draft.to_quote_data()
    quote = Quote(
        property_type=data["property_type"],
        rooms=data["rooms"],
        devices=data["devices"],
        subtotal=data["subtotal"],
        installation_fee=data["installation_fee"],
        total=data["total"],
        email=normalize_email(draft.email) if draft.email else None,
        phone=draft.phone or None,
        floor_plan_url=data["floor_plan_url"],
        ai_analysis=data["ai_analysis"],
        status="submitted",
    )
    db.add(quote)
    db.commit()
    db.refresh(quote)
    logger.info("Quote %s submitted: %s, total %.2f", quote.id, quote.property_type, quote.total)
    return quote


def list_quotes(db: Session, status: str | None = None) -> list[Quote]:
    query = db.query(Quote)
    if status:
        query = query.filter(Quote.status == status)
    return query.order_by(Quote.created_at.desc(), Quote.id.desc()).all()


def update_quote_status(db: Session, quote_id: int, status: str) -> Quote:
    if status not in QUOTE_STATUSES:
        raise ShopError(f"Unknown quote status: {status}")
    quote = db.query(Quote).filter(Quote.id == quote_id).first()
    if not quote:
        raise NotFoundError("Quote not found")
    quote.status = status
    db.commit()
    db.refresh(quote)
    return quote


# ── Site settings ─────────────────────────────────────────────────

def get_settings(db: Session, keys: list[str] | None = None) -> dict:
    query = db.query(AdminSetting).filter(~AdminSetting.key.startswith(SESSION_KEY_PREFIX))
    if keys:
        query = query.filter(AdminSetting.key.in_(keys))
    return {s.key: s.value for s in query.all()}


def update_setting(db: Session, key: str, value: str | None) -> AdminSetting:
    if not key or key.startswith(SESSION_KEY_PREFIX):
        raise ShopError(f"Setting key not allowed: {key}")
    setting = db.query(AdminSetting).filter(AdminSetting.key == key).first()
    if setting is None:
        setting = AdminSetting(key=key)
        db.add(setting)
    setting.value = value
    db.commit()
    db.refresh(setting)
    return setting
