"""
Database models for the Baytzaki storefront.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Float, DateTime, ForeignKey, Boolean, Text, JSON,
    create_engine,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

from utils import get_config

Base = declarative_base()

DATABASE_URL = get_config()["database_url"]
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=_connect_args)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# ── Catalog ───────────────────────────────────────────────────────

class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    slug = Column(String(120), unique=True, nullable=False, index=True)
    description = Column(String(500), nullable=True)
    image_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    products = relationship("Product", back_populates="category")


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    slug = Column(String(220), unique=True, nullable=False, index=True)
    description = Column(Text, default="")
    price = Column(Float, nullable=False)
    original_price = Column(Float, nullable=True)  # "compare at" price
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    brand = Column(String(100), nullable=True)
    protocol = Column(String(50), nullable=True)  # Zigbee, WiFi, Matter...
    sku = Column(String(100), nullable=True)
    image_url = Column(String(500), nullable=True)
    images = Column(JSON, default=list)
    specifications = Column(JSON, default=dict)
    stock = Column(Integer, nullable=False, default=0)
    featured = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    category = relationship("Category", back_populates="products")


# ── Orders ────────────────────────────────────────────────────────

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(200), nullable=False, index=True)
    status = Column(String(20), default="pending")  # pending, processing, shipped, delivered, cancelled
    subtotal = Column(Float, default=0.0)
    shipping_cost = Column(Float, default=0.0)
    discount_amount = Column(Float, default=0.0)
    points_redeemed = Column(Integer, default=0)
    points_earned = Column(Integer, default=0)
    total = Column(Float, default=0.0)
    shipping_address = Column(JSON, nullable=True)
    payment_method = Column(String(20), default="cod")  # cod, card
    payment_reference = Column(String(200), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    items = relationship("OrderItem", back_populates="order")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    product_name = Column(String(200), nullable=False)
    price = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")


# ── Quotes ────────────────────────────────────────────────────────

class Quote(Base):
    __tablename__ = "quotes"

    id = Column(Integer, primary_key=True, index=True)
    property_type = Column(String(20), nullable=False)
    rooms = Column(JSON, default=list)
    devices = Column(JSON, default=list)
    subtotal = Column(Float, default=0.0)
    installation_fee = Column(Float, default=0.0)
    total = Column(Float, default=0.0)
    email = Column(String(200), nullable=True)
    phone = Column(String(40), nullable=True)
    floor_plan_url = Column(String(500), nullable=True)
    ai_analysis = Column(JSON, nullable=True)
    status = Column(String(20), default="submitted")  # submitted, contacted, converted, closed
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


# ── Loyalty ───────────────────────────────────────────────────────

class LoyaltyAccount(Base):
    __tablename__ = "loyalty_accounts"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(200), unique=True, nullable=False, index=True)
    points_balance = Column(Integer, default=0)
    lifetime_points = Column(Integer, default=0)
    tier = Column(String(20), default="bronze")  # bronze, silver, gold, platinum
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    transactions = relationship("PointsTransaction", back_populates="account")


class PointsTransaction(Base):
    __tablename__ = "points_transactions"

    id = Column(Integer, primary_key=True, index=True)
    loyalty_id = Column(Integer, ForeignKey("loyalty_accounts.id"), nullable=False)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    points = Column(Integer, nullable=False)  # signed
    transaction_type = Column(String(20), nullable=False)  # earn, redeem, bonus, expire
    description = Column(String(300), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    account = relationship("LoyaltyAccount", back_populates="transactions")


# ── Admin ─────────────────────────────────────────────────────────

class AdminUser(Base):
    __tablename__ = "admin_users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, nullable=False)
    password_hash = Column(String(200), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class AdminSetting(Base):
    __tablename__ = "admin_settings"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), unique=True, nullable=False)
    value = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


# ── Create tables ─────────────────────────────────────────────────

def init_db():
    Base.metadata.create_all(bind=engine)
