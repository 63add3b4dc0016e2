"""
Admin console API routes.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import auth
import importer
import loyalty
from models import get_db, AdminUser, Category, Product, OrderItem
from routes import category_out, product_out, order_out, quote_out
from services import (
    NotFoundError, get_order, list_orders, update_order_status,
    list_quotes, update_quote_status, get_settings, update_setting,
)
from utils import slugify, validate_email, normalize_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin")


# ── Pydantic schemas ─────────────────────────────────────────────

class LoginIn(BaseModel):
    username: str
    password: str


class ChangePasswordIn(BaseModel):
    current_password: str
    new_password: str


class StatusIn(BaseModel):
    status: str


class ProductIn(BaseModel):
    name: str
    price: float = Field(ge=0)
    slug: str | None = None
    description: str = ""
    original_price: float | None = Field(default=None, ge=0)
    category_id: int | None = None
    brand: str | None = None
    protocol: str | None = None
    sku: str | None = None
    image_url: str | None = None
    images: list[str] = []
    specifications: dict[str, str] = {}
    stock: int = Field(default=0, ge=0)
    featured: bool = False


class ProductUpdateIn(BaseModel):
    name: str | None = None
    price: float | None = Field(default=None, ge=0)
    description: str | None = None
    original_price: float | None = Field(default=None, ge=0)
    category_id: int | None = None
    brand: str | None = None
    protocol: str | None = None
    sku: str | None = None
    image_url: str | None = None
    images: list[str] | None = None
    specifications: dict[str, str] | None = None
    stock: int | None = Field(default=None, ge=0)
    featured: bool | None = None

    @field_validator("name", "price", "description", "images", "specifications", "stock", "featured")
    @classmethod
    def not_null(cls, value):
        # Omit a field to leave it unchanged; these columns cannot be cleared.
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class ImportIn(BaseModel):
    csv_content: str


class CategoryIn(BaseModel):

    name: str
    slug: str | None = None
    description: str | None = None
    image_url: str | None = None


class SettingIn(BaseModel):
    key: str
    value: str | None = None


class BonusIn(BaseModel):
    email: str
    points: int = Field(gt=0)
    description: str | None = None


# ── Session ──────────────────────────────────────────────────────

@router.post("/login")
def login(body: LoginIn, db: Session = Depends(get_db)):
    token = auth.login(db, body.username, body.password)
    if token is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return {"token": token, "username": body.username}


@router.get("/me")
def me(admin: AdminUser = Depends(auth.require_admin)):
    return {"id": admin.id, "username": admin.username}


@router.post("/logout")
def logout(admin: AdminUser = Depends(auth.require_admin), db: Session = Depends(get_db)):
    auth.logout(db, admin)
    return {"success": True}


@router.post("/change-password")
def change_password(
    body: ChangePasswordIn,
    admin: AdminUser = Depends(auth.require_admin),
    db: Session = Depends(get_db),
):
    try:
        auth.change_password(db, admin, body.current_password, body.new_password)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "message": "Password updated successfully"}


# ── Orders ───────────────────────────────────────────────────────

@router.get("/orders")
def admin_list_orders(
    status: str | None = None,
    email: str | None = None,
    admin: AdminUser = Depends(auth.require_admin),
    db: Session = Depends(get_db),
):
    return [order_out(o) for o in list_orders(db, status=status, email=email)]


@router.get("/orders/{order_id}")
def admin_get_order(order_id: int, admin: AdminUser = Depends(auth.require_admin), db: Session = Depends(get_db)):
    try:
        return order_out(get_order(db, order_id))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.put("/orders/{order_id}/status")
def admin_update_order_status(
    order_id: int,
    body: StatusIn,
    admin: AdminUser = Depends(auth.require_admin),
    db: Session = Depends(get_db),
):
    try:
        order = update_order_status(db, order_id, body.status)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return order_out(order)


# ── Catalog management ───────────────────────────────────────────

@router.post("/categories", status_code=201)
def create_category(body: CategoryIn, admin: AdminUser = Depends(auth.require_admin), db: Session = Depends(get_db)):
    slug = body.slug or slugify(body.name)
    category = Category(
        name=body.name,
        slug=slug,
        description=body.description,
        image_url=body.image_url,
    )
    db.add(category)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail=f"Category slug already exists: {slug}")
    db.refresh(category)
    return category_out(category)


@router.post("/products", status_code=201)
def create_product(body: ProductIn, admin: AdminUser = Depends(auth.require_admin), db: Session = Depends(get_db)):
    data = body.model_dump()
    data["slug"] = data["slug"] or slugify(body.name)
    product = Product(**data)
    db.add(product)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail=f"Product slug already exists: {data['slug']}")
    db.refresh(product)
    logger.info("Admin %s created product %s", admin.username, product.slug)
    return product_out(product)


@router.post("/products/import")
def import_products(body: ImportIn, admin: AdminUser = Depends(auth.require_admin), db: Session = Depends(get_db)):
    try:
        result = importer.import_products(db, body.csv_content)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info("Admin %s imported %d products", admin.username, result["inserted"])
    return result


@router.patch("/products/{product_id}")
def update_product(
    product_id: int,
    body: ProductUpdateIn,
    admin: AdminUser = Depends(auth.require_admin),
    db: Session = Depends(get_db),
):
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(product, field, value)
    db.commit()
    db.refresh(product)
    logger.info("Admin %s updated product %s", admin.username, product.slug)
    return product_out(product)


@router.delete("/products/{product_id}")
def delete_product(product_id: int, admin: AdminUser = Depends(auth.require_admin), db: Session = Depends(get_db)):
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    # Order items keep their name and price snapshot.
    db.query(OrderItem).filter(OrderItem.product_id == product_id).update({"product_id": None})
    db.delete(product)
    db.commit()
    logger.info("Admin %s deleted product %s", admin.username, product_id)
    return {"deleted": True}


# ── Quotes ───────────────────────────────────────────────────────

@router.get("/quotes")
def admin_list_quotes(
    status: str | None = None,
    admin: AdminUser = Depends(auth.require_admin),
    db: Session = Depends(get_db),
):
    return [quote_out(q) for q in list_quotes(db, status=status)]


@router.put("/quotes/{quote_id}/status")
def admin_update_quote_status(
    quote_id: int,
    body: StatusIn,
    admin: AdminUser = Depends(auth.require_admin),
    db: Session = Depends(get_db),
):
    try:
        quote = update_quote_status(db, quote_id, body.status)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return quote_out(quote)


# ── Settings ─────────────────────────────────────────────────────

@router.get("/settings")
def read_settings(admin: AdminUser = Depends(auth.require_admin), db: Session = Depends(get_db)):
    return get_settings(db)


@router.put("/settings")
def write_setting(body: SettingIn, admin: AdminUser = Depends(auth.require_admin), db: Session = Depends(get_db)):
    try:
        setting = update_setting(db, body.key, body.value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"key": setting.key, "value": setting.value}


# ── Loyalty ──────────────────────────────────────────────────────

@router.post("/loyalty/bonus")
def grant_loyalty_bonus(body: BonusIn, admin: AdminUser = Depends(auth.require_admin), db: Session = Depends(get_db)):
    if not validate_email(body.email):
        raise HTTPException(status_code=400, detail=f"Invalid e-mail address: {body.email}")
    account = loyalty.grant_bonus(db, normalize_email(body.email), body.points, body.description)
    db.commit()
    db.refresh(account)
    return {
        "email": account.email,
        "points_balance": account.points_balance,
        "lifetime_points": account.lifetime_points,
        "tier": account.tier,
    }
