import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func, or_
from sqlalchemy.exc import DataError
from sqlalchemy.orm import Session

from .errors import Conflict, Forbidden, InsufficientStock, NotFound, ProductNotFound, ValidationFailed
from .models import Cart, CartItem, Category, Product, Vendor

logger = logging.getLogger(__name__)


# -----------------------------
# Vendors
# -----------------------------

def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def get_vendor(db: Session, vendor_id: int) -> Optional[Vendor]:
    return db.query(Vendor).filter(Vendor.id == vendor_id).first()


def get_vendor_by_identifier(db: Session, identifier: str) -> Optional[Vendor]:
    """Find a vendor by e-mail (case-insensitive) or by phone number."""
    raw = (identifier or "").strip()
    if not raw:
        return None
    return (
        db.query(Vendor)
        .filter(or_(Vendor.email == raw.lower(), Vendor.phone_number == raw))
        .first()
    )


def create_vendor(db: Session, vendor_data: dict, hashed_password: Optional[str]) -> Vendor:
    name = (vendor_data.get("vendor_name") or "").strip()
    if not name:
        raise ValidationFailed("name_required", "Vendor name is required")

    email = normalize_email(vendor_data.get("email"))
    if not email:
        raise ValidationFailed("email_required", "E-mail is required")
    if db.query(Vendor).filter(Vendor.email == email).first():
        raise Conflict("duplicate_email", "This e-mail is already registered")

    phone = (vendor_data.get("phone_number") or "").strip() or None
    if phone and db.query(Vendor).filter(Vendor.phone_number == phone).first():
        raise Conflict("duplicate_phone_number", "This phone number is already registered")

    db_vendor = Vendor(
        vendor_name=name,
        email=email,
        phone_number=phone,
        region=vendor_data.get("region"),
        hashed_password=hashed_password,
    )
    db.add(db_vendor)
    db.commit()
    db.refresh(db_vendor)
    return db_vendor


def get_vendor_stats(db: Session, vendor: Vendor) -> Dict[str, Any]:
    total_products, active_products, total_stock = (
        db.query(
            func.count(Product.id),
            func.coalesce(func.sum(case((Product.is_active.is_(True), 1), else_=0)), 0),
            func.coalesce(func.sum(Product.stock_quantity), 0),
        )
        .filter(Product.vendor_id == vendor.id)
        .one()
    )
    reserved = (
        db.query(func.coalesce(func.sum(CartItem.quantity), 0))
        .join(Cart, Cart.id == CartItem.cart_id)
        .join(Product, Product.id == CartItem.product_id)
        .filter(Product.vendor_id == vendor.id, Cart.status == "active")
        .scalar()
    )
    return {
        "vendor_id": vendor.id,
        "total_products": int(total_products or 0),
        "active_products": int(active_products or 0),
        "total_stock_units": int(total_stock or 0),
        "reserved_units": int(reserved or 0),
        "average_rating": float(vendor.rating or 0),
    }


# -----------------------------
# Categories
# -----------------------------

def get_categories(db: Session) -> List[Category]:
    return db.query(Category).order_by(Category.category_name).all()


def get_category(db: Session, category_id: int) -> Optional[Category]:
    return db.query(Category).filter(Category.id == category_id).first()


def create_category(db: Session, category_name: str, description: Optional[str] = None) -> Category:
    name = (category_name or "").strip()
    if not name:
        raise ValidationFailed("name_required", "Category name is required")

    existing = (
        db.query(Category)
        .filter(func.lower(Category.category_name) == name.lower())
        .first()
    )
    if existing:
        raise Conflict("duplicate_category_name", "Category name already exists")

    db_category = Category(category_name=name, description=description)
    db.add(db_category)
    db.commit()
    db.refresh(db_category)
    return db_category


# -----------------------------
# Products
# -----------------------------

def _ensure_category(db: Session, category_id: Optional[int]) -> None:
    if category_id is not None and get_category(db, category_id) is None:
        raise NotFound("category_not_found", "Category not found", category_id=category_id)


def create_product(db: Session, vendor: Vendor, product_data: dict) -> Product:
    name = (product_data.get("product_name") or "").strip()
    if not name:
        raise ValidationFailed("name_required", "Product name is required")
    _ensure_category(db, product_data.get("category_id"))

    db_product = Product(**{**product_data, "product_name": name, "vendor_id": vendor.id})
    db.add(db_product)
    db.commit()
    db.refresh(db_product)
    return db_product


def get_product(db: Session, product_id: int) -> Optional[Product]:
    return db.query(Product).filter(Product.id == product_id).first()


def get_products(
    db: Session,
    skip: int = 0,
    limit: int = 100,
    search: str = None,
    category_id: int = None,
    vendor_id: int = None,
    active_only: bool = False,
):
    query = db.query(Product)
    if search:
        search_pattern = f"%{search}%"
        query = query.filter(
            or_(
                Product.product_name.ilike(search_pattern),
                Product.description.ilike(search_pattern),
            )
        )
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if vendor_id is not None:
        query = query.filter(Product.vendor_id == vendor_id)
    if active_only:
        query = query.filter(Product.is_active.is_(True))
    return query.order_by(Product.id).offset(skip).limit(limit).all()


def get_owned_product(db: Session, vendor: Vendor, product_id: int) -> Product:
    product = get_product(db, product_id)
    if product is None:
        raise ProductNotFound(product_id)
    if product.vendor_id != vendor.id:
        raise Forbidden("not_product_owner", "You can only manage your own products", product_id=product_id)
    return product


def update_product(db: Session, vendor: Vendor, product_id: int, update_data: dict) -> Product:
    db_product = get_owned_product(db, vendor, product_id)

    if "product_name" in update_data:
        new_name = str(update_data["product_name"]).strip()
        if not new_name:
            raise ValidationFailed("name_required", "Product name is required")
        update_data["product_name"] = new_name
    if "category_id" in update_data:
        _ensure_category(db, update_data["category_id"])

    for key, value in update_data.items():
        if value is not None:
            setattr(db_product, key, value)
    db.commit()
    db.refresh(db_product)
    return db_product


def delete_product(db: Session, vendor: Vendor, product_id: int) -> Product:
    db_product = get_owned_product(db, vendor, product_id)

    held = (
        db.query(func.coalesce(func.sum(CartItem.quantity), 0))
        .join(Cart, Cart.id == CartItem.cart_id)
        .filter(CartItem.product_id == product_id, Cart.status == "active")
        .scalar()
    )
    if held:
        raise Conflict(
            "product_reserved",
            "Product is held in active carts; deactivate it instead",
            product_id=product_id,
            reserved=int(held),
        )

    db.delete(db_product)
    db.commit()
    return db_product


# -----------------------------
# Stock
# -----------------------------

def adjust_stock(db: Session, product_id: int, delta: int) -> Dict[str, int]:
    """Apply ``delta`` to a product's stock in one conditional UPDATE.

    The guard ``stock_quantity + delta >= 0`` is evaluated by the database
    against the current row, so concurrent callers cannot drive stock
    negative or lose each other's updates. The caller commits.
    """
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise ValidationFailed("invalid_quantity", "Quantity change must be a non-zero integer")

    try:
        updated = (
            db.query(Product)
            .filter(Product.id == product_id, Product.stock_quantity + delta >= 0)
            .update(
                {Product.stock_quantity: Product.stock_quantity + delta},
                synchronize_session="fetch",
            )
        )
    except DataError:
        # the new stock does not fit the column
        raise ValidationFailed(
            "stock_out_of_range", "Resulting stock is too large", product_id=product_id, change=delta
        )
    if not updated:
        current = db.query(Product.stock_quantity).filter(Product.id == product_id).scalar()
        if current is None:
            raise ProductNotFound(product_id)
        raise InsufficientStock(product_id, available=int(current), requested=-delta)

    new_stock = int(db.query(Product.stock_quantity).filter(Product.id == product_id).scalar())
    logger.debug("stock product=%s change=%+d new=%s", product_id, delta, new_stock)
    return {
        "product_id": product_id,
        "previous_stock": new_stock - delta,
        "new_stock": new_stock,
        "change": delta,
    }
