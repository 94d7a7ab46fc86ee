"""Server-held carts.

A cart line is a reservation: adding it takes the units out of
``products.stock_quantity`` in the same transaction that writes the line,
and removing / clearing / expiring it gives them back. Every operation locks
the cart row first, so two tabs working on one cart are serialized and their
changes compose.
"""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from . import config
from .crud import adjust_stock, get_product
from .errors import CartNotActive, CartNotFound, Conflict, NotFound, ProductNotFound, ValidationFailed
from .models import Cart, CartItem, Order, OrderItem

logger = logging.getLogger(__name__)

ACTIVE = "active"
CHECKED_OUT = "checked_out"
EXPIRED = "expired"


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _as_utc(value: dt.datetime) -> dt.datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def _new_expiry(now: dt.datetime) -> dt.datetime:
    return now + dt.timedelta(seconds=config.RESERVATION_TTL_SECONDS)


def _validate_quantity(value: Any, *, allow_negative: bool = False) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationFailed("invalid_quantity", "Quantity must be an integer")
    if value == 0 or (value < 0 and not allow_negative):
        raise ValidationFailed(
            "invalid_quantity",
            "Quantity change must be non-zero" if allow_negative else "Quantity must be greater than 0",
        )
    return value


def cart_totals(items: List[CartItem]) -> Dict[str, Any]:
    subtotal = sum((Decimal(str(i.unit_price)) * i.quantity for i in items), Decimal("0"))
    if subtotal == 0 or subtotal >= config.FREE_SHIPPING_THRESHOLD:
        shipping = Decimal("0")
    else:
        shipping = Decimal(config.SHIPPING_FEE)
    return {
        "subtotal": subtotal,
        "shipping": shipping,
        "total": subtotal + shipping,
        "total_items": sum(i.quantity for i in items),
    }


def cart_summary(cart: Cart) -> Dict[str, Any]:
    items = []
    for item in cart.items:
        product = item.product
        items.append(
            {
                "product_id": item.product_id,
                "product_name": product.product_name if product else None,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "line_total": Decimal(str(item.unit_price)) * item.quantity,
                "stock_remaining": product.stock_quantity if product else 0,
            }
        )
    return {
        "id": cart.id,
        "status": cart.status,
        "expires_at": _as_utc(cart.expires_at),
        "items": items,
        **cart_totals(cart.items),
    }


def _find_line(cart: Cart, product_id: int) -> Optional[CartItem]:
    for item in cart.items:
        if item.product_id == product_id:
            return item
    return None


def _release_lines(db: Session, cart: Cart, *, keep_missing: bool) -> Dict[str, Dict[int, int]]:
    """Give every line's units back to stock and drop the line.

    A line whose product no longer exists has nowhere to go. With
    ``keep_missing`` it stays in the cart and is reported as failed,
    otherwise it is dropped.
    """
    restored: Dict[int, int] = {}
    failed: Dict[int, int] = {}
    for item in list(cart.items):
        try:
            adjust_stock(db, item.product_id, item.quantity)
        except ProductNotFound:
            logger.warning(
                "cart=%s cannot restore %s units of missing product %s",
                cart.id, item.quantity, item.product_id,
            )
            failed[item.product_id] = item.quantity
            if keep_missing:
                continue
        else:
            restored[item.product_id] = item.quantity
        cart.items.remove(item)
    return {"restored": restored, "failed": failed}


def _lock_active_cart(db: Session, cart_id: str, now: dt.datetime) -> Cart:
    cart = (
        db.query(Cart)
        .filter(Cart.id == cart_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if cart is None:
        raise CartNotFound(cart_id)
    # lines may have been loaded before the lock was taken
    db.expire(cart, ["items"])
    if cart.status != ACTIVE:
        raise CartNotActive(cart_id, cart.status)
    if _as_utc(cart.expires_at) <= now:
        _expire(db, cart)
        raise CartNotActive(cart_id, EXPIRED)
    return cart


def _expire(db: Session, cart: Cart) -> None:
    _release_lines(db, cart, keep_missing=False)
    cart.status = EXPIRED
    db.commit()
    logger.info("cart=%s expired on access", cart.id)


def create_cart(db: Session, now: Optional[dt.datetime] = None) -> Cart:
    now = now or _utcnow()
    cart = Cart(id=str(uuid.uuid4()), status=ACTIVE, expires_at=_new_expiry(now))
    db.add(cart)
    db.commit()
    db.refresh(cart)
    return cart


def get_cart(db: Session, cart_id: str) -> Cart:
    cart = db.query(Cart).filter(Cart.id == cart_id).first()
    if cart is None:
        raise CartNotFound(cart_id)
    return cart


def read_cart(db: Session, cart_id: str, now: Optional[dt.datetime] = None) -> Cart:
    """Load a cart for display, releasing it first if its window has passed."""
    now = now or _utcnow()
    cart = get_cart(db, cart_id)
    if cart.status != ACTIVE or _as_utc(cart.expires_at) > now:
        return cart
    try:
        cart = (
            db.query(Cart)
            .filter(Cart.id == cart_id)
            .with_for_update()
            .populate_existing()
            .one()
        )
        db.expire(cart, ["items"])
        # the sweeper may have released it meanwhile
        if cart.status == ACTIVE:
            _expire(db, cart)
    except Exception:
        db.rollback()
        raise
    db.refresh(cart)
    return cart


def add_to_cart(
    db: Session,
    cart_id: str,
    product_id: int,
    quantity: int,
    now: Optional[dt.datetime] = None,
) -> Cart:
    """Reserve ``quantity`` units of a product in the cart.

    Stock is decremented by the database only if enough is left, so a stale
    view of the product can never oversell. On any failure nothing changes.
    """
    _validate_quantity(quantity)
    now = now or _utcnow()
    try:
        cart = _lock_active_cart(db, cart_id, now)
        product = get_product(db, product_id)
        if product is None:
            raise ProductNotFound(product_id)
        if not product.is_active:
            raise Conflict("product_inactive", "This product is not available", product_id=product_id)

        adjust_stock(db, product_id, -quantity)

        item = _find_line(cart, product_id)
        if item is None:
            cart.items.append(
                CartItem(product_id=product_id, quantity=quantity, unit_price=product.price)
            )
        else:
            item.quantity += quantity
        cart.expires_at = _new_expiry(now)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("cart=%s reserved product=%s qty=%s", cart_id, product_id, quantity)
    db.refresh(cart)
    return cart


def update_cart_quantity(
    db: Session,
    cart_id: str,
    product_id: int,
    delta: int,
    now: Optional[dt.datetime] = None,
) -> Cart:
    """Change a line by ``delta``. Decreases stop at 1; use removal to drop a line."""
    _validate_quantity(delta, allow_negative=True)
    now = now or _utcnow()
    try:
        cart = _lock_active_cart(db, cart_id, now)
        item = _find_line(cart, product_id)
        if item is None:
            raise NotFound("cart_item_not_found", "Product is not in the cart", product_id=product_id)

        new_quantity = max(item.quantity + delta, 1)
        change = new_quantity - item.quantity
        if change:
            adjust_stock(db, product_id, -change)
            item.quantity = new_quantity
        cart.expires_at = _new_expiry(now)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("cart=%s product=%s quantity change %+d", cart_id, product_id, change)
    db.refresh(cart)
    return cart


def remove_from_cart(
    db: Session,
    cart_id: str,
    product_id: int,
    now: Optional[dt.datetime] = None,
) -> Cart:
    now = now or _utcnow()
    try:
        cart = _lock_active_cart(db, cart_id, now)
        item = _find_line(cart, product_id)
        if item is None:
            raise NotFound("cart_item_not_found", "Product is not in the cart", product_id=product_id)

        adjust_stock(db, product_id, item.quantity)
        cart.items.remove(item)
        cart.expires_at = _new_expiry(now)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(cart)
    return cart


def clear_cart(db: Session, cart_id: str, now: Optional[dt.datetime] = None) -> Dict[str, Any]:
    """Restore every line to stock. The cart stays active and can be reused.

    A line that cannot be restored is kept and listed under ``failed``; the
    other lines are still restored.
    """
    now = now or _utcnow()
    try:
        cart = _lock_active_cart(db, cart_id, now)
        result = _release_lines(db, cart, keep_missing=True)
        cart.expires_at = _new_expiry(now)
        db.commit()
    except Exception:
        db.rollback()
        raise

    if result["failed"]:
        logger.warning("cart=%s cleared with failures: %s", cart_id, result["failed"])
    db.refresh(cart)
    return {"cart": cart, **result}


def checkout(db: Session, cart_id: str, now: Optional[dt.datetime] = None) -> Order:
    """Turn the cart's reservations into an order.

    Units were taken out of stock when they were added, so stock is not
    touched here.
    """
    now = now or _utcnow()
    try:
        cart = _lock_active_cart(db, cart_id, now)
        if not cart.items:
            raise ValidationFailed("cart_empty", "Cart is empty")

        totals = cart_totals(cart.items)
        order = Order(
            cart_id=cart.id,
            status="placed",
            subtotal=totals["subtotal"],
            shipping=totals["shipping"],
            total_amount=totals["total"],
        )
        for item in cart.items:
            if item.product is None:
                raise ProductNotFound(item.product_id)
            order.items.append(
                OrderItem(
                    product_id=item.product_id,
                    product_name=item.product.product_name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                )
            )
        db.add(order)
        cart.items.clear()
        cart.status = CHECKED_OUT
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info("cart=%s checked out as order=%s", cart_id, order.id)
    return order


def release_expired_carts(db: Session, now: Optional[dt.datetime] = None) -> List[str]:
    """Expire active carts past their reservation window and restore their stock."""
    now = now or _utcnow()
    try:
        carts = (
            db.query(Cart)
            .filter(Cart.status == ACTIVE, Cart.expires_at <= now)
            .order_by(Cart.expires_at)
            .with_for_update(skip_locked=True)
            .all()
        )
        released = []
        for cart in carts:
            _release_lines(db, cart, keep_missing=False)
            cart.status = EXPIRED
            released.append(cart.id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    if released:
        logger.info("released %d expired carts", len(released))
    return released
