import datetime as dt

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import cart as carts
from ..database import get_db
from ..errors import GoMartError, to_http_exception
from ..messaging import publish_event_after_commit
from ..schemas import CartClearOut, CartItemAdd, CartItemUpdate, CartOut, OrderOut

router = APIRouter(prefix="/carts", tags=["Carts"])


@router.post("/", response_model=CartOut, status_code=status.HTTP_201_CREATED)
def create_cart(db: Session = Depends(get_db)):
    """Open a new cart. Keep the returned id; it is the only handle to the cart."""
    return carts.cart_summary(carts.create_cart(db))


@router.get("/{cart_id}", response_model=CartOut)
def view_cart(cart_id: str, db: Session = Depends(get_db)):
    try:
        return carts.cart_summary(carts.read_cart(db, cart_id))
    except GoMartError as e:
        raise to_http_exception(e)


@router.post("/{cart_id}/items", response_model=CartOut)
def add_item(cart_id: str, body: CartItemAdd, db: Session = Depends(get_db)):
    try:
        cart = carts.add_to_cart(db, cart_id, body.product_id, body.quantity)
    except GoMartError as e:
        raise to_http_exception(e)
    return carts.cart_summary(cart)


@router.patch("/{cart_id}/items/{product_id}", response_model=CartOut)
def change_item_quantity(
    cart_id: str,
    product_id: int,
    body: CartItemUpdate,
    db: Session = Depends(get_db),
):
    try:
        cart = carts.update_cart_quantity(db, cart_id, product_id, body.delta)
    except GoMartError as e:
        raise to_http_exception(e)
    return carts.cart_summary(cart)


@router.delete("/{cart_id}/items/{product_id}", response_model=CartOut)
def remove_item(cart_id: str, product_id: int, db: Session = Depends(get_db)):
    try:
        cart = carts.remove_from_cart(db, cart_id, product_id)
    except GoMartError as e:
        raise to_http_exception(e)
    return carts.cart_summary(cart)


@router.delete("/{cart_id}", response_model=CartClearOut)
def clear_cart(cart_id: str, db: Session = Depends(get_db)):
    try:
        result = carts.clear_cart(db, cart_id)
    except GoMartError as e:
        raise to_http_exception(e)
    return {
        "cart": carts.cart_summary(result["cart"]),
        "restored": result["restored"],
        "failed": result["failed"],
    }


@router.post("/{cart_id}/checkout", response_model=OrderOut, status_code=status.HTTP_201_CREATED)
def checkout(cart_id: str, db: Session = Depends(get_db)):
    try:
        order = carts.checkout(db, cart_id)
    except GoMartError as e:
        raise to_http_exception(e)

    publish_event_after_commit(
        "order.placed",
        {
            "event": "order.placed",
            "occurred_at": dt.datetime.now(dt.timezone.utc).isoformat().replace("+00:00", "Z"),
            "order_id": order.id,
            "cart_id": order.cart_id,
            "total_amount": float(order.total_amount),
            "items": [
                {"product_id": i.product_id, "quantity": i.quantity} for i in order.items
            ],
        },
    )
    return order
