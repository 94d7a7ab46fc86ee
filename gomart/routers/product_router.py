import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import get_current_vendor
from ..crud import (
    adjust_stock,
    create_product,
    delete_product,
    get_owned_product,
    get_product,
    get_products,
    update_product,
)
from ..database import get_db
from ..errors import GoMartError, to_http_exception
from ..models import Vendor
from ..schemas import MAX_QUANTITY, ProductOut, StockChangeOut, StockChangeRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["Products"])


@router.get("/", response_model=list[ProductOut])
def list_products(
    skip: int = Query(0, ge=0, description="**Skip** number of products"),
    limit: int = Query(100, ge=1, le=1000, description="**Limit** number of products"),
    search: Optional[str] = Query(None, description="**Search** in name or description"),
    category_id: Optional[int] = Query(None, alias="categoryId"),
    vendor_id: Optional[int] = Query(None, alias="vendorId"),
    db: Session = Depends(get_db),
):
    # deactivated products stay visible only to their vendor, via /vendors/me/products
    return get_products(
        db,
        skip=skip,
        limit=limit,
        search=search,
        category_id=category_id,
        vendor_id=vendor_id,
        active_only=True,
    )


@router.get("/{product_id}", response_model=ProductOut)
def view_product(product_id: int, db: Session = Depends(get_db)):
    product = get_product(db, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.post("/", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
def create_product_for_vendor(
    product_name: str = Form(..., description="**Product name** (required)"),
    description: Optional[str] = Form(None, description="**Description** (optional)"),
    price: float = Form(..., gt=0, description="**Price** (must be greater than 0)"),
    stock_quantity: int = Form(0, ge=0, le=MAX_QUANTITY, description="**Stock quantity** (must be >= 0)"),
    category_id: Optional[int] = Form(None, description="**Category** (optional)"),
    is_active: bool = Form(True),
    current_vendor: Vendor = Depends(get_current_vendor),
    db: Session = Depends(get_db),
):
    product_data = {
        "product_name": product_name,
        "description": description,
        "price": price,
        "stock_quantity": stock_quantity,
        "category_id": category_id,
        "is_active": is_active,
    }
    try:
        return create_product(db, current_vendor, product_data)
    except GoMartError as e:
        raise to_http_exception(e)


@router.patch("/{product_id}", response_model=ProductOut)
def update_own_product(
    product_id: int,
    product_name: Optional[str] = Form(None, description="**New name** (optional)"),
    description: Optional[str] = Form(None, description="**New description** (optional)"),
    price: Optional[float] = Form(None, gt=0, description="**New price** (optional, > 0)"),
    category_id: Optional[int] = Form(None, description="**New category** (optional)"),
    is_active: Optional[bool] = Form(None),
    current_vendor: Vendor = Depends(get_current_vendor),
    db: Session = Depends(get_db),
):
    # stock is only changed through PATCH /products/{id}/stock
    update_data = {
        "product_name": product_name,
        "description": description,
        "price": price,
        "category_id": category_id,
        "is_active": is_active,
    }
    update_data = {k: v for k, v in update_data.items() if v is not None}
    try:
        return update_product(db, current_vendor, product_id, update_data)
    except GoMartError as e:
        raise to_http_exception(e)


@router.delete("/{product_id}", response_model=ProductOut)
def delete_own_product(
    product_id: int,
    current_vendor: Vendor = Depends(get_current_vendor),
    db: Session = Depends(get_db),
):
    try:
        # the row and its relationships are gone after commit
        deleted = ProductOut.model_validate(get_owned_product(db, current_vendor, product_id))
        delete_product(db, current_vendor, product_id)
        return deleted
    except GoMartError as e:
        raise to_http_exception(e)
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "product_in_use", "product_id": product_id},
        )


@router.patch("/{product_id}/stock", response_model=StockChangeOut)
def change_stock(
    product_id: int,
    body: StockChangeRequest,
    current_vendor: Vendor = Depends(get_current_vendor),
    db: Session = Depends(get_db),
):
    """Restock or correct a product's stock by a signed amount.

    Applied as one conditional update, so it composes with concurrent cart
    reservations instead of overwriting them.
    """
    try:
        get_owned_product(db, current_vendor, product_id)
        result = adjust_stock(db, product_id, body.quantity_change)
        db.commit()
    except GoMartError as e:
        db.rollback()
        raise to_http_exception(e)

    logger.info(
        "vendor=%s stock product=%s %s -> %s",
        current_vendor.id, product_id, result["previous_stock"], result["new_stock"],
    )
    return result
