import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import create_vendor_token, get_current_vendor, get_password_hash, verify_password
from ..crud import create_vendor, get_products, get_vendor_by_identifier, get_vendor_stats
from ..database import get_db
from ..errors import GoMartError, to_http_exception
from ..models import Vendor
from ..schemas import ProductOut, VendorLoginRequest, VendorLoginResponse, VendorOut, VendorStats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vendors", tags=["Vendors"])
auth_router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/register", response_model=VendorOut, status_code=status.HTTP_201_CREATED)
def register_vendor(
    vendor_name: str = Form(..., description="**Store name**"),
    email: str = Form(..., description="**Valid email address**"),
    password: str = Form(..., min_length=8, description="**Password (minimum 8 characters)**"),
    phone_number: Optional[str] = Form(None, description="**Phone number** (optional)"),
    region: Optional[str] = Form(None, description="**Region** (optional)"),
    db: Session = Depends(get_db),
):
    vendor_data = {
        "vendor_name": vendor_name,
        "email": email,
        "phone_number": phone_number,
        "region": region,
    }
    try:
        return create_vendor(db, vendor_data, get_password_hash(password))
    except GoMartError as e:
        raise to_http_exception(e)
    except IntegrityError:
        # unique e-mail / phone lost a race with another registration
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "duplicate_vendor", "message": "This vendor is already registered"},
        )


@router.get("/me", response_model=VendorOut)
def read_vendor_me(current_vendor: Vendor = Depends(get_current_vendor)):
    return current_vendor


@router.get("/me/dashboard", response_model=VendorStats)
def vendor_dashboard(
    current_vendor: Vendor = Depends(get_current_vendor),
    db: Session = Depends(get_db),
):
    return get_vendor_stats(db, current_vendor)


@router.get("/me/products", response_model=list[ProductOut])
def list_own_products(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    current_vendor: Vendor = Depends(get_current_vendor),
    db: Session = Depends(get_db),
):
    """The vendor's whole catalog, deactivated products included."""
    return get_products(db, skip=skip, limit=limit, vendor_id=current_vendor.id)


@auth_router.post("/vendor-login", response_model=VendorLoginResponse)
def vendor_login(body: VendorLoginRequest, db: Session = Depends(get_db)):
    if not body.identifier or not body.password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Please provide email/phone and password",
        )

    invalid = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    vendor = get_vendor_by_identifier(db, body.identifier)
    if vendor is None:
        logger.info("vendor login failed: unknown identifier")
        raise invalid
    if not vendor.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your account is not active. Please contact support.",
        )
    if not verify_password(body.password, vendor.hashed_password):
        logger.info("vendor login failed: bad password for vendor=%s", vendor.id)
        raise invalid

    return {
        "access_token": create_vendor_token(vendor),
        "token_type": "bearer",
        "vendor": vendor,
    }
