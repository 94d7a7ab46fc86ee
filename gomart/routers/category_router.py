from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth import get_current_vendor
from ..crud import create_category, get_categories
from ..database import get_db
from ..errors import GoMartError, to_http_exception
from ..models import Vendor
from ..schemas import CategoryCreate, CategoryOut

router = APIRouter(prefix="/categories", tags=["Categories"])


@router.get("/", response_model=list[CategoryOut])
def list_categories(db: Session = Depends(get_db)):
    return get_categories(db)


@router.post("/", response_model=CategoryOut, status_code=status.HTTP_201_CREATED)
def add_category(
    body: CategoryCreate,
    current_vendor: Vendor = Depends(get_current_vendor),
    db: Session = Depends(get_db),
):
    try:
        return create_category(db, body.category_name, body.description)
    except GoMartError as e:
        raise to_http_exception(e)
