from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.errors import ProductNotFound
from ..crud.products import create_product, delete_product, get_product, list_products, update_product
from ..db.session import get_db
from ..deps.auth import authenticate, require_admin
from ..schemas.product import ProductCreate, ProductOut, ProductUpdate

# Reads need a valid token; catalogue changes need an administrator.
router = APIRouter(prefix="/api/v1/products", tags=["products"], dependencies=[Depends(authenticate)])


def _get_or_404(db: Session, product_id: int):
    product = get_product(db, product_id)
    if not product:
        raise ProductNotFound()
    return product


@router.get("", response_model=list[ProductOut])
def api_list(search: str | None = None, limit: int = 100, offset: int = 0, db: Session = Depends(get_db)):
    return list_products(db, search=search, limit=min(max(limit, 1), 500), offset=max(offset, 0))


@router.get("/{product_id}", response_model=ProductOut)
def api_get(product_id: int, db: Session = Depends(get_db)):
    return _get_or_404(db, product_id)


@router.post("", response_model=ProductOut, status_code=201, dependencies=[Depends(require_admin)])
def api_create(payload: ProductCreate, db: Session = Depends(get_db)):
    return create_product(db, payload.model_dump())


@router.put("/{product_id}", response_model=ProductOut, dependencies=[Depends(require_admin)])
def api_update(product_id: int, payload: ProductUpdate, db: Session = Depends(get_db)):
    product = _get_or_404(db, product_id)
    return update_product(db, product, payload.model_dump(exclude_unset=True))


@router.delete("/{product_id}", dependencies=[Depends(require_admin)])
def api_delete(product_id: int, db: Session = Depends(get_db)):
    product = _get_or_404(db, product_id)
    delete_product(db, product)
    return {"status": "deleted"}
