from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from apothecary.api.deps import CurrentUser, require_admin
from apothecary.application.product_service import ProductService
from apothecary.application.schemas import ProductCreate, ProductRead, ProductUpdate
from apothecary.infrastructure.db import get_db

router = APIRouter(prefix="/products", tags=["products"])

@router.get("/", response_model=list[ProductRead])
def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
):
    return ProductService(db).list_products(category=category, search=search)

@router.get("/categories", response_model=list[str])
def list_categories(db: Session = Depends(get_db)):
    return ProductService(db).categories()

@router.get("/slug/{slug}", response_model=ProductRead)
def get_product_by_slug(slug: str, db: Session = Depends(get_db)):
    return ProductService(db).get_by_slug(slug)

@router.get("/{product_id}", response_model=ProductRead)
def get_product(product_id: int, db: Session = Depends(get_db)):
    return ProductService(db).get(product_id)

@router.post("/", response_model=ProductRead, status_code=201)
def create_product(
    payload: ProductCreate,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_admin),
):
    return ProductService(db).create(payload)

@router.put("/{product_id}", response_model=ProductRead)
def update_product(
    product_id: int,
    payload: ProductUpdate,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_admin),
):
    return ProductService(db).update(product_id, payload)
