import re
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from apothecary.domain.models import Product
from shared.core import get_logger
from .errors import Conflict, NotFound
from .schemas import ProductCreate, ProductUpdate

logger = get_logger(__name__)

def slugify(value: str) -> str:
    value = re.sub(r"[^a-z0-9]+", "-", value.strip().lower())
    return value.strip("-")

class ProductService:
    def __init__(self, db: Session):
        self.db = db

    def list_products(self, category: Optional[str] = None, search: Optional[str] = None):
        """Active catalog products, optionally filtered."""
        q = self.db.query(Product).filter(Product.is_active.is_(True))
        if category:
            q = q.filter(Product.category == category)
        if search:
            term = f"%{search.strip()}%"
            q = q.filter(or_(Product.name.ilike(term), Product.description.ilike(term)))
        return q.order_by(Product.name).all()

    def categories(self) -> list[str]:
        rows = (
            self.db.query(Product.category)
            .filter(Product.is_active.is_(True))
            .distinct()
            .order_by(Product.category)
            .all()
        )
        return [r[0] for r in rows]

    def get(self, product_id: int) -> Product:
        product = self.db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise NotFound("Product not found")
        return product

    def get_by_slug(self, slug: str) -> Product:
        product = (
            self.db.query(Product)
            .filter(Product.slug == slug, Product.is_active.is_(True))
            .first()
        )
        if not product:
            raise NotFound("Product not found")
        return product

    def lookup_by_slugs(self, slugs: list[str]) -> dict[str, dict]:
        rows = self.db.query(Product).filter(Product.slug.in_(slugs)).all()
        return {p.slug: {"id": p.id, "name": p.name} for p in rows}

    def create(self, data: ProductCreate) -> Product:
        product_data = data.model_dump()
        product_data["slug"] = slugify(product_data["slug"])
        obj = Product(**product_data)
        self.db.add(obj)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict(f"A product with slug {product_data['slug']} already exists")
        self.db.refresh(obj)
        logger.info("Product created", extra={"extra_fields": {"product_id": obj.id, "slug": obj.slug}})
        return obj

    def update(self, product_id: int, data: ProductUpdate) -> Product:
        product = self.get(product_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(product, field, value)
        self.db.commit()
        self.db.refresh(product)
        return product
