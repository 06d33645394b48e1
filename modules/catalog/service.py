"""
Catalog Module - Service Layer
================================
Product listing for the storefront and product CRUD for the back office.
"""

from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from common.exceptions import ValidationError, NotFoundError
from common.helpers import parse_decimal, money
from modules.catalog.models import Product, ProductCategory

_EDITABLE_FIELDS = (
    "name", "description", "long_description", "price", "image_url",
    "category", "weight", "stock_quantity", "is_active",
)


class ProductService:

    # ==========================================
    # Storefront
    # ==========================================

    def list_active(self, db: Session) -> List[Product]:
        """All active products, unfiltered, by name."""
        return db.query(Product).filter(Product.is_active == True).order_by(Product.name).all()

    def get_by_id(self, db: Session, product_id: int) -> Optional[Product]:
        return db.query(Product).filter(Product.id == product_id).first()

    def get_or_404(self, db: Session, product_id: int) -> Product:
        product = self.get_by_id(db, product_id)
        if not product:
            raise NotFoundError("Product not found.")
        return product

    # ==========================================
    # Back office
    # ==========================================

    def list_all(self, db: Session, page: int = 1, per_page: int = 50) -> Tuple[List[Product], int]:
        q = db.query(Product).order_by(Product.name)
        total = q.count()
        page = max(page, 1)
        items = q.offset((page - 1) * per_page).limit(per_page).all()
        return items, total

    def create(self, db: Session, data: dict) -> Product:
        clean = self._validate(data, partial=False)
        product = Product(**clean)
        db.add(product)
        db.flush()
        return product

    def update(self, db: Session, product_id: int, data: dict) -> Product:
        product = self.get_or_404(db, product_id)
        clean = self._validate(data, partial=True)
        for key, value in clean.items():
            setattr(product, key, value)
        db.flush()
        return product

    def toggle_active(self, db: Session, product_id: int) -> Product:
        product = self.get_or_404(db, product_id)
        product.is_active = not product.is_active
        db.flush()
        return product

    # ==========================================
    # Private helpers
    # ==========================================

    def _validate(self, data: dict, partial: bool) -> dict:
        clean = {k: v for k, v in data.items() if k in _EDITABLE_FIELDS and v is not None}
        errors = {}

        if not partial or "name" in clean:
            name = (clean.get("name") or "").strip()
            if not name:
                errors["name"] = "Name is required."
            clean["name"] = name

        if not partial or "price" in clean:
            price = parse_decimal(clean.get("price"))
            if price is None or price < 0:
                errors["price"] = "Price must be a non-negative number."
            else:
                clean["price"] = money(price)

        if not partial or "category" in clean:
            category = clean.get("category")
            valid = {c.value for c in ProductCategory}
            if category not in valid:
                errors["category"] = f"Category must be one of: {', '.join(sorted(valid))}."

        if "stock_quantity" in clean:
            try:
                stock = int(clean["stock_quantity"])
            except (TypeError, ValueError):
                stock = -1
            if stock < 0:
                errors["stock_quantity"] = "Stock must be a non-negative integer."
            clean["stock_quantity"] = stock

        if errors:
            raise ValidationError(fields=errors)
        return clean


# Singleton
product_service = ProductService()
