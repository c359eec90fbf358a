from __future__ import annotations

from decimal import Decimal, InvalidOperation

from sqlalchemy.orm import Session

from coldstore.core.errors import DuplicateNameError, NotFoundError, ValidationError
from coldstore.core.tx import atomic
from coldstore.db.models.catalog import Product
from coldstore.db.models.enums import StorageCategory, parse_enum


def _price(raw) -> Decimal | None:
    if raw is None or raw == "":
        return None
    try:
        value = Decimal(str(raw))
    except InvalidOperation:
        raise ValidationError("price must be a number.")
    if value < 0:
        raise ValidationError("price must not be negative.")
    return value


def create_product(
    db: Session,
    *,
    name: str,
    category,
    description: str | None = None,
    manufacturer: str | None = None,
    price=None,
) -> Product:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Product name is required.")
    cat = parse_enum(StorageCategory, category)
    if cat is None:
        raise ValidationError(
            f"Invalid category '{category}'. Must be one of: {', '.join(c.value for c in StorageCategory)}."
        )

    with atomic(db):
        if db.query(Product.id).filter(Product.name == name).first():
            raise DuplicateNameError(f"Product with name '{name}' already exists.")
        p = Product(
            name=name,
            category=cat.value,
            description=description,
            manufacturer=manufacturer,
            price=_price(price),
        )
        db.add(p)
    return p


def list_products(db: Session) -> list[Product]:
    return db.query(Product).order_by(Product.name.asc()).all()


def get_product(db: Session, product_id: str) -> Product:
    p = db.get(Product, product_id)
    if not p:
        raise NotFoundError(f"Product {product_id} not found.")
    return p
