from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from coldstore.db.models.catalog import Product
from coldstore.db.session import get_db
from coldstore.services.catalog import service

router = APIRouter(prefix="/products", tags=["catalog"])


class ProductIn(BaseModel):
    name: str = Field(..., min_length=1)
    category: str
    description: str | None = None
    manufacturer: str | None = None
    price: float | None = None


def product_out(p: Product) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "description": p.description,
        "manufacturer": p.manufacturer,
        "category": p.category,
        "price": float(p.price) if p.price is not None else None,
        "created_at": p.created_at.isoformat() if p.created_at else None,
    }


@router.get("")
def list_products(db: Session = Depends(get_db)):
    return [product_out(p) for p in service.list_products(db)]


@router.post("", status_code=201)
def create_product(body: ProductIn, db: Session = Depends(get_db)):
    p = service.create_product(db, **body.model_dump())
    return product_out(p)


@router.get("/{product_id}")
def get_product(product_id: str, db: Session = Depends(get_db)):
    return product_out(service.get_product(db, product_id))
