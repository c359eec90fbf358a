from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from coldstore.db.base import Base
from coldstore.db.models.common import HasCreatedAt, HasId


class Product(Base, HasId, HasCreatedAt):
    __tablename__ = "cs_product"

    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    manufacturer: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Ambient|Cold Storage; drives which locations may hold its batches
    category: Mapped[str] = mapped_column(String(24), nullable=False, index=True)
    price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
