"""SQLAlchemy model for product records."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, Index, Numeric, String, Text, func
from sqlalchemy.types import DateTime

from app.db.base import Base

STATUS_ACTIVE = "active"
STATUS_INACTIVE = "inactive"
PRODUCT_STATUSES = (STATUS_ACTIVE, STATUS_INACTIVE)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    sku = Column(String(50), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    price = Column(Numeric(10, 2), nullable=False)
    category = Column(String(100), nullable=False, index=True)
    status = Column(String(16), nullable=False, default=STATUS_ACTIVE, index=True)
    image_url = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )
    deleted_at = Column(DateTime(timezone=True), index=True)

    # SKU is unique across live and soft-deleted rows
    __table_args__ = (
        Index("ix_products_sku_lower", func.lower(sku), unique=True),
        CheckConstraint(status.in_(PRODUCT_STATUSES), name="ck_products_status"),
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r}>"
