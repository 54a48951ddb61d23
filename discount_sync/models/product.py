"""Cached product model: the last RP snapshot of discounted products per store."""

import uuid

from sqlalchemy import Column, Integer, BigInteger, Float, String, DateTime, ForeignKey, Index, text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from discount_sync.database import Base


class CachedProduct(Base):
    """One discount line for one store, replaced wholesale on every successful fetch."""

    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code = Column(BigInteger, nullable=False)
    price = Column(Float, nullable=False)
    final_price = Column(Float, nullable=False)
    limit = Column(Integer, nullable=False, default=1000)
    store_id = Column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False)

    # Discount window
    starts_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    store = relationship("Store", back_populates="products")

    __table_args__ = (
        Index('idx_products_store_id', 'store_id'),
        Index(
            'uq_products_store_code_live',
            'store_id', 'code',
            unique=True,
            sqlite_where=text('deleted_at IS NULL'),
            postgresql_where=text('deleted_at IS NULL'),
        ),
    )

    def __repr__(self):
        return f"<CachedProduct(store_id={self.store_id}, code={self.code}, final_price={self.final_price})>"
