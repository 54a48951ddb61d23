"""Store model for the retail locations being synchronized."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from discount_sync.database import Base


class Store(Base):
    """Retail store known to both RP and CresceVendas by its registration code."""

    __tablename__ = "stores"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    registration = Column(String(50), nullable=False, unique=True)  # CNPJ or RP store code
    document = Column(String(50), nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    products = relationship(
        "CachedProduct",
        back_populates="store",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Store(id={self.id}, name='{self.name}', registration='{self.registration}')>"
