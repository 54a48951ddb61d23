"""Integration model for the RP and CresceVendas endpoints."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text
from sqlalchemy.sql import func
from discount_sync.database import Base, JSONType


class Integration(Base):
    """Connection settings for an external system."""

    __tablename__ = "integrations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    type = Column(String(20), nullable=False, index=True)  # 'RP' or 'CRESCEVENDAS'
    base_url = Column(String(255), nullable=False)
    config = Column(JSONType, nullable=True)  # Non-secret settings (endpoints, auth method, pagination)
    credentials = Column(Text, nullable=True)  # Encrypted JSON (tokens, passwords, auth headers)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Integration(id={self.id}, name='{self.name}', type='{self.type}')>"
