"""Saved sync configuration: which integrations, stores and channel a job uses."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, ForeignKey
from sqlalchemy.sql import func
from discount_sync.database import Base, JSONType


class SyncConfiguration(Base):
    __tablename__ = "sync_configurations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)

    source_integration_id = Column(Integer, ForeignKey("integrations.id"), nullable=False)
    target_integration_id = Column(Integer, ForeignKey("integrations.id"), nullable=False)
    notification_channel_id = Column(Integer, ForeignKey("notification_channels.id"), nullable=True)

    store_ids = Column(JSONType, nullable=True)  # Empty or null means all active stores
    schedule = Column(JSONType, nullable=True)  # {"sync_time": "06:00", "compare_time": "07:00"} for the external scheduler
    options = Column(JSONType, nullable=True)  # {"skip_comparison": false, "send_notifications": true}

    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<SyncConfiguration(id={self.id}, name='{self.name}', active={self.active})>"
