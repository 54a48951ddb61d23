"""Notification channel model (Telegram chat, webhook, e-mail)."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text
from sqlalchemy.sql import func
from discount_sync.database import Base, JSONType


class NotificationChannel(Base):
    __tablename__ = "notification_channels"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    type = Column(String(20), nullable=False)  # 'TELEGRAM', 'EMAIL', 'WEBHOOK'
    config = Column(JSONType, nullable=True)
    credentials = Column(Text, nullable=True)  # Encrypted JSON (bot token, webhook headers)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<NotificationChannel(id={self.id}, name='{self.name}', type='{self.type}')>"
