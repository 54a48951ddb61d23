"""Log entry model for the audit trail written during sync runs."""

import uuid

from sqlalchemy import Column, String, DateTime, Text, Index
from sqlalchemy.sql import func
from discount_sync.database import Base, JSONType


class LogEntry(Base):
    """Structured audit record; mirrored to the log file by AuditLogger."""

    __tablename__ = "log_entries"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    timestamp = Column(DateTime(timezone=True), nullable=False)
    level = Column(String(10), nullable=False)  # 'DEBUG', 'INFO', 'WARN', 'ERROR', 'SUCCESS'
    category = Column(String(50), nullable=False)  # 'SYNC', 'COMPARE', 'NOTIFICATION', ...
    message = Column(Text, nullable=False)
    details = Column("metadata", JSONType, nullable=True)
    session_id = Column(String(64), nullable=True)
    source = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index('idx_log_entries_created_at_desc', created_at.desc()),
        Index('idx_log_entries_category', 'category'),
        Index('idx_log_entries_session_id', 'session_id'),
    )

    def __repr__(self):
        return f"<LogEntry(id='{self.id}', level='{self.level}', category='{self.category}')>"
