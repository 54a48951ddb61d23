"""Sync execution model: persisted history of orchestrator runs."""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, text
from sqlalchemy.sql import func
from discount_sync.database import Base, JSONType


class SyncExecution(Base):
    """One row per run; created RUNNING and moved to a terminal status exactly once."""

    __tablename__ = "sync_executions"

    id = Column(String(64), primary_key=True)
    sync_config_id = Column(Integer, ForeignKey("sync_configurations.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(20), nullable=False)  # 'RUNNING', 'SUCCESS', 'FAILED'
    started_at = Column(DateTime(timezone=True), nullable=False)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    # Serialized result structures, never queried by field
    stores_processed = Column(JSONType, nullable=False, default=list)
    summary = Column(JSONType, nullable=True)
    comparison_results = Column(JSONType, nullable=True)
    error_details = Column(JSONType, nullable=True)
    execution_logs = Column(JSONType, nullable=True)

    # Active-run guard: at most one RUNNING row per key
    run_key = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index('idx_sync_executions_status', 'status'),
        Index('idx_sync_executions_started_at', 'started_at'),
        Index('idx_sync_executions_sync_config_id', 'sync_config_id'),
        Index(
            'uq_sync_executions_running_key',
            'run_key',
            unique=True,
            sqlite_where=text("status = 'RUNNING'"),
            postgresql_where=text("status = 'RUNNING'"),
        ),
    )

    def __repr__(self):
        return f"<SyncExecution(id='{self.id}', status='{self.status}', run_key='{self.run_key}')>"
