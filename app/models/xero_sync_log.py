import uuid
from sqlalchemy import Column, String, DateTime, Integer, Text, ForeignKey, JSON, func, Uuid
from sqlalchemy.orm import relationship
from app.core.database import Base

class XeroSyncLog(Base):
    """Tracks Xero sync operations"""
    __tablename__ = "xero_sync_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    connection_id = Column(Uuid(as_uuid=True), ForeignKey("xero_connections.id", ondelete="CASCADE"), nullable=False, index=True)

    # Sync details
    sync_type = Column(String, nullable=False)  # manual, scheduled, initial
    status = Column(String, nullable=False, index=True)  # started, completed, partial, failed

    # Statistics
    accounts_synced = Column(Integer, default=0)
    transactions_imported = Column(Integer, default=0)
    transactions_skipped = Column(Integer, default=0)
    transactions_updated = Column(Integer, default=0)
    api_calls_used = Column(Integer, default=0)

    # Timing
    started_at = Column(DateTime, default=func.now(), index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_ms = Column(Integer, nullable=True)

    # Error tracking
    error_code = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)
    error_details = Column(JSON, nullable=True)  # one entry per failed account/transaction

    # Relationships
    connection = relationship("XeroConnection", back_populates="sync_logs")
