import uuid
from sqlalchemy import Column, String, DateTime, Boolean, Text, UniqueConstraint, func, Uuid
from sqlalchemy.orm import relationship
from app.core.database import Base

class XeroConnection(Base):
    """Stores Xero OAuth connection info per user/organisation"""
    __tablename__ = "xero_connections"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)

    # Xero organisation details
    tenant_id = Column(String, nullable=False)
    tenant_name = Column(String, nullable=True)
    tenant_type = Column(String, nullable=True)  # ORGANISATION or PRACTICE

    # OAuth tokens (should be encrypted in production)
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    token_expires_at = Column(DateTime, nullable=True)

    # Connection status
    status = Column(String, nullable=False, default="active", index=True)  # active, expired, error
    status_message = Column(Text, nullable=True)

    # Sync configuration
    sync_enabled = Column(Boolean, default=True)
    sync_frequency = Column(String, default="daily")  # hourly, daily, manual
    last_sync_at = Column(DateTime, nullable=True)
    next_sync_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    mappings = relationship("XeroAccountMapping", back_populates="connection", cascade="all, delete-orphan")
    sync_logs = relationship("XeroSyncLog", back_populates="connection", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint('user_id', 'tenant_id', name='uq_xero_connections_user_tenant'),
    )
