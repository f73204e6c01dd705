import uuid
from sqlalchemy import Column, String, DateTime, Date, Boolean, ForeignKey, UniqueConstraint, func, Uuid
from sqlalchemy.orm import relationship
from app.core.database import Base

class XeroAccountMapping(Base):
    """Links a Xero bank account to a local account"""
    __tablename__ = "xero_account_mappings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    connection_id = Column(Uuid(as_uuid=True), ForeignKey("xero_connections.id", ondelete="CASCADE"), nullable=False, index=True)

    # Xero account details
    xero_account_id = Column(String, nullable=False)
    xero_account_name = Column(String, nullable=True)
    xero_account_code = Column(String, nullable=True)
    xero_account_type = Column(String, nullable=True)  # BANK, CREDITCARD, PAYPAL

    # Link to local account (optional - user can map later)
    local_account_id = Column(Uuid(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True, index=True)

    # Sync settings per account
    is_sync_enabled = Column(Boolean, default=True)
    last_transaction_date = Column(Date, nullable=True)  # watermark for incremental fetches
    last_sync_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    connection = relationship("XeroConnection", back_populates="mappings")
    local_account = relationship("Account")

    __table_args__ = (
        UniqueConstraint('connection_id', 'xero_account_id', name='uq_xero_account_mappings_connection_account'),
    )
