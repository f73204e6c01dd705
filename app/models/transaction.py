import uuid
from sqlalchemy import Column, DateTime, Float, String, Text, Boolean, func, Index, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from app.core.database import Base

class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    account_id = Column(Uuid(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    transaction_date = Column(DateTime, nullable=False, index=True)
    description = Column(Text, nullable=False)
    amount = Column(Float, nullable=False)
    transaction_type = Column(String, nullable=False)  # income, expense, transfer
    payee = Column(String, nullable=True)
    reference = Column(String, nullable=True)
    is_reconciled = Column(Boolean, default=False)
    source_type = Column(String, nullable=True, index=True)  # 'manual', 'upload', 'xero'

    # Identity in the system the row was imported from
    external_id = Column(String, nullable=True)
    external_source = Column(String, nullable=True)  # 'xero'

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    account = relationship("Account")

    # Indexes for performance
    __table_args__ = (
        UniqueConstraint('external_id', 'external_source', name='uq_transactions_external'),
        Index('idx_transaction_account_date', 'account_id', 'transaction_date'),
    )
