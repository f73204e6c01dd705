import uuid
from sqlalchemy import Column, String, DateTime, Boolean, Float, Text, UniqueConstraint, func, Uuid
from app.core.database import Base

class Account(Base):
    """Local ledger account (bank, credit card, ...) owned by a household user"""
    __tablename__ = "accounts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    name = Column(String, nullable=False)
    account_type = Column(String, nullable=False, default="bank")  # bank, credit, savings, loan, ...
    account_number = Column(String, nullable=True)
    institution = Column(String, nullable=True)
    current_balance = Column(Float, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="AUD")
    is_active = Column(Boolean, default=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'name', name='uq_accounts_user_name'),
    )
