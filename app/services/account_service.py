from typing import List, Optional
import uuid
from sqlalchemy.orm import Session
from app.models.account import Account
from app.core.principal import Principal

class AccountService:
    """Reads and creates local accounts for a principal."""

    def __init__(self, db: Session):
        self.db = db

    def list_accounts(self, principal: Principal, active_only: bool = False) -> List[Account]:
        query = self.db.query(Account).filter(Account.user_id == principal.user_id)
        if active_only:
            query = query.filter(Account.is_active == True)
        return query.order_by(Account.created_at, Account.name).all()

    def get_account(self, principal: Principal, account_id: uuid.UUID) -> Optional[Account]:
        return self.db.query(Account).filter(
            Account.id == account_id,
            Account.user_id == principal.user_id
        ).first()

    def create_account(
        self,
        principal: Principal,
        name: str,
        account_type: str = "bank",
        account_number: Optional[str] = None,
        institution: Optional[str] = None,
        currency: str = "AUD",
        notes: Optional[str] = None,
    ) -> Account:
        """Insert a new account and flush it; the caller commits. Raises IntegrityError when the name is already used."""
        account = Account(
            user_id=principal.user_id,
            name=name,
            account_type=account_type,
            account_number=account_number,
            institution=institution,
            current_balance=0,
            currency=currency,
            is_active=True,
            notes=notes,
        )
        self.db.add(account)
        self.db.flush()
        return account
