"""In-memory stand-ins for the Xero HTTP client."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from app.core.exceptions import RemoteApiError
from app.services.xero_client import BankStatementLine


def xero_date(value: str) -> str:
    """'2026-02-10' -> '/Date(1770681600000+0000)/'"""
    parsed = datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    return f"/Date({int(parsed.timestamp() * 1000)}+0000)/"


def make_xero_account(
    account_id: str,
    name: str,
    number: Optional[str] = None,
    account_type: str = "BANK",
    code: Optional[str] = None,
    currency: str = "AUD",
) -> Dict[str, Any]:
    return {
        "AccountID": account_id,
        "Name": name,
        "Code": code,
        "Type": "BANK",
        "BankAccountType": account_type,
        "BankAccountNumber": number,
        "CurrencyCode": currency,
        "Status": "ACTIVE",
    }


def make_xero_transaction(
    transaction_id: str,
    date: str = "2026-02-10",
    tx_type: str = "SPEND",
    total: float = 42.5,
    reference: Optional[str] = None,
    contact: Optional[str] = "Woolworths",
    line_description: Optional[str] = None,
) -> Dict[str, Any]:
    tx = {
        "BankTransactionID": transaction_id,
        "Type": tx_type,
        "Date": xero_date(date),
        "Total": total,
        "Status": "AUTHORISED",
        "IsReconciled": False,
        "LineItems": [{"Description": line_description}] if line_description else [],
    }
    if reference:
        tx["Reference"] = reference
    if contact:
        tx["Contact"] = {"Name": contact}
    return tx


class FakeXeroClient:
    """Mimics XeroClient without HTTP; records the calls it receives."""

    def __init__(
        self,
        accounts: Optional[List[Dict[str, Any]]] = None,
        transactions: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        tenants: Optional[List[Dict[str, Any]]] = None,
    ):
        self.accounts = accounts or []
        self.transactions = transactions or {}
        self.tenants = tenants if tenants is not None else [
            {"tenantId": "tenant-1", "tenantName": "Smith Family Trust", "tenantType": "ORGANISATION"}
        ]
        self.statement_lines: List[BankStatementLine] = []

        self.refresh_error: Optional[Exception] = None
        self.revoke_error: Optional[Exception] = None
        self.failing_accounts: Dict[str, Exception] = {}

        self.refresh_calls: List[str] = []
        self.revoked: List[str] = []
        self.transaction_calls: List[Dict[str, Any]] = []
        self.token_counter = 0

    def get_authorization_url(self, state: str) -> str:
        return f"https://login.xero.com/identity/connect/authorize?state={state}"

    def _issue_tokens(self) -> Dict[str, Any]:
        self.token_counter += 1
        return {
            "access_token": f"access-{self.token_counter}",
            "refresh_token": f"refresh-{self.token_counter}",
            "expires_in": 1800,
        }

    def exchange_code_for_tokens(self, code: str) -> Dict[str, Any]:
        if code == "bad-code":
            raise RemoteApiError("Token request (authorization_code) failed", 400, '{"error":"invalid_grant"}')
        return self._issue_tokens()

    def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        self.refresh_calls.append(refresh_token)
        if self.refresh_error:
            raise self.refresh_error
        return self._issue_tokens()

    def revoke_token(self, refresh_token: str) -> None:
        if self.revoke_error:
            raise self.revoke_error
        self.revoked.append(refresh_token)

    def get_connections(self, access_token: str) -> List[Dict[str, Any]]:
        return list(self.tenants)

    def get_bank_accounts(self, access_token: str, tenant_id: str, bank_only: bool = True) -> List[Dict[str, Any]]:
        return list(self.accounts)

    def get_all_bank_transactions(
        self,
        access_token: str,
        tenant_id: str,
        bank_account_id: Optional[str] = None,
        modified_since: Optional[datetime] = None,
        max_pages: Optional[int] = None,
        stats: Optional[Dict[str, int]] = None,
    ) -> List[Dict[str, Any]]:
        self.transaction_calls.append({
            "access_token": access_token,
            "bank_account_id": bank_account_id,
            "modified_since": modified_since,
        })
        if stats is not None:
            stats["api_calls"] = stats.get("api_calls", 0) + 1
        if bank_account_id in self.failing_accounts:
            raise self.failing_accounts[bank_account_id]
        return list(self.transactions.get(bank_account_id, []))

    def get_bank_statement_lines(self, access_token, tenant_id, bank_account_id, from_date=None, to_date=None):
        return list(self.statement_lines)
