"""
Xero API Client

Thin wrapper over the Xero identity and accounting endpoints:
- Authorization URL construction
- Authorization code / refresh token exchange
- Tenant (organisation) discovery
- Bank account and bank transaction fetches, with pagination
- Bank statement report fetch and parsing

The client holds configuration only; tokens are passed in on every call.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from email.utils import format_datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import requests

from app.config import SyncConfig, XeroConfig
from app.core.exceptions import ConfigurationError, RemoteApiError

logger = logging.getLogger(__name__)

# Cells order of a statement row in the BankStatement report
STATEMENT_COLUMNS = ("date", "description", "reference", "reconciled", "source", "amount", "balance")


@dataclass
class BankStatementLine:
    date: str
    description: str
    reference: str
    reconciled: bool
    source: str
    amount: float
    balance: float


class XeroClient:
    """Handles HTTP calls to Xero"""

    def __init__(self, config: Optional[XeroConfig] = None, sync_config: Optional[SyncConfig] = None):
        self.config = config or XeroConfig()
        self.sync_config = sync_config or SyncConfig()

        if not self.config.client_id or not self.config.client_secret:
            logger.warning("Xero credentials not configured. Set XERO_CLIENT_ID and XERO_CLIENT_SECRET")

    # OAuth

    def get_authorization_url(self, state: str) -> str:
        """
        Generate the Xero authorization URL

        Args:
            state: Opaque CSRF value; the caller stores it and verifies it on callback

        Returns:
            Authorization URL for the user to visit
        """
        if not self.config.client_id:
            raise ConfigurationError("Missing Xero client ID configuration")

        params = {
            "response_type": "code",
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "scope": " ".join(self.config.scopes),
            "state": state,
        }
        return f"{self.config.authorize_url}?{urlencode(params)}"

    def exchange_code_for_tokens(self, code: str) -> Dict[str, Any]:
        """Exchange an authorization code for an access/refresh token pair"""
        return self._token_request({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.config.redirect_uri,
        })

    def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        """Trade a refresh token for a new token pair (Xero rotates the refresh token)"""
        return self._token_request({
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        })

    def revoke_token(self, refresh_token: str) -> None:
        """Revoke a refresh token and every access token issued from it"""
        self._require_credentials()
        response = self._send(
            "post",
            self.config.revocation_url,
            data={"token": refresh_token},
            auth=(self.config.client_id, self.config.client_secret),
        )
        if not response.ok:
            raise RemoteApiError("Failed to revoke token", response.status_code, response.text)

    def _token_request(self, form: Dict[str, str]) -> Dict[str, Any]:
        self._require_credentials()
        response = self._send(
            "post",
            self.config.token_url,
            data=form,
            auth=(self.config.client_id, self.config.client_secret),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        if not response.ok:
            logger.error(f"Token request ({form['grant_type']}) failed: {response.status_code} - {response.text[:200]}")
            raise RemoteApiError(f"Token request ({form['grant_type']}) failed", response.status_code, response.text)

        return self._json(response, dict, "token response")

    def _require_credentials(self) -> None:
        if not self.config.client_id or not self.config.client_secret:
            raise ConfigurationError("Missing Xero configuration")

    # Organisation data

    def get_connections(self, access_token: str) -> List[Dict[str, Any]]:
        """Tenants (organisations) the access token has been authorised for"""
        response = self._send(
            "get",
            self.config.connections_url,
            headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
        )
        if not response.ok:
            raise RemoteApiError("Failed to get connections", response.status_code, response.text)
        return self._json(response, list, "connections")

    def get_bank_accounts(self, access_token: str, tenant_id: str, bank_only: bool = True) -> List[Dict[str, Any]]:
        """
        Fetch accounts from Xero

        Args:
            bank_only: Restrict to Type=="BANK" accounts

        Returns:
            Active accounts only
        """
        params = {"where": 'Type=="BANK"'} if bank_only else {}
        url = f"{self.config.api_url}/Accounts"

        logger.debug(f"Fetching accounts from Xero: {url} {params}")
        response = self._send("get", url, headers=self._headers(access_token, tenant_id), params=params)

        if not response.ok:
            logger.error(f"Xero API error fetching accounts: {response.status_code} - {response.text[:500]}")
            raise RemoteApiError("Failed to get bank accounts", response.status_code, response.text)

        accounts = self._json(response, dict, "accounts").get("Accounts") or []
        active = [account for account in accounts if account.get("Status") == "ACTIVE"]
        logger.info(f"Fetched {len(active)} active accounts (of {len(accounts)}) for tenant {tenant_id}")
        return active

    def get_bank_transactions(
        self,
        access_token: str,
        tenant_id: str,
        bank_account_id: Optional[str] = None,
        modified_since: Optional[datetime] = None,
        page: int = 1,
        include_all: bool = False,
    ) -> List[Dict[str, Any]]:
        """
        Fetch one page of bank transactions

        Args:
            bank_account_id: Only transactions for this Xero bank account
            modified_since: Sent as If-Modified-Since; a 304 reply means nothing changed
            page: 1-based page number
            include_all: Don't restrict to AUTHORISED transactions

        Returns:
            Up to page_size transactions, most recent first
        """
        where_conditions = []
        if not include_all:
            where_conditions.append('Status=="AUTHORISED"')
        if bank_account_id:
            where_conditions.append(f'BankAccount.AccountID==guid("{bank_account_id}")')

        params = {}
        if where_conditions:
            params["where"] = " AND ".join(where_conditions)
        if page > 1:
            params["page"] = page
        # Most recent first
        params["order"] = "Date DESC"

        headers = self._headers(access_token, tenant_id)
        if modified_since:
            headers["If-Modified-Since"] = _http_date(modified_since)

        url = f"{self.config.api_url}/BankTransactions"
        logger.debug(f"Fetching bank transactions page {page}: {url} {params}")
        response = self._send("get", url, headers=headers, params=params)

        # 304 Not Modified means no new data
        if response.status_code == 304:
            logger.debug(f"Bank transactions not modified since {headers.get('If-Modified-Since')}")
            return []

        if not response.ok:
            logger.error(f"Xero API error fetching bank transactions: {response.status_code} - {response.text[:500]}")
            raise RemoteApiError("Failed to get bank transactions", response.status_code, response.text)

        transactions = self._json(response, dict, "bank transactions").get("BankTransactions") or []
        logger.debug(f"Got {len(transactions)} bank transactions on page {page}")
        return transactions

    def get_all_bank_transactions(
        self,
        access_token: str,
        tenant_id: str,
        bank_account_id: Optional[str] = None,
        modified_since: Optional[datetime] = None,
        max_pages: Optional[int] = None,
        stats: Optional[Dict[str, int]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Fetch bank transactions across pages

        Stops on an empty page, a short page, or after max_pages requests.
        When stats is given, stats["api_calls"] is incremented per request.
        """
        max_pages = max_pages or self.sync_config.max_pages
        page_size = self.sync_config.page_size
        all_transactions: List[Dict[str, Any]] = []

        for page in range(1, max_pages + 1):
            transactions = self.get_bank_transactions(
                access_token,
                tenant_id,
                bank_account_id=bank_account_id,
                modified_since=modified_since,
                page=page,
            )
            if stats is not None:
                stats["api_calls"] = stats.get("api_calls", 0) + 1

            if not transactions:
                break

            all_transactions.extend(transactions)

            if len(transactions) < page_size:
                break
        else:
            logger.warning(
                "Stopped after %s pages for bank account %s; older transactions were not fetched",
                max_pages,
                bank_account_id,
            )

        logger.info(f"Total bank transactions fetched: {len(all_transactions)}")
        return all_transactions

    def get_bank_statement_lines(
        self,
        access_token: str,
        tenant_id: str,
        bank_account_id: str,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> List[BankStatementLine]:
        """
        Fetch statement lines from the Reports/BankStatement endpoint

        Unlike BankTransactions this includes unreconciled lines. Defaults to
        the last statement_window_days days.
        """
        to_date = to_date or datetime.now(timezone.utc).date()
        from_date = from_date or (to_date - timedelta(days=self.sync_config.statement_window_days))

        params = {
            "bankAccountID": bank_account_id,
            "fromDate": from_date.isoformat(),
            "toDate": to_date.isoformat(),
        }
        url = f"{self.config.api_url}/Reports/BankStatement"
        response = self._send("get", url, headers=self._headers(access_token, tenant_id), params=params)

        if not response.ok:
            logger.error(f"Xero API error fetching bank statement: {response.status_code} - {response.text[:500]}")
            raise RemoteApiError("Failed to get bank statement", response.status_code, response.text)

        try:
            payload = response.json()
        except ValueError:
            logger.warning("Bank statement report was not valid JSON")
            return []

        lines = parse_bank_statement_report(payload)
        logger.info(f"Parsed {len(lines)} statement lines for bank account {bank_account_id}")
        return lines

    # HTTP helpers

    def _headers(self, access_token: str, tenant_id: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Xero-Tenant-Id": tenant_id,
            "Accept": "application/json",
        }

    def _json(self, response: requests.Response, expected: type, what: str) -> Any:
        """Decode a JSON body, raising RemoteApiError when it is not the expected shape"""
        try:
            payload = response.json()
        except ValueError:
            logger.error(f"Xero returned a non-JSON {what} body: {response.text[:200]}")
            raise RemoteApiError(f"Invalid {what} response from Xero", response.status_code, response.text)
        if not isinstance(payload, expected):
            logger.error(f"Xero returned an unexpected {what} body: {response.text[:200]}")
            raise RemoteApiError(f"Invalid {what} response from Xero", response.status_code, response.text)
        return payload

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            return requests.request(method, url, timeout=self.config.request_timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.error(f"Request to Xero failed: {method.upper()} {url}: {str(e)}")
            raise RemoteApiError(f"Request to Xero failed: {str(e)}") from e


def parse_bank_statement_report(payload: Any) -> List[BankStatementLine]:
    """
    Flatten a BankStatement report into statement lines

    The report is a tree: Reports[0].Rows -> Section rows -> detail rows ->
    cells in STATEMENT_COLUMNS order. Anything not shaped like that is
    skipped; a missing or malformed report gives an empty list.
    """
    if not isinstance(payload, dict):
        return []

    reports = payload.get("Reports")
    if not isinstance(reports, list) or not reports or not isinstance(reports[0], dict):
        logger.info("No report in bank statement response")
        return []

    rows = reports[0].get("Rows")
    if not isinstance(rows, list):
        logger.info("No rows in bank statement report")
        return []

    lines = []
    for section in rows:
        if not isinstance(section, dict) or section.get("RowType") != "Section":
            continue
        section_rows = section.get("Rows")
        if not isinstance(section_rows, list):
            continue

        for row in section_rows:
            line = _parse_statement_row(row)
            if line is not None:
                lines.append(line)

    return lines


def _parse_statement_row(row: Any) -> Optional[BankStatementLine]:
    if not isinstance(row, dict) or row.get("RowType") != "Row":
        return None

    cells = row.get("Cells")
    if not isinstance(cells, list) or len(cells) < len(STATEMENT_COLUMNS):
        return None

    values = []
    for cell in cells[:len(STATEMENT_COLUMNS)]:
        value = cell.get("Value") if isinstance(cell, dict) else None
        values.append("" if value is None else str(value))
    fields = dict(zip(STATEMENT_COLUMNS, values))

    try:
        amount = float(fields["amount"] or 0)
        balance = float(fields["balance"] or 0)
    except ValueError:
        logger.debug(f"Skipping statement row with unparseable amounts: {values}")
        return None

    return BankStatementLine(
        date=fields["date"],
        description=fields["description"],
        reference=fields["reference"],
        reconciled=fields["reconciled"] == "Yes",
        source=fields["source"],
        amount=amount,
        balance=balance,
    )


def _http_date(value: datetime) -> str:
    """Format a naive-UTC or aware datetime as an HTTP date"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)
