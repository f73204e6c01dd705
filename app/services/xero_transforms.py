"""Conversion of Xero payloads into local transaction rows"""
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from app.models.transaction import Transaction

logger = logging.getLogger(__name__)

EXTERNAL_SOURCE = "xero"

# Microsoft JSON date: /Date(1767225600000+0000)/
_MS_JSON_DATE = re.compile(r"/Date\((-?\d+)([+-]\d{4})?\)/")


def parse_xero_date(value: Optional[str]) -> Optional[datetime]:
    """Parse a Xero date ("/Date(ms+zzzz)/", ISO datetime or YYYY-MM-DD) to a naive datetime at midnight"""
    if not value:
        return None

    match = _MS_JSON_DATE.search(value)
    if match:
        parsed = datetime.fromtimestamp(int(match.group(1)) / 1000, tz=timezone.utc)
        return datetime(parsed.year, parsed.month, parsed.day)

    try:
        parsed = datetime.fromisoformat(value.split("T")[0])
    except ValueError:
        logger.warning(f"Unrecognised Xero date: {value}")
        return None
    return datetime(parsed.year, parsed.month, parsed.day)


def classify_transaction(xero_type: str, total: float):
    """Return (transaction_type, signed amount) for a Xero bank transaction type"""
    xero_type = (xero_type or "").upper()
    if "RECEIVE" in xero_type:
        return "income", total
    if "SPEND" in xero_type:
        return "expense", -abs(total)
    if "TRANSFER" in xero_type:
        return "transfer", total
    return ("income" if total >= 0 else "expense"), total


def xero_transaction_to_local(
    xero_tx: Dict[str, Any],
    account_id: uuid.UUID,
    user_id: uuid.UUID,
) -> Transaction:
    """Build an unsaved Transaction from a Xero BankTransaction payload"""
    xero_type = xero_tx.get("Type") or ""
    transaction_type, amount = classify_transaction(xero_type, float(xero_tx.get("Total") or 0))

    contact = xero_tx.get("Contact") or {}
    line_items = xero_tx.get("LineItems") or []
    first_line_description = line_items[0].get("Description") if line_items else None

    # Reference first, then the first line item, then the contact
    description = (
        xero_tx.get("Reference")
        or first_line_description
        or contact.get("Name")
        or f"{xero_type} transaction"
    )

    return Transaction(
        account_id=account_id,
        user_id=user_id,
        transaction_date=parse_xero_date(xero_tx.get("Date")),
        description=description,
        amount=amount,
        transaction_type=transaction_type,
        payee=contact.get("Name"),
        reference=xero_tx.get("Reference"),
        is_reconciled=bool(xero_tx.get("IsReconciled")),
        source_type="xero",
        external_id=xero_tx.get("BankTransactionID"),
        external_source=EXTERNAL_SOURCE,
    )
