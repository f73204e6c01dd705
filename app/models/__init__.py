from .account import Account
from .transaction import Transaction
from .xero_connection import XeroConnection
from .xero_account_mapping import XeroAccountMapping
from .xero_sync_log import XeroSyncLog

__all__ = ["Account", "Transaction", "XeroConnection", "XeroAccountMapping", "XeroSyncLog"]
