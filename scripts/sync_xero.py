"""
Script to sync Xero bank transactions

This script will:
1. Find every Xero connection that is due (or all active ones with --all)
2. Run a sync for each connection
3. Log the per-connection outcome

Run it from cron for scheduled syncs.
"""

import argparse
import sys
import os
import logging

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from dotenv import load_dotenv

load_dotenv()

from app.core.database import SessionLocal
from app.core.principal import Principal
from app.models.xero_connection import XeroConnection
from app.services.xero_oauth_service import XeroOAuthService
from app.services.xero_sync_service import XeroSyncService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    """Sync due Xero connections"""
    parser = argparse.ArgumentParser(description="Sync Xero bank transactions")
    parser.add_argument("--all", action="store_true", help="Sync every active connection, not only those due")
    args = parser.parse_args()

    db = SessionLocal()
    sync_service = XeroSyncService(XeroOAuthService())

    try:
        if not args.all:
            results = sync_service.sync_due_connections(db)
        else:
            connections = db.query(XeroConnection).filter(
                XeroConnection.status == "active"
            ).all()

            if not connections:
                logger.warning("No active Xero connections found")
                return

            logger.info(f"Found {len(connections)} active connection(s)")
            results = []
            for connection in connections:
                logger.info(f"Syncing {connection.tenant_name} ({connection.tenant_id}), last sync {connection.last_sync_at}")
                results.append(sync_service.sync_connection(
                    connection.id,
                    db,
                    Principal(user_id=connection.user_id),
                    sync_type="manual",
                ))

        for result in results:
            logger.info(
                f"Sync {result.status}: {result.accounts_synced} account(s), "
                f"{result.transactions_imported} imported, {result.transactions_skipped} skipped, "
                f"{result.api_calls_used} API call(s)"
            )
            for error in result.errors:
                logger.warning(f"  {error}")

        if any(not result.success for result in results):
            sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
