"""
Xero Data Sync Service

This service handles:
- Fetching bank transactions for each linked account
- Idempotent import keyed on the Xero BankTransactionID
- Per-account watermarks for incremental syncs
- Sync log lifecycle (started -> completed | partial | failed)
- Scheduling the next automatic sync
"""
import logging
import uuid
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import SyncConfig
from app.core.exceptions import AuthenticationExpired, NotFoundError
from app.core.principal import Principal
from app.models.transaction import Transaction
from app.models.xero_account_mapping import XeroAccountMapping
from app.models.xero_connection import XeroConnection
from app.models.xero_sync_log import XeroSyncLog
from app.schemas.xero import SyncResult
from app.services.account_mapping_service import AccountMappingStore
from app.services.xero_oauth_service import XeroOAuthService
from app.services.xero_transforms import EXTERNAL_SOURCE, parse_xero_date, xero_transaction_to_local

logger = logging.getLogger(__name__)

NO_ACCOUNTS_MESSAGE = "No accounts configured for sync"

SYNC_INTERVALS = {
    "hourly": timedelta(hours=1),
    "daily": timedelta(hours=24),
}


def next_sync_time(sync_frequency: Optional[str], now: datetime) -> Optional[datetime]:
    """When the scheduler should next pick up a connection; None for manual connections"""
    interval = SYNC_INTERVALS.get(sync_frequency or "")
    return now + interval if interval else None


class XeroSyncService:
    """Handles syncing bank transactions from Xero to the local database"""

    def __init__(self, oauth_service: XeroOAuthService, sync_config: Optional[SyncConfig] = None):
        self.oauth_service = oauth_service
        self.client = oauth_service.client
        self.sync_config = sync_config or oauth_service.sync_config
        self.clock = oauth_service.clock

    def sync_connection(
        self,
        connection_id: uuid.UUID,
        db: Session,
        principal: Principal,
        sync_type: str = "manual",
        mapping_ids: Optional[Sequence[uuid.UUID]] = None,
    ) -> SyncResult:
        """
        Sync transactions for every enabled, linked account of a connection

        Args:
            connection_id: XeroConnection id
            db: Database session
            principal: Owner of the connection
            sync_type: 'manual', 'scheduled' or 'initial'
            mapping_ids: Restrict the run to these mappings

        Returns:
            SyncResult mirroring the finalized sync log
        """
        try:
            connection = self.oauth_service.get_connection(db, principal, connection_id)
        except NotFoundError as e:
            return SyncResult(success=False, errors=[str(e)], message=str(e))

        return self._run_sync(connection, db, sync_type, mapping_ids)

    def sync_account(self, local_account_id: uuid.UUID, db: Session, principal: Principal) -> SyncResult:
        """Sync only the Xero account linked to one local account"""
        mapping = db.query(XeroAccountMapping).join(XeroConnection).filter(
            XeroAccountMapping.local_account_id == local_account_id,
            XeroConnection.user_id == principal.user_id
        ).first()
        if not mapping:
            message = "Account is not linked to Xero"
            return SyncResult(success=False, errors=[message], message=message)

        return self._run_sync(mapping.connection, db, "manual", [mapping.id])

    def sync_due_connections(
        self,
        db: Session,
        principal: Optional[Principal] = None,
        now: Optional[datetime] = None,
    ) -> List[SyncResult]:
        """
        Scheduler tick: run a scheduled sync for every connection that is due

        A connection is due when it is active, sync-enabled, not manual and its
        next_sync_at is unset or has passed.
        """
        now = now or self.clock()
        query = db.query(XeroConnection).filter(
            XeroConnection.status == "active",
            XeroConnection.sync_enabled == True,
            XeroConnection.sync_frequency != "manual",
            or_(XeroConnection.next_sync_at.is_(None), XeroConnection.next_sync_at <= now)
        )
        if principal is not None:
            query = query.filter(XeroConnection.user_id == principal.user_id)

        connections = query.order_by(XeroConnection.created_at).all()
        logger.info(f"{len(connections)} Xero connection(s) due for sync")

        results = []
        for connection in connections:
            owner = Principal(user_id=connection.user_id)
            result = self.sync_connection(connection.id, db, owner, sync_type="scheduled")
            logger.info(
                f"Scheduled sync for tenant {connection.tenant_id}: {result.status} "
                f"({result.transactions_imported} imported, {result.transactions_skipped} skipped)"
            )
            results.append(result)
        return results

    def _run_sync(
        self,
        connection: XeroConnection,
        db: Session,
        sync_type: str,
        mapping_ids: Optional[Sequence[uuid.UUID]] = None,
    ) -> SyncResult:
        started_at = self.clock()
        sync_log = XeroSyncLog(
            connection_id=connection.id,
            sync_type=sync_type,
            status="started",
            started_at=started_at,
        )
        db.add(sync_log)
        db.commit()

        stats = {"accounts_synced": 0, "imported": 0, "skipped": 0, "updated": 0, "failed": 0, "api_calls": 0}
        errors: List[str] = []
        outcome: Dict[str, Any] = {"status": "failed", "error_code": None, "message": None}

        logger.info(f"Starting {sync_type} sync for tenant {connection.tenant_id}")
        try:
            outcome["message"] = self._sync_mappings(connection, db, mapping_ids, stats, errors)
            outcome["status"] = "partial" if errors else "completed"
        except AuthenticationExpired as e:
            logger.warning(f"Sync aborted for tenant {connection.tenant_id}: {str(e)}")
            outcome.update(error_code="auth_expired", message=str(e))
            errors.append(str(e))
        except Exception as e:
            logger.error(f"Sync failed for tenant {connection.tenant_id}: {str(e)}", exc_info=True)
            db.rollback()
            outcome.update(error_code="sync_error", message=str(e))
            errors.append(str(e))
            connection.status = "error"
            connection.status_message = str(e)
        finally:
            self._finalize(sync_log, connection, db, started_at, outcome, stats, errors)

        logger.info(
            f"Sync {outcome['status']} for tenant {connection.tenant_id}: "
            f"{stats['imported']} imported, {stats['skipped']} skipped, {len(errors)} error(s)"
        )
        return SyncResult(
            success=outcome["status"] in ("completed", "partial"),
            status=outcome["status"],
            sync_log_id=str(sync_log.id),
            accounts_synced=stats["accounts_synced"],
            transactions_imported=stats["imported"],
            transactions_skipped=stats["skipped"],
            transactions_updated=stats["updated"],
            api_calls_used=stats["api_calls"],
            errors=errors,
            message=outcome["message"],
        )

    def _sync_mappings(
        self,
        connection: XeroConnection,
        db: Session,
        mapping_ids: Optional[Sequence[uuid.UUID]],
        stats: Dict[str, int],
        errors: List[str],
    ) -> Optional[str]:
        access_token = self.oauth_service.ensure_valid_token(connection, db)

        mappings = [m for m in AccountMappingStore(db).list_enabled(connection.id) if m.local_account_id]
        if mapping_ids is not None:
            wanted = set(mapping_ids)
            mappings = [m for m in mappings if m.id in wanted]

        if not mappings:
            logger.info(f"No linked accounts to sync for tenant {connection.tenant_id}")
            return NO_ACCOUNTS_MESSAGE

        for mapping in mappings:
            label = mapping.xero_account_name or mapping.xero_account_id
            try:
                self._sync_mapping(connection, mapping, access_token, db, stats, errors)
                stats["accounts_synced"] += 1
            except AuthenticationExpired:
                raise
            except Exception as e:
                db.rollback()
                logger.error(f"Error syncing Xero account {label}: {str(e)}")
                errors.append(f"{label}: {str(e)}")
        return None

    def _sync_mapping(
        self,
        connection: XeroConnection,
        mapping: XeroAccountMapping,
        access_token: str,
        db: Session,
        stats: Dict[str, int],
        errors: List[str],
    ) -> None:
        modified_since = None
        if mapping.last_transaction_date:
            modified_since = datetime.combine(mapping.last_transaction_date, time.min)

        xero_transactions = self.client.get_all_bank_transactions(
            access_token,
            connection.tenant_id,
            bank_account_id=mapping.xero_account_id,
            modified_since=modified_since,
            max_pages=self.sync_config.max_pages,
            stats=stats,
        )
        logger.info(f"Fetched {len(xero_transactions)} transactions for Xero account {mapping.xero_account_name}")

        local_account_id = mapping.local_account_id
        latest: Optional[date] = None
        for xero_tx in xero_transactions:
            tx_date = parse_xero_date(xero_tx.get("Date"))
            if tx_date and (latest is None or tx_date.date() > latest):
                latest = tx_date.date()

            result = self._process_transaction(xero_tx, local_account_id, connection.user_id, db, errors)
            stats[result] += 1

        AccountMappingStore(db).record_sync(mapping, latest, self.clock())
        db.commit()

    def _process_transaction(
        self,
        xero_tx: Dict[str, Any],
        local_account_id: uuid.UUID,
        user_id: uuid.UUID,
        db: Session,
        errors: List[str],
    ) -> str:
        """Insert one Xero transaction. Returns 'imported', 'skipped' or 'failed'."""
        external_id = xero_tx.get("BankTransactionID")
        if not external_id:
            logger.warning("Skipping Xero transaction without BankTransactionID")
            return "skipped"

        existing = db.query(Transaction.id).filter(
            Transaction.external_id == external_id,
            Transaction.external_source == EXTERNAL_SOURCE
        ).first()
        if existing:
            return "skipped"

        try:
            transaction = xero_transaction_to_local(xero_tx, local_account_id, user_id)
        except (TypeError, ValueError) as e:
            errors.append(f"Failed to import transaction {external_id}: {str(e)}")
            return "failed"
        if transaction.transaction_date is None:
            errors.append(f"Failed to import transaction {external_id}: invalid date {xero_tx.get('Date')!r}")
            return "failed"

        try:
            db.add(transaction)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error inserting Xero transaction {external_id}: {str(e)}")
            errors.append(f"Failed to import transaction {external_id}: {str(e)}")
            return "failed"
        return "imported"

    def _finalize(
        self,
        sync_log: XeroSyncLog,
        connection: XeroConnection,
        db: Session,
        started_at: datetime,
        outcome: Dict[str, Any],
        stats: Dict[str, int],
        errors: List[str],
    ) -> None:
        completed_at = self.clock()
        status = outcome["status"]

        sync_log.status = status
        sync_log.accounts_synced = stats["accounts_synced"]
        sync_log.transactions_imported = stats["imported"]
        sync_log.transactions_skipped = stats["skipped"]
        sync_log.transactions_updated = stats["updated"]
        sync_log.api_calls_used = stats["api_calls"]
        sync_log.completed_at = completed_at
        sync_log.duration_ms = int((completed_at - started_at).total_seconds() * 1000)
        sync_log.error_code = outcome["error_code"]
        if errors:
            sync_log.error_message = "; ".join(errors)
            sync_log.error_details = list(errors)
        elif outcome["message"]:
            sync_log.error_message = outcome["message"]

        if status in ("completed", "partial"):
            # A clean run puts the connection back on the schedule
            connection.status = "active"
            connection.status_message = None
            connection.last_sync_at = completed_at
            connection.next_sync_at = next_sync_time(connection.sync_frequency, completed_at)

        try:
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.error(f"Could not finalize sync log {sync_log.id}", exc_info=True)
            raise
