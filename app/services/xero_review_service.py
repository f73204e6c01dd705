"""
Xero Account Review Service

This service handles:
- Comparing Xero bank accounts with local accounts
- Importing Xero accounts as new local accounts
- Linking Xero accounts to existing local accounts
- Discovering accounts after connect/refresh (with optional auto-linking)
- Bank statement previews
"""
import logging
import uuid
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import MatchThresholds
from app.core.exceptions import XeroIntegrationError
from app.core.principal import Principal
from app.models.account import Account
from app.models.xero_account_mapping import XeroAccountMapping
from app.models.xero_connection import XeroConnection
from app.schemas.xero import (
    AccountComparison,
    BulkImportResult,
    ImportResult,
    LocalAccountSummary,
    OperationResult,
    ReviewResult,
    XeroAccountSummary,
)
from app.services.account_mapping_service import AccountMappingStore
from app.services.account_matcher import find_best_match, map_xero_type_to_local, xero_account_type
from app.services.account_service import AccountService
from app.services.xero_client import BankStatementLine
from app.services.xero_oauth_service import XeroOAuthService

logger = logging.getLogger(__name__)

STATUS_ORDER = {"matched": 0, "suggested": 1, "no_match": 2}


def summarize_xero_account(xero_account: Dict[str, Any]) -> XeroAccountSummary:
    return XeroAccountSummary(
        account_id=xero_account["AccountID"],
        name=xero_account.get("Name"),
        code=xero_account.get("Code"),
        account_number=xero_account.get("BankAccountNumber"),
        account_type=xero_account_type(xero_account) or None,
        currency_code=xero_account.get("CurrencyCode"),
    )


class XeroReviewService:
    """Reconciles Xero bank accounts with the household's local accounts"""

    def __init__(self, oauth_service: XeroOAuthService, thresholds: Optional[MatchThresholds] = None):
        self.oauth_service = oauth_service
        self.client = oauth_service.client
        self.thresholds = thresholds or MatchThresholds()

    def review_accounts(self, connection_id: uuid.UUID, db: Session, principal: Principal) -> ReviewResult:
        """
        Classify every Xero bank account as matched, suggested or no_match

        Sorted matched first, then suggested by confidence (highest first),
        then no_match; ties keep Xero's order.
        """
        try:
            connection, xero_accounts = self._load_xero_accounts(connection_id, db, principal)
        except XeroIntegrationError as e:
            logger.error(f"Error reviewing Xero accounts for connection {connection_id}: {str(e)}")
            return ReviewResult(success=False, error=str(e))

        return self._compare(connection, xero_accounts, db, principal)

    def _compare(
        self,
        connection: XeroConnection,
        xero_accounts: List[Dict[str, Any]],
        db: Session,
        principal: Principal,
    ) -> ReviewResult:
        local_accounts = AccountService(db).list_accounts(principal)
        local_by_id = {account.id: account for account in local_accounts}
        mappings = {m.xero_account_id: m for m in AccountMappingStore(db).list_for_connection(connection.id)}

        comparisons = []
        for xero_account in xero_accounts:
            mapping = mappings.get(xero_account["AccountID"])
            mapping_id = str(mapping.id) if mapping else None

            if mapping and mapping.local_account_id:
                linked = local_by_id.get(mapping.local_account_id)
                comparisons.append(AccountComparison(
                    xero_account=summarize_xero_account(xero_account),
                    local_account=LocalAccountSummary.model_validate(linked) if linked else None,
                    status="matched",
                    confidence=100,
                    reason="Manually linked",
                    mapping_id=mapping_id,
                ))
                continue

            best = find_best_match(xero_account, local_accounts, self.thresholds)
            if best.account is not None:
                comparisons.append(AccountComparison(
                    xero_account=summarize_xero_account(xero_account),
                    local_account=LocalAccountSummary.model_validate(best.account),
                    status="suggested",
                    confidence=best.confidence,
                    reason=best.reason,
                    mapping_id=mapping_id,
                ))
            else:
                comparisons.append(AccountComparison(
                    xero_account=summarize_xero_account(xero_account),
                    status="no_match",
                    mapping_id=mapping_id,
                ))

        comparisons.sort(key=lambda c: (STATUS_ORDER[c.status], -c.confidence))

        return ReviewResult(
            success=True,
            comparisons=comparisons,
            matched_count=sum(1 for c in comparisons if c.status == "matched"),
            suggested_count=sum(1 for c in comparisons if c.status == "suggested"),
            unmatched_count=sum(1 for c in comparisons if c.status == "no_match"),
        )

    def import_account_as_local(
        self,
        connection_id: uuid.UUID,
        xero_account_id: str,
        db: Session,
        principal: Principal,
    ) -> ImportResult:
        """Create a local account from a Xero account and link the two"""
        try:
            connection, xero_accounts = self._load_xero_accounts(connection_id, db, principal)
        except XeroIntegrationError as e:
            return ImportResult(success=False, error=str(e))

        xero_account = next((a for a in xero_accounts if a.get("AccountID") == xero_account_id), None)
        if not xero_account:
            return ImportResult(success=False, error="Xero account not found")

        return self._import_account(connection, xero_account, db, principal)

    def import_all_unmatched(self, connection_id: uuid.UUID, db: Session, principal: Principal) -> BulkImportResult:
        """
        Import every Xero account the review could not match

        Each import stands alone; one failure does not stop the rest. With
        failures, success means at least one account was imported.
        """
        try:
            connection, xero_accounts = self._load_xero_accounts(connection_id, db, principal)
        except XeroIntegrationError as e:
            return BulkImportResult(success=False, error=str(e))

        review = self._compare(connection, xero_accounts, db, principal)
        by_id = {a["AccountID"]: a for a in xero_accounts}
        unmatched = [c for c in review.comparisons if c.status == "no_match"]

        imported_ids: List[str] = []
        errors: List[str] = []
        for comparison in unmatched:
            xero_account = by_id[comparison.xero_account.account_id]
            result = self._import_account(connection, xero_account, db, principal)
            if result.success:
                imported_ids.append(result.local_account_id)
            else:
                errors.append(f"{comparison.xero_account.name}: {result.error}")

        logger.info(f"Imported {len(imported_ids)} of {len(unmatched)} unmatched Xero accounts")
        if errors:
            return BulkImportResult(
                success=len(imported_ids) > 0,
                imported_count=len(imported_ids),
                failed_count=len(errors),
                imported_account_ids=imported_ids,
                error="; ".join(errors),
            )
        return BulkImportResult(success=True, imported_count=len(imported_ids), imported_account_ids=imported_ids)

    def link_to_local_account(
        self,
        connection_id: uuid.UUID,
        xero_account_id: str,
        local_account_id: uuid.UUID,
        db: Session,
        principal: Principal,
    ) -> OperationResult:
        """Point a Xero account at an existing local account and enable its sync"""
        if not AccountService(db).get_account(principal, local_account_id):
            return OperationResult(success=False, error="Local account not found")

        try:
            connection = self.oauth_service.get_connection(db, principal, connection_id)
            store = AccountMappingStore(db)

            xero_account = None
            if not store.get(connection.id, xero_account_id):
                # Mapping details come from Xero when the account was never discovered
                _, xero_accounts = self._load_xero_accounts(connection_id, db, principal)
                xero_account = next((a for a in xero_accounts if a.get("AccountID") == xero_account_id), None)
                if not xero_account:
                    return OperationResult(success=False, error="Xero account not found")

            store.link(connection.id, xero_account_id, local_account_id, xero_account)
            db.commit()
        except XeroIntegrationError as e:
            return OperationResult(success=False, error=str(e))
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error linking Xero account {xero_account_id}: {str(e)}")
            return OperationResult(success=False, error=str(e))

        return OperationResult(success=True, message="Accounts linked")

    def discover_accounts(
        self,
        connection: XeroConnection,
        db: Session,
        principal: Principal,
        auto_link: bool = False,
    ) -> List[XeroAccountMapping]:
        """
        Fetch Xero bank accounts and upsert their mappings

        With auto_link, unlinked mappings whose best local match reaches the
        auto-link threshold are linked. Raises XeroIntegrationError when Xero
        cannot be reached.
        """
        access_token = self.oauth_service.ensure_valid_token(connection, db)
        xero_accounts = self.client.get_bank_accounts(access_token, connection.tenant_id)

        store = AccountMappingStore(db)
        local_accounts = AccountService(db).list_accounts(principal, active_only=True) if auto_link else []
        linked_ids = {m.local_account_id for m in store.list_for_connection(connection.id) if m.local_account_id}

        mappings = []
        for xero_account in xero_accounts:
            mapping = store.upsert_discovered(connection.id, xero_account)

            if auto_link and not mapping.local_account_id:
                candidates = [a for a in local_accounts if a.id not in linked_ids]
                best = find_best_match(xero_account, candidates, self.thresholds)
                if best.account is not None and best.confidence >= self.thresholds.auto_link:
                    mapping.local_account_id = best.account.id
                    mapping.is_sync_enabled = True
                    linked_ids.add(best.account.id)
                    logger.info(
                        f"Auto-linked Xero account {xero_account.get('Name')} to "
                        f"{best.account.name} ({best.confidence}%: {best.reason})"
                    )
            mappings.append(mapping)

        db.commit()
        logger.info(f"Discovered {len(mappings)} Xero bank accounts for tenant {connection.tenant_id}")
        return mappings

    def get_statement_lines(
        self,
        connection_id: uuid.UUID,
        xero_account_id: str,
        db: Session,
        principal: Principal,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> List[BankStatementLine]:
        """Bank statement preview; the client defaults to the last statement_window_days days"""
        connection = self.oauth_service.get_connection(db, principal, connection_id)
        access_token = self.oauth_service.ensure_valid_token(connection, db)
        return self.client.get_bank_statement_lines(
            access_token,
            connection.tenant_id,
            xero_account_id,
            from_date=from_date,
            to_date=to_date,
        )

    def _load_xero_accounts(self, connection_id: uuid.UUID, db: Session, principal: Principal):
        connection = self.oauth_service.get_connection(db, principal, connection_id)
        access_token = self.oauth_service.ensure_valid_token(connection, db)
        return connection, self.client.get_bank_accounts(access_token, connection.tenant_id)

    def _import_account(
        self,
        connection: XeroConnection,
        xero_account: Dict[str, Any],
        db: Session,
        principal: Principal,
    ) -> ImportResult:
        notes = "Imported from Xero"
        if xero_account.get("Code"):
            notes = f"Imported from Xero ({xero_account['Code']})"

        try:
            account: Account = AccountService(db).create_account(
                principal,
                name=xero_account.get("Name") or xero_account["AccountID"],
                account_type=map_xero_type_to_local(xero_account_type(xero_account)),
                account_number=xero_account.get("BankAccountNumber") or None,
                institution=connection.tenant_name or "Xero",
                currency=xero_account.get("CurrencyCode") or self.oauth_service.sync_config.default_currency,
                notes=notes,
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error creating account for Xero account {xero_account.get('Name')}: {str(e)}")
            return ImportResult(success=False, error=f"Failed to create account: {e.__class__.__name__}")

        # The account and its mapping are committed together
        try:
            mapping = AccountMappingStore(db).link(connection.id, xero_account["AccountID"], account.id, xero_account)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Mapping failed for Xero account {xero_account.get('Name')}, account not created: {str(e)}")
            return ImportResult(success=False, error=f"Failed to link imported account: {e.__class__.__name__}")

        logger.info(f"Imported Xero account {xero_account.get('Name')} as local account {account.id}")
        return ImportResult(success=True, local_account_id=str(account.id), mapping_id=str(mapping.id))
