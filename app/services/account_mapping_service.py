"""
Xero account mapping store

CRUD over XeroAccountMapping, keyed by (connection, Xero account id).
Methods flush but leave committing to the caller, except where noted.
"""
import logging
import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from app.models.xero_account_mapping import XeroAccountMapping
from app.models.xero_connection import XeroConnection
from app.services.account_matcher import xero_account_type

logger = logging.getLogger(__name__)


class AccountMappingStore:
    """Persistence for Xero account <-> local account links"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, connection_id: uuid.UUID, xero_account_id: str) -> Optional[XeroAccountMapping]:
        return self.db.query(XeroAccountMapping).filter(
            XeroAccountMapping.connection_id == connection_id,
            XeroAccountMapping.xero_account_id == xero_account_id
        ).first()

    def get_by_id(self, mapping_id: uuid.UUID) -> Optional[XeroAccountMapping]:
        return self.db.query(XeroAccountMapping).filter(XeroAccountMapping.id == mapping_id).first()

    def get_by_local_account(self, local_account_id: uuid.UUID) -> Optional[XeroAccountMapping]:
        return self.db.query(XeroAccountMapping).filter(
            XeroAccountMapping.local_account_id == local_account_id
        ).first()

    def list_for_connection(self, connection_id: uuid.UUID) -> List[XeroAccountMapping]:
        return self.db.query(XeroAccountMapping).filter(
            XeroAccountMapping.connection_id == connection_id
        ).order_by(XeroAccountMapping.xero_account_name).all()

    def list_enabled(self, connection_id: uuid.UUID) -> List[XeroAccountMapping]:
        """Mappings with sync turned on, linked or not"""
        return self.db.query(XeroAccountMapping).filter(
            XeroAccountMapping.connection_id == connection_id,
            XeroAccountMapping.is_sync_enabled == True
        ).order_by(XeroAccountMapping.xero_account_name).all()

    def upsert_discovered(
        self,
        connection_id: uuid.UUID,
        xero_account: Dict[str, Any],
        local_account_id: Optional[uuid.UUID] = None,
    ) -> XeroAccountMapping:
        """
        Record an account seen on Xero

        New accounts get a sync-enabled mapping; known ones get their name,
        code and type refreshed and keep their link.
        """
        mapping = self.get(connection_id, xero_account["AccountID"])
        if mapping:
            self._apply_account_details(mapping, xero_account)
        else:
            mapping = XeroAccountMapping(
                connection_id=connection_id,
                xero_account_id=xero_account["AccountID"],
                local_account_id=local_account_id,
                is_sync_enabled=True,
            )
            self._apply_account_details(mapping, xero_account)
            self.db.add(mapping)
        self.db.flush()
        return mapping

    def link(
        self,
        connection_id: uuid.UUID,
        xero_account_id: str,
        local_account_id: uuid.UUID,
        xero_account: Optional[Dict[str, Any]] = None,
    ) -> XeroAccountMapping:
        """
        Point a Xero account at a local account and enable sync

        xero_account is required only when no mapping exists yet.
        """
        mapping = self.get(connection_id, xero_account_id)
        if not mapping:
            if xero_account is None:
                raise ValueError(f"No mapping for Xero account {xero_account_id} and no account details to create one")
            mapping = XeroAccountMapping(connection_id=connection_id, xero_account_id=xero_account_id)
            self._apply_account_details(mapping, xero_account)
            self.db.add(mapping)

        mapping.local_account_id = local_account_id
        mapping.is_sync_enabled = True
        self.db.flush()
        logger.info(f"Linked Xero account {xero_account_id} to local account {local_account_id}")
        return mapping

    def update(
        self,
        mapping: XeroAccountMapping,
        local_account_id: Optional[uuid.UUID],
        is_sync_enabled: bool,
    ) -> XeroAccountMapping:
        mapping.local_account_id = local_account_id
        mapping.is_sync_enabled = is_sync_enabled
        self.db.flush()
        return mapping

    def unlink_local_account(self, local_account_id: uuid.UUID) -> int:
        """Detach every mapping pointing at a local account and stop syncing them"""
        mappings = self.db.query(XeroAccountMapping).filter(
            XeroAccountMapping.local_account_id == local_account_id
        ).all()
        for mapping in mappings:
            mapping.local_account_id = None
            mapping.is_sync_enabled = False
        self.db.flush()
        return len(mappings)

    def record_sync(
        self,
        mapping: XeroAccountMapping,
        watermark: Optional[date],
        synced_at: datetime,
    ) -> XeroAccountMapping:
        """Advance the watermark (never backwards) and stamp the sync time"""
        if watermark and (mapping.last_transaction_date is None or watermark > mapping.last_transaction_date):
            mapping.last_transaction_date = watermark
        mapping.last_sync_at = synced_at
        self.db.flush()
        return mapping

    def link_status(
        self,
        local_account_ids: Sequence[uuid.UUID],
        user_id: uuid.UUID,
    ) -> Dict[uuid.UUID, Optional[XeroAccountMapping]]:
        """Mapping linked to each local account, or None. Only the user's own connections are considered."""
        links: Dict[uuid.UUID, Optional[XeroAccountMapping]] = {account_id: None for account_id in local_account_ids}
        if not local_account_ids:
            return links

        mappings = self.db.query(XeroAccountMapping).join(
            XeroConnection, XeroAccountMapping.connection_id == XeroConnection.id
        ).filter(
            XeroAccountMapping.local_account_id.in_(list(local_account_ids)),
            XeroConnection.user_id == user_id,
        ).all()
        for mapping in mappings:
            links[mapping.local_account_id] = mapping
        return links

    @staticmethod
    def _apply_account_details(mapping: XeroAccountMapping, xero_account: Dict[str, Any]) -> None:
        mapping.xero_account_name = xero_account.get("Name")
        mapping.xero_account_code = xero_account.get("Code")
        mapping.xero_account_type = xero_account_type(xero_account) or None
