"""
Xero OAuth 2.0 Authentication Service

This service handles:
- OAuth flow initiation and CSRF state
- Authorization code exchange and connection storage
- Token refresh ahead of expiry
- Disconnect
"""
import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import SyncConfig
from app.core.exceptions import AuthenticationExpired, NotFoundError, XeroIntegrationError
from app.core.principal import Principal
from app.core.timeutils import utcnow
from app.models.xero_connection import XeroConnection
from app.services.xero_client import XeroClient

logger = logging.getLogger(__name__)


class XeroOAuthService:
    """Handles Xero OAuth 2.0 authentication and the token lifecycle of a connection"""

    def __init__(
        self,
        client: Optional[XeroClient] = None,
        sync_config: Optional[SyncConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.client = client or XeroClient()
        self.sync_config = sync_config or SyncConfig()
        self.clock = clock

    def generate_state(self, principal: Principal) -> str:
        """Opaque CSRF value; store it (cookie) and pass it back to verify_state on callback"""
        return f"{principal.state_prefix}{secrets.token_urlsafe(16)}"

    def verify_state(self, principal: Principal, state: Optional[str], expected: Optional[str]) -> bool:
        if not state or not expected:
            return False
        return secrets.compare_digest(state, expected) and state.startswith(principal.state_prefix)

    def get_authorization_url(self, state: str) -> str:
        return self.client.get_authorization_url(state)

    def connect(self, authorization_code: str, principal: Principal, db: Session) -> List[XeroConnection]:
        """
        Exchange the authorization code and store one connection per authorised tenant

        Args:
            authorization_code: Code received on the OAuth callback
            principal: Owner of the connections
            db: Database session

        Returns:
            Stored connections (empty when the user authorised no organisation)
        """
        tokens = self.client.exchange_code_for_tokens(authorization_code)
        token_expires_at = self.clock() + timedelta(seconds=int(tokens["expires_in"]))

        tenants = self.client.get_connections(tokens["access_token"])
        if not tenants:
            logger.warning("Xero authorisation returned no organisations")
            return []

        connections = []
        for tenant in tenants:
            connection = db.query(XeroConnection).filter(
                XeroConnection.user_id == principal.user_id,
                XeroConnection.tenant_id == tenant["tenantId"]
            ).first()

            if connection is None:
                connection = XeroConnection(
                    user_id=principal.user_id,
                    tenant_id=tenant["tenantId"],
                    sync_enabled=True,
                    sync_frequency="daily",
                )
                db.add(connection)
                logger.info(f"Creating Xero connection for tenant {tenant.get('tenantName')} ({tenant['tenantId']})")
            else:
                logger.info(f"Updating Xero connection {connection.id} for tenant {tenant['tenantId']}")

            connection.tenant_name = tenant.get("tenantName")
            connection.tenant_type = tenant.get("tenantType")
            connection.access_token = tokens["access_token"]
            connection.refresh_token = tokens["refresh_token"]
            connection.token_expires_at = token_expires_at
            connection.status = "active"
            connection.status_message = None
            connections.append(connection)

        db.commit()
        for connection in connections:
            db.refresh(connection)
        return connections

    def get_connection(self, db: Session, principal: Principal, connection_id: uuid.UUID) -> XeroConnection:
        connection = db.query(XeroConnection).filter(
            XeroConnection.id == connection_id,
            XeroConnection.user_id == principal.user_id
        ).first()
        if not connection:
            raise NotFoundError("Connection not found")
        return connection

    def is_token_expired(self, connection: XeroConnection) -> bool:
        """True when the access token expires within the refresh buffer (or has no expiry)"""
        if not connection.access_token or not connection.token_expires_at:
            return True
        buffer = timedelta(minutes=self.sync_config.token_refresh_buffer_minutes)
        return connection.token_expires_at - buffer <= self.clock()

    def ensure_valid_token(self, connection: XeroConnection, db: Session) -> str:
        """
        Get a valid access token, refreshing if necessary

        Raises:
            AuthenticationExpired: No refresh token, or Xero rejected the refresh.
                The connection is left with status "expired" and the user must reconnect.
        """
        if not self.is_token_expired(connection):
            return connection.access_token

        if not connection.refresh_token:
            self._mark_expired(connection, db, "Refresh token missing - please reconnect")
            raise AuthenticationExpired("Token expired - please reconnect to Xero")

        logger.info(f"Token expiring for tenant {connection.tenant_id}, refreshing...")
        try:
            tokens = self.client.refresh_access_token(connection.refresh_token)
            access_token = tokens["access_token"]
            refresh_token = tokens["refresh_token"]
            token_expires_at = self.clock() + timedelta(seconds=int(tokens["expires_in"]))
        except (XeroIntegrationError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Token refresh error for tenant {connection.tenant_id}: {str(e)}")
            self._mark_expired(connection, db, "Token refresh failed - please reconnect")
            raise AuthenticationExpired("Token refresh failed - please reconnect to Xero") from e

        # The new pair and its expiry are written in one commit
        connection.access_token = access_token
        connection.refresh_token = refresh_token
        connection.token_expires_at = token_expires_at
        connection.status = "active"
        connection.status_message = None
        try:
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.error(f"Could not store refreshed tokens for tenant {connection.tenant_id}", exc_info=True)
            raise

        logger.info(f"Successfully refreshed tokens for tenant {connection.tenant_id}")
        return access_token

    def disconnect(self, connection: XeroConnection, db: Session) -> bool:
        """
        Revoke tokens and delete the connection with its mappings and sync logs

        Returns:
            True if Xero confirmed the revocation; the connection is deleted either way
        """
        revoked = False
        if connection.refresh_token:
            try:
                self.client.revoke_token(connection.refresh_token)
                revoked = True
            except XeroIntegrationError as e:
                logger.warning(f"Error revoking tokens for tenant {connection.tenant_id}: {str(e)}")

        db.delete(connection)
        db.commit()
        logger.info(f"Disconnected Xero tenant {connection.tenant_id}")
        return revoked

    def _mark_expired(self, connection: XeroConnection, db: Session, message: str) -> None:
        connection.status = "expired"
        connection.status_message = message
        db.commit()
