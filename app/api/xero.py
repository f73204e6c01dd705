"""
Xero API Endpoints

Provides endpoints for:
- OAuth flow (connect/callback)
- Connections, sync logs and account mappings
- Manual sync trigger (background or immediate)
- Account review, import and linking
- Bank statement preview
- Link status and sync for local accounts
"""
from fastapi import APIRouter, BackgroundTasks, Cookie, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date
from urllib.parse import urlencode
import uuid

from app.config import AppConfig
from app.core.database import SessionLocal, get_db
from app.core.exceptions import AuthenticationExpired, ConfigurationError, NotFoundError, XeroIntegrationError
from app.core.principal import Principal, get_active_principal
from app.models.xero_account_mapping import XeroAccountMapping
from app.models.xero_connection import XeroConnection
from app.models.xero_sync_log import XeroSyncLog
from app.schemas.xero import (
    AccountLinkStatus,
    AccountMappingResponse,
    BulkImportResult,
    ConnectionResponse,
    ImportResult,
    LinkRequest,
    MappingUpdateRequest,
    OperationResult,
    ReviewResult,
    StatementLineResponse,
    SyncLogResponse,
    SyncRequest,
    SyncResult,
)
from app.services.account_mapping_service import AccountMappingStore
from app.services.account_service import AccountService
from app.services.xero_client import XeroClient
from app.services.xero_oauth_service import XeroOAuthService
from app.services.xero_review_service import XeroReviewService
from app.services.xero_sync_service import XeroSyncService
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/xero", tags=["xero"])

STATE_COOKIE = "xero_oauth_state"
STATE_COOKIE_MAX_AGE = 600

# Initialize services
config = AppConfig()
xero_config = config.xero
oauth_service = XeroOAuthService(client=XeroClient(config.xero, config.sync), sync_config=config.sync)
sync_service = XeroSyncService(oauth_service)
review_service = XeroReviewService(oauth_service, thresholds=config.matching)


def _parse_uuid(value: str, field: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {field} format")


def _get_connection_or_404(connection_id: str, db: Session, principal: Principal) -> XeroConnection:
    connection_uuid = _parse_uuid(connection_id, "connection_id")
    try:
        return oauth_service.get_connection(db, principal, connection_uuid)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Connection not found")


def _frontend_redirect(**params) -> RedirectResponse:
    response = RedirectResponse(url=f"{xero_config.frontend_url}?{urlencode(params)}", status_code=302)
    response.delete_cookie(STATE_COOKIE)
    return response


def _remote_error(e: XeroIntegrationError) -> HTTPException:
    if isinstance(e, AuthenticationExpired):
        return HTTPException(status_code=401, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    return HTTPException(status_code=502, detail=str(e))


@router.get("/connect")
async def connect_xero(principal: Principal = Depends(get_active_principal)):
    """
    Initiate Xero OAuth flow

    Returns authorization URL for user to visit; the state is kept in a cookie
    and checked on callback
    """
    state = oauth_service.generate_state(principal)
    try:
        auth_url = oauth_service.get_authorization_url(state)
    except ConfigurationError as e:
        logger.error(f"Error generating auth URL: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    response = JSONResponse({
        "authorization_url": auth_url,
        "message": "Please visit the authorization URL to connect your Xero organisation"
    })
    response.set_cookie(
        STATE_COOKIE,
        state,
        max_age=STATE_COOKIE_MAX_AGE,
        httponly=True,
        samesite="lax",
    )
    return response


@router.get("/callback")
def xero_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    xero_oauth_state: Optional[str] = Cookie(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_active_principal)
):
    """
    Handle Xero OAuth callback

    Stores a connection per authorised organisation, discovers its bank
    accounts (auto-linking confident matches) and redirects to the frontend
    """
    if error:
        logger.error(f"Xero OAuth error: {error}")
        return _frontend_redirect(error="oauth_denied")

    if not code or not state:
        return _frontend_redirect(error="missing_params")

    if not oauth_service.verify_state(principal, state, xero_oauth_state):
        logger.error("Invalid OAuth state on Xero callback")
        return _frontend_redirect(error="invalid_state")

    try:
        connections = oauth_service.connect(code, principal, db)
    except XeroIntegrationError as e:
        logger.error(f"Xero callback error: {str(e)}")
        return _frontend_redirect(error="callback_failed")

    if not connections:
        return _frontend_redirect(error="no_organization")

    for connection in connections:
        try:
            review_service.discover_accounts(connection, db, principal, auto_link=True)
        except XeroIntegrationError as e:
            # Accounts can be refreshed later
            logger.error(f"Error fetching bank accounts for tenant {connection.tenant_id}: {str(e)}")

    return _frontend_redirect(success="connected")


@router.get("/connections", response_model=List[ConnectionResponse])
async def list_connections(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_active_principal)
):
    """
    List Xero connections for the active user
    """
    return db.query(XeroConnection).filter(
        XeroConnection.user_id == principal.user_id
    ).order_by(XeroConnection.created_at.desc()).all()


@router.get("/connections/{connection_id}", response_model=ConnectionResponse)
async def get_connection(
    connection_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_active_principal)
):
    return _get_connection_or_404(connection_id, db, principal)


@router.delete("/connections/{connection_id}", response_model=OperationResult)
async def disconnect_xero(
    connection_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_active_principal)
):
    """
    Revoke tokens and delete the connection with its mappings and sync logs
    """
    connection = _get_connection_or_404(connection_id, db, principal)
    if oauth_service.disconnect(connection, db):
        return OperationResult(success=True, message="Successfully disconnected Xero")
    return OperationResult(success=True, message="Connection removed, but token revocation may have failed")


@router.post("/connections/{connection_id}/sync")
async def trigger_sync(
    connection_id: str,
    background_tasks: BackgroundTasks,
    sync_request: Optional[SyncRequest] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_active_principal)
):
    """
    Manually trigger a sync for a Xero connection

    The sync runs in the background
    """
    connection = _get_connection_or_404(connection_id, db, principal)
    mapping_ids = _mapping_ids(sync_request)

    background_tasks.add_task(_run_sync, connection.id, principal, mapping_ids)

    return {"message": f"Sync initiated for connection {connection_id}"}


@router.post("/connections/{connection_id}/sync-now", response_model=SyncResult)
def sync_now(
    connection_id: str,
    sync_request: Optional[SyncRequest] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_active_principal)
):
    """
    Run a sync and wait for the result
    """
    connection = _get_connection_or_404(connection_id, db, principal)
    return sync_service.sync_connection(connection.id, db, principal, mapping_ids=_mapping_ids(sync_request))


@router.get("/connections/{connection_id}/sync-logs", response_model=List[SyncLogResponse])
async def get_sync_logs(
    connection_id: str,
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_active_principal)
):
    """
    Get sync logs for a connection, newest first
    """
    connection = _get_connection_or_404(connection_id, db, principal)
    return db.query(XeroSyncLog).filter(
        XeroSyncLog.connection_id == connection.id
    ).order_by(
        XeroSyncLog.started_at.desc()
    ).limit(limit).all()


@router.get("/connections/{connection_id}/mappings", response_model=List[AccountMappingResponse])
async def get_mappings(
    connection_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_active_principal)
):
    connection = _get_connection_or_404(connection_id, db, principal)
    return AccountMappingStore(db).list_for_connection(connection.id)


@router.patch("/mappings/{mapping_id}", response_model=AccountMappingResponse)
async def update_mapping(
    mapping_id: str,
    update: MappingUpdateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_active_principal)
):
    """
    Link/unlink a mapping and toggle its sync
    """
    mapping_uuid = _parse_uuid(mapping_id, "mapping_id")
    mapping = db.query(XeroAccountMapping).join(XeroConnection).filter(
        XeroAccountMapping.id == mapping_uuid,
        XeroConnection.user_id == principal.user_id
    ).first()
    if not mapping:
        raise HTTPException(status_code=404, detail="Mapping not found")

    local_account_id = None
    if update.local_account_id:
        local_account_id = _parse_uuid(update.local_account_id, "local_account_id")
        if not AccountService(db).get_account(principal, local_account_id):
            raise HTTPException(status_code=404, detail="Local account not found")

    AccountMappingStore(db).update(mapping, local_account_id, update.is_sync_enabled)
    db.commit()
    db.refresh(mapping)
    return mapping


@router.post("/connections/{connection_id}/refresh-accounts", response_model=List[AccountMappingResponse])
def refresh_accounts(
    connection_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_active_principal)
):
    """
    Re-fetch bank accounts from Xero and update the mappings
    """
    connection = _get_connection_or_404(connection_id, db, principal)
    try:
        return review_service.discover_accounts(connection, db, principal)
    except XeroIntegrationError as e:
        logger.error(f"Error refreshing Xero accounts: {str(e)}")
        raise _remote_error(e)


@router.get("/connections/{connection_id}/review", response_model=ReviewResult)
def review_accounts(
    connection_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_active_principal)
):
    """
    Compare Xero bank accounts with local accounts
    """
    return review_service.review_accounts(_parse_uuid(connection_id, "connection_id"), db, principal)


@router.post("/connections/{connection_id}/accounts/{xero_account_id}/import", response_model=ImportResult)
def import_account(
    connection_id: str,
    xero_account_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_active_principal)
):
    return review_service.import_account_as_local(
        _parse_uuid(connection_id, "connection_id"), xero_account_id, db, principal
    )


@router.post("/connections/{connection_id}/import-unmatched", response_model=BulkImportResult)
def import_unmatched(
    connection_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_active_principal)
):
    return review_service.import_all_unmatched(_parse_uuid(connection_id, "connection_id"), db, principal)


@router.post("/connections/{connection_id}/accounts/{xero_account_id}/link", response_model=OperationResult)
def link_account(
    connection_id: str,
    xero_account_id: str,
    link_request: LinkRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_active_principal)
):
    return review_service.link_to_local_account(
        _parse_uuid(connection_id, "connection_id"),
        xero_account_id,
        _parse_uuid(link_request.local_account_id, "local_account_id"),
        db,
        principal,
    )


@router.get(
    "/connections/{connection_id}/accounts/{xero_account_id}/statement",
    response_model=List[StatementLineResponse],
)
def get_statement(
    connection_id: str,
    xero_account_id: str,
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_active_principal)
):
    """
    Bank statement lines (including unreconciled) for a Xero account
    """
    connection = _get_connection_or_404(connection_id, db, principal)
    try:
        return review_service.get_statement_lines(
            connection.id, xero_account_id, db, principal, from_date=from_date, to_date=to_date
        )
    except XeroIntegrationError as e:
        logger.error(f"Error fetching bank statement: {str(e)}")
        raise _remote_error(e)


@router.post("/accounts/{local_account_id}/sync", response_model=SyncResult)
def sync_local_account(
    local_account_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_active_principal)
):
    return sync_service.sync_account(_parse_uuid(local_account_id, "local_account_id"), db, principal)


@router.delete("/accounts/{local_account_id}/link", response_model=OperationResult)
async def unlink_local_account(
    local_account_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_active_principal)
):
    account_uuid = _parse_uuid(local_account_id, "local_account_id")
    if not AccountService(db).get_account(principal, account_uuid):
        raise HTTPException(status_code=404, detail="Local account not found")

    unlinked = AccountMappingStore(db).unlink_local_account(account_uuid)
    db.commit()
    return OperationResult(success=True, message=f"Unlinked {unlinked} Xero account(s)")


@router.get("/accounts/link-status", response_model=List[AccountLinkStatus])
async def get_link_status(
    account_ids: List[str] = Query(...),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_active_principal)
):
    """
    Xero link for each requested local account
    """
    account_uuids = [_parse_uuid(account_id, "account_id") for account_id in account_ids]
    links = AccountMappingStore(db).link_status(account_uuids, principal.user_id)

    statuses = []
    for account_id in account_uuids:
        mapping = links.get(account_id)
        statuses.append(AccountLinkStatus(
            local_account_id=str(account_id),
            is_linked=mapping is not None,
            connection_id=str(mapping.connection_id) if mapping else None,
            mapping_id=str(mapping.id) if mapping else None,
            xero_account_name=(mapping.xero_account_name or "Unknown") if mapping else None,
            last_sync_at=mapping.last_sync_at if mapping else None,
        ))
    return statuses


def _mapping_ids(sync_request: Optional[SyncRequest]) -> Optional[List[uuid.UUID]]:
    if not sync_request or sync_request.mapping_ids is None:
        return None
    return [_parse_uuid(mapping_id, "mapping_id") for mapping_id in sync_request.mapping_ids]


# Background task helper
def _run_sync(connection_id: uuid.UUID, principal: Principal, mapping_ids: Optional[List[uuid.UUID]] = None):
    """
    Background task to run sync
    """
    db = SessionLocal()
    try:
        logger.info(f"Starting background sync for connection {connection_id}")
        result = sync_service.sync_connection(connection_id, db, principal, mapping_ids=mapping_ids)
        logger.info(f"Background sync for connection {connection_id} finished: {result.status}")
    except Exception as e:
        logger.error(f"Background sync failed: {str(e)}", exc_info=True)
    finally:
        db.close()
