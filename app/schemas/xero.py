from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class ConnectionResponse(BaseModel):
    id: str
    tenant_id: str
    tenant_name: Optional[str] = None
    tenant_type: Optional[str] = None
    status: str
    status_message: Optional[str] = None
    sync_enabled: bool
    sync_frequency: str
    last_sync_at: Optional[datetime] = None
    next_sync_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @field_validator('id', mode='before')
    @classmethod
    def convert_uuid_to_str(cls, v):
        if isinstance(v, UUID):
            return str(v)
        return v

    class Config:
        from_attributes = True


class AccountMappingResponse(BaseModel):
    id: str
    connection_id: str
    xero_account_id: str
    xero_account_name: Optional[str] = None
    xero_account_code: Optional[str] = None
    xero_account_type: Optional[str] = None
    local_account_id: Optional[str] = None
    is_sync_enabled: bool
    last_transaction_date: Optional[date] = None
    last_sync_at: Optional[datetime] = None

    @field_validator('id', 'connection_id', 'local_account_id', mode='before')
    @classmethod
    def convert_uuid_to_str(cls, v):
        if isinstance(v, UUID):
            return str(v)
        return v

    class Config:
        from_attributes = True


class SyncLogResponse(BaseModel):
    id: str
    sync_type: str
    status: str
    accounts_synced: int = 0
    transactions_imported: int = 0
    transactions_skipped: int = 0
    transactions_updated: int = 0
    api_calls_used: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @field_validator('id', mode='before')
    @classmethod
    def convert_uuid_to_str(cls, v):
        if isinstance(v, UUID):
            return str(v)
        return v

    class Config:
        from_attributes = True


class SyncRequest(BaseModel):
    mapping_ids: Optional[List[str]] = Field(None, description="Limit the sync to these mappings")


class MappingUpdateRequest(BaseModel):
    local_account_id: Optional[str] = Field(None, description="Local account to link, or null to unlink")
    is_sync_enabled: bool = True


class LinkRequest(BaseModel):
    local_account_id: str


# Service results

class SyncResult(BaseModel):
    """Outcome of one sync run"""
    success: bool
    status: Optional[str] = Field(None, description="completed, partial or failed; None when no run was logged")
    sync_log_id: Optional[str] = None
    accounts_synced: int = 0
    transactions_imported: int = 0
    transactions_skipped: int = 0
    transactions_updated: int = 0
    api_calls_used: int = 0
    errors: List[str] = Field(default_factory=list)
    message: Optional[str] = None


class XeroAccountSummary(BaseModel):
    account_id: str
    name: Optional[str] = None
    code: Optional[str] = None
    account_number: Optional[str] = None
    account_type: Optional[str] = None
    currency_code: Optional[str] = None


class LocalAccountSummary(BaseModel):
    id: str
    name: str
    account_type: Optional[str] = None
    account_number: Optional[str] = None
    institution: Optional[str] = None

    @field_validator('id', mode='before')
    @classmethod
    def convert_uuid_to_str(cls, v):
        if isinstance(v, UUID):
            return str(v)
        return v

    class Config:
        from_attributes = True


class AccountComparison(BaseModel):
    xero_account: XeroAccountSummary
    local_account: Optional[LocalAccountSummary] = None
    status: str = Field(..., description="matched, suggested or no_match")
    confidence: int = 0
    reason: Optional[str] = None
    mapping_id: Optional[str] = None


class ReviewResult(BaseModel):
    success: bool
    comparisons: List[AccountComparison] = Field(default_factory=list)
    matched_count: int = 0
    suggested_count: int = 0
    unmatched_count: int = 0
    error: Optional[str] = None


class ImportResult(BaseModel):
    success: bool
    local_account_id: Optional[str] = None
    mapping_id: Optional[str] = None
    error: Optional[str] = None


class BulkImportResult(BaseModel):
    success: bool
    imported_count: int = 0
    failed_count: int = 0
    imported_account_ids: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class OperationResult(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None


class StatementLineResponse(BaseModel):
    date: str
    description: str
    reference: str
    reconciled: bool
    source: str
    amount: float
    balance: float

    class Config:
        from_attributes = True


class AccountLinkStatus(BaseModel):
    local_account_id: str
    is_linked: bool
    connection_id: Optional[str] = None
    mapping_id: Optional[str] = None
    xero_account_name: Optional[str] = None
    last_sync_at: Optional[datetime] = None
