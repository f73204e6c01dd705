from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional
import os

@dataclass
class DatabaseConfig:
    # Get database credentials from environment
    user: str = os.getenv("DB_USER", "postgres")
    password: str = os.getenv("DB_PASSWORD", "postgres")
    host: str = os.getenv("DB_HOST", "localhost")
    port: str = os.getenv("DB_PORT", "5432")
    name: str = os.getenv("DB_NAME", "household_finance")

    @property
    def url(self) -> str:
        """Construct database URL from components or use DATABASE_URL if provided"""
        return os.getenv(
            "DATABASE_URL",
            f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.name}"
        )

@dataclass
class XeroConfig:
    client_id: Optional[str] = os.getenv("XERO_CLIENT_ID")
    client_secret: Optional[str] = os.getenv("XERO_CLIENT_SECRET")
    redirect_uri: str = os.getenv("XERO_REDIRECT_URI", "http://localhost:8000/api/xero/callback")
    # Where the callback sends the browser once the connection is stored
    frontend_url: str = os.getenv("FRONTEND_URL", "http://localhost:3000/settings/bank-connections")

    authorize_url: str = "https://login.xero.com/identity/connect/authorize"
    token_url: str = "https://identity.xero.com/connect/token"
    revocation_url: str = "https://identity.xero.com/connect/revocation"
    connections_url: str = "https://api.xero.com/connections"
    api_url: str = "https://api.xero.com/api.xro/2.0"

    scopes: List[str] = field(default_factory=lambda: [
        "openid",
        "profile",
        "email",
        "accounting.transactions.read",
        "accounting.settings.read",
        "accounting.contacts.read",
        "offline_access",  # Required for refresh tokens
    ])
    request_timeout: int = 30

@dataclass
class SyncConfig:
    # Refresh the access token when it expires within this window
    token_refresh_buffer_minutes: int = 5
    # Xero returns at most this many bank transactions per page
    page_size: int = 100
    # Hard cap on pages fetched per account per run
    max_pages: int = int(os.getenv("XERO_MAX_PAGES", "10"))
    # Window used by the bank statement report when no dates are given
    statement_window_days: int = 90
    default_currency: str = os.getenv("DEFAULT_CURRENCY", "AUD")

@dataclass
class MatchThresholds:
    """Confidence rules used by the account matcher.

    These are tuned heuristics, not values learned from data; callers may pass
    their own instance to any matcher function.
    """
    account_number_confidence: int = 95
    exact_name_similarity: int = 90
    exact_name_confidence: int = 85
    containment_confidence: int = 70
    similar_name_floor: int = 70
    similar_name_scale: float = 0.8
    type_match_similarity_floor: int = 50
    type_match_scale: float = 0.7
    # Below this a match is not shown to the user
    actionable: int = 50
    # Callback auto-links discovered accounts at or above this
    auto_link: int = 70

@dataclass
class AppConfig:
    db: DatabaseConfig = field(default_factory=DatabaseConfig)
    xero: XeroConfig = field(default_factory=XeroConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    matching: MatchThresholds = field(default_factory=MatchThresholds)
