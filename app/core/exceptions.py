"""
Errors raised by the Xero integration.

Services catch these at their public boundary and turn them into structured
results; they only propagate between the client, token manager and services.
"""
from typing import Optional


class XeroIntegrationError(Exception):
    """Base class for Xero integration failures"""


class ConfigurationError(XeroIntegrationError):
    """Client credentials or redirect URI are not configured"""


class AuthenticationExpired(XeroIntegrationError):
    """The connection can no longer obtain an access token without the user re-authorizing"""


class NotFoundError(XeroIntegrationError):
    """A connection, mapping or account does not exist for the active principal"""


class RemoteApiError(XeroIntegrationError):
    """Non-success response (or transport failure) from the Xero API"""

    BODY_EXCERPT_LENGTH = 200

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        self.status_code = status_code
        self.body = (body or "")[:self.BODY_EXCERPT_LENGTH]
        detail = message
        if status_code is not None:
            detail = f"{message}: {status_code}"
        if self.body:
            detail = f"{detail} - {self.body}"
        super().__init__(detail)
