from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ConnectionStatus(str, Enum):
    """Lifecycle state of a company's Xero connection."""

    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


class OAuthClientConfig(BaseModel):
    """OAuth client settings injected into services at construction time."""

    client_id: Optional[str] = Field(None, description="Fallback client ID")
    client_secret: Optional[str] = Field(None, description="Fallback client secret")
    redirect_uri: str = Field(..., description="Registered OAuth redirect URI")
    scopes: str = Field(..., description="Space separated OAuth scopes")
    auth_url: str = Field(
        "https://login.xero.com/identity/connect/authorize",
        description="Authorization endpoint",
    )
    token_url: str = Field(
        "https://identity.xero.com/connect/token", description="Token endpoint"
    )
    connections_url: str = Field(
        "https://api.xero.com/connections", description="Connections endpoint"
    )

    model_config = {"frozen": True}


class ClientCredentials(BaseModel):
    """Resolved client ID and secret used against the token endpoint."""

    client_id: str
    client_secret: str
    source: str = Field(..., description="'company' or 'global'")


class XeroConnectionRecord(BaseModel):
    """Decrypted view of a stored Xero connection."""

    company_id: str
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    access_token_expires_at: Optional[datetime] = None
    status: ConnectionStatus = ConnectionStatus.PENDING
    last_error: Optional[str] = None
    last_refreshed_at: Optional[datetime] = None
    refresh_attempts: int = 0
    created_at: Optional[datetime] = None

    def is_fresh(self, margin_seconds: int, now: Optional[datetime] = None) -> bool:
        """True when the access token is valid for more than the margin."""
        if not self.access_token or not self.access_token_expires_at:
            return False
        now = now or datetime.now(timezone.utc)
        expires_at = self.access_token_expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return (expires_at - now).total_seconds() > margin_seconds


class AuthorizedTenant(BaseModel):
    """An organization the company consented to share with us."""

    company_id: str
    tenant_id: str
    display_name: str
    tenant_type: Optional[str] = None
    connection_reference_id: str


class XeroAuthUrlResponse(BaseModel):
    """Response model for OAuth authorization URL generation."""

    auth_url: str = Field(..., description="Xero OAuth authorization URL")
    expires_at: datetime = Field(..., description="When the state token expires")
    company_id: str = Field(..., description="Company ID")


class XeroConnectionStatus(BaseModel):
    """Response model for Xero connection status."""

    connected: bool = Field(..., description="Whether company is connected to Xero")
    status: str = Field(..., description="Connection status")
    tenants: list[AuthorizedTenant] = Field(
        default_factory=list, description="Authorized Xero organizations"
    )
    expires_at: Optional[datetime] = Field(
        None, description="When the access token expires"
    )
    last_refreshed_at: Optional[datetime] = Field(
        None, description="Last token refresh time"
    )
    connected_at: Optional[datetime] = Field(
        None, description="When connection was established"
    )
    last_error: Optional[str] = Field(None, description="Last error message if any")
    refresh_attempts: Optional[int] = Field(
        None, description="Number of refresh attempts"
    )

    @classmethod
    def from_record(
        cls,
        record: Optional[XeroConnectionRecord],
        tenants: Optional[list[AuthorizedTenant]] = None,
    ) -> "XeroConnectionStatus":
        """Create status response from a stored connection."""
        if not record:
            return cls(connected=False, status="disconnected")

        return cls(
            connected=record.status == ConnectionStatus.ACTIVE,
            status=record.status.value,
            tenants=tenants or [],
            expires_at=record.access_token_expires_at,
            last_refreshed_at=record.last_refreshed_at,
            connected_at=record.created_at,
            last_error=record.last_error,
            refresh_attempts=record.refresh_attempts,
        )


class XeroStartConnectionRequest(BaseModel):
    """Optional per-company OAuth app credentials supplied when connecting."""

    client_id: Optional[str] = Field(None, description="Company's Xero app client ID")
    client_secret: Optional[str] = Field(
        None, description="Company's Xero app client secret"
    )


class XeroCallbackParams(BaseModel):
    """Query parameters from Xero OAuth callback."""

    code: Optional[str] = Field(None, description="OAuth authorization code")
    state: Optional[str] = Field(None, description="JWT state token")
    error: Optional[str] = Field(None, description="Error code if authorization failed")
    error_description: Optional[str] = Field(None, description="Error description")


class XeroTokenResponse(BaseModel):
    """Response from Xero token endpoint."""

    access_token: str = Field(..., description="Access token for API calls")
    refresh_token: str = Field(..., description="Refresh token for token renewal")
    expires_in: int = Field(..., description="Token lifetime in seconds")
    token_type: str = Field(default="Bearer", description="Token type")
    scope: Optional[str] = Field(None, description="Granted scopes")


class XeroTokenErrorResponse(BaseModel):
    """Error body returned by the token endpoint."""

    error: str = Field(..., description="OAuth error code")
    error_description: Optional[str] = Field(None, description="Error description")


class XeroTenantInfo(BaseModel):
    """Information about a Xero tenant from connections endpoint."""

    id: str = Field(..., description="Connection UUID")
    tenantId: str = Field(..., description="Xero tenant ID")
    tenantName: Optional[str] = Field(None, description="Organization name in Xero")
    tenantType: Optional[str] = Field(
        None, description="Tenant type (ORGANISATION, PRACTICE)"
    )
    createdDateUtc: Optional[datetime] = Field(None, description="Connection created")
    updatedDateUtc: Optional[datetime] = Field(None, description="Connection updated")

    def to_authorized_tenant(self, company_id: str) -> AuthorizedTenant:
        return AuthorizedTenant(
            company_id=company_id,
            tenant_id=self.tenantId,
            display_name=self.tenantName or self.tenantId,
            tenant_type=self.tenantType,
            connection_reference_id=self.id,
        )


class XeroDisconnectResponse(BaseModel):
    """Response model for disconnection."""

    message: str = Field(..., description="Success message")
    disconnected_at: datetime = Field(..., description="When disconnection occurred")
    company_id: str = Field(..., description="Company ID")


class XeroStateTokenPayload(BaseModel):
    """JWT payload for OAuth state token."""

    company_id: str = Field(..., description="Company ID")
    user_id: str = Field(..., description="User ID")
    csrf_token: str = Field(..., description="CSRF protection token")
    issued_at: datetime = Field(..., description="Token issue time")
    expires_at: datetime = Field(..., description="Token expiry time")


class XeroConnectionResponse(BaseModel):
    """Response model for successful connection."""

    message: str = Field(..., description="Success message")
    connected_at: datetime = Field(..., description="When connection was established")
    tenant_names: list[str] = Field(..., description="Authorized organization names")
    company_id: str = Field(..., description="Company ID")
