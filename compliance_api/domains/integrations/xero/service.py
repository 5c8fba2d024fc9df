import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlencode

import jwt

from compliance_api.shared.exceptions import (
    IntegrationAuthenticationError,
    IntegrationConnectionError,
)

from .client import XeroIdentityClient
from .models import (
    ConnectionStatus,
    XeroAuthUrlResponse,
    XeroCallbackParams,
    XeroConnectionResponse,
    XeroConnectionStatus,
    XeroDisconnectResponse,
    XeroStartConnectionRequest,
    XeroStateTokenPayload,
)
from .token_refresher import TokenRefresher
from .token_store import TokenStore

logger = logging.getLogger(__name__)

STATE_TOKEN_TTL = timedelta(minutes=30)


class XeroService:
    """Service for managing Xero OAuth connections for a company."""

    def __init__(
        self,
        store: TokenStore,
        refresher: TokenRefresher,
        identity_client: XeroIdentityClient,
        jwt_secret: Optional[str],
    ):
        self.store = store
        self.refresher = refresher
        self.identity_client = identity_client
        self.oauth_config = refresher.oauth_config
        self.jwt_secret = jwt_secret

    async def start_connection(
        self,
        company_id: str,
        user_id: str,
        credentials: Optional[XeroStartConnectionRequest] = None,
    ) -> XeroAuthUrlResponse:
        """
        Start the OAuth connection process for a company.

        Args:
            company_id: Company ID
            user_id: ID of the user initiating connection
            credentials: Optional company-specific Xero app credentials

        Returns:
            XeroAuthUrlResponse with authorization URL and expiry

        Raises:
            CredentialsMissingError: If no client ID is available anywhere
        """
        if credentials and credentials.client_id and credentials.client_secret:
            await self.store.save_client_credentials(
                company_id, credentials.client_id, credentials.client_secret
            )

        connection = await self.store.get_connection(company_id)
        client_credentials = self.refresher.resolve_client_credentials(connection)

        expires_at = datetime.now(timezone.utc) + STATE_TOKEN_TTL
        state_token = self._generate_state_token(company_id, user_id, expires_at)

        auth_params = {
            "response_type": "code",
            "client_id": client_credentials.client_id,
            "redirect_uri": self.oauth_config.redirect_uri,
            "scope": self.oauth_config.scopes,
            "state": state_token,
        }

        return XeroAuthUrlResponse(
            auth_url=f"{self.oauth_config.auth_url}?{urlencode(auth_params)}",
            expires_at=expires_at,
            company_id=company_id,
        )

    async def complete_connection(
        self, callback_params: XeroCallbackParams
    ) -> XeroConnectionResponse:
        """
        Complete the OAuth connection using the callback parameters.

        Persists the connection tokens and replaces the company's authorized
        tenant set with every organization granted during consent.

        Raises:
            IntegrationAuthenticationError: For OAuth flow errors
            IntegrationConnectionError: For connection failures
        """
        if callback_params.error:
            error_desc = callback_params.error_description or callback_params.error
            raise IntegrationAuthenticationError(
                f"OAuth authorization failed: {error_desc}"
            )

        if not callback_params.code or not callback_params.state:
            raise IntegrationAuthenticationError("Missing required OAuth parameters")

        state_payload = self._validate_state_token(callback_params.state)
        company_id = state_payload.company_id

        connection = await self.store.get_connection(company_id)
        client_credentials = self.refresher.resolve_client_credentials(connection)

        token_response = await self.identity_client.exchange_code(
            callback_params.code, client_credentials
        )
        connections = await self.identity_client.list_connections(
            token_response.access_token
        )
        if not connections:
            raise IntegrationConnectionError(
                "No Xero organization was authorized during consent"
            )

        await self.store.save_tokens(company_id, token_response)
        tenants = [c.to_authorized_tenant(company_id) for c in connections]
        await self.store.replace_authorized_tenants(company_id, tenants)

        logger.info(
            f"Xero connected for company {company_id} with {len(tenants)} tenant(s)"
        )
        return XeroConnectionResponse(
            message="Xero connection established successfully",
            connected_at=datetime.now(timezone.utc),
            tenant_names=[t.display_name for t in tenants],
            company_id=company_id,
        )

    async def disconnect(self, company_id: str) -> XeroDisconnectResponse:
        """
        Disconnect Xero integration for a company.

        Upstream revocation is best effort; the local connection is always
        marked revoked and its tenants cleared.

        Raises:
            IntegrationConnectionError: If no connection exists
        """
        connection = await self.store.get_connection(company_id)
        if not connection:
            raise IntegrationConnectionError("No Xero connection found for this company")

        if connection.status == ConnectionStatus.ACTIVE:
            await self._revoke_upstream(company_id)

        await self.store.mark_revoked(company_id)
        await self.store.clear_authorized_tenants(company_id)

        return XeroDisconnectResponse(
            message="Xero connection disconnected successfully",
            disconnected_at=datetime.now(timezone.utc),
            company_id=company_id,
        )

    async def get_connection_status(self, company_id: str) -> XeroConnectionStatus:
        connection = await self.store.get_connection(company_id)
        tenants = (
            await self.store.get_authorized_tenants(company_id) if connection else []
        )
        return XeroConnectionStatus.from_record(connection, tenants)

    async def _revoke_upstream(self, company_id: str) -> None:
        try:
            access_token = await self.refresher.get_valid_access_token(company_id)
            for tenant in await self.store.get_authorized_tenants(company_id):
                await self.identity_client.delete_connection(
                    access_token, tenant.connection_reference_id
                )
        except Exception as e:
            # Disconnection must succeed locally even when Xero is unreachable
            logger.warning(f"Failed to revoke Xero connection for {company_id}: {e}")

    def _generate_state_token(
        self, company_id: str, user_id: str, expires_at: datetime
    ) -> str:
        """Generate JWT state token for OAuth flow."""
        if not self.jwt_secret:
            raise IntegrationAuthenticationError("JWT secret not configured")

        payload = XeroStateTokenPayload(
            company_id=company_id,
            user_id=user_id,
            csrf_token=secrets.token_urlsafe(32),
            issued_at=datetime.now(timezone.utc),
            expires_at=expires_at,
        )

        return jwt.encode(
            payload.model_dump(mode="json"),
            self.jwt_secret,
            algorithm="HS256",
        )

    def _validate_state_token(self, token: str) -> XeroStateTokenPayload:
        """Validate and decode JWT state token."""
        if not self.jwt_secret:
            raise IntegrationAuthenticationError("JWT secret not configured")

        try:
            payload = jwt.decode(token, self.jwt_secret, algorithms=["HS256"])
        except jwt.InvalidTokenError as e:
            raise IntegrationAuthenticationError(f"Invalid OAuth state token: {e}")

        state_payload = XeroStateTokenPayload(**payload)
        if datetime.now(timezone.utc) > state_payload.expires_at:
            raise IntegrationAuthenticationError("OAuth session expired")
        return state_payload
