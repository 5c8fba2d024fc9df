from typing import Optional

import httpx
from pydantic import ValidationError

from compliance_api.shared.exceptions import (
    IntegrationAuthenticationError,
    IntegrationConnectionError,
)

from .models import (
    ClientCredentials,
    OAuthClientConfig,
    XeroTenantInfo,
    XeroTokenResponse,
)


class XeroIdentityClient:
    """Calls to Xero's identity endpoints: code exchange and connections."""

    def __init__(
        self,
        oauth_config: OAuthClientConfig,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.oauth_config = oauth_config
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport)

    async def exchange_code(
        self, code: str, credentials: ClientCredentials
    ) -> XeroTokenResponse:
        """Exchange OAuth authorization code for access tokens."""
        token_data = {
            "grant_type": "authorization_code",
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
            "code": code,
            "redirect_uri": self.oauth_config.redirect_uri,
        }

        async with self._client() as client:
            try:
                response = await client.post(
                    self.oauth_config.token_url,
                    data=token_data,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
                response.raise_for_status()
                return XeroTokenResponse(**response.json())
            except httpx.HTTPStatusError as e:
                raise IntegrationAuthenticationError(
                    f"Token exchange failed: {e.response.text}"
                )
            except httpx.RequestError as e:
                raise IntegrationConnectionError(f"Token exchange request failed: {e}")
            except (ValueError, ValidationError) as e:
                raise IntegrationAuthenticationError(
                    f"Token exchange returned an unexpected response: {e}"
                )

    async def list_connections(self, access_token: str) -> list[XeroTenantInfo]:
        """Get every tenant the access token is authorized for, in Xero's order."""
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

        async with self._client() as client:
            try:
                response = await client.get(
                    self.oauth_config.connections_url, headers=headers
                )
                response.raise_for_status()
                return [XeroTenantInfo(**item) for item in response.json() or []]
            except httpx.HTTPStatusError as e:
                raise IntegrationConnectionError(
                    f"Failed to get Xero connections: {e.response.text}"
                )
            except httpx.RequestError as e:
                raise IntegrationConnectionError(
                    f"Xero connections request failed: {e}"
                )
            except (ValueError, TypeError, ValidationError) as e:
                raise IntegrationConnectionError(
                    f"Xero connections returned an unexpected response: {e}"
                )

    async def delete_connection(self, access_token: str, connection_id: str) -> None:
        """Revoke a single tenant connection in Xero."""
        headers = {"Authorization": f"Bearer {access_token}"}

        async with self._client() as client:
            try:
                response = await client.delete(
                    f"{self.oauth_config.connections_url}/{connection_id}",
                    headers=headers,
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise IntegrationConnectionError(
                    f"Failed to revoke Xero connection: {e.response.text}"
                )
            except httpx.RequestError as e:
                raise IntegrationConnectionError(f"Xero revoke request failed: {e}")
