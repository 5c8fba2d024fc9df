import asyncio
import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from compliance_api.shared.exceptions import (
    CredentialsMissingError,
    ReauthorizationRequiredError,
    TokenRefreshTransientError,
)

from .models import (
    ClientCredentials,
    ConnectionStatus,
    OAuthClientConfig,
    XeroConnectionRecord,
    XeroTokenErrorResponse,
    XeroTokenResponse,
)
from .token_store import TokenStore

logger = logging.getLogger(__name__)

# Token endpoint errors meaning the refresh token or client will never work again
FATAL_TOKEN_ERRORS = {"invalid_grant", "invalid_client"}


class TokenRefresher:
    """
    Hands out valid Xero access tokens, refreshing them on demand.

    One instance must be shared by every request in the process: the
    in-flight refresh map is what keeps concurrent callers for the same
    company down to a single token endpoint call.
    """

    def __init__(
        self,
        store: TokenStore,
        oauth_config: OAuthClientConfig,
        refresh_margin_seconds: int = 60,
        backoff_seconds: float = 1.0,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store = store
        self.oauth_config = oauth_config
        self.refresh_margin_seconds = refresh_margin_seconds
        self.backoff_seconds = backoff_seconds
        self.timeout_seconds = timeout_seconds
        self.transport = transport
        self._inflight: dict[str, asyncio.Task[str]] = {}

    async def get_valid_access_token(self, company_id: str) -> str:
        """
        Get a valid access token for the company, refreshing if necessary.

        Args:
            company_id: Company ID

        Returns:
            Access token valid for at least the refresh margin

        Raises:
            ReauthorizationRequiredError: No usable connection or refresh rejected
            CredentialsMissingError: No client credentials to refresh with
            TokenRefreshTransientError: Token endpoint unavailable after one retry
        """
        connection = self._ensure_usable(await self.store.get_connection(company_id))

        if connection.is_fresh(self.refresh_margin_seconds):
            return connection.access_token or ""

        task = self._inflight.get(company_id)
        if task is None:
            task = asyncio.create_task(self._refresh(company_id))
            self._inflight[company_id] = task
            task.add_done_callback(lambda t: self._forget(company_id, t))

        # Shielded so one caller giving up does not cancel the shared refresh
        return await asyncio.shield(task)

    def resolve_client_credentials(
        self, connection: Optional[XeroConnectionRecord]
    ) -> ClientCredentials:
        """
        Resolve client credentials: company-specific first, then global fallback.

        Raises:
            CredentialsMissingError: If neither source has both ID and secret
        """
        if connection and connection.client_id and connection.client_secret:
            return ClientCredentials(
                client_id=connection.client_id,
                client_secret=connection.client_secret,
                source="company",
            )

        if self.oauth_config.client_id and self.oauth_config.client_secret:
            return ClientCredentials(
                client_id=self.oauth_config.client_id,
                client_secret=self.oauth_config.client_secret,
                source="global",
            )

        raise CredentialsMissingError()

    def _ensure_usable(
        self, connection: Optional[XeroConnectionRecord]
    ) -> XeroConnectionRecord:
        if connection is None:
            raise ReauthorizationRequiredError(
                "No Xero connection found for this company. Connect to Xero."
            )
        if connection.status == ConnectionStatus.EXPIRED:
            # Fail fast: the provider already rejected this refresh token
            raise ReauthorizationRequiredError()
        if connection.status == ConnectionStatus.REVOKED:
            raise ReauthorizationRequiredError(
                "Xero connection was disconnected. Reconnect to Xero."
            )
        if not connection.refresh_token:
            raise ReauthorizationRequiredError(
                "Xero authorization has not been completed. Connect to Xero."
            )
        return connection

    def _forget(self, company_id: str, task: asyncio.Task[str]) -> None:
        if self._inflight.get(company_id) is task:
            del self._inflight[company_id]
        if not task.cancelled():
            # Mark the exception retrieved when every waiter has gone away
            task.exception()

    async def _refresh(self, company_id: str) -> str:
        # Another refresh may have landed between the caller's read and now
        connection = self._ensure_usable(await self.store.get_connection(company_id))
        if connection.is_fresh(self.refresh_margin_seconds):
            return connection.access_token or ""

        credentials = self.resolve_client_credentials(connection)
        logger.info(
            f"Refreshing Xero access token for company {company_id} "
            f"using {credentials.source} client credentials"
        )

        attempts = connection.refresh_attempts
        for attempt in range(2):
            attempts += 1
            try:
                token_response = await self._request_refresh(
                    connection.refresh_token or "", credentials
                )
            except _TransientRefreshFailure as e:
                if attempt == 0:
                    logger.warning(
                        f"Token refresh for company {company_id} failed "
                        f"transiently ({e}); retrying once"
                    )
                    await asyncio.sleep(self.backoff_seconds)
                    continue
                error_msg = f"Token refresh failed after retry: {e}"
                await self.store.record_refresh_error(company_id, error_msg, attempts)
                logger.error(f"{error_msg} (company {company_id})")
                raise TokenRefreshTransientError()
            except _RejectedRefresh as e:
                error_msg = f"Token refresh rejected: {e.error}"
                if e.error in FATAL_TOKEN_ERRORS:
                    await self.store.mark_expired(company_id, error_msg)
                    logger.warning(
                        f"Xero rejected refresh for company {company_id} with "
                        f"{e.error}; connection marked expired"
                    )
                else:
                    await self.store.record_refresh_error(
                        company_id, error_msg, attempts
                    )
                    logger.error(f"{error_msg} (company {company_id})")
                raise ReauthorizationRequiredError()

            await self.store.save_tokens(company_id, token_response)
            logger.info(f"Xero access token refreshed for company {company_id}")
            return token_response.access_token

        raise TokenRefreshTransientError()

    async def _request_refresh(
        self, refresh_token: str, credentials: ClientCredentials
    ) -> XeroTokenResponse:
        refresh_data = {
            "grant_type": "refresh_token",
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
            "refresh_token": refresh_token,
        }

        async with httpx.AsyncClient(
            timeout=self.timeout_seconds, transport=self.transport
        ) as client:
            try:
                response = await client.post(
                    self.oauth_config.token_url,
                    data=refresh_data,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
            except httpx.RequestError as e:
                raise _TransientRefreshFailure(f"request error: {e}")

        if response.status_code >= 500 or response.status_code == 429:
            raise _TransientRefreshFailure(f"HTTP {response.status_code}")

        if response.status_code >= 400:
            raise _RejectedRefresh(_token_error_code(response))

        try:
            return XeroTokenResponse(**response.json())
        except (ValueError, ValidationError) as e:
            raise _TransientRefreshFailure(f"malformed token response: {e}")


class _TransientRefreshFailure(Exception):
    pass


class _RejectedRefresh(Exception):
    def __init__(self, error: str):
        super().__init__(error)
        self.error = error


def _token_error_code(response: httpx.Response) -> str:
    try:
        return XeroTokenErrorResponse(**response.json()).error
    except (ValueError, ValidationError, TypeError):
        return f"http_{response.status_code}"
