import logging
from typing import Literal, Optional

from compliance_api.shared.exceptions import (
    IntegrationConnectionError,
    NoAuthorizedTenantsError,
    TenantNotAuthorizedError,
)

from .client import XeroIdentityClient
from .models import AuthorizedTenant
from .token_refresher import TokenRefresher
from .token_store import TokenStore

logger = logging.getLogger(__name__)

MismatchPolicy = Literal["fallback", "reject"]


class TenantAuthorizer:
    """Maps a requested Xero organization onto one the company consented to."""

    def __init__(
        self,
        store: TokenStore,
        refresher: TokenRefresher,
        identity_client: XeroIdentityClient,
        mismatch_policy: MismatchPolicy = "fallback",
    ):
        self.store = store
        self.refresher = refresher
        self.identity_client = identity_client
        self.mismatch_policy = mismatch_policy

    async def list_tenants(self, company_id: str) -> list[AuthorizedTenant]:
        """
        Authorized tenants for the company, syncing from Xero when none are stored.

        Raises:
            NoAuthorizedTenantsError: If the set is still empty after the live fetch
        """
        tenants = await self.store.get_authorized_tenants(company_id)
        if not tenants:
            tenants = await self._sync_from_xero(company_id)
        if not tenants:
            raise NoAuthorizedTenantsError()
        return tenants

    async def resolve_tenant(
        self, company_id: str, requested_tenant_id: Optional[str] = None
    ) -> str:
        """
        Resolve the tenant to query for a company.

        Args:
            company_id: Company ID
            requested_tenant_id: Tenant the caller asked for, if any

        Returns:
            The requested tenant when authorized, otherwise the first
            authorized tenant in fetch order

        Raises:
            NoAuthorizedTenantsError: Company has no authorized organizations
            TenantNotAuthorizedError: Requested tenant unknown and policy is "reject"
        """
        tenants = await self.list_tenants(company_id)
        default_tenant = tenants[0].tenant_id

        if requested_tenant_id is None:
            return default_tenant

        if any(t.tenant_id == requested_tenant_id for t in tenants):
            return requested_tenant_id

        logger.warning(
            f"Tenant mismatch for company {company_id}: requested tenant "
            f"{requested_tenant_id} is not authorized; "
            + (
                "request rejected"
                if self.mismatch_policy == "reject"
                else f"falling back to {default_tenant}"
            )
        )
        if self.mismatch_policy == "reject":
            raise TenantNotAuthorizedError()
        return default_tenant

    async def _sync_from_xero(self, company_id: str) -> list[AuthorizedTenant]:
        access_token = await self.refresher.get_valid_access_token(company_id)
        logger.info(f"No stored tenants for company {company_id}; syncing from Xero")

        try:
            connections = await self.identity_client.list_connections(access_token)
        except IntegrationConnectionError as e:
            logger.warning(f"Live tenant sync failed for company {company_id}: {e}")
            return []

        tenants = [c.to_authorized_tenant(company_id) for c in connections]
        await self.store.replace_authorized_tenants(company_id, tenants)
        return tenants
