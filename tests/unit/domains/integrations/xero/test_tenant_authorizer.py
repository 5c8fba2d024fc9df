"""
Tests for TenantAuthorizer tenant resolution.
"""

import logging
from typing import Any, Dict, List
from unittest.mock import AsyncMock, Mock

import pytest

from compliance_api.domains.integrations.xero.models import XeroTenantInfo
from compliance_api.domains.integrations.xero.tenant_authorizer import TenantAuthorizer
from compliance_api.shared.exceptions import (
    IntegrationConnectionError,
    NoAuthorizedTenantsError,
    TenantNotAuthorizedError,
)
from tests.fixtures.xero_fixtures import FakeTokenStore, make_tenant


def build_authorizer(
    store: FakeTokenStore,
    refresher: Mock,
    identity_client: Mock,
    mismatch_policy: str = "fallback",
) -> TenantAuthorizer:
    return TenantAuthorizer(
        store,  # type: ignore[arg-type]
        refresher,
        identity_client,
        mismatch_policy=mismatch_policy,  # type: ignore[arg-type]
    )


class TestTenantAuthorizer:
    """Test suite for TenantAuthorizer."""

    @pytest.fixture
    def identity_client(self) -> Mock:
        client = Mock()
        client.list_connections = AsyncMock(return_value=[])
        return client

    @pytest.fixture
    def two_tenant_store(self) -> FakeTokenStore:
        return FakeTokenStore(tenants=[make_tenant("org-A"), make_tenant("org-B")])

    @pytest.mark.asyncio
    async def test_no_request_resolves_first_tenant(
        self, two_tenant_store: FakeTokenStore, mock_refresher: Mock, identity_client: Mock
    ) -> None:
        # Arrange
        authorizer = build_authorizer(two_tenant_store, mock_refresher, identity_client)

        # Act
        tenant_id = await authorizer.resolve_tenant("company-42")

        # Assert
        assert tenant_id == "org-A"
        identity_client.list_connections.assert_not_called()

    @pytest.mark.asyncio
    async def test_authorized_request_is_honoured(
        self, two_tenant_store: FakeTokenStore, mock_refresher: Mock, identity_client: Mock
    ) -> None:
        # Arrange
        authorizer = build_authorizer(two_tenant_store, mock_refresher, identity_client)

        # Act
        tenant_id = await authorizer.resolve_tenant("company-42", "org-B")

        # Assert
        assert tenant_id == "org-B"

    @pytest.mark.asyncio
    async def test_unknown_tenant_falls_back_with_mismatch_log(
        self,
        two_tenant_store: FakeTokenStore,
        mock_refresher: Mock,
        identity_client: Mock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """org-C is not authorized for company 42, so org-A is used instead."""
        # Arrange
        authorizer = build_authorizer(two_tenant_store, mock_refresher, identity_client)

        # Act
        with caplog.at_level(logging.WARNING):
            tenant_id = await authorizer.resolve_tenant("company-42", "org-C")

        # Assert
        assert tenant_id == "org-A"
        mismatch_records = [r for r in caplog.records if "Tenant mismatch" in r.getMessage()]
        assert len(mismatch_records) == 1
        assert mismatch_records[0].levelno == logging.WARNING
        assert "org-C" in mismatch_records[0].getMessage()
        assert "falling back to org-A" in mismatch_records[0].getMessage()

    @pytest.mark.asyncio
    async def test_unknown_tenant_rejected_under_reject_policy(
        self,
        two_tenant_store: FakeTokenStore,
        mock_refresher: Mock,
        identity_client: Mock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        # Arrange
        authorizer = build_authorizer(
            two_tenant_store, mock_refresher, identity_client, mismatch_policy="reject"
        )

        # Act
        with caplog.at_level(logging.WARNING):
            with pytest.raises(TenantNotAuthorizedError):
                await authorizer.resolve_tenant("company-42", "org-C")

        # Assert
        assert "Tenant mismatch" in caplog.text
        assert "request rejected" in caplog.text

    @pytest.mark.asyncio
    async def test_empty_store_syncs_from_xero(
        self,
        mock_refresher: Mock,
        identity_client: Mock,
        xero_connections_response_data: List[Dict[str, Any]],
    ) -> None:
        # Arrange
        store = FakeTokenStore()
        identity_client.list_connections = AsyncMock(
            return_value=[XeroTenantInfo(**c) for c in xero_connections_response_data]
        )
        authorizer = build_authorizer(store, mock_refresher, identity_client)

        # Act
        tenants = await authorizer.list_tenants("company-42")

        # Assert
        assert [t.tenant_id for t in tenants] == ["org-A", "org-B"]
        assert [t.tenant_id for t in store.tenants] == ["org-A", "org-B"]
        identity_client.list_connections.assert_called_once_with("access-token")

    @pytest.mark.asyncio
    async def test_no_tenants_anywhere(
        self, mock_refresher: Mock, identity_client: Mock
    ) -> None:
        # Arrange
        authorizer = build_authorizer(FakeTokenStore(), mock_refresher, identity_client)

        # Act & Assert
        with pytest.raises(NoAuthorizedTenantsError) as exc_info:
            await authorizer.resolve_tenant("company-42")

        assert exc_info.value.detail["remediation"] == "select_organization"

    @pytest.mark.asyncio
    async def test_failed_live_sync_reports_no_tenants(
        self, mock_refresher: Mock, identity_client: Mock
    ) -> None:
        # Arrange
        identity_client.list_connections = AsyncMock(
            side_effect=IntegrationConnectionError("Xero connections request failed")
        )
        authorizer = build_authorizer(FakeTokenStore(), mock_refresher, identity_client)

        # Act & Assert
        with pytest.raises(NoAuthorizedTenantsError):
            await authorizer.list_tenants("company-42")
