"""
Tests for Xero integration route endpoints.
"""

from datetime import datetime, timezone
from typing import Dict
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from compliance_api.domains.integrations.xero.dependencies import (
    get_tenant_authorizer,
    get_xero_service,
)
from compliance_api.domains.integrations.xero.models import (
    XeroAuthUrlResponse,
    XeroConnectionResponse,
    XeroConnectionStatus,
)
from compliance_api.main import app
from compliance_api.shared.exceptions import (
    IntegrationAuthenticationError,
    NoAuthorizedTenantsError,
)
from tests.fixtures.xero_fixtures import make_tenant


class TestXeroRoutes:
    """Test suite for Xero integration API endpoints."""

    @pytest.fixture
    def mock_service(self) -> Mock:
        service = Mock()
        app.dependency_overrides[get_xero_service] = lambda: service
        return service

    def test_start_connection(
        self, client: TestClient, mock_service: Mock, auth_headers: Dict[str, str]
    ) -> None:
        # Arrange
        mock_service.start_connection = AsyncMock(
            return_value=XeroAuthUrlResponse(
                auth_url="https://login.xero.com/identity/connect/authorize?state=x",
                expires_at=datetime(2024, 7, 22, 14, 30, tzinfo=timezone.utc),
                company_id="company-42",
            )
        )

        # Act
        response = client.post("/api/v1/xero/auth/company-42", headers=auth_headers)

        # Assert
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["company_id"] == "company-42"
        args = mock_service.start_connection.call_args.args
        assert args[0] == "company-42"
        assert args[1] == "test-user-id-123"
        assert args[2] is None

    def test_start_connection_passes_company_credentials(
        self, client: TestClient, mock_service: Mock, auth_headers: Dict[str, str]
    ) -> None:
        # Arrange
        mock_service.start_connection = AsyncMock(
            return_value=XeroAuthUrlResponse(
                auth_url="https://login.xero.com/identity/connect/authorize",
                expires_at=datetime(2024, 7, 22, 14, 30, tzinfo=timezone.utc),
                company_id="company-42",
            )
        )

        # Act
        response = client.post(
            "/api/v1/xero/auth/company-42",
            headers=auth_headers,
            json={"client_id": "company-client", "client_secret": "company-secret"},
        )

        # Assert
        assert response.status_code == status.HTTP_200_OK
        credentials = mock_service.start_connection.call_args.args[2]
        assert credentials.client_id == "company-client"

    def test_start_connection_requires_token(
        self, client: TestClient, mock_service: Mock
    ) -> None:
        # Act
        response = client.post("/api/v1/xero/auth/company-42")

        # Assert
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_start_connection_other_company_forbidden(
        self, client: TestClient, mock_service: Mock, auth_headers: Dict[str, str]
    ) -> None:
        # Act
        response = client.post("/api/v1/xero/auth/company-7", headers=auth_headers)

        # Assert
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_xero_oauth_callback_success(
        self, client: TestClient, mock_service: Mock
    ) -> None:
        """Test successful OAuth callback handling."""
        # Arrange
        mock_service.complete_connection = AsyncMock(
            return_value=XeroConnectionResponse(
                message="Xero connection established successfully",
                connected_at=datetime(2024, 7, 22, 14, 0, tzinfo=timezone.utc),
                tenant_names=["Org A Pty Ltd", "Org B Pty Ltd"],
                company_id="company-42",
            )
        )

        # Act
        response = client.get(
            "/api/v1/xero/auth/callback",
            params={"code": "test-auth-code", "state": "test-jwt-token"},
            follow_redirects=False,
        )

        # Assert
        assert response.status_code == status.HTTP_302_FOUND
        assert (
            "/dashboard?xero_connected=true&tenant_count=2"
            in response.headers["location"]
        )

    def test_xero_oauth_callback_oauth_error(
        self, client: TestClient, mock_service: Mock
    ) -> None:
        """Test OAuth callback with error parameters."""
        # Act
        response = client.get(
            "/api/v1/xero/auth/callback",
            params={
                "error": "access_denied",
                "error_description": "User denied authorization",
                "state": "test-jwt-token",
            },
            follow_redirects=False,
        )

        # Assert
        assert response.status_code == status.HTTP_302_FOUND
        location = response.headers["location"]
        assert "/dashboard?error=oauth_failed" in location
        assert "User%20denied%20authorization" in location

    def test_xero_oauth_callback_error_description_cannot_add_parameters(
        self, client: TestClient, mock_service: Mock
    ) -> None:
        """Test that the provider's error text stays inside the message value."""
        # Act
        response = client.get(
            "/api/v1/xero/auth/callback",
            params={
                "error": "access_denied",
                "error_description": "denied&xero_connected=true",
            },
            follow_redirects=False,
        )

        # Assert
        assert response.status_code == status.HTTP_302_FOUND
        location = response.headers["location"]
        assert location.endswith(
            "/dashboard?error=oauth_failed&message=denied%26xero_connected%3Dtrue"
        )
        assert "&xero_connected=true" not in location

    def test_xero_oauth_callback_missing_params(
        self, client: TestClient, mock_service: Mock
    ) -> None:
        """Test OAuth callback with missing required parameters."""
        # Act
        response = client.get("/api/v1/xero/auth/callback", follow_redirects=False)

        # Assert
        assert response.status_code == status.HTTP_302_FOUND
        location = response.headers["location"]
        assert "/dashboard?error=invalid_callback" in location
        assert "Missing%20required%20parameters" in location

    def test_xero_oauth_callback_service_error(
        self, client: TestClient, mock_service: Mock
    ) -> None:
        """Test OAuth callback with service error."""
        # Arrange
        mock_service.complete_connection = AsyncMock(
            side_effect=IntegrationAuthenticationError("OAuth session expired")
        )

        # Act
        response = client.get(
            "/api/v1/xero/auth/callback",
            params={"code": "test-auth-code", "state": "test-jwt-token"},
            follow_redirects=False,
        )

        # Assert
        assert response.status_code == status.HTTP_302_FOUND
        location = response.headers["location"]
        assert "/dashboard?error=connection_failed" in location
        assert "OAuth%20session%20expired" in location

    def test_connection_status(
        self, client: TestClient, mock_service: Mock, auth_headers: Dict[str, str]
    ) -> None:
        # Arrange
        mock_service.get_connection_status = AsyncMock(
            return_value=XeroConnectionStatus(connected=False, status="disconnected")
        )

        # Act
        response = client.get("/api/v1/xero/auth/company-42", headers=auth_headers)

        # Assert
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "disconnected"

    def test_list_tenants(
        self, client: TestClient, auth_headers: Dict[str, str]
    ) -> None:
        # Arrange
        authorizer = Mock()
        authorizer.list_tenants = AsyncMock(
            return_value=[make_tenant("org-A"), make_tenant("org-B")]
        )
        app.dependency_overrides[get_tenant_authorizer] = lambda: authorizer

        # Act
        response = client.get("/api/v1/xero/tenants/company-42", headers=auth_headers)

        # Assert
        assert response.status_code == status.HTTP_200_OK
        assert [t["tenant_id"] for t in response.json()] == ["org-A", "org-B"]

    def test_list_tenants_none_authorized(
        self, client: TestClient, auth_headers: Dict[str, str]
    ) -> None:
        # Arrange
        authorizer = Mock()
        authorizer.list_tenants = AsyncMock(side_effect=NoAuthorizedTenantsError())
        app.dependency_overrides[get_tenant_authorizer] = lambda: authorizer

        # Act
        response = client.get("/api/v1/xero/tenants/company-42", headers=auth_headers)

        # Assert
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["detail"]["remediation"] == "select_organization"
