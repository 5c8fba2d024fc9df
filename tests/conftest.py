"""
Global pytest configuration and fixtures for the Compliance API test suite.
"""

import os
from typing import Any, Dict, Generator
from unittest.mock import AsyncMock, MagicMock, Mock

import jwt
import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient

TEST_JWT_SECRET = "test-secret-key-for-testing-only-32-chars"

# Set test environment variables before settings are first loaded
os.environ["JWT_SECRET"] = TEST_JWT_SECRET

from compliance_api.core.encryption import TokenCipher  # noqa: E402
from compliance_api.main import app  # noqa: E402

# Import fixtures from fixture modules
from tests.fixtures.compliance_fixtures import *  # noqa: F403, F401, E402
from tests.fixtures.xero_fixtures import *  # noqa: F403, F401, E402


@pytest.fixture
def mock_prisma() -> Mock:
    """
    Mock Prisma client for unit tests that don't need real database.
    """
    mock_db = Mock()
    mock_db.xeroconnection.find_unique = AsyncMock(return_value=None)
    mock_db.xeroconnection.upsert = AsyncMock()
    mock_db.xeroconnection.update = AsyncMock()
    mock_db.xeroauthorizedtenant.find_many = AsyncMock(return_value=[])

    # db.tx() is used as an async context manager yielding the transaction client
    transaction = Mock()
    transaction.xeroauthorizedtenant.delete_many = AsyncMock()
    transaction.xeroauthorizedtenant.create_many = AsyncMock()
    tx_context = MagicMock()
    tx_context.__aenter__.return_value = transaction
    tx_context.__aexit__.return_value = False
    mock_db.tx = Mock(return_value=tx_context)
    mock_db.transaction = transaction

    return mock_db


@pytest.fixture
def cipher() -> TokenCipher:
    """Cipher with a throwaway key."""
    return TokenCipher(Fernet.generate_key())


@pytest.fixture
def test_jwt_secret() -> str:
    """JWT secret for generating test tokens."""
    return TEST_JWT_SECRET


@pytest.fixture
def test_company_id() -> str:
    """Standard test company ID."""
    return "company-42"


@pytest.fixture
def valid_jwt_payload(test_company_id: str) -> Dict[str, Any]:
    """Valid JWT payload for testing."""
    return {
        "sub": "test-user-id-123",
        "email": "test@example.com",
        "company_id": test_company_id,
    }


@pytest.fixture
def valid_jwt_token(test_jwt_secret: str, valid_jwt_payload: Dict[str, Any]) -> str:
    """Generate a valid JWT token for testing."""
    return jwt.encode(valid_jwt_payload, test_jwt_secret, algorithm="HS256")


@pytest.fixture
def auth_headers(valid_jwt_token: str) -> Dict[str, str]:
    """Generate authentication headers with valid JWT token."""
    return {"Authorization": f"Bearer {valid_jwt_token}"}


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """
    FastAPI test client; the lifespan is not run, so tests override the
    service dependencies they exercise.
    """
    yield TestClient(app)
    app.dependency_overrides.clear()
