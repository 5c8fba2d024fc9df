"""
Tests for bearer token authentication dependencies.
"""

import time

import jwt
import pytest

from compliance_api.domains.auth.dependencies import (
    decode_company_jwt,
    get_current_principal,
    require_company_access,
)
from compliance_api.domains.auth.types import CompanyPrincipal
from compliance_api.shared.exceptions import InvalidTokenError, NotAuthorizedError


class TestDecodeCompanyJwt:
    """Test suite for decode_company_jwt."""

    def test_valid_token(self, valid_jwt_token: str, test_company_id: str) -> None:
        # Act
        payload = decode_company_jwt(valid_jwt_token)

        # Assert
        assert payload.sub == "test-user-id-123"
        assert payload.company_id == test_company_id

    def test_wrong_secret_rejected(self) -> None:
        # Arrange
        token = jwt.encode({"sub": "user"}, "wrong-secret", algorithm="HS256")

        # Act & Assert
        with pytest.raises(InvalidTokenError):
            decode_company_jwt(token)

    def test_expired_token_rejected(self, test_jwt_secret: str) -> None:
        # Arrange
        token = jwt.encode(
            {"sub": "user", "company_id": "c", "exp": int(time.time()) - 60},
            test_jwt_secret,
            algorithm="HS256",
        )

        # Act & Assert
        with pytest.raises(InvalidTokenError):
            decode_company_jwt(token)


class TestGetCurrentPrincipal:
    """Test suite for get_current_principal."""

    def test_bearer_header(self, valid_jwt_token: str, test_company_id: str) -> None:
        # Act
        principal = get_current_principal(f"Bearer {valid_jwt_token}")

        # Assert
        assert principal == CompanyPrincipal(
            user_id="test-user-id-123", company_id=test_company_id
        )

    @pytest.mark.parametrize("header", [None, "", "Token abc", "Basic abc"])
    def test_missing_or_malformed_header(self, header: str) -> None:
        with pytest.raises(InvalidTokenError):
            get_current_principal(header)

    def test_token_without_company_rejected(self, test_jwt_secret: str) -> None:
        # Arrange
        token = jwt.encode({"sub": "user"}, test_jwt_secret, algorithm="HS256")

        # Act & Assert
        with pytest.raises(InvalidTokenError) as exc_info:
            get_current_principal(f"Bearer {token}")

        assert "company" in str(exc_info.value)


class TestRequireCompanyAccess:
    """Test suite for require_company_access."""

    def test_matching_company(self) -> None:
        # Arrange
        principal = CompanyPrincipal(user_id="user", company_id="company-42")

        # Act
        result = require_company_access("company-42", principal)

        # Assert
        assert result is principal

    def test_other_company_forbidden(self) -> None:
        # Arrange
        principal = CompanyPrincipal(user_id="user", company_id="company-42")

        # Act & Assert
        with pytest.raises(NotAuthorizedError) as exc_info:
            require_company_access("company-7", principal)

        assert exc_info.value.status_code == 403
