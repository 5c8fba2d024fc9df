from enum import Enum

from fastapi import HTTPException, status


class Remediation(str, Enum):
    """Next step a user should take after a failure."""

    RECONNECT = "reconnect"
    RETRY = "retry"
    SELECT_ORGANIZATION = "select_organization"
    NONE = "none"


class ComplianceHTTPException(HTTPException):
    """HTTPException whose detail always carries a remediation hint."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Request failed"
    remediation: Remediation = Remediation.NONE

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.message
        super().__init__(
            status_code=self.status_code,
            detail={"message": self.message, "remediation": self.remediation.value},
        )

    def __str__(self) -> str:
        return self.message


# Validation / Request Exceptions
class InvalidDataError(ComplianceHTTPException):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid request data"


class NotAuthorizedError(ComplianceHTTPException):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Not authorized"


class InvalidTokenError(ComplianceHTTPException):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Missing or invalid token"


# Token lifecycle exceptions
class CredentialsMissingError(ComplianceHTTPException):
    """No usable OAuth client credentials for the company or globally."""

    status_code = status.HTTP_409_CONFLICT
    message = "No Xero client credentials are configured. Reconnect to Xero."
    remediation = Remediation.RECONNECT


class ReauthorizationRequiredError(ComplianceHTTPException):
    """Refresh token rejected or connection unusable; user must consent again."""

    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Xero authorization has expired. Reconnect to Xero."
    remediation = Remediation.RECONNECT


class TokenRefreshTransientError(ComplianceHTTPException):
    """Token endpoint unreachable or failing; safe to retry later."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "Xero is temporarily unavailable. Please retry shortly."
    remediation = Remediation.RETRY


# Tenant exceptions
class NoAuthorizedTenantsError(ComplianceHTTPException):
    status_code = status.HTTP_409_CONFLICT
    message = "No Xero organization is connected. Connect an organization."
    remediation = Remediation.SELECT_ORGANIZATION


class TenantNotAuthorizedError(ComplianceHTTPException):
    status_code = status.HTTP_403_FORBIDDEN
    message = "The requested Xero organization is not authorized for this company."
    remediation = Remediation.SELECT_ORGANIZATION


# Integration Exceptions
class IntegrationConnectionError(ComplianceHTTPException):
    status_code = status.HTTP_502_BAD_GATEWAY
    message = "Integration connection failed"
    remediation = Remediation.RETRY


class IntegrationAuthenticationError(ComplianceHTTPException):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Integration authentication failed"
    remediation = Remediation.RECONNECT
