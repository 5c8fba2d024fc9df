import jwt
from fastapi import Depends, Header

from compliance_api.core.settings import settings
from compliance_api.shared.exceptions import InvalidTokenError, NotAuthorizedError

from .types import CompanyJwtPayload, CompanyPrincipal


def decode_company_jwt(token: str) -> CompanyJwtPayload:
    """
    Verifies an HS256 bearer token signed with JWT_SECRET.
    """
    if not settings.JWT_SECRET:
        raise InvalidTokenError("Authentication is not configured")
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=["HS256"],
            options={"verify_aud": False},
        )
    except jwt.PyJWTError:
        raise InvalidTokenError("Invalid or expired token")
    return CompanyJwtPayload(**dict(payload))


def get_current_principal(authorization: str = Header(None)) -> CompanyPrincipal:
    """
    Extracts and validates the JWT from the Authorization header.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise InvalidTokenError("Missing token")

    token = authorization.split(" ")[1]
    payload = decode_company_jwt(token)
    if not payload.sub or not payload.company_id:
        raise InvalidTokenError("Token is missing subject or company")
    return CompanyPrincipal(user_id=payload.sub, company_id=str(payload.company_id))


def require_company_access(
    company_id: str,
    principal: CompanyPrincipal = Depends(get_current_principal),
) -> CompanyPrincipal:
    """
    Route dependency: the caller's token must belong to the path's company.
    """
    if principal.company_id != company_id:
        raise NotAuthorizedError("Token is not valid for this company")
    return principal
