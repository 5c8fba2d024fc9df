"""Auth domain type definitions for type safety."""

from typing import Optional

from pydantic import BaseModel, Field


class CompanyJwtPayload(BaseModel):
    """Bearer token payload issued to API callers."""

    # Standard JWT claims
    sub: Optional[str] = Field(None, description="Subject (user ID)")
    iss: Optional[str] = Field(None, description="Token issuer")
    exp: Optional[int] = Field(None, description="Expiration timestamp")
    iat: Optional[int] = Field(None, description="Issued at timestamp")

    # Application claims
    company_id: Optional[str] = Field(None, description="Company the caller acts for")
    email: Optional[str] = Field(None, description="User email address")

    model_config = {"extra": "allow"}


class CompanyPrincipal(BaseModel):
    """Authenticated caller bound to a single company."""

    user_id: str = Field(..., description="User ID from the `sub` claim")
    company_id: str = Field(..., description="Company ID from the token")
