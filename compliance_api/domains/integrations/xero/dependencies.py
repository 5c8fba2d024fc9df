from typing import TYPE_CHECKING

from fastapi import Depends, Request

from compliance_api.core.encryption import TokenCipher
from compliance_api.core.settings import settings

from .client import XeroIdentityClient
from .models import OAuthClientConfig
from .service import XeroService
from .tenant_authorizer import TenantAuthorizer
from .token_refresher import TokenRefresher
from .token_store import TokenStore

if TYPE_CHECKING:
    from prisma import Prisma


def build_oauth_config() -> OAuthClientConfig:
    """Snapshot the OAuth settings into the config object services receive."""
    return OAuthClientConfig(
        client_id=settings.XERO_CLIENT_ID,
        client_secret=settings.XERO_CLIENT_SECRET,
        redirect_uri=settings.XERO_REDIRECT_URI,
        scopes=settings.XERO_SCOPES,
        auth_url=settings.XERO_AUTH_URL,
        token_url=settings.XERO_TOKEN_URL,
        connections_url=settings.XERO_CONNECTIONS_URL,
    )


def build_token_refresher(db: "Prisma") -> TokenRefresher:
    """Create the process-wide refresher; called once at startup."""
    store = TokenStore(db, TokenCipher.from_settings())
    return TokenRefresher(
        store,
        build_oauth_config(),
        refresh_margin_seconds=settings.TOKEN_REFRESH_MARGIN_SECONDS,
        backoff_seconds=settings.TOKEN_REFRESH_BACKOFF_SECONDS,
        timeout_seconds=settings.XERO_HTTP_TIMEOUT_SECONDS,
    )


def get_token_refresher(request: Request) -> TokenRefresher:
    return request.app.state.token_refresher


def get_identity_client(
    refresher: TokenRefresher = Depends(get_token_refresher),
) -> XeroIdentityClient:
    return XeroIdentityClient(
        refresher.oauth_config,
        timeout_seconds=settings.XERO_HTTP_TIMEOUT_SECONDS,
        transport=refresher.transport,
    )


def get_tenant_authorizer(
    refresher: TokenRefresher = Depends(get_token_refresher),
    identity_client: XeroIdentityClient = Depends(get_identity_client),
) -> TenantAuthorizer:
    return TenantAuthorizer(
        refresher.store,
        refresher,
        identity_client,
        mismatch_policy=settings.TENANT_MISMATCH_POLICY,
    )


def get_xero_service(
    refresher: TokenRefresher = Depends(get_token_refresher),
    identity_client: XeroIdentityClient = Depends(get_identity_client),
) -> XeroService:
    return XeroService(
        refresher.store, refresher, identity_client, jwt_secret=settings.JWT_SECRET
    )
