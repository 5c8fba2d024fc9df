import logging
from typing import Optional
from urllib.parse import quote, urlencode

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.responses import RedirectResponse

from compliance_api.core.settings import settings
from compliance_api.domains.auth.dependencies import require_company_access
from compliance_api.domains.auth.types import CompanyPrincipal

from .dependencies import get_tenant_authorizer, get_xero_service
from .models import (
    AuthorizedTenant,
    XeroAuthUrlResponse,
    XeroCallbackParams,
    XeroConnectionStatus,
    XeroDisconnectResponse,
    XeroStartConnectionRequest,
)
from .service import XeroService
from .tenant_authorizer import TenantAuthorizer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/xero", tags=["Xero"])


def _dashboard_url(**params: object) -> str:
    query = urlencode(params, quote_via=quote)
    return f"{settings.FRONTEND_URL or ''}/dashboard?{query}"


@router.post(
    "/auth/{company_id}",
    response_model=XeroAuthUrlResponse,
    status_code=status.HTTP_200_OK,
    operation_id="startXeroConnection",
)
async def start_xero_connection(
    company_id: str,
    credentials: Optional[XeroStartConnectionRequest] = Body(None),
    principal: CompanyPrincipal = Depends(require_company_access),
    service: XeroService = Depends(get_xero_service),
) -> XeroAuthUrlResponse:
    """
    Start the Xero OAuth connection process for a company.

    Optionally stores company-specific Xero app credentials first; otherwise
    the global app credentials are used. The returned URL carries a JWT state
    token that expires in 30 minutes.
    """
    return await service.start_connection(company_id, principal.user_id, credentials)


@router.get(
    "/auth/callback",
    operation_id="xeroOAuthCallback",
)
async def xero_oauth_callback(
    code: str = Query(None, description="OAuth authorization code"),
    state: str = Query(None, description="JWT state token"),
    error: str = Query(None, description="OAuth error code"),
    error_description: str = Query(None, description="OAuth error description"),
    service: XeroService = Depends(get_xero_service),
) -> RedirectResponse:
    """
    Handle the OAuth callback from Xero after user authorization.

    **No authentication required** - callback from external service

    **Redirect Behavior**:
    - Success: `/dashboard?xero_connected=true&tenant_count={n}`
    - Error: `/dashboard?error={error_type}&message={description}`
    """
    if error:
        error_msg = error_description or error
        return RedirectResponse(
            url=_dashboard_url(error="oauth_failed", message=error_msg),
            status_code=status.HTTP_302_FOUND,
        )

    if not code or not state:
        return RedirectResponse(
            url=_dashboard_url(
                error="invalid_callback", message="Missing required parameters"
            ),
            status_code=status.HTTP_302_FOUND,
        )

    callback_params = XeroCallbackParams(
        code=code,
        state=state,
        error=error,
        error_description=error_description,
    )

    try:
        connection_response = await service.complete_connection(callback_params)
    except Exception as e:
        logger.error(f"Xero OAuth callback failed: {e}", exc_info=True)
        error_message = str(e) if hasattr(e, "detail") else "Connection failed"
        return RedirectResponse(
            url=_dashboard_url(error="connection_failed", message=error_message),
            status_code=status.HTTP_302_FOUND,
        )

    return RedirectResponse(
        url=_dashboard_url(
            xero_connected="true",
            tenant_count=len(connection_response.tenant_names),
        ),
        status_code=status.HTTP_302_FOUND,
    )


@router.get(
    "/auth/{company_id}",
    response_model=XeroConnectionStatus,
    operation_id="getXeroConnectionStatus",
)
async def get_xero_connection_status(
    company_id: str,
    principal: CompanyPrincipal = Depends(require_company_access),
    service: XeroService = Depends(get_xero_service),
) -> XeroConnectionStatus:
    """
    Get the current Xero connection status for a company.

    **Status Values**:
    - `pending`: Credentials stored, consent not completed
    - `active`: Connection usable
    - `expired`: Refresh token rejected, reconnect required
    - `revoked`: Connection manually disconnected
    - `disconnected`: No connection exists
    """
    return await service.get_connection_status(company_id)


@router.patch(
    "/auth/{company_id}",
    response_model=XeroDisconnectResponse,
    operation_id="disconnectXero",
)
async def disconnect_xero(
    company_id: str,
    principal: CompanyPrincipal = Depends(require_company_access),
    service: XeroService = Depends(get_xero_service),
) -> XeroDisconnectResponse:
    """
    Disconnect the Xero integration for a company.

    Revokes each tenant connection in Xero (best effort), marks the local
    connection revoked and clears the authorized tenant set.
    """
    return await service.disconnect(company_id)


@router.get(
    "/tenants/{company_id}",
    response_model=list[AuthorizedTenant],
    operation_id="listXeroTenants",
)
async def list_xero_tenants(
    company_id: str,
    principal: CompanyPrincipal = Depends(require_company_access),
    authorizer: TenantAuthorizer = Depends(get_tenant_authorizer),
) -> list[AuthorizedTenant]:
    """List the Xero organizations this company may request reports for."""
    return await authorizer.list_tenants(company_id)
