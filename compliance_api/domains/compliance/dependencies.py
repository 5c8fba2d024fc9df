from decimal import Decimal

from fastapi import Depends

from compliance_api.core.settings import settings
from compliance_api.domains.integrations.xero.dependencies import (
    get_tenant_authorizer,
    get_token_refresher,
)
from compliance_api.domains.integrations.xero.tenant_authorizer import TenantAuthorizer
from compliance_api.domains.integrations.xero.token_refresher import TokenRefresher

from .anomalies import AnomalyFlagger
from .calculator import TaxFieldCalculator
from .fetcher import ReportFetcher
from .service import ComplianceReportService


def get_report_fetcher(
    refresher: TokenRefresher = Depends(get_token_refresher),
) -> ReportFetcher:
    return ReportFetcher(
        refresher,
        base_url=settings.XERO_API_BASE_URL,
        endpoint_timeout_seconds=settings.REPORT_ENDPOINT_TIMEOUT_SECONDS,
        retry_backoff_seconds=settings.REPORT_RETRY_BACKOFF_SECONDS,
        transport=refresher.transport,
    )


def get_compliance_service(
    refresher: TokenRefresher = Depends(get_token_refresher),
    authorizer: TenantAuthorizer = Depends(get_tenant_authorizer),
    fetcher: ReportFetcher = Depends(get_report_fetcher),
) -> ComplianceReportService:
    return ComplianceReportService(
        refresher,
        authorizer,
        fetcher,
        TaxFieldCalculator(settings.FBT_ACCOUNT_CODES),
        AnomalyFlagger(),
        deadline_seconds=settings.REPORT_DEADLINE_SECONDS,
        absolute_limit=Decimal(str(settings.ANOMALY_ABSOLUTE_LIMIT)),
        percent_change_limit=Decimal(str(settings.ANOMALY_PERCENT_CHANGE_LIMIT)),
    )
