import logging
from decimal import Decimal
from typing import Optional

from compliance_api.domains.integrations.xero.tenant_authorizer import TenantAuthorizer
from compliance_api.domains.integrations.xero.token_refresher import TokenRefresher

from .aggregator import aggregate
from .anomalies import AnomalyFlagger
from .calculator import TaxFieldCalculator
from .fetcher import ReportFetcher
from .types import (
    AnomalyThresholds,
    ComplianceReportRequest,
    ComplianceReportResponse,
)

logger = logging.getLogger(__name__)


class ComplianceReportService:
    """Runs one BAS or FAS report request end to end."""

    def __init__(
        self,
        refresher: TokenRefresher,
        authorizer: TenantAuthorizer,
        fetcher: ReportFetcher,
        calculator: TaxFieldCalculator,
        flagger: AnomalyFlagger,
        deadline_seconds: Optional[float] = None,
        absolute_limit: Optional[Decimal] = None,
        percent_change_limit: Optional[Decimal] = None,
    ):
        self.refresher = refresher
        self.authorizer = authorizer
        self.fetcher = fetcher
        self.calculator = calculator
        self.flagger = flagger
        self.deadline_seconds = deadline_seconds
        self.absolute_limit = absolute_limit
        self.percent_change_limit = percent_change_limit

    async def request_compliance_report(
        self, company_id: str, request: ComplianceReportRequest
    ) -> ComplianceReportResponse:
        """
        Fetch, aggregate, calculate and flag a compliance report.

        Args:
            company_id: Company the report is for
            request: Kind, period, optional tenant and baseline values

        Returns:
            ComplianceReportResponse with fields, anomalies, partial failures
            and the tenant actually used

        Raises:
            ReauthorizationRequiredError: Connection needs to be re-established
            CredentialsMissingError: No Xero app credentials configured
            TokenRefreshTransientError: Token refresh failed twice on transient errors
            NoAuthorizedTenantsError: Company has no authorized organizations
            TenantNotAuthorizedError: Requested tenant rejected by policy
        """
        logger.info(
            f"{request.kind.value} report requested for company {company_id} "
            f"({request.period.period_label})"
        )

        # A broken connection fails here, before any tenant or report call
        await self.refresher.get_valid_access_token(company_id)

        tenant_id = await self.authorizer.resolve_tenant(
            company_id, request.requested_tenant_id
        )

        results = await self.fetcher.fetch(
            company_id,
            tenant_id,
            request.period,
            deadline_seconds=self.deadline_seconds,
        )
        dataset = aggregate(results, company_id, tenant_id, request.period)
        fields = self.calculator.compute(request.kind, dataset)

        thresholds = AnomalyThresholds(
            absolute_limit=self.absolute_limit,
            percent_change_limit=self.percent_change_limit,
            baseline=request.baseline,
        )
        anomalies = self.flagger.flag(fields, thresholds)

        partial_failures = sorted(name.value for name in dataset.partial_failures)
        if partial_failures:
            logger.warning(
                f"{request.kind.value} report for company {company_id} built "
                f"without {partial_failures}"
            )

        return ComplianceReportResponse(
            tenant_id=tenant_id,
            fields=fields,
            anomalies=anomalies,
            partial_failures=partial_failures,
        )
