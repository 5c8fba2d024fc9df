from fastapi import APIRouter, Depends, Query

from compliance_api.domains.auth.dependencies import require_company_access
from compliance_api.domains.auth.types import CompanyPrincipal
from compliance_api.shared.exceptions import InvalidDataError

from .dependencies import get_compliance_service
from .service import ComplianceReportService
from .types import ComplianceReportRequest, ComplianceReportResponse, ReportPeriod

router = APIRouter(prefix="/compliance", tags=["Compliance"])


@router.post(
    "/{company_id}/reports",
    response_model=ComplianceReportResponse,
    operation_id="requestComplianceReport",
)
async def request_compliance_report(
    company_id: str,
    request: ComplianceReportRequest,
    principal: CompanyPrincipal = Depends(require_company_access),
    service: ComplianceReportService = Depends(get_compliance_service),
) -> ComplianceReportResponse:
    """
    Build a BAS or FAS field set from the company's Xero data.

    Endpoints that fail upstream are listed in `partial_failures`; the affected
    fields fall back to weaker sources and carry that provenance in
    `fields.source_notes`.

    **Errors** carry `detail.remediation`:
    - `reconnect`: Xero connection must be re-established
    - `retry`: transient Xero failure, try again later
    - `select_organization`: no authorized Xero organization
    """
    return await service.request_compliance_report(company_id, request)


@router.get(
    "/periods/bas",
    response_model=ReportPeriod,
    operation_id="getBasPeriod",
)
async def get_bas_period(
    quarter: str = Query(..., description="BAS quarter, Q1 (Jul-Sep) to Q4 (Apr-Jun)"),
    year: int = Query(..., description="Calendar year of the quarter", ge=2000, le=2100),
) -> ReportPeriod:
    """Date range for an Australian BAS quarter."""
    try:
        return ReportPeriod.bas_quarter(quarter, year)
    except ValueError as e:
        raise InvalidDataError(str(e))


@router.get(
    "/periods/fbt",
    response_model=ReportPeriod,
    operation_id="getFbtPeriod",
)
async def get_fbt_period(
    year: int = Query(..., description="Year the FBT year starts in", ge=2000, le=2100),
) -> ReportPeriod:
    """Date range for an FBT year (1 April to 31 March)."""
    return ReportPeriod.fbt_year(year)
