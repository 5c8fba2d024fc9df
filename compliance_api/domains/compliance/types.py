"""Compliance reporting type definitions."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

# Australian BAS quarters as (start month, end month).
# Q1 = Jul-Sep, Q2 = Oct-Dec, Q3 = Jan-Mar, Q4 = Apr-Jun.
BAS_QUARTERS = {
    "Q1": (7, 9),
    "Q2": (10, 12),
    "Q3": (1, 3),
    "Q4": (4, 6),
}


class ReportPeriod(BaseModel):
    """Immutable reporting period; used as a cache and merge key."""

    from_date: date = Field(..., description="First day of the period")
    to_date: date = Field(..., description="Last day of the period, inclusive")
    period_label: str = Field(..., description="Human readable label")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_order(self) -> "ReportPeriod":
        if self.from_date > self.to_date:
            raise ValueError("from_date must not be after to_date")
        return self

    @classmethod
    def bas_quarter(cls, quarter: str, year: int) -> "ReportPeriod":
        """
        BAS quarter within a calendar year.

        Q1 and Q2 fall in the second half of ``year``; Q3 and Q4 in the
        first half.
        """
        quarter = quarter.upper()
        if quarter not in BAS_QUARTERS:
            raise ValueError(f"Unknown BAS quarter: {quarter}")
        start_month, end_month = BAS_QUARTERS[quarter]
        end_day = 30 if end_month in (6, 9) else 31
        return cls(
            from_date=date(year, start_month, 1),
            to_date=date(year, end_month, end_day),
            period_label=f"{quarter} {year}",
        )

    @classmethod
    def fbt_year(cls, year: int) -> "ReportPeriod":
        """FBT year running from 1 April ``year`` to 31 March the following year."""
        return cls(
            from_date=date(year, 4, 1),
            to_date=date(year + 1, 3, 31),
            period_label=f"FBT {year}-{str(year + 1)[-2:]}",
        )


class EndpointName(str, Enum):
    """Upstream Xero resources fetched for a compliance report."""

    TAX_SUMMARY = "tax_summary"
    PROFIT_AND_LOSS = "profit_and_loss"
    BALANCE_SHEET = "balance_sheet"
    INVOICES = "invoices"
    CONTACTS = "contacts"


class EndpointSuccess(BaseModel):
    outcome: Literal["success"] = "success"
    endpoint: EndpointName
    data: dict = Field(..., description="Raw JSON body returned by Xero")


class EndpointFailure(BaseModel):
    outcome: Literal["failure"] = "failure"
    endpoint: EndpointName
    reason: str = Field(..., description="Why the endpoint produced no data")
    status_code: Optional[int] = Field(None, description="HTTP status, if any")
    retryable: bool = Field(False, description="Whether a later retry may succeed")


EndpointResult = Annotated[
    Union[EndpointSuccess, EndpointFailure], Field(discriminator="outcome")
]


# Normalized Xero shapes
class ReportRow(BaseModel):
    """One row of a Xero report; sections nest further rows."""

    row_type: str = Field("Row", description="Header, Section, Row or SummaryRow")
    title: str = Field("", description="Section title")
    cells: list[str] = Field(default_factory=list, description="Cell values")
    rows: list["ReportRow"] = Field(default_factory=list, description="Nested rows")

    @property
    def label(self) -> str:
        return self.cells[0] if self.cells else ""

    @property
    def value(self) -> str:
        return self.cells[-1] if len(self.cells) > 1 else ""


class XeroReport(BaseModel):
    report_id: Optional[str] = None
    report_name: str = ""
    rows: list[ReportRow] = Field(default_factory=list)


class InvoiceLineItem(BaseModel):
    description: str = ""
    account_code: Optional[str] = None
    line_amount: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    tracking: list[str] = Field(
        default_factory=list, description="Tracking option names"
    )


class InvoiceRecord(BaseModel):
    invoice_id: str = ""
    type: str = Field("", description="ACCREC (sales) or ACCPAY (purchases)")
    status: Optional[str] = None
    date: Optional[str] = None
    sub_total: Decimal = Decimal("0")
    total_tax: Decimal = Decimal("0")
    line_items: list[InvoiceLineItem] = Field(default_factory=list)


class ContactRecord(BaseModel):
    contact_id: str = ""
    name: str = ""
    status: Optional[str] = None
    is_customer: bool = False
    is_supplier: bool = False


class AggregatedDataset(BaseModel):
    """Everything fetched for one company, tenant and period."""

    company_id: str
    tenant_id: str
    period: ReportPeriod
    tax_summary: Optional[XeroReport] = None
    profit_and_loss: Optional[XeroReport] = None
    balance_sheet: Optional[XeroReport] = None
    invoices: Optional[list[InvoiceRecord]] = None
    contacts: Optional[list[ContactRecord]] = None
    fetched_at: datetime
    partial_failures: set[EndpointName] = Field(default_factory=set)


class ComplianceKind(str, Enum):
    BAS = "BAS"
    FAS = "FAS"


class FieldSource(str, Enum):
    """Provenance of a calculated field, strongest first."""

    TAX_SUMMARY = "tax_summary"
    INVOICE_FALLBACK = "invoice_fallback"
    ESTIMATED = "estimated"
    UNAVAILABLE = "unavailable"

    @property
    def rank(self) -> int:
        return list(FieldSource).index(self)


class ComplianceFields(BaseModel):
    kind: ComplianceKind
    period: ReportPeriod
    fields: dict[str, Decimal] = Field(default_factory=dict)
    source_notes: dict[str, FieldSource] = Field(default_factory=dict)

    model_config = {"frozen": True}


class AnomalySeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AnomalyFlag(BaseModel):
    field_code: str
    severity: AnomalySeverity
    reason: str


class AnomalyThresholds(BaseModel):
    """Rule configuration for the anomaly flagger."""

    absolute_limit: Optional[Decimal] = Field(
        None, description="Default magnitude ceiling for every field"
    )
    field_limits: dict[str, Decimal] = Field(
        default_factory=dict, description="Per-field magnitude ceilings"
    )
    percent_change_limit: Optional[Decimal] = Field(
        None, description="Allowed change against baseline, in percent"
    )
    baseline: dict[str, Decimal] = Field(
        default_factory=dict, description="Previous period values by field code"
    )
    flag_unavailable: bool = True
    flag_estimated: bool = True


class ComplianceReportRequest(BaseModel):
    kind: ComplianceKind
    period: ReportPeriod
    requested_tenant_id: Optional[str] = None
    baseline: dict[str, Decimal] = Field(
        default_factory=dict, description="Previous period values for comparison"
    )


class ComplianceReportResponse(BaseModel):
    tenant_id: str
    fields: ComplianceFields
    anomalies: list[AnomalyFlag]
    partial_failures: list[str]
