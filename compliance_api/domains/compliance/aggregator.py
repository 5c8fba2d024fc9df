"""
Merge per-endpoint fetch results into one dataset.

Pure functions only: no I/O, no clock unless ``fetched_at`` is omitted.
Provider envelopes (``{"Reports": [...]}``, ``{"Invoices": [...]}``) are
unwrapped and amounts parsed to Decimal; anything unparsable degrades to an
empty value instead of raising.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from .types import (
    AggregatedDataset,
    ContactRecord,
    EndpointName,
    EndpointResult,
    EndpointSuccess,
    InvoiceLineItem,
    InvoiceRecord,
    ReportPeriod,
    ReportRow,
    XeroReport,
)

CENTS = Decimal("0.01")


def aggregate(
    results: Mapping[EndpointName, EndpointResult],
    company_id: str,
    tenant_id: str,
    period: ReportPeriod,
    fetched_at: Optional[datetime] = None,
) -> AggregatedDataset:
    """
    Build an AggregatedDataset from ReportFetcher output.

    Every endpoint whose result is not a success lands in partial_failures.
    """
    data: dict[EndpointName, dict] = {}
    partial_failures: set[EndpointName] = set()

    for name, result in results.items():
        if isinstance(result, EndpointSuccess):
            data[name] = result.data
        else:
            partial_failures.add(name)

    return AggregatedDataset(
        company_id=company_id,
        tenant_id=tenant_id,
        period=period,
        tax_summary=_maybe_report(data, EndpointName.TAX_SUMMARY),
        profit_and_loss=_maybe_report(data, EndpointName.PROFIT_AND_LOSS),
        balance_sheet=_maybe_report(data, EndpointName.BALANCE_SHEET),
        invoices=(
            normalize_invoices(data[EndpointName.INVOICES])
            if EndpointName.INVOICES in data
            else None
        ),
        contacts=(
            normalize_contacts(data[EndpointName.CONTACTS])
            if EndpointName.CONTACTS in data
            else None
        ),
        fetched_at=fetched_at or datetime.now(timezone.utc),
        partial_failures=partial_failures,
    )


def _maybe_report(
    data: dict[EndpointName, dict], name: EndpointName
) -> Optional[XeroReport]:
    if name not in data:
        return None
    return normalize_report(data[name])


def normalize_report(payload: Mapping[str, Any]) -> XeroReport:
    """Unwrap ``{"Reports": [report]}`` into a flat XeroReport."""
    reports = payload.get("Reports")
    report = reports[0] if isinstance(reports, list) and reports else payload
    if not isinstance(report, Mapping):
        return XeroReport()

    return XeroReport(
        report_id=_text(report.get("ReportID")) or None,
        report_name=_text(report.get("ReportName")),
        rows=[_row(r) for r in _list(report.get("Rows"))],
    )


def _row(raw: Any) -> ReportRow:
    if not isinstance(raw, Mapping):
        return ReportRow()
    return ReportRow(
        row_type=_text(raw.get("RowType")) or "Row",
        title=_text(raw.get("Title")),
        cells=[
            _text(cell.get("Value")) if isinstance(cell, Mapping) else _text(cell)
            for cell in _list(raw.get("Cells"))
        ],
        rows=[_row(r) for r in _list(raw.get("Rows"))],
    )


def normalize_invoices(payload: Mapping[str, Any]) -> list[InvoiceRecord]:
    """Unwrap ``{"Invoices": [...]}`` into InvoiceRecords."""
    return [
        _invoice(raw)
        for raw in _list(payload.get("Invoices"))
        if isinstance(raw, Mapping)
    ]


def _invoice(raw: Mapping[str, Any]) -> InvoiceRecord:
    return InvoiceRecord(
        invoice_id=_text(raw.get("InvoiceID")),
        type=_text(raw.get("Type")).upper(),
        status=_text(raw.get("Status")).upper() or None,
        date=_text(raw.get("DateString") or raw.get("Date")) or None,
        sub_total=to_decimal(raw.get("SubTotal")),
        total_tax=to_decimal(raw.get("TotalTax")),
        line_items=[
            _line_item(item)
            for item in _list(raw.get("LineItems"))
            if isinstance(item, Mapping)
        ],
    )


def _line_item(raw: Mapping[str, Any]) -> InvoiceLineItem:
    return InvoiceLineItem(
        description=_text(raw.get("Description")),
        account_code=_text(raw.get("AccountCode")) or None,
        line_amount=to_decimal(raw.get("LineAmount")),
        tax_amount=to_decimal(raw.get("TaxAmount")),
        tracking=[
            _text(t.get("Option") or t.get("Name"))
            for t in _list(raw.get("Tracking"))
            if isinstance(t, Mapping)
        ],
    )


def normalize_contacts(payload: Mapping[str, Any]) -> list[ContactRecord]:
    """Unwrap ``{"Contacts": [...]}`` into ContactRecords."""
    return [
        ContactRecord(
            contact_id=_text(raw.get("ContactID")),
            name=_text(raw.get("Name")),
            status=_text(raw.get("ContactStatus")).upper() or None,
            is_customer=raw.get("IsCustomer") is True,
            is_supplier=raw.get("IsSupplier") is True,
        )
        for raw in _list(payload.get("Contacts"))
        if isinstance(raw, Mapping)
    ]


def to_decimal(value: Any) -> Decimal:
    """
    Parse a Xero amount (number or string, possibly with commas) to Decimal.

    Non-finite values and amounts too large to hold at cent precision parse
    as 0.
    """
    if value is None or isinstance(value, bool):
        return Decimal("0")
    if isinstance(value, (int, float)):
        text = str(value)
    else:
        text = str(value).strip().replace(",", "")
        if text.startswith("(") and text.endswith(")"):
            text = f"-{text[1:-1]}"
    try:
        result = Decimal(text)
        if not result.is_finite():
            return Decimal("0")
        result.quantize(CENTS)
    except InvalidOperation:
        return Decimal("0")
    return result


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _list(value: Any) -> list:
    return value if isinstance(value, list) else []
