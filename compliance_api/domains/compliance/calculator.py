import logging
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Iterator, Optional

from .aggregator import CENTS, to_decimal
from .types import (
    AggregatedDataset,
    ComplianceFields,
    ComplianceKind,
    FieldSource,
    InvoiceRecord,
    ReportRow,
    XeroReport,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# FBT constants, fixed by legislation rather than derived from Xero data
FBT_RATE = Decimal("0.47")
TYPE_1_GROSS_UP = Decimal("2.0802")
TYPE_2_GROSS_UP = Decimal("1.8868")

BAS_FIELD_CODES = ("G1", "G2", "1A", "1B", "W1", "W2")
FAS_FIELD_CODES = ("A1", "A2", "A3", "A4", "A5", "A6", "A7", "A8", "A9")
FAS_INPUT_CODES = FAS_FIELD_CODES[:5]

# Known tax summary labels per field code. Order matters: W2 labels mention
# wages too, so W2 is tried before W1.
BAS_LABELS = (
    ("1A", ("gst on sales", "output tax")),
    ("1B", ("gst on purchases", "input tax")),
    ("G1", ("total sales",)),
    ("G2", ("total purchases",)),
    ("W2", ("amounts withheld", "amount withheld")),
    ("W1", ("total salary", "salary, wages", "salaries and wages")),
)

FAS_LABELS = (
    ("A4", ("type 1 aggregate", "type 1 taxable")),
    ("A5", ("type 2 aggregate", "type 2 taxable")),
    ("A1", ("car benefit", "car fringe")),
    ("A2", ("entertainment",)),
    ("A3", ("other benefit", "other fringe")),
)

EXCLUDED_INVOICE_STATUSES = {"DRAFT", "VOIDED", "DELETED"}
SALES_INVOICE = "ACCREC"
PURCHASE_INVOICE = "ACCPAY"

_FBT_TAG = re.compile(r"fringe|\bfbt\b", re.IGNORECASE)
_CAR = re.compile(r"\bcars?\b|motor vehicle", re.IGNORECASE)
_ENTERTAINMENT = re.compile(r"entertainment", re.IGNORECASE)
_WAGES = re.compile(r"wage|salar", re.IGNORECASE)
_PAYG_WITHHOLDING = re.compile(r"payg\s*w", re.IGNORECASE)
_REVENUE_SECTION = re.compile(r"revenue|income", re.IGNORECASE)


def quantize(value: Decimal) -> Decimal:
    """Round to cents; a value too large to hold at cent precision becomes 0."""
    try:
        return value.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        logger.warning(f"Amount {value} is out of range and was treated as 0")
        return ZERO.quantize(CENTS)


def _walk(rows: Iterable[ReportRow]) -> Iterator[ReportRow]:
    for row in rows:
        yield row
        yield from _walk(row.rows)


def _code_pattern(code: str) -> re.Pattern:
    return re.compile(rf"^\s*{re.escape(code)}\b", re.IGNORECASE)


def _labelled_values(
    report: Optional[XeroReport],
    codes: Iterable[str],
    labels: tuple[tuple[str, tuple[str, ...]], ...],
) -> dict[str, Decimal]:
    """
    Pick field values out of a report by row label.

    A label that starts with the field code wins over a keyword match; the
    first matching row for a code is used.
    """
    if report is None:
        return {}

    codes = tuple(codes)
    code_patterns = {code: _code_pattern(code) for code in codes}
    by_code: dict[str, Decimal] = {}
    by_keyword: dict[str, Decimal] = {}

    for row in _walk(report.rows):
        if not row.value:
            continue
        label = row.label
        amount = abs(to_decimal(row.value))

        matched = next(
            (code for code, pattern in code_patterns.items() if pattern.search(label)),
            None,
        )
        if matched:
            by_code.setdefault(matched, amount)
            continue

        lowered = label.lower()
        for code, keywords in labels:
            if code in code_patterns and any(k in lowered for k in keywords):
                by_keyword.setdefault(code, amount)
                break

    return {**by_keyword, **by_code}


class TaxFieldCalculator:
    """
    Derives BAS and FAS fields from an aggregated Xero dataset.

    Each field follows a priority chain of sources and records which one
    produced it. Missing sources degrade the provenance; they never raise.
    """

    def __init__(self, fbt_account_codes: Iterable[str] = ()):
        self.fbt_account_codes = {c.strip().upper() for c in fbt_account_codes if c}

    def compute(
        self, kind: ComplianceKind, dataset: AggregatedDataset
    ) -> ComplianceFields:
        if kind == ComplianceKind.FAS:
            return self.compute_fas(dataset)
        return self.compute_bas(dataset)

    def compute_bas(self, dataset: AggregatedDataset) -> ComplianceFields:
        """
        Compute G1, G2, 1A, 1B, W1 and W2.

        Priority: tax summary row, then sales/purchase invoices (G and 1
        fields), then profit and loss or balance sheet estimates.
        """
        candidates: list[tuple[FieldSource, dict[str, Decimal]]] = [
            (
                FieldSource.TAX_SUMMARY,
                _labelled_values(dataset.tax_summary, BAS_FIELD_CODES, BAS_LABELS),
            ),
            (FieldSource.INVOICE_FALLBACK, self._bas_from_invoices(dataset.invoices)),
            (
                FieldSource.ESTIMATED,
                {
                    **self._bas_from_profit_and_loss(dataset.profit_and_loss),
                    **self._bas_from_balance_sheet(dataset.balance_sheet),
                },
            ),
        ]

        fields, sources = self._resolve(BAS_FIELD_CODES, candidates)
        logger.debug(
            f"BAS computed for company {dataset.company_id} "
            f"({dataset.period.period_label}): {sources}"
        )
        return ComplianceFields(
            kind=ComplianceKind.BAS,
            period=dataset.period,
            fields=fields,
            source_notes=sources,
        )

    def compute_fas(self, dataset: AggregatedDataset) -> ComplianceFields:
        """
        Compute A1 to A9.

        A1-A5 come from the tax summary, FBT-tagged purchase lines or FBT
        rows in the profit and loss. A6-A9 apply the gross-up rates and the
        FBT rate to those inputs.
        """
        candidates: list[tuple[FieldSource, dict[str, Decimal]]] = [
            (
                FieldSource.TAX_SUMMARY,
                _labelled_values(dataset.tax_summary, FAS_INPUT_CODES, FAS_LABELS),
            ),
            (FieldSource.INVOICE_FALLBACK, self._fas_from_invoices(dataset.invoices)),
            (
                FieldSource.ESTIMATED,
                self._fas_from_profit_and_loss(dataset.profit_and_loss),
            ),
        ]
        fields, sources = self._resolve(FAS_INPUT_CODES, candidates)

        fields["A6"] = quantize(fields["A4"] * TYPE_1_GROSS_UP)
        sources["A6"] = _weakest(sources["A4"])
        fields["A7"] = quantize(fields["A5"] * TYPE_2_GROSS_UP)
        sources["A7"] = _weakest(sources["A5"])
        fields["A8"] = fields["A6"] + fields["A7"]
        sources["A8"] = _weakest(sources["A6"], sources["A7"])
        fields["A9"] = quantize(fields["A8"] * FBT_RATE)
        sources["A9"] = _weakest(sources["A8"])

        logger.debug(
            f"FAS computed for company {dataset.company_id} "
            f"({dataset.period.period_label}): {sources}"
        )
        return ComplianceFields(
            kind=ComplianceKind.FAS,
            period=dataset.period,
            fields=fields,
            source_notes=sources,
        )

    @staticmethod
    def _resolve(
        codes: Iterable[str],
        candidates: list[tuple[FieldSource, dict[str, Decimal]]],
    ) -> tuple[dict[str, Decimal], dict[str, FieldSource]]:
        fields: dict[str, Decimal] = {}
        sources: dict[str, FieldSource] = {}
        for code in codes:
            for source, values in candidates:
                if code in values:
                    fields[code] = quantize(values[code])
                    sources[code] = source
                    break
            else:
                fields[code] = quantize(ZERO)
                sources[code] = FieldSource.UNAVAILABLE
        return fields, sources

    @staticmethod
    def _bas_from_invoices(
        invoices: Optional[list[InvoiceRecord]],
    ) -> dict[str, Decimal]:
        if invoices is None:
            return {}

        values: dict[str, Decimal] = {}
        for invoice_type, total_code, tax_code in (
            (SALES_INVOICE, "G1", "1A"),
            (PURCHASE_INVOICE, "G2", "1B"),
        ):
            matching = [
                i
                for i in invoices
                if i.type == invoice_type
                and i.status not in EXCLUDED_INVOICE_STATUSES
            ]
            values[total_code] = sum((i.sub_total for i in matching), ZERO)
            values[tax_code] = sum((i.total_tax for i in matching), ZERO)
        return values

    @staticmethod
    def _bas_from_profit_and_loss(report: Optional[XeroReport]) -> dict[str, Decimal]:
        if report is None:
            return {}

        values: dict[str, Decimal] = {}
        revenue = [
            section
            for section in report.rows
            if section.row_type == "Section" and _REVENUE_SECTION.search(section.title)
        ]
        if revenue:
            total = ZERO
            for section in revenue:
                summary = next(
                    (r for r in section.rows if r.row_type == "SummaryRow" and r.value),
                    None,
                )
                if summary:
                    total += abs(to_decimal(summary.value))
                else:
                    total += sum(
                        (
                            abs(to_decimal(r.value))
                            for r in section.rows
                            if r.row_type == "Row" and r.value
                        ),
                        ZERO,
                    )
            values["G1"] = total

        wages = [
            row
            for row in _walk(report.rows)
            if row.row_type == "Row" and row.value and _WAGES.search(row.label)
        ]
        if wages:
            values["W1"] = sum((abs(to_decimal(r.value)) for r in wages), ZERO)
        return values

    @staticmethod
    def _bas_from_balance_sheet(report: Optional[XeroReport]) -> dict[str, Decimal]:
        if report is None:
            return {}
        for row in _walk(report.rows):
            if row.row_type != "Row" or not row.value:
                continue
            if _PAYG_WITHHOLDING.search(row.label):
                return {"W2": abs(to_decimal(row.value))}
        return {}

    def _is_fbt_line(self, account_code: Optional[str], text: str) -> bool:
        if account_code and account_code.strip().upper() in self.fbt_account_codes:
            return True
        return bool(_FBT_TAG.search(text))

    def _fas_from_invoices(
        self, invoices: Optional[list[InvoiceRecord]]
    ) -> dict[str, Decimal]:
        if invoices is None:
            return {}

        values = {code: ZERO for code in FAS_INPUT_CODES}
        found = False
        for invoice in invoices:
            if (
                invoice.type != PURCHASE_INVOICE
                or invoice.status in EXCLUDED_INVOICE_STATUSES
            ):
                continue
            for line in invoice.line_items:
                text = " ".join([line.description, *line.tracking])
                if not self._is_fbt_line(line.account_code, text):
                    continue
                found = True
                amount = abs(line.line_amount)
                values[_benefit_category(line.description)] += amount
                # GST charged on the benefit makes it a type 1 amount
                values["A4" if line.tax_amount > 0 else "A5"] += amount

        return values if found else {}

    @staticmethod
    def _fas_from_profit_and_loss(report: Optional[XeroReport]) -> dict[str, Decimal]:
        if report is None:
            return {}

        values = {code: ZERO for code in FAS_INPUT_CODES}
        found = False
        for row in _walk(report.rows):
            if row.row_type != "Row" or not row.value or not _FBT_TAG.search(row.label):
                continue
            found = True
            amount = abs(to_decimal(row.value))
            values[_benefit_category(row.label)] += amount
            values["A4"] += amount
        return values if found else {}


def _benefit_category(text: str) -> str:
    if _CAR.search(text):
        return "A1"
    if _ENTERTAINMENT.search(text):
        return "A2"
    return "A3"


def _weakest(*sources: FieldSource) -> FieldSource:
    """Weakest available provenance, or unavailable when nothing is available."""
    available = [s for s in sources if s != FieldSource.UNAVAILABLE]
    if not available:
        return FieldSource.UNAVAILABLE
    return max(available, key=lambda s: s.rank)
