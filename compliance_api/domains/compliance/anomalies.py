import logging
from decimal import Decimal
from typing import Optional

from .types import (
    AnomalyFlag,
    AnomalySeverity,
    AnomalyThresholds,
    ComplianceFields,
    ComplianceKind,
    FieldSource,
)

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


class AnomalyFlagger:
    """
    Applies threshold rules to calculated compliance fields.

    Flags are advisory only; the flagger never raises and never modifies the
    fields it is given.
    """

    def flag(
        self, fields: ComplianceFields, thresholds: AnomalyThresholds
    ) -> list[AnomalyFlag]:
        flags: list[AnomalyFlag] = []

        for code, value in fields.fields.items():
            source = fields.source_notes.get(code, FieldSource.UNAVAILABLE)

            if source == FieldSource.UNAVAILABLE and thresholds.flag_unavailable:
                flags.append(
                    AnomalyFlag(
                        field_code=code,
                        severity=AnomalySeverity.WARNING,
                        reason="No Xero source was available for this field",
                    )
                )
            elif source == FieldSource.ESTIMATED and thresholds.flag_estimated:
                flags.append(
                    AnomalyFlag(
                        field_code=code,
                        severity=AnomalySeverity.INFO,
                        reason="Value is estimated from financial statements",
                    )
                )

            limit = thresholds.field_limits.get(code, thresholds.absolute_limit)
            if limit is not None and abs(value) > limit:
                flags.append(
                    AnomalyFlag(
                        field_code=code,
                        severity=AnomalySeverity.WARNING,
                        reason=f"Value {value} exceeds the limit of {limit}",
                    )
                )

            change_flag = self._percent_change(code, value, thresholds)
            if change_flag:
                flags.append(change_flag)

        if fields.kind == ComplianceKind.BAS:
            flags.extend(self._bas_consistency(fields))

        if flags:
            logger.info(
                f"{len(flags)} anomaly flag(s) raised for "
                f"{fields.kind.value} {fields.period.period_label}"
            )
        return flags

    @staticmethod
    def _percent_change(
        code: str, value: Decimal, thresholds: AnomalyThresholds
    ) -> Optional[AnomalyFlag]:
        limit = thresholds.percent_change_limit
        baseline = thresholds.baseline.get(code)
        if limit is None or baseline is None:
            return None

        if baseline == 0:
            if value == 0:
                return None
            return AnomalyFlag(
                field_code=code,
                severity=AnomalySeverity.WARNING,
                reason=f"Value {value} where the previous period was 0",
            )

        change = abs(value - baseline) / abs(baseline) * HUNDRED
        if change <= limit:
            return None

        severity = (
            AnomalySeverity.CRITICAL if change > limit * 2 else AnomalySeverity.WARNING
        )
        return AnomalyFlag(
            field_code=code,
            severity=severity,
            reason=(
                f"Changed {change.quantize(Decimal('0.1'))}% from previous period "
                f"value {baseline} (limit {limit}%)"
            ),
        )

    @staticmethod
    def _bas_consistency(fields: ComplianceFields) -> list[AnomalyFlag]:
        gst_on_sales = fields.fields.get("1A")
        gst_on_purchases = fields.fields.get("1B")
        if gst_on_sales is None or gst_on_purchases is None:
            return []
        if gst_on_purchases > gst_on_sales:
            return [
                AnomalyFlag(
                    field_code="1B",
                    severity=AnomalySeverity.INFO,
                    reason="GST on purchases exceeds GST on sales (refund expected)",
                )
            ]
        return []
