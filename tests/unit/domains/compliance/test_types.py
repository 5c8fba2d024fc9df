"""
Tests for compliance period helpers and result models.
"""

from datetime import date

import pytest
from pydantic import TypeAdapter, ValidationError

from compliance_api.domains.compliance.types import (
    EndpointFailure,
    EndpointName,
    EndpointResult,
    EndpointSuccess,
    FieldSource,
    ReportPeriod,
)


class TestReportPeriod:
    """Test suite for ReportPeriod."""

    @pytest.mark.parametrize(
        "quarter,expected_from,expected_to",
        [
            ("Q1", date(2024, 7, 1), date(2024, 9, 30)),
            ("Q2", date(2024, 10, 1), date(2024, 12, 31)),
            ("Q3", date(2024, 1, 1), date(2024, 3, 31)),
            ("Q4", date(2024, 4, 1), date(2024, 6, 30)),
        ],
    )
    def test_bas_quarter(
        self, quarter: str, expected_from: date, expected_to: date
    ) -> None:
        # Act
        period = ReportPeriod.bas_quarter(quarter, 2024)

        # Assert
        assert period.from_date == expected_from
        assert period.to_date == expected_to
        assert period.period_label == f"{quarter} 2024"

    def test_bas_quarter_is_case_insensitive(self) -> None:
        assert ReportPeriod.bas_quarter("q2", 2024) == ReportPeriod.bas_quarter(
            "Q2", 2024
        )

    def test_unknown_quarter(self) -> None:
        with pytest.raises(ValueError):
            ReportPeriod.bas_quarter("Q5", 2024)

    def test_fbt_year(self) -> None:
        # Act
        period = ReportPeriod.fbt_year(2024)

        # Assert
        assert period.from_date == date(2024, 4, 1)
        assert period.to_date == date(2025, 3, 31)
        assert period.period_label == "FBT 2024-25"

    def test_reversed_range_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ReportPeriod(
                from_date=date(2024, 9, 30),
                to_date=date(2024, 7, 1),
                period_label="backwards",
            )

    def test_period_is_immutable_and_hashable(self) -> None:
        # Arrange
        period = ReportPeriod.bas_quarter("Q1", 2024)

        # Act & Assert
        with pytest.raises(ValidationError):
            period.period_label = "changed"  # type: ignore[misc]
        assert {period: "cached"}[ReportPeriod.bas_quarter("Q1", 2024)] == "cached"


class TestEndpointResult:
    """EndpointResult is discriminated on ``outcome``."""

    def test_parses_success(self) -> None:
        # Act
        result = TypeAdapter(EndpointResult).validate_python(
            {"outcome": "success", "endpoint": "invoices", "data": {"Invoices": []}}
        )

        # Assert
        assert isinstance(result, EndpointSuccess)
        assert result.endpoint == EndpointName.INVOICES

    def test_parses_failure(self) -> None:
        # Act
        result = TypeAdapter(EndpointResult).validate_python(
            {"outcome": "failure", "endpoint": "tax_summary", "reason": "HTTP 404"}
        )

        # Assert
        assert isinstance(result, EndpointFailure)
        assert result.retryable is False


class TestFieldSource:
    def test_rank_orders_strongest_first(self) -> None:
        ranks = [source.rank for source in FieldSource]
        assert ranks == sorted(ranks)
        assert FieldSource.TAX_SUMMARY.rank < FieldSource.UNAVAILABLE.rank
