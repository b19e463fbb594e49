"""Tests for StatementNormalizer."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_reconciler.exceptions import OperationTimeoutError
from ledger_reconciler.services.concurrency import Deadline
from ledger_reconciler.services.normalizer import StatementNormalizer


@pytest.fixture
def normalizer() -> StatementNormalizer:
    return StatementNormalizer()


def _rows(count: int) -> list[dict[str, str]]:
    return [
        {
            "date": f"2024-01-{day:02d}",
            "amount": f"-{day}.00",
            "description": f"Vendor {day}",
        }
        for day in range(1, count + 1)
    ]


class TestNormalize:
    def test_valid_rows(self, normalizer: StatementNormalizer) -> None:
        session_id = uuid4()
        result = normalizer.normalize(
            session_id,
            [
                {
                    "date": "2024-01-05",
                    "amount": "-150.00",
                    "description": "  OFFICE SUPPLIES CO ",
                    "reference": "CHK 1001",
                }
            ],
        )

        assert result.row_errors == []
        item = result.items[0]
        assert item.session_id == session_id
        assert item.item_date == date(2024, 1, 5)
        assert item.amount == Decimal("-150.00")
        assert item.description == "OFFICE SUPPLIES CO"
        assert item.reference == "CHK 1001"
        assert item.line_number == 1

    def test_missing_amount_is_reported_and_skipped(
        self, normalizer: StatementNormalizer
    ) -> None:
        rows = _rows(10)
        del rows[3]["amount"]

        result = normalizer.normalize(uuid4(), rows)

        assert len(result.items) == 9
        assert len(result.row_errors) == 1
        error = result.row_errors[0]
        assert error.row_number == 4
        assert error.error_code == "MISSING_FIELD"
        assert "amount" in error.message

    def test_line_numbers_stay_contiguous(self, normalizer: StatementNormalizer) -> None:
        rows = _rows(3)
        rows[1]["date"] = "garbage"

        result = normalizer.normalize(uuid4(), rows, first_line_number=7)

        assert [i.line_number for i in result.items] == [7, 8]
        assert result.row_errors[0].error_code == "INVALID_DATE"

    def test_invalid_amount(self, normalizer: StatementNormalizer) -> None:
        result = normalizer.normalize(
            uuid4(), [{"date": "2024-01-05", "amount": "twelve"}]
        )
        assert result.items == []
        assert result.row_errors[0].error_code == "INVALID_AMOUNT"

    def test_oversized_amount_rejects_only_its_row(
        self, normalizer: StatementNormalizer
    ) -> None:
        result = normalizer.normalize(
            uuid4(),
            [
                {"date": "2024-01-05", "amount": "1e30", "description": "huge"},
                {"date": "2024-01-06", "amount": "-5.00", "description": "small"},
            ],
        )

        assert [i.amount for i in result.items] == [Decimal("-5.00")]
        assert [(e.row_number, e.error_code) for e in result.row_errors] == [
            (1, "INVALID_AMOUNT")
        ]

    def test_blank_required_field(self, normalizer: StatementNormalizer) -> None:
        result = normalizer.normalize(uuid4(), [{"date": "  ", "amount": "1.00"}])
        assert result.row_errors[0].error_code == "MISSING_FIELD"

    def test_non_mapping_row(self, normalizer: StatementNormalizer) -> None:
        result = normalizer.normalize(uuid4(), [["2024-01-05", "1.00"]])  # type: ignore[list-item]
        assert result.row_errors[0].error_code == "INVALID_ROW"

    def test_duplicate_row_rejected(self, normalizer: StatementNormalizer) -> None:
        rows = _rows(2) + [_rows(2)[0]]

        result = normalizer.normalize(uuid4(), rows)

        assert len(result.items) == 2
        error = result.row_errors[0]
        assert error.row_number == 3
        assert error.error_code == "DUPLICATE_ROW"

    def test_same_amount_different_reference_is_not_duplicate(
        self, normalizer: StatementNormalizer
    ) -> None:
        row = {"date": "2024-01-05", "amount": "-20.00", "description": "ATM"}
        result = normalizer.normalize(
            uuid4(), [{**row, "reference": "A"}, {**row, "reference": "B"}]
        )
        assert len(result.items) == 2


class TestDirection:
    @pytest.mark.parametrize("direction", ["debit", "Withdrawal", " DEBIT "])
    def test_outflow_forces_negative(
        self, normalizer: StatementNormalizer, direction: str
    ) -> None:
        result = normalizer.normalize(
            uuid4(), [{"date": "2024-01-05", "amount": "45.00", "direction": direction}]
        )
        assert result.items[0].amount == Decimal("-45.00")

    @pytest.mark.parametrize("direction", ["credit", "deposit"])
    def test_inflow_forces_positive(
        self, normalizer: StatementNormalizer, direction: str
    ) -> None:
        result = normalizer.normalize(
            uuid4(), [{"date": "2024-01-05", "amount": "-45.00", "direction": direction}]
        )
        assert result.items[0].amount == Decimal("45.00")

    def test_unknown_direction(self, normalizer: StatementNormalizer) -> None:
        result = normalizer.normalize(
            uuid4(), [{"date": "2024-01-05", "amount": "45.00", "direction": "sideways"}]
        )
        assert result.row_errors[0].error_code == "INVALID_DIRECTION"


class TestDeadline:
    def test_expired_deadline_aborts(self, normalizer: StatementNormalizer) -> None:
        with pytest.raises(OperationTimeoutError):
            normalizer.normalize(uuid4(), _rows(2), deadline=Deadline("upload", 0))
