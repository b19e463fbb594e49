"""Statement normalization: raw extracted rows to canonical statement items."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from ledger_reconciler.domain.reconciliation import StatementItem
from ledger_reconciler.domain.value_objects import Direction, parse_amount, parse_date
from ledger_reconciler.exceptions import (
    DuplicateRowError,
    InvalidDirectionError,
    MissingFieldError,
    ValidationError,
)
from ledger_reconciler.services.concurrency import Deadline
from ledger_reconciler.services.interfaces import RowError


@dataclass
class NormalizedStatement:
    items: list[StatementItem] = field(default_factory=list)
    row_errors: list[RowError] = field(default_factory=list)


class StatementNormalizer:
    """Turns rows of {date, description, amount, reference?, direction?} into items.

    Bad rows are reported individually and never abort the rest of the upload.
    Within one upload, a row repeating the date, amount, description and
    reference of an earlier row is rejected as a duplicate.
    """

    REQUIRED_FIELDS = ("date", "amount")

    def normalize(
        self,
        session_id: UUID,
        rows: Sequence[Mapping[str, Any]],
        first_line_number: int = 1,
        deadline: Deadline | None = None,
    ) -> NormalizedStatement:
        result = NormalizedStatement()
        seen: dict[tuple[date, Decimal, str, str], int] = {}
        line_number = first_line_number

        for row_number, row in enumerate(rows, start=1):
            if deadline is not None:
                deadline.check()
            try:
                item = self._normalize_row(session_id, row, line_number)
                first = seen.get(item.dedup_key)
                if first is not None:
                    raise DuplicateRowError(row_number, first)
            except ValidationError as e:
                result.row_errors.append(
                    RowError(row_number=row_number, error_code=e.error_code, message=e.message)
                )
                continue
            seen[item.dedup_key] = row_number
            result.items.append(item)
            line_number += 1

        return result

    def _normalize_row(
        self, session_id: UUID, row: Mapping[str, Any], line_number: int
    ) -> StatementItem:
        if not isinstance(row, Mapping):
            raise ValidationError(
                "Statement row must be an object", error_code="INVALID_ROW"
            )
        for name in self.REQUIRED_FIELDS:
            value = row.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise MissingFieldError(name)

        item_date = parse_date(row["date"])
        amount = parse_amount(row["amount"])

        direction = row.get("direction")
        if direction not in (None, ""):
            try:
                flow = Direction(str(direction).strip().lower())
            except ValueError:
                raise InvalidDirectionError(str(direction)) from None
            amount = -abs(amount) if flow.is_outflow else abs(amount)

        return StatementItem(
            session_id=session_id,
            item_date=item_date,
            amount=amount,
            line_number=line_number,
            description=_clean(row.get("description")),
            reference=_clean(row.get("reference")),
        )


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()
