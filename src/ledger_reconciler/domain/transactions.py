from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import UUID, uuid4


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class LedgerTransaction:
    """An internally recorded transaction on one account.

    Owned by the ledger store. Reconciliation only reads it and records which
    statement item, if any, currently claims it.
    """

    account_id: UUID
    transaction_date: date
    amount: Decimal
    description: str = ""
    id: UUID = field(default_factory=uuid4)
    matched_item_id: UUID | None = None
    created_at: datetime = field(default_factory=_utc_now)

    @property
    def is_matched(self) -> bool:
        return self.matched_item_id is not None
