"""Candidate generation: eligible ledger transactions for a statement item."""

from collections import defaultdict
from collections.abc import Iterable, Iterator
from datetime import timedelta
from decimal import Decimal
from uuid import UUID

from ledger_reconciler.domain.reconciliation import ReconciliationSession, StatementItem
from ledger_reconciler.domain.transactions import LedgerTransaction
from ledger_reconciler.repositories.interfaces import LedgerTransactionRepository


class CandidatePool:
    """Not-yet-matched ledger transactions, indexed by amount.

    Removing a transaction makes it invisible to every later lookup, which is
    how one matching run keeps assignments injective.
    """

    def __init__(self, transactions: Iterable[LedgerTransaction] = ()) -> None:
        self._by_amount: dict[Decimal, dict[UUID, LedgerTransaction]] = defaultdict(dict)
        self._amount_of: dict[UUID, Decimal] = {}
        for txn in transactions:
            self.add(txn)

    def add(self, txn: LedgerTransaction) -> None:
        self._by_amount[txn.amount][txn.id] = txn
        self._amount_of[txn.id] = txn.amount

    def remove(self, txn_id: UUID) -> None:
        amount = self._amount_of.pop(txn_id, None)
        if amount is None:
            return
        bucket = self._by_amount[amount]
        bucket.pop(txn_id, None)
        if not bucket:
            del self._by_amount[amount]

    def get(self, txn_id: UUID) -> LedgerTransaction | None:
        amount = self._amount_of.get(txn_id)
        if amount is None:
            return None
        return self._by_amount[amount].get(txn_id)

    def __contains__(self, txn_id: object) -> bool:
        return txn_id in self._amount_of

    def __len__(self) -> int:
        return len(self._amount_of)

    def __iter__(self) -> Iterator[LedgerTransaction]:
        for bucket in self._by_amount.values():
            yield from bucket.values()

    def candidates_for(
        self, item: StatementItem, slack_days: int
    ) -> list[LedgerTransaction]:
        """Amount-exact transactions dated within +/- slack_days of the item.

        Ordered by absolute date difference, then transaction id.
        """
        bucket = self._by_amount.get(item.amount)
        if not bucket:
            return []
        eligible = [
            txn
            for txn in bucket.values()
            if abs((txn.transaction_date - item.item_date).days) <= slack_days
        ]
        eligible.sort(
            key=lambda t: (abs((t.transaction_date - item.item_date).days), t.id)
        )
        return eligible


class CandidateGenerator:
    """Loads the candidate pool for a session from the ledger store."""

    def __init__(
        self,
        ledger_repo: LedgerTransactionRepository,
        slack_days: int = 5,
    ) -> None:
        self._ledger_repo = ledger_repo
        self._slack_days = slack_days

    @property
    def slack_days(self) -> int:
        return self._slack_days

    def build_pool(self, session: ReconciliationSession) -> CandidatePool:
        """Unclaimed transactions on the session's account over period +/- slack."""
        slack = timedelta(days=self._slack_days)
        claimed = session.claimed_transaction_ids()
        transactions = self._ledger_repo.find_transactions(
            session.account_id,
            session.period_start - slack,
            session.period_end + slack,
        )
        return CandidatePool(
            txn
            for txn in transactions
            if txn.matched_item_id is None and txn.id not in claimed
        )

    def candidates_for(
        self, item: StatementItem, pool: CandidatePool
    ) -> list[LedgerTransaction]:
        return pool.candidates_for(item, self._slack_days)
