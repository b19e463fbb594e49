"""Tests for CandidatePool and CandidateGenerator."""

from datetime import date
from uuid import UUID, uuid4

from conftest import make_item, make_txn
from ledger_reconciler.domain.reconciliation import MatchPass
from ledger_reconciler.services.candidates import CandidateGenerator, CandidatePool


class TestCandidatePool:
    def test_amount_must_match_exactly(self) -> None:
        account = uuid4()
        hit = make_txn(account, date(2024, 1, 5), "-150.00")
        miss = make_txn(account, date(2024, 1, 5), "-150.01")
        pool = CandidatePool([hit, miss])

        item = make_item(uuid4(), date(2024, 1, 5), "-150.00")

        assert pool.candidates_for(item, 5) == [hit]

    def test_date_window_is_inclusive(self) -> None:
        account = uuid4()
        edge = make_txn(account, date(2024, 1, 15), "10.00")
        outside = make_txn(account, date(2024, 1, 16), "10.00")
        pool = CandidatePool([edge, outside])

        item = make_item(uuid4(), date(2024, 1, 10), "10.00")

        assert pool.candidates_for(item, 5) == [edge]

    def test_ordered_by_distance_then_id(self) -> None:
        account = uuid4()
        far = make_txn(account, date(2024, 1, 7), "10.00")
        near_b = make_txn(account, date(2024, 1, 11), "10.00")
        near_a = make_txn(account, date(2024, 1, 9), "10.00")
        near_a.id = UUID(int=1)
        near_b.id = UUID(int=2)
        pool = CandidatePool([far, near_b, near_a])

        item = make_item(uuid4(), date(2024, 1, 10), "10.00")

        assert pool.candidates_for(item, 5) == [near_a, near_b, far]

    def test_remove_hides_transaction(self) -> None:
        txn = make_txn(uuid4(), date(2024, 1, 5), "10.00")
        pool = CandidatePool([txn])

        pool.remove(txn.id)
        pool.remove(txn.id)

        assert txn.id not in pool
        assert len(pool) == 0
        assert pool.get(txn.id) is None
        assert pool.candidates_for(make_item(uuid4(), date(2024, 1, 5), "10.00"), 5) == []

    def test_iter_and_get(self) -> None:
        txns = [make_txn(uuid4(), date(2024, 1, 5), f"{n}.00") for n in range(3)]
        pool = CandidatePool(txns)

        assert {t.id for t in pool} == {t.id for t in txns}
        assert pool.get(txns[1].id) is txns[1]


class TestCandidateGenerator:
    def test_pool_covers_period_plus_slack(self, ledger_repo, add_txn, january_session) -> None:
        before = add_txn(date(2023, 12, 27), "5.00")
        too_early = add_txn(date(2023, 12, 26), "5.00")
        after = add_txn(date(2024, 2, 5), "5.00")
        too_late = add_txn(date(2024, 2, 6), "5.00")
        other_account = add_txn(date(2024, 1, 10), "5.00", account=uuid4())

        pool = CandidateGenerator(ledger_repo, slack_days=5).build_pool(january_session)

        assert before.id in pool
        assert after.id in pool
        assert too_early.id not in pool
        assert too_late.id not in pool
        assert other_account.id not in pool

    def test_excludes_claimed_transactions(
        self, ledger_repo, add_txn, january_session
    ) -> None:
        claimed_elsewhere = add_txn(date(2024, 1, 10), "5.00")
        ledger_repo.mark_matched(claimed_elsewhere.id, uuid4())
        claimed_here = add_txn(date(2024, 1, 11), "5.00")
        item = make_item(january_session.id, date(2024, 1, 11), "5.00")
        item.mark_matched(claimed_here.id, 100, MatchPass.MANUAL)
        january_session.items.append(item)
        free = add_txn(date(2024, 1, 12), "5.00")

        pool = CandidateGenerator(ledger_repo).build_pool(january_session)

        assert [t.id for t in pool] == [free.id]

    def test_candidates_for_uses_configured_slack(self, ledger_repo) -> None:
        txn = make_txn(uuid4(), date(2024, 1, 8), "10.00")
        pool = CandidatePool([txn])
        item = make_item(uuid4(), date(2024, 1, 10), "10.00")

        assert CandidateGenerator(ledger_repo, slack_days=1).candidates_for(item, pool) == []
        assert CandidateGenerator(ledger_repo, slack_days=2).candidates_for(item, pool) == [txn]
