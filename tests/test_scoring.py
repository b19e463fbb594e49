from datetime import date
from uuid import uuid4

import pytest

from conftest import make_item, make_txn
from ledger_reconciler.services.scoring import (
    WeightedMatchScorer,
    date_proximity,
    jaccard_similarity,
    tokenize,
)


class TestTokenize:
    def test_lowercases_and_splits(self) -> None:
        assert tokenize("Office  SUPPLIES co") == frozenset({"office", "supplies", "co"})

    def test_empty(self) -> None:
        assert tokenize("   ") == frozenset()


class TestJaccardSimilarity:
    def test_identical(self) -> None:
        assert jaccard_similarity("Misc", "misc") == 1.0

    def test_partial_overlap(self) -> None:
        # {office, supplies, co} vs {office, supplies, co, invoice, 112}
        assert jaccard_similarity(
            "OFFICE SUPPLIES CO", "Office Supplies Co Invoice 112"
        ) == pytest.approx(3 / 5)

    def test_disjoint(self) -> None:
        assert jaccard_similarity("rent", "payroll") == 0.0

    @pytest.mark.parametrize(("a", "b"), [("", "rent"), ("rent", ""), ("", "")])
    def test_empty_side_scores_zero(self, a: str, b: str) -> None:
        assert jaccard_similarity(a, b) == 0.0


class TestDateProximity:
    def test_same_day(self) -> None:
        assert date_proximity(0, 5) == 1.0

    def test_linear_decay(self) -> None:
        assert date_proximity(2, 5) == pytest.approx(0.6)
        assert date_proximity(-2, 5) == pytest.approx(0.6)

    def test_slack_edge(self) -> None:
        assert date_proximity(5, 5) == 0.0
        assert date_proximity(9, 5) == 0.0

    def test_zero_slack(self) -> None:
        assert date_proximity(0, 0) == 1.0
        assert date_proximity(1, 0) == 0.0


class TestWeightedMatchScorer:
    def test_weights_must_sum_to_one(self) -> None:
        with pytest.raises(ValueError, match="sum to 1.0"):
            WeightedMatchScorer(date_weight=0.5, description_weight=0.6)

    def test_score(self) -> None:
        account = uuid4()
        item = make_item(uuid4(), date(2024, 1, 10), "-75.00", "Misc")
        txn = make_txn(account, date(2024, 1, 8), "-75.00", "Misc")

        candidate = WeightedMatchScorer().score(item, txn)

        # 100 * (0.4 * 0.6 + 0.6 * 1.0)
        assert candidate.score == pytest.approx(84.0)
        assert candidate.confidence == 84
        assert candidate.breakdown.date_difference_days == 2
        assert candidate.statement_item_id == item.id
        assert candidate.transaction_id == txn.id

    def test_custom_weights(self) -> None:
        item = make_item(uuid4(), date(2024, 1, 10), "-75.00", "rent")
        txn = make_txn(uuid4(), date(2024, 1, 10), "-75.00", "payroll")

        candidate = WeightedMatchScorer(date_weight=1.0, description_weight=0.0).score(
            item, txn
        )

        assert candidate.score == pytest.approx(100.0)
