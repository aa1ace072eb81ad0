"""
Tests for mlm_distributor/distribution/calculator.py.

What we test
------------
Scenario A: empty baseline, one recommender, two new edges.
Scenario B: baseline below current scores, only deltas are paid.
Scenario C: a conflicted account is excluded from units and payouts but
            keeps its recommend rows.
Scenario D: no score change, nothing to pay.
Properties:
  - payouts are multiples of 1e-7 and never sum past the pool.
  - conflicted accounts contribute zero units.
  - a conflicted edge stored in the baseline pays only its later increase.
  - score drops contribute zero units and emit no delta.
  - identical inputs give identical plans.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from mlm_distributor.distribution.calculator import calculate_distribution, unit_contribution
from mlm_distributor.models.graph import RecommendationGraph, RecommendedAccount, Recommender

_TS = datetime(2026, 10, 19, 6, 0, 0, tzinfo=timezone.utc)
_POOL = Decimal("100")


# ── Helpers ───────────────────────────────────────────────────────────────────

def _graph(edges: dict[str, list[tuple[str, int]]], conflicts=None) -> RecommendationGraph:
    recommenders = [
        Recommender(
            account_id=rec,
            recommended=[RecommendedAccount(account_id=a, score=s) for a, s in targets],
        )
        for rec, targets in edges.items()
    ]
    return RecommendationGraph(
        recommenders=recommenders,
        conflicts=conflicts or {},
        total_recommended_score=sum(s for t in edges.values() for _, s in t),
    )


def _calc(baseline, graph, pool=_POOL):
    return calculate_distribution(baseline, pool, graph, created_at=_TS)


# ── Scenarios ─────────────────────────────────────────────────────────────────

class TestScenarios:
    def test_scenario_a_empty_baseline(self):
        graph = _graph({"GREC1": [("GUSER1", 10), ("GUSER2", 20)]})
        result = _calc({}, graph)

        assert result.amount_per_unit == pytest.approx(Decimal(100) / Decimal(30))
        assert len(result.distributes) == 1
        assert result.distributes[0].recommender == "GREC1"
        assert result.distributes[0].asset == "LABR"
        assert result.distributes[0].amount == Decimal("100.0000000")
        assert result.recommended_new_count == 2
        assert result.recommended_level_up_count == 2
        assert [d.delta for d in result.recommend_deltas] == [10, 20]
        assert result.created_at == _TS

    def test_scenario_b_deltas_against_baseline(self):
        graph = _graph({"GREC1": [("GUSER1", 10), ("GUSER2", 20)]})
        baseline = {"GREC1": {"GUSER1": 5, "GUSER2": 10}}
        result = _calc(baseline, graph)

        assert result.amount_per_unit == pytest.approx(Decimal(100) / Decimal(15))
        assert result.distributes[0].amount == Decimal("100.0000000")
        assert result.recommended_new_count == 0
        assert result.recommended_level_up_count == 2
        assert [d.delta for d in result.recommend_deltas] == [5, 10]

    def test_scenario_c_conflict_excluded(self):
        graph = _graph(
            {
                "GREC1": [("GUSER1", 10), ("GUSER2", 20)],
                "GREC2": [("GUSER1", 10)],
            },
            conflicts={"GUSER1": ["GREC1", "GREC2"]},
        )
        result = _calc({}, graph)

        assert result.amount_per_unit == Decimal(100) / Decimal(20)
        assert [(d.recommender, d.amount) for d in result.distributes] == [
            ("GREC1", Decimal("100.0000000"))
        ]
        assert [(c.recommender, c.recommended) for c in result.conflicts] == [
            ("GREC1", "GUSER1"),
            ("GREC2", "GUSER1"),
        ]
        assert [(r.recommender, r.recommended, r.recommended_mtlap) for r in result.recommends] == [
            ("GREC1", "GUSER1", 10),
            ("GREC1", "GUSER2", 20),
            ("GREC2", "GUSER1", 10),
        ]
        assert all(d.recommended != "GUSER1" for d in result.recommend_deltas)
        assert result.recommended_new_count == 1

    def test_scenario_d_no_change(self):
        graph = _graph({"GREC1": [("GUSER1", 10), ("GUSER2", 20)]})
        baseline = {"GREC1": {"GUSER1": 10, "GUSER2": 20}}
        result = _calc(baseline, graph)

        assert result.amount_per_unit == Decimal(0)
        assert result.distributes == []
        assert result.recommend_deltas == []
        assert result.recommended_level_up_count == 0
        assert len(result.recommends) == 2


# ── Properties ────────────────────────────────────────────────────────────────

class TestProperties:
    @pytest.mark.parametrize(
        "pool, scores",
        [
            (Decimal("100"), [1, 1, 1]),
            (Decimal("0.0000001"), [3, 5, 7]),
            (Decimal("1234.5678901"), [17, 4, 99, 1000]),
            (Decimal("7"), [3, 3, 3, 3, 3, 3, 3]),
        ],
    )
    def test_payouts_truncated_and_bounded(self, pool, scores):
        graph = _graph({f"GREC{i}": [(f"GUSER{i}", s)] for i, s in enumerate(scores)})
        result = _calc({}, graph, pool=pool)

        quantum = Decimal("0.0000001")
        for d in result.distributes:
            assert d.amount > 0
            assert d.amount == d.amount.quantize(quantum)
        assert result.total_distributed <= pool

    def test_equal_thirds_truncate(self):
        graph = _graph({f"GREC{i}": [(f"GUSER{i}", 1)] for i in range(3)})
        result = _calc({}, graph)

        assert [d.amount for d in result.distributes] == [Decimal("33.3333333")] * 3
        assert result.total_distributed == Decimal("99.9999999")

    def test_conflicted_account_contributes_nothing(self):
        clean = _graph({"GREC1": [("GUSER2", 20)]})
        with_conflict = _graph(
            {"GREC1": [("GUSER1", 1000), ("GUSER2", 20)], "GREC2": [("GUSER1", 1000)]},
            conflicts={"GUSER1": ["GREC1", "GREC2"]},
        )
        assert _calc({}, clean).distributes == _calc({}, with_conflict).distributes

    def test_cleared_conflict_pays_increase_only(self):
        conflicted = _graph(
            {"GREC1": [("GUSER1", 10)], "GREC2": [("GUSER1", 10)]},
            conflicts={"GUSER1": ["GREC1", "GREC2"]},
        )
        first = _calc({}, conflicted)
        assert first.distributes == []

        baseline: dict[str, dict[str, int]] = {}
        for row in first.recommends:
            baseline.setdefault(row.recommender, {})[row.recommended] = row.recommended_mtlap

        cleared = _graph({"GREC1": [("GUSER1", 14)]})
        second = _calc(baseline, cleared)

        assert second.recommended_new_count == 0
        assert [(d.recommended, d.delta) for d in second.recommend_deltas] == [("GUSER1", 4)]
        assert second.distributes[0].amount == _POOL

    def test_score_drop_contributes_zero(self):
        graph = _graph({"GREC1": [("GUSER1", 10)], "GREC2": [("GUSER2", 10)]})
        baseline = {"GREC1": {"GUSER1": 20}}
        result = _calc(baseline, graph)

        assert [d.recommender for d in result.distributes] == ["GREC2"]
        assert [d.recommended for d in result.recommend_deltas] == ["GUSER2"]
        assert result.recommended_new_count == 1
        assert result.recommended_level_up_count == 1

    def test_zero_payout_recommenders_omitted(self):
        graph = _graph({"GREC1": [("GUSER1", 1)], "GREC2": [("GUSER2", 10_000_000_000)]})
        result = _calc({}, graph, pool=Decimal("1"))

        assert [d.recommender for d in result.distributes] == ["GREC2"]

    def test_idempotent(self):
        graph = _graph(
            {"GREC1": [("GUSER1", 10), ("GUSER2", 20)], "GREC2": [("GUSER3", 7)]},
        )
        baseline = {"GREC1": {"GUSER1": 4}}
        first = _calc(baseline, graph)
        second = _calc(baseline, graph)

        assert first == second

    def test_empty_graph(self):
        result = _calc({}, RecommendationGraph())
        assert result.amount_per_unit == Decimal(0)
        assert result.distributes == []
        assert result.amount == _POOL


class TestUnitContribution:
    def test_new_edge_counts_full_score(self):
        assert unit_contribution({}, "GREC1", RecommendedAccount(account_id="GU", score=8)) == 8

    def test_existing_edge_counts_positive_delta(self):
        baseline = {"GREC1": {"GU": 5}}
        assert unit_contribution(baseline, "GREC1", RecommendedAccount(account_id="GU", score=8)) == 3
        assert unit_contribution(baseline, "GREC1", RecommendedAccount(account_id="GU", score=2)) == 0
