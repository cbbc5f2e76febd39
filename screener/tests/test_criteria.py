from __future__ import annotations

import pytest

from screener.criteria import (
    FALLBACK_RATIONALE,
    MISSING_RATIONALE,
    SCREENING_CRITERIA,
    Criterion,
    compute_weighted_score,
    fallback_criteria_scores,
    normalize_criteria_scores,
)
from screener.flags import FLAG_CATALOG, flags_by_polarity, normalize_flags


def _uniform(v: int, criteria=SCREENING_CRITERIA) -> list[dict]:
    return [{"key": c.key, "score": v} for c in criteria]


class TestWeightedScore:
    @pytest.mark.parametrize("v", [1, 2, 3, 4, 5])
    def test_uniform_score_catalog_weights(self, v):
        assert compute_weighted_score(_uniform(v)) == round(v / 5 * 100)

    @pytest.mark.parametrize("weights", [(1.0,), (0.3, 2.7), (5.0, 1.1, 0.2, 9.9)])
    @pytest.mark.parametrize("v", [1, 3, 5])
    def test_uniform_score_any_weights(self, weights, v):
        criteria = tuple(Criterion(f"c{i}", f"C{i}", w, "", {}) for i, w in enumerate(weights))
        assert compute_weighted_score(_uniform(v, criteria), criteria) == round(v / 5 * 100)

    def test_weights_applied(self):
        criteria = (Criterion("a", "A", 3.0, "", {}), Criterion("b", "B", 1.0, "", {}))
        # (3*5 + 1*1) / 4 = 4.0
        assert compute_weighted_score([{"key": "a", "score": 5}, {"key": "b", "score": 1}], criteria) == 80

    def test_missing_scores_count_as_neutral(self):
        assert compute_weighted_score([]) == 60

    def test_fallback_set_scores_sixty(self):
        assert compute_weighted_score(fallback_criteria_scores()) == 60


class TestNormalizeCriteriaScores:
    def test_fallback_set(self):
        scores = fallback_criteria_scores()
        assert [s["key"] for s in scores] == [c.key for c in SCREENING_CRITERIA]
        assert {s["score"] for s in scores} == {3}
        assert {s["rationale"] for s in scores} == {FALLBACK_RATIONALE}

    def test_accepts_wrapped_and_bare_lists(self):
        entries = [{"key": c.key, "score": 5, "rationale": "great"} for c in SCREENING_CRITERIA]
        assert normalize_criteria_scores({"scores": entries}) == normalize_criteria_scores(entries)

    def test_catalog_order_and_authoritative_weight(self):
        entries = [
            {"key": "valuation_fairness", "score": 2, "weight": 99, "criterion": "Wrong"},
            {"key": "market_opportunity", "score": 4},
        ]
        result = normalize_criteria_scores(entries)
        assert len(result) == len(SCREENING_CRITERIA)
        assert result[0]["key"] == "market_opportunity"
        assert result[0]["score"] == 4
        valuation = next(s for s in result if s["key"] == "valuation_fairness")
        assert valuation["weight"] == next(c.weight for c in SCREENING_CRITERIA if c.key == "valuation_fairness")
        assert valuation["criterion"] != "Wrong"

    def test_clamps_and_rounds(self):
        result = normalize_criteria_scores([
            {"key": "market_opportunity", "score": 9},
            {"key": "team_quality", "score": -2},
            {"key": "traction", "score": "3.6"},
        ])
        by_key = {s["key"]: s["score"] for s in result}
        assert by_key["market_opportunity"] == 5
        assert by_key["team_quality"] == 1
        assert by_key["traction"] == 4

    def test_missing_or_invalid_become_neutral(self):
        result = normalize_criteria_scores([{"key": "traction", "score": "high"}])
        assert all(s["score"] == 3 for s in result)
        assert all(s["rationale"] == MISSING_RATIONALE for s in result)

    @pytest.mark.parametrize("bad", [float("nan"), float("inf"), "-Infinity"])
    def test_non_finite_score_neutralises_only_that_entry(self, bad):
        raw = _uniform(4)
        raw[0]["score"] = bad
        result = normalize_criteria_scores(raw)
        assert result[0]["score"] == 3
        assert result[0]["rationale"] == MISSING_RATIONALE
        assert [s["score"] for s in result[1:]] == [4] * (len(SCREENING_CRITERIA) - 1)

    def test_rejects_non_list(self):
        with pytest.raises(ValueError):
            normalize_criteria_scores("scores")


class TestFlags:
    def test_catalog_polarities(self):
        green = flags_by_polarity("green")
        red = flags_by_polarity("red")
        assert green and red
        assert len(green) + len(red) == len(FLAG_CATALOG)

    def test_normalize_drops_malformed_entries(self):
        result = normalize_flags({
            "green_flags": [{"flag": "Repeat founder", "category": "Team"}, {"category": "Team"}, "oops"],
            "red_flags": None,
        })
        assert result == {
            "green_flags": [{"flag": "Repeat founder", "category": "Team", "evidence": ""}],
            "red_flags": [],
        }

    def test_normalize_rejects_non_object(self):
        with pytest.raises(ValueError):
            normalize_flags([])
