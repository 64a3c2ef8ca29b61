"""
Tests for scenario statistics and the old vs new model comparison.
"""

import asyncio

import numpy as np
import pytest

from strokeml.config import PipelineConfig
from strokeml.errors import PredictionFailedError
from strokeml.evaluator import (
    ClassifierProxy, ModelProxy, PerformanceEvaluator, ScenarioResult,
    SimulatedModelProxy, improvement_percentage, reference_p_value,
    significance, user_satisfaction_improvement
)
from strokeml.schema import ScenarioKind
from strokeml.simulation import generate_scenario_strokes


def spread(mean, n=50, delta=0.05):
    return [mean + (delta if i % 2 else -delta) for i in range(n)]


class FixedLabelArtifact:
    """Predicts the same label for every stroke."""

    resample_points = 100

    def __init__(self, label, confidence=0.9):
        self.label = label
        self.confidence = confidence

    def predict_with_confidence(self, strokes):
        return [self.label] * len(strokes), np.full(len(strokes), self.confidence)


class BrokenProxy(ModelProxy):
    def score(self, test):
        raise KeyError("missing scorer")


def test_improvement_percentage():
    assert improvement_percentage(0.60, 0.78) == pytest.approx(30.0)
    assert improvement_percentage(0.0, 0.5) == 0.0
    assert improvement_percentage(0.8, 0.4) == pytest.approx(-50.0)


def test_scenario_result_matches_worked_example():
    result = ScenarioResult.from_samples(ScenarioKind.SHAKY_LINES, spread(0.60), spread(0.78))

    assert result.old_accuracy == pytest.approx(0.60)
    assert result.new_accuracy == pytest.approx(0.78)
    assert result.improvement == pytest.approx(0.18)
    assert result.improvement_pct == pytest.approx(30.0)
    assert result.sample_size == 50
    assert result.significance == pytest.approx(0.95)
    assert result.reference_p_value < 0.001
    assert "Shaky Lines" in result.detailed_analysis
    assert result.to_dict()['name'] == "Shaky Lines"


def test_swapping_models_negates_improvement():
    old, new = spread(0.6), spread(0.7)
    forward = ScenarioResult.from_samples(ScenarioKind.IMPERFECT_CIRCLES, old, new)
    backward = ScenarioResult.from_samples(ScenarioKind.IMPERFECT_CIRCLES, new, old)

    assert backward.improvement == pytest.approx(-forward.improvement)
    assert forward.improvement_pct > 0 > backward.improvement_pct
    assert backward.significance == pytest.approx(forward.significance)


def test_significance_edge_cases():
    assert significance([], []) == 0.0
    assert significance([0.5, 0.6], [0.5]) == 0.0
    # Zero combined variance
    assert significance([0.5] * 10, [0.9] * 10) == 0.0
    assert reference_p_value([0.5], [0.9]) is None


def test_significance_scales_below_critical_value():
    old = [0.0, 1.0] * 8
    new = [0.1, 1.1] * 8
    # var 0.25 each, n 16: std error 0.177, t = 0.566
    expected = (0.1 / np.sqrt(0.5 / 16)) / 2.0 * 0.95
    assert significance(old, new) == pytest.approx(expected)
    assert significance(old, new) < 0.95


def test_user_satisfaction_is_capped():
    results = [ScenarioResult.from_samples(ScenarioKind.SHAKY_LINES, spread(0.2), spread(0.95))]
    assert user_satisfaction_improvement(results) == 1.0
    assert user_satisfaction_improvement([]) == 0.0


def test_simulated_proxies_are_order_independent():
    tests = generate_scenario_strokes(ScenarioKind.HESITANT_STROKES, count=10, seed=1)
    proxy = SimulatedModelProxy.baseline(seed=1)
    forward = proxy.score_many(tests)
    backward = proxy.score_many(list(reversed(tests)))
    assert forward == list(reversed(backward))
    assert all(0.1 <= s <= 1.0 for s in forward)


def test_classifier_proxy_scores_correct_predictions_only():
    tests = generate_scenario_strokes(ScenarioKind.SHAKY_LINES, count=4)
    assert ClassifierProxy(FixedLabelArtifact('line')).score_many(tests) == [0.9] * 4
    assert ClassifierProxy(FixedLabelArtifact('circle')).score_many(tests) == [0.0] * 4
    assert ClassifierProxy(FixedLabelArtifact('line')).score(tests[0]) == 0.9


def test_compare_with_simulated_models():
    config = PipelineConfig(seed=7, scenario_sample_size=30)
    evaluator = PerformanceEvaluator(
        SimulatedModelProxy.baseline(seed=7), SimulatedModelProxy.candidate(seed=7), config
    )
    comparison = asyncio.run(evaluator.compare())

    assert [r.scenario for r in comparison.scenario_results] == list(ScenarioKind)
    assert evaluator.progress == 1.0
    assert comparison.accuracy_improvement > 0.25
    assert comparison.robustness_improvement == pytest.approx(
        np.mean([r.improvement for r in comparison.scenario_results]))
    assert comparison.significance == pytest.approx(0.95)
    assert not comparison.has_regression
    assert any("Robust across 5/5" in line for line in comparison.summary)


def test_compare_is_reproducible():
    def run():
        config = PipelineConfig(seed=3, scenario_sample_size=10)
        evaluator = PerformanceEvaluator(SimulatedModelProxy.baseline(3),
                                         SimulatedModelProxy.candidate(3), config)
        return asyncio.run(evaluator.compare()).to_dict()

    assert run() == run()


def test_scoring_errors_become_prediction_failures():
    evaluator = PerformanceEvaluator(BrokenProxy(), SimulatedModelProxy.candidate(),
                                     PipelineConfig(scenario_sample_size=5),
                                     scenarios=[ScenarioKind.SHAKY_LINES])
    with pytest.raises(PredictionFailedError):
        evaluator.evaluate(ScenarioKind.SHAKY_LINES)


def test_aggregate_without_results():
    comparison = PerformanceEvaluator.aggregate([])
    assert comparison.significance == 0.0
    assert comparison.user_satisfaction_improvement == 0.0
    assert comparison.scenario_results == []


def test_near_constant_samples_are_not_significant():
    assert significance([0.7] * 50, [0.7 + 1e-9] * 50) == 0.0


def test_overall_significance_pools_every_stroke():
    # One noisy scenario must not veto a clear overall difference
    noisy = ScenarioResult.from_samples(ScenarioKind.SHAKY_LINES,
                                        [0.0, 1.0] * 25, [0.1, 1.0] * 25)
    clear = [
        ScenarioResult.from_samples(kind, spread(0.5), spread(0.9))
        for kind in list(ScenarioKind)[1:]
    ]
    results = [noisy] + clear
    comparison = PerformanceEvaluator.aggregate(results)

    assert noisy.significance < 0.95
    pooled_old = [s for r in results for s in r.old_samples]
    pooled_new = [s for r in results for s in r.new_samples]
    assert comparison.significance == pytest.approx(significance(pooled_old, pooled_new))
    assert comparison.significance == pytest.approx(0.95)
