"""
Model Performance Evaluator

Runs paired old-vs-new model tests over a fixed set of real-world drawing
imperfections (hand shake, hesitation, imperfect geometry, correction marks,
pressure variability) and derives improvement, user-satisfaction and
robustness figures for the deployment gate.

Significance:
    The per-scenario `significance` is a heuristic, not a p-value. It uses

        t = |mean_new - mean_old| / sqrt((var_old + var_new) / n)

    with population variances and a fixed critical value of 2.0, mapping
    t > 2 to 0.95 and scaling linearly below. A Welch t-test p-value from
    scipy is attached as `reference_p_value` for audit.

    The overall comparison significance applies the same heuristic to the
    per-stroke scores pooled across every scenario.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from scipy import stats

from .config import PipelineConfig
from .errors import PredictionFailedError
from .normalizer import normalize
from .progress import ProgressTracker
from .schema import ScenarioKind
from .simulation.scenarios import ScenarioStroke, generate_scenario_strokes
from .training.trainer import TrainedModelArtifact

logger = logging.getLogger(__name__)

CRITICAL_VALUE = 2.0
MAX_CONFIDENCE = 0.95
MIN_STD_ERROR = 1e-12            # below this the samples are treated as constant
ROBUST_IMPROVEMENT = 0.1          # a scenario counts as robust above this
FRUSTRATION_NOTE_THRESHOLD = 0.15


# =============================================================================
# STATISTICS
# =============================================================================

def improvement_percentage(old: float, new: float) -> float:
    """(new - old) / old * 100, or 0 when old is 0."""
    if old == 0:
        return 0.0
    return (new - old) / old * 100.0


def significance(sample_old: Sequence[float], sample_new: Sequence[float]) -> float:
    """
    Heuristic confidence in [0, 0.95] that the two paired samples differ.

    Returns 0 when the samples are empty, of unequal size, or have a
    (numerically) zero standard error.
    """
    if len(sample_old) != len(sample_new) or len(sample_old) == 0:
        return 0.0
    a = np.asarray(sample_old, dtype=np.float64)
    b = np.asarray(sample_new, dtype=np.float64)
    std_error = np.sqrt((a.var() + b.var()) / len(a))
    if std_error < MIN_STD_ERROR:
        return 0.0
    t = abs(b.mean() - a.mean()) / std_error
    if t > CRITICAL_VALUE:
        return MAX_CONFIDENCE
    return float(t / CRITICAL_VALUE * MAX_CONFIDENCE)


def reference_p_value(sample_old: Sequence[float], sample_new: Sequence[float]) -> Optional[float]:
    """Welch's t-test p-value, or None when it is undefined."""
    if len(sample_old) < 2 or len(sample_new) < 2:
        return None
    result = stats.ttest_ind(sample_new, sample_old, equal_var=False)
    p = float(result.pvalue)
    return None if np.isnan(p) else p


# =============================================================================
# MODEL PROXIES
# =============================================================================

class ModelProxy:
    """Scores a model on one test stroke: accuracy signal in [0, 1]."""

    name = "model"

    def score(self, test: ScenarioStroke) -> float:
        raise NotImplementedError

    def score_many(self, tests: Sequence[ScenarioStroke]) -> List[float]:
        return [self.score(t) for t in tests]


class ClassifierProxy(ModelProxy):
    """
    Wraps a trained artifact. Test strokes are normalized the way training
    samples are; a stroke scores the predicted-class probability when the
    prediction is correct, else 0.
    """

    def __init__(self, artifact: TrainedModelArtifact, name: str = "classifier"):
        self.artifact = artifact
        self.name = name

    def score_many(self, tests: Sequence[ScenarioStroke]) -> List[float]:
        if not tests:
            return []
        strokes = [normalize(t.stroke, self.artifact.resample_points) for t in tests]
        labels, confidence = self.artifact.predict_with_confidence(strokes)
        return [
            float(c) if label == t.expected_label.value else 0.0
            for label, c, t in zip(labels, confidence, tests)
        ]

    def score(self, test: ScenarioStroke) -> float:
        return self.score_many([test])[0]


# Per-scenario accuracy penalties of the simulated models
BASELINE_PENALTIES = {
    ScenarioKind.SHAKY_LINES: 0.4,
    ScenarioKind.HESITANT_STROKES: 0.35,
    ScenarioKind.IMPERFECT_CIRCLES: 0.3,
    ScenarioKind.CORRECTIVE_OVERDRAWS: 0.45,
    ScenarioKind.VARIABLE_PRESSURE: 0.2,
}

CANDIDATE_PENALTIES = {
    ScenarioKind.SHAKY_LINES: 0.05,
    ScenarioKind.HESITANT_STROKES: 0.08,
    ScenarioKind.IMPERFECT_CIRCLES: 0.1,
    ScenarioKind.CORRECTIVE_OVERDRAWS: 0.03,
    ScenarioKind.VARIABLE_PRESSURE: 0.02,
}


class SimulatedModelProxy(ModelProxy):
    """
    Stand-in model: base accuracy minus a per-scenario penalty, plus uniform
    noise, floored.

    The noise for each stroke is drawn from an RNG seeded by
    (seed, scenario, variation), so scores do not depend on evaluation order.
    """

    def __init__(
        self,
        base_accuracy: float,
        penalties: Dict[ScenarioKind, float],
        noise: float,
        floor: float,
        seed: Optional[int] = None,
        name: str = "simulated"
    ):
        self.base_accuracy = base_accuracy
        self.penalties = penalties
        self.noise = noise
        self.floor = floor
        self.seed = 0 if seed is None else int(seed)
        self.name = name

    @classmethod
    def baseline(cls, seed: Optional[int] = None) -> 'SimulatedModelProxy':
        """Brittle model trained on perfect synthetic shapes."""
        return cls(0.8, BASELINE_PENALTIES, noise=0.1, floor=0.1, seed=seed, name="baseline")

    @classmethod
    def candidate(cls, seed: Optional[int] = None) -> 'SimulatedModelProxy':
        """Model trained on real, imperfect drawings."""
        return cls(0.85, CANDIDATE_PENALTIES, noise=0.05, floor=0.3,
                   seed=None if seed is None else seed + 1, name="candidate")

    def score(self, test: ScenarioStroke) -> float:
        index = list(ScenarioKind).index(test.scenario)
        rng = np.random.default_rng([self.seed, index, test.variation])
        jitter = rng.uniform(-self.noise, self.noise)
        return max(self.floor, self.base_accuracy - self.penalties[test.scenario] + jitter)


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class ScenarioResult:
    """Paired old/new accuracy samples for one scenario and derived figures."""
    scenario: ScenarioKind
    old_samples: List[float]
    new_samples: List[float]
    old_accuracy: float
    new_accuracy: float
    improvement: float
    improvement_pct: float
    significance: float
    reference_p_value: Optional[float]
    sample_size: int
    detailed_analysis: str = ""

    @property
    def name(self) -> str:
        return self.scenario.display_name

    @classmethod
    def from_samples(
        cls,
        scenario: ScenarioKind,
        old_samples: Sequence[float],
        new_samples: Sequence[float]
    ) -> 'ScenarioResult':
        old_samples, new_samples = list(old_samples), list(new_samples)
        old_acc = float(np.mean(old_samples)) if old_samples else 0.0
        new_acc = float(np.mean(new_samples)) if new_samples else 0.0
        result = cls(
            scenario=ScenarioKind(scenario),
            old_samples=old_samples,
            new_samples=new_samples,
            old_accuracy=old_acc,
            new_accuracy=new_acc,
            improvement=new_acc - old_acc,
            improvement_pct=improvement_percentage(old_acc, new_acc),
            significance=significance(old_samples, new_samples),
            reference_p_value=reference_p_value(old_samples, new_samples),
            sample_size=len(old_samples)
        )
        result.detailed_analysis = detailed_analysis(result)
        return result

    def to_dict(self) -> Dict[str, Any]:
        return {
            'scenario': self.scenario.value,
            'name': self.name,
            'old_accuracy': self.old_accuracy,
            'new_accuracy': self.new_accuracy,
            'improvement': self.improvement,
            'improvement_pct': self.improvement_pct,
            'significance': self.significance,
            'reference_p_value': self.reference_p_value,
            'sample_size': self.sample_size,
        }


def detailed_analysis(result: ScenarioResult) -> str:
    """Human-readable breakdown of one scenario."""
    old_std = float(np.std(result.old_samples)) if result.old_samples else 0.0
    new_std = float(np.std(result.new_samples)) if result.new_samples else 0.0
    p = result.reference_p_value
    return "\n".join([
        f"Scenario: {result.name}",
        "",
        "Old model:",
        f"  Average accuracy: {result.old_accuracy * 100:.1f}%",
        f"  Standard deviation: {old_std:.2f}",
        "",
        "New model:",
        f"  Average accuracy: {result.new_accuracy * 100:.1f}%",
        f"  Standard deviation: {new_std:.2f}",
        f"  Improvement: {result.improvement_pct:+.1f}%",
        "",
        f"Heuristic significance: {result.significance:.2f}"
        + (f" (Welch p = {p:.3g})" if p is not None else ""),
    ])


@dataclass
class PerformanceComparison:
    """Aggregate old-vs-new comparison across all scenarios."""
    old_accuracy: float
    new_accuracy: float
    accuracy_improvement: float
    accuracy_improvement_pct: float
    user_satisfaction_improvement: float
    robustness_improvement: float
    significance: float
    scenario_results: List[ScenarioResult] = field(default_factory=list)
    summary: List[str] = field(default_factory=list)

    @property
    def has_regression(self) -> bool:
        return any(r.improvement < 0 for r in self.scenario_results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'old_accuracy': self.old_accuracy,
            'new_accuracy': self.new_accuracy,
            'accuracy_improvement': self.accuracy_improvement,
            'accuracy_improvement_pct': self.accuracy_improvement_pct,
            'user_satisfaction_improvement': self.user_satisfaction_improvement,
            'robustness_improvement': self.robustness_improvement,
            'significance': self.significance,
            'scenarios': [r.to_dict() for r in self.scenario_results],
            'summary': self.summary,
        }


def user_satisfaction_improvement(results: Sequence[ScenarioResult]) -> float:
    """
    Frustration reduction, frustration = max(0, 1 - accuracy).

    Returns min(1, 2 * mean reduction); 0 with no results.
    """
    if not results:
        return 0.0
    reductions = [max(0.0, 1.0 - r.old_accuracy) - max(0.0, 1.0 - r.new_accuracy)
                  for r in results]
    return min(1.0, float(np.mean(reductions)) * 2.0)


def robustness_improvement(results: Sequence[ScenarioResult]) -> float:
    """Mean per-scenario improvement."""
    if not results:
        return 0.0
    return float(np.mean([r.improvement for r in results]))


def summary_lines(old_accuracy: float, new_accuracy: float,
                  results: Sequence[ScenarioResult]) -> List[str]:
    lines = [f"Overall accuracy changed by "
             f"{improvement_percentage(old_accuracy, new_accuracy):+.1f}%"]
    if results:
        best = max(results, key=lambda r: r.improvement)
        lines.append(f"Biggest improvement: {best.name} ({best.improvement_pct:+.1f}%)")
        robust = sum(1 for r in results if r.improvement > ROBUST_IMPROVEMENT)
        lines.append(f"Robust across {robust}/{len(results)} real-world scenarios")
        if robustness_improvement(results) > FRUSTRATION_NOTE_THRESHOLD:
            lines.append("Significantly reduced user frustration with imperfect drawings")
        significant = sum(1 for r in results if r.significance >= MAX_CONFIDENCE)
        lines.append(f"{significant}/{len(results)} results statistically significant")
    return lines


# =============================================================================
# EVALUATOR
# =============================================================================

class PerformanceEvaluator:
    """
    Compares a baseline and a candidate model over the imperfection scenarios.

    Args:
        old_model: Baseline (production) model proxy
        new_model: Candidate model proxy
        config: Supplies scenario_sample_size and seed
        scenarios: Subset of scenarios to run (all by default)
    """

    def __init__(
        self,
        old_model: ModelProxy,
        new_model: ModelProxy,
        config: Optional[PipelineConfig] = None,
        scenarios: Optional[Sequence[ScenarioKind]] = None
    ):
        self.old_model = old_model
        self.new_model = new_model
        self.config = config or PipelineConfig()
        self.scenarios = list(scenarios) if scenarios is not None else list(ScenarioKind)
        self.tracker = ProgressTracker()

    @property
    def progress(self) -> float:
        return self.tracker.progress

    @property
    def current_step(self) -> str:
        return self.tracker.step

    def evaluate(self, scenario: ScenarioKind) -> ScenarioResult:
        """Score both models on the scenario's test strokes."""
        scenario = ScenarioKind(scenario)
        tests = generate_scenario_strokes(
            scenario, self.config.scenario_sample_size, self.config.seed
        )
        try:
            old_scores = self.old_model.score_many(tests)
            new_scores = self.new_model.score_many(tests)
        except PredictionFailedError:
            raise
        except Exception as e:
            raise PredictionFailedError(f"Scoring {scenario.value} failed: {e}") from e
        result = ScenarioResult.from_samples(scenario, old_scores, new_scores)
        logger.info("%s: %.1f%% -> %.1f%% (%+.1f%%, significance %.2f)",
                    result.name, result.old_accuracy * 100, result.new_accuracy * 100,
                    result.improvement_pct, result.significance)
        return result

    async def _evaluate_async(self, scenario: ScenarioKind, done: List[int]) -> ScenarioResult:
        result = await asyncio.to_thread(self.evaluate, scenario)
        done.append(1)
        self.tracker.update(len(done) / len(self.scenarios),
                            f"Evaluated {result.name}")
        return result

    async def compare(self) -> PerformanceComparison:
        """Evaluate every scenario concurrently, then aggregate."""
        self.tracker.reset("Evaluating scenarios")
        done: List[int] = []
        results = list(await asyncio.gather(*[
            self._evaluate_async(s, done) for s in self.scenarios
        ]))
        return self.aggregate(results)

    @staticmethod
    def aggregate(results: Sequence[ScenarioResult]) -> PerformanceComparison:
        results = list(results)
        old_acc = float(np.mean([r.old_accuracy for r in results])) if results else 0.0
        new_acc = float(np.mean([r.new_accuracy for r in results])) if results else 0.0
        return PerformanceComparison(
            old_accuracy=old_acc,
            new_accuracy=new_acc,
            accuracy_improvement=new_acc - old_acc,
            accuracy_improvement_pct=improvement_percentage(old_acc, new_acc),
            user_satisfaction_improvement=user_satisfaction_improvement(results),
            robustness_improvement=robustness_improvement(results),
            significance=significance(
                [s for r in results for s in r.old_samples],
                [s for r in results for s in r.new_samples]
            ),
            scenario_results=results,
            summary=summary_lines(old_acc, new_acc, results)
        )
