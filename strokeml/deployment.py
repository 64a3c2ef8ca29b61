"""
Integration / Deployment Orchestrator

Turns a training result and an old-vs-new performance comparison into a
go / no-go DeploymentRecommendation, promotes the candidate model, monitors
it in production and rolls it back when it misbehaves.

Deployment gate (all required):
    accuracy improvement     >= required_accuracy_improvement
    satisfaction improvement >= required_user_satisfaction_improvement
    significance             >= statistical_confidence_required
    robustness improvement   >  0

The gate fails closed: a missing comparison or training result yields a
do-not-deploy recommendation instead of an exception.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from .config import PipelineConfig
from .errors import MissingTestResultsError
from .evaluator import PerformanceComparison
from .monitoring import (
    CancellationToken, MonitoringOutcome, MonitoringResult, ProductionMonitor, Probe
)
from .progress import ProgressTracker
from .schema import DeploymentStatus, utc_now
from .storage import RecordStore
from .training.orchestrator import TrainingRunResult

logger = logging.getLogger(__name__)

MARGINAL_IMPROVEMENT = 0.2
HIGH_CONFIDENCE = 0.99


# =============================================================================
# RISK MODEL
# =============================================================================

class RiskLevel(IntEnum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3

    @property
    def label(self) -> str:
        return self.name.lower()


class RiskType(str, Enum):
    MARGINAL_IMPROVEMENT = "marginal_improvement"
    STATISTICAL_UNCERTAINTY = "statistical_uncertainty"
    ADOPTION_RISK = "adoption_risk"
    REGRESSION_RISK = "regression_risk"


class RollbackTrigger(str, Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"


@dataclass
class Risk:
    type: RiskType
    severity: RiskLevel
    description: str
    mitigation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type.value,
            'severity': self.severity.label,
            'description': self.description,
            'mitigation': self.mitigation,
        }


ROLLBACK_CRITERIA = [
    "Accuracy drops below baseline by >5%",
    "User complaints increase by >20%",
    "App crash rate increases by >1%",
]

MITIGATION_STRATEGIES = [
    "Gradual rollout to 10% of users first",
    "Real-time performance monitoring",
    "User feedback collection and analysis",
    "Automated rollback triggers",
    "Round-the-clock monitoring for the first week",
]

ROLLBACK_PLAN = [
    "Automated triggers based on performance metrics",
    "Manual rollback capability within 5 minutes",
    "Preserve user data during rollback",
    "Immediate notification to development team",
    "Post-rollback analysis and improvement plan",
]

MONITORING_PLAN = [
    "Real-time accuracy monitoring",
    "User satisfaction surveys",
    "App crash rate tracking",
    "Response time monitoring",
    "Daily performance reports",
]

NEXT_STEPS_DEPLOYED = [
    "Monitor user feedback and performance metrics",
    "Continue real data collection for future retraining",
    "Review rollback log weekly",
]

NEXT_STEPS_HELD = [
    "Collect more real training samples",
    "Re-run evaluation with a larger scenario sample size",
    "Consider adjusting the classifier strategy",
]


@dataclass
class RiskAssessment:
    overall_risk: RiskLevel
    risks: List[Risk] = field(default_factory=list)
    rollback_criteria: List[str] = field(default_factory=lambda: list(ROLLBACK_CRITERIA))

    @property
    def mitigations(self) -> List[str]:
        return [r.mitigation for r in self.risks]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'overall_risk': self.overall_risk.label,
            'risks': [r.to_dict() for r in self.risks],
            'rollback_criteria': self.rollback_criteria,
        }


def assess_risks(comparison: PerformanceComparison, config: PipelineConfig) -> RiskAssessment:
    """Enumerate risks, most severe first; overall risk is the max severity."""
    risks = []
    if comparison.accuracy_improvement < MARGINAL_IMPROVEMENT:
        risks.append(Risk(
            RiskType.MARGINAL_IMPROVEMENT, RiskLevel.MEDIUM,
            "Improvement is measurable but not overwhelming",
            "Monitor user feedback closely in the first week"
        ))
    if comparison.significance < HIGH_CONFIDENCE:
        risks.append(Risk(
            RiskType.STATISTICAL_UNCERTAINTY, RiskLevel.LOW,
            "Statistical confidence could be higher",
            "Continue A/B testing with a larger sample size"
        ))
    if comparison.user_satisfaction_improvement < config.required_user_satisfaction_improvement:
        risks.append(Risk(
            RiskType.ADOPTION_RISK, RiskLevel.MEDIUM,
            "Users may not notice the improvement",
            "Roll out gradually and survey user satisfaction"
        ))
    regressed = [r.name for r in comparison.scenario_results if r.improvement < 0]
    if regressed:
        risks.append(Risk(
            RiskType.REGRESSION_RISK, RiskLevel.HIGH,
            f"New model is worse on: {', '.join(regressed)}",
            "Collect targeted samples for the regressed scenarios before rollout"
        ))

    risks.sort(key=lambda r: r.severity, reverse=True)
    overall = max((r.severity for r in risks), default=RiskLevel.LOW)
    return RiskAssessment(overall_risk=overall, risks=risks)


# =============================================================================
# RECORDS
# =============================================================================

@dataclass
class DeploymentRecommendation:
    should_deploy: bool
    confidence: float
    risk_assessment: RiskAssessment
    summary: str
    criteria: Dict[str, bool] = field(default_factory=dict)
    mitigation_strategies: List[str] = field(default_factory=lambda: list(MITIGATION_STRATEGIES))
    rollback_plan: List[str] = field(default_factory=lambda: list(ROLLBACK_PLAN))
    monitoring_plan: List[str] = field(default_factory=lambda: list(MONITORING_PLAN))
    created_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'should_deploy': self.should_deploy,
            'confidence': self.confidence,
            'criteria': self.criteria,
            'risk_assessment': self.risk_assessment.to_dict(),
            'mitigation_strategies': self.mitigation_strategies,
            'rollback_plan': self.rollback_plan,
            'monitoring_plan': self.monitoring_plan,
            'summary': self.summary,
            'created_at': self.created_at,
        }


@dataclass
class RollbackRecord:
    """Append-only audit entry for one rollback."""
    reason: str
    trigger: RollbackTrigger
    signals: Dict[str, Any] = field(default_factory=dict)
    rollback_time_hours: float = 0.0
    restored_model: Optional[str] = None
    timestamp: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp,
            'reason': self.reason,
            'trigger': self.trigger.value,
            'signals': self.signals,
            'rollback_time_hours': self.rollback_time_hours,
            'restored_model': self.restored_model,
        }


def gate_criteria(comparison: PerformanceComparison, config: PipelineConfig) -> Dict[str, bool]:
    """The four deployment criteria, each evaluated independently."""
    return {
        'accuracy': comparison.accuracy_improvement >= config.required_accuracy_improvement,
        'satisfaction': (comparison.user_satisfaction_improvement
                         >= config.required_user_satisfaction_improvement),
        'significance': comparison.significance >= config.statistical_confidence_required,
        'robustness': comparison.robustness_improvement > 0,
    }


def _deploy_summary(comparison: PerformanceComparison) -> str:
    return "\n".join([
        "RECOMMENDATION: DEPLOY TO PRODUCTION",
        "",
        "The retrained model meets every deployment criterion:",
        f"  - {comparison.accuracy_improvement * 100:.1f} point accuracy improvement "
        f"({comparison.accuracy_improvement_pct:+.1f}%)",
        f"  - {comparison.user_satisfaction_improvement * 100:.1f}% user satisfaction increase",
        f"  - {comparison.robustness_improvement * 100:.1f}% better robustness to real-world variation",
        "",
        "Deploy with monitoring enabled.",
    ])


def _hold_summary(criteria: Dict[str, bool]) -> str:
    failed = [name for name, ok in criteria.items() if not ok]
    return "\n".join([
        "RECOMMENDATION: DO NOT DEPLOY",
        "",
        f"Criteria not met: {', '.join(failed)}",
        "Collect more training data or adjust the model before retrying.",
    ])


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class DeploymentOrchestrator:
    """
    Recommendation, promotion, monitoring and rollback for candidate models.

    Args:
        config: Gate thresholds and monitoring settings
        records: Optional persistent store for recommendations and rollbacks
        active_model: Reference (e.g. artifact path) of the production model
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        records: Optional[RecordStore] = None,
        active_model: Optional[str] = None
    ):
        self.config = config or PipelineConfig()
        self.records = records
        self.active_model = active_model
        self.previous_model: Optional[str] = None
        self.status = DeploymentStatus.NOT_STARTED
        self.tracker = ProgressTracker()
        self.recommendation: Optional[DeploymentRecommendation] = None
        self.comparison: Optional[PerformanceComparison] = None
        self.rollback_log: List[RollbackRecord] = []
        self._deployed_at: Optional[float] = None

    @property
    def progress(self) -> float:
        return self.tracker.progress

    @property
    def current_step(self) -> str:
        return self.tracker.step

    # -------------------------------------------------------------------------
    # Recommendation
    # -------------------------------------------------------------------------

    def _evaluate_gate(
        self,
        training_result: Optional[TrainingRunResult],
        comparison: Optional[PerformanceComparison]
    ) -> DeploymentRecommendation:
        if training_result is None:
            raise MissingTestResultsError("Training must complete before deployment evaluation")
        if comparison is None or not comparison.scenario_results:
            raise MissingTestResultsError("Integration test results are missing")

        criteria = gate_criteria(comparison, self.config)
        should_deploy = all(criteria.values())
        return DeploymentRecommendation(
            should_deploy=should_deploy,
            confidence=sum(criteria.values()) / len(criteria),
            risk_assessment=assess_risks(comparison, self.config),
            summary=_deploy_summary(comparison) if should_deploy else _hold_summary(criteria),
            criteria=criteria
        )

    def recommend(
        self,
        training_result: Optional[TrainingRunResult],
        comparison: Optional[PerformanceComparison]
    ) -> DeploymentRecommendation:
        """
        Build a deployment recommendation. Never raises for missing inputs;
        returns a do-not-deploy recommendation explaining what is missing.
        """
        self.status = DeploymentStatus.IN_PROGRESS
        self.tracker.reset("Generating deployment recommendation")
        self.comparison = comparison
        try:
            recommendation = self._evaluate_gate(training_result, comparison)
            self.status = DeploymentStatus.COMPLETED
        except MissingTestResultsError as e:
            logger.warning("Deployment gate failed closed: %s", e)
            recommendation = DeploymentRecommendation(
                should_deploy=False,
                confidence=0.0,
                risk_assessment=RiskAssessment(overall_risk=RiskLevel.HIGH),
                summary=f"RECOMMENDATION: DO NOT DEPLOY\n\n{e}",
                criteria={}
            )
            self.status = DeploymentStatus.FAILED

        self.recommendation = recommendation
        if self.records is not None:
            self.records.save_recommendation(recommendation.to_dict())
        self.tracker.update(1.0, "Recommendation ready")
        logger.info("Deployment recommendation: %s (confidence %.2f, risk %s)",
                    "deploy" if recommendation.should_deploy else "hold",
                    recommendation.confidence, recommendation.risk_assessment.overall_risk.label)
        return recommendation

    # -------------------------------------------------------------------------
    # Deployment and rollback
    # -------------------------------------------------------------------------

    def deploy(self, candidate: str,
               recommendation: Optional[DeploymentRecommendation] = None) -> bool:
        """Promote `candidate` if the recommendation allows it."""
        recommendation = recommendation or self.recommendation
        if self.status is DeploymentStatus.ROLLED_BACK:
            logger.warning("Refusing to deploy %s: pipeline was rolled back", candidate)
            return False
        if recommendation is None or not recommendation.should_deploy:
            logger.info("Not deploying %s: recommendation is to hold", candidate)
            return False

        self.previous_model = self.active_model
        self.active_model = candidate
        self._deployed_at = time.monotonic()
        self.status = DeploymentStatus.DEPLOYED
        self.tracker.update(step=f"Deployed {candidate}")
        logger.info("Deployed %s (previous: %s)", candidate, self.previous_model)
        return True

    def rollback(
        self,
        reason: str,
        trigger: RollbackTrigger = RollbackTrigger.MANUAL,
        signals: Optional[Dict[str, Any]] = None
    ) -> Optional[RollbackRecord]:
        """
        Restore the previous model and append one RollbackRecord.

        A second rollback of the same deployment is ignored and returns None,
        as is a rollback when nothing has been deployed.
        """
        if self.status is DeploymentStatus.ROLLED_BACK:
            logger.info("Already rolled back; ignoring: %s", reason)
            return None
        if (self._deployed_at is None
                or self.status not in (DeploymentStatus.DEPLOYED, DeploymentStatus.MONITORING)):
            logger.warning("Nothing deployed to roll back; keeping %s: %s",
                           self.active_model, reason)
            return None

        elapsed = (time.monotonic() - self._deployed_at) / 3600.0

        record = RollbackRecord(
            reason=reason,
            trigger=RollbackTrigger(trigger),
            signals=dict(signals or {}),
            rollback_time_hours=elapsed,
            restored_model=self.previous_model
        )
        self.active_model = self.previous_model
        self.previous_model = None
        self.rollback_log.append(record)
        if self.records is not None:
            self.records.append_rollback(record.to_dict())

        self.status = DeploymentStatus.ROLLED_BACK
        self.tracker.update(step="Rollback completed")
        logger.warning("Rolled back (%s): %s", record.trigger.value, reason)
        return record

    async def monitor(self, probe: Probe,
                      token: Optional[CancellationToken] = None,
                      monitor: Optional[ProductionMonitor] = None) -> MonitoringOutcome:
        """Monitor the deployed model; roll back on degradation or manual request."""
        monitor = monitor or ProductionMonitor.from_config(probe, self.config)
        prior_status = self.status
        self.status = DeploymentStatus.MONITORING
        self.tracker.update(step="Monitoring production performance")

        outcome = await monitor.run(token)

        if outcome.result in (MonitoringResult.AUTO_ROLLBACK, MonitoringResult.MANUAL_ROLLBACK):
            trigger = (RollbackTrigger.AUTOMATIC
                       if outcome.result is MonitoringResult.AUTO_ROLLBACK
                       else RollbackTrigger.MANUAL)
            signals = outcome.snapshot.to_dict() if outcome.snapshot else {}
            if self.rollback(outcome.reason, trigger, signals) is None:
                self.status = prior_status
        else:
            if prior_status in (DeploymentStatus.DEPLOYED, DeploymentStatus.MONITORING):
                self.status = DeploymentStatus.DEPLOYED
            else:
                self.status = prior_status
            self.tracker.update(step=f"Monitoring finished: {outcome.result.value}")
        return outcome

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def performance_gains(self) -> Dict[str, float]:
        c = self.comparison
        if c is None:
            return {}
        return {
            'accuracy_improvement': c.accuracy_improvement,
            'accuracy_improvement_pct': c.accuracy_improvement_pct,
            'user_satisfaction_improvement': c.user_satisfaction_improvement,
            'robustness_improvement': c.robustness_improvement,
        }

    def next_steps(self) -> List[str]:
        if self.status in (DeploymentStatus.DEPLOYED, DeploymentStatus.MONITORING):
            return list(NEXT_STEPS_DEPLOYED)
        if self.status is DeploymentStatus.ROLLED_BACK:
            return ["Analyse the rollback record"] + list(NEXT_STEPS_HELD)
        if self.recommendation is not None and self.recommendation.should_deploy:
            return ["Deploy to production with monitoring"] + list(NEXT_STEPS_DEPLOYED)
        return list(NEXT_STEPS_HELD)

    def summary(self) -> str:
        """Status, performance gains and next steps as text."""
        lines = [f"Status: {self.status.value}",
                 f"Active model: {self.active_model or 'none'}"]
        gains = self.performance_gains()
        if gains:
            lines.append("Performance gains:")
            lines.append(f"  Accuracy: {gains['accuracy_improvement'] * 100:+.1f} points "
                         f"({gains['accuracy_improvement_pct']:+.1f}%)")
            lines.append(f"  User satisfaction: {gains['user_satisfaction_improvement'] * 100:+.1f}%")
            lines.append(f"  Robustness: {gains['robustness_improvement'] * 100:+.1f}%")
        if self.rollback_log:
            lines.append(f"Rollbacks: {len(self.rollback_log)}")
        lines.append("Next steps:")
        lines.extend(f"  - {step}" for step in self.next_steps())
        return "\n".join(lines)
