"""
Tests for the deployment gate, risk assessment, promotion and rollback.
"""

import asyncio

import pytest

from strokeml.config import PipelineConfig
from strokeml.deployment import (
    DeploymentOrchestrator, RiskLevel, RiskType, RollbackTrigger, assess_risks
)
from strokeml.evaluator import PerformanceComparison, ScenarioResult
from strokeml.monitoring import (
    CancellationToken, MonitoringResult, ProductionMonitor, ProductionSnapshot
)
from strokeml.schema import DeploymentStatus, ScenarioKind
from strokeml.storage import RecordStore
from strokeml.training import TrainedModelArtifact, TrainingRunResult


def training_result():
    artifact = TrainedModelArtifact(model=None, accuracy=0.9, train_count=80, val_count=20)
    return TrainingRunResult(artifact=artifact, total_samples=100)


def spread(mean, n=20):
    return [mean + (0.02 if i % 2 else -0.02) for i in range(n)]


def comparison(accuracy=0.25, satisfaction=0.3, significance=0.95, robustness=0.2,
               regress=False):
    results = [ScenarioResult.from_samples(ScenarioKind.SHAKY_LINES, spread(0.5), spread(0.8))]
    if regress:
        results.append(ScenarioResult.from_samples(
            ScenarioKind.VARIABLE_PRESSURE, spread(0.8), spread(0.7)))
    return PerformanceComparison(
        old_accuracy=0.5,
        new_accuracy=0.5 + accuracy,
        accuracy_improvement=accuracy,
        accuracy_improvement_pct=accuracy / 0.5 * 100,
        user_satisfaction_improvement=satisfaction,
        robustness_improvement=robustness,
        significance=significance,
        scenario_results=results
    )


def test_all_criteria_met_recommends_deploy():
    orchestrator = DeploymentOrchestrator(PipelineConfig())
    rec = orchestrator.recommend(training_result(), comparison())

    assert rec.should_deploy
    assert rec.confidence == 1.0
    assert all(rec.criteria.values())
    assert "DEPLOY TO PRODUCTION" in rec.summary
    assert orchestrator.status is DeploymentStatus.COMPLETED
    assert orchestrator.progress == 1.0


@pytest.mark.parametrize("failing,overrides", [
    ('accuracy', dict(accuracy=0.05)),
    ('satisfaction', dict(satisfaction=0.1)),
    ('significance', dict(significance=0.9)),
    ('robustness', dict(robustness=0.0)),
])
def test_any_failed_criterion_blocks_deployment(failing, overrides):
    rec = DeploymentOrchestrator(PipelineConfig()).recommend(training_result(), comparison(**overrides))

    assert not rec.should_deploy
    assert rec.criteria[failing] is False
    assert sum(rec.criteria.values()) == 3
    assert rec.confidence == pytest.approx(0.75)
    assert failing in rec.summary


def test_thresholds_are_inclusive():
    config = PipelineConfig(required_accuracy_improvement=0.25,
                            required_user_satisfaction_improvement=0.3,
                            statistical_confidence_required=0.95)
    rec = DeploymentOrchestrator(config).recommend(training_result(), comparison())
    assert rec.should_deploy


@pytest.mark.parametrize("result,comp", [
    (None, 'ok'),
    ('ok', None),
    ('ok', 'empty'),
])
def test_missing_inputs_fail_closed(result, comp, tmp_path):
    result = training_result() if result == 'ok' else None
    if comp == 'ok':
        comp = comparison()
    elif comp == 'empty':
        comp = comparison()
        comp.scenario_results = []
    records = RecordStore(tmp_path)
    orchestrator = DeploymentOrchestrator(PipelineConfig(), records)

    rec = orchestrator.recommend(result, comp)

    assert not rec.should_deploy
    assert rec.confidence == 0.0
    assert rec.risk_assessment.overall_risk is RiskLevel.HIGH
    assert "DO NOT DEPLOY" in rec.summary
    assert orchestrator.status is DeploymentStatus.FAILED
    assert len(list(tmp_path.glob("recommendation_*.json"))) == 1


def test_risks_sorted_most_severe_first():
    comp = comparison(accuracy=0.15, significance=0.95, satisfaction=0.1, regress=True)
    assessment = assess_risks(comp, PipelineConfig())

    types = [r.type for r in assessment.risks]
    assert types[0] is RiskType.REGRESSION_RISK
    assert set(types) == {RiskType.REGRESSION_RISK, RiskType.MARGINAL_IMPROVEMENT,
                          RiskType.STATISTICAL_UNCERTAINTY, RiskType.ADOPTION_RISK}
    severities = [r.severity for r in assessment.risks]
    assert severities == sorted(severities, reverse=True)
    assert assessment.overall_risk is RiskLevel.HIGH
    assert "Variable Pressure" in assessment.risks[0].description


def test_low_risk_when_nothing_flags():
    assessment = assess_risks(comparison(accuracy=0.3, significance=0.995), PipelineConfig())
    assert assessment.risks == []
    assert assessment.overall_risk is RiskLevel.LOW


def test_deploy_requires_positive_recommendation():
    orchestrator = DeploymentOrchestrator(PipelineConfig(), active_model="v1")
    orchestrator.recommend(training_result(), comparison(accuracy=0.01))
    assert not orchestrator.deploy("v2")
    assert orchestrator.active_model == "v1"

    orchestrator.recommend(training_result(), comparison())
    assert orchestrator.deploy("v2")
    assert orchestrator.active_model == "v2"
    assert orchestrator.previous_model == "v1"
    assert orchestrator.status is DeploymentStatus.DEPLOYED


def test_degradation_rolls_back_exactly_once(tmp_path):
    records = RecordStore(tmp_path)
    orchestrator = DeploymentOrchestrator(PipelineConfig(), records, active_model="v1")
    orchestrator.recommend(training_result(), comparison())
    orchestrator.deploy("v2")

    def probe():
        # 0.80 < 0.90 * 0.95
        return ProductionSnapshot(current_accuracy=0.80, baseline_accuracy=0.90)

    monitor = ProductionMonitor(probe, interval_s=0.01, window_hours=1.0)
    outcome = asyncio.run(orchestrator.monitor(probe, monitor=monitor))

    assert outcome.result is MonitoringResult.AUTO_ROLLBACK
    assert orchestrator.status is DeploymentStatus.ROLLED_BACK
    assert orchestrator.active_model == "v1"
    assert len(orchestrator.rollback_log) == 1

    record = orchestrator.rollback_log[0]
    assert record.trigger is RollbackTrigger.AUTOMATIC
    assert record.restored_model == "v1"
    assert record.signals['current_accuracy'] == 0.80

    # Repeated requests are no-ops
    assert orchestrator.rollback("again") is None
    assert len(orchestrator.rollback_log) == 1
    assert len(records.rollbacks()) == 1
    assert records.rollbacks()[0]['trigger'] == 'automatic'

    # A rolled-back pipeline does not redeploy
    assert not orchestrator.deploy("v3")
    assert "Analyse the rollback record" in orchestrator.next_steps()


def test_manual_rollback_during_monitoring():
    orchestrator = DeploymentOrchestrator(PipelineConfig(), active_model="v1")
    orchestrator.recommend(training_result(), comparison())
    orchestrator.deploy("v2")

    async def scenario():
        token = CancellationToken()
        monitor = ProductionMonitor(lambda: ProductionSnapshot(0.9, 0.9),
                                    interval_s=60.0, window_hours=1.0)
        task = asyncio.create_task(orchestrator.monitor(None, token, monitor))
        await asyncio.sleep(0.01)
        token.request_rollback("user reports")
        return await asyncio.wait_for(task, timeout=5.0)

    outcome = asyncio.run(scenario())
    assert outcome.result is MonitoringResult.MANUAL_ROLLBACK
    assert orchestrator.rollback_log[0].trigger is RollbackTrigger.MANUAL
    assert orchestrator.rollback_log[0].reason == "user reports"
    assert orchestrator.active_model == "v1"


def test_stable_monitoring_keeps_deployment():
    orchestrator = DeploymentOrchestrator(PipelineConfig(), active_model="v1")
    orchestrator.recommend(training_result(), comparison())
    orchestrator.deploy("v2")

    monitor = ProductionMonitor(lambda: ProductionSnapshot(0.9, 0.9),
                                interval_s=0.01, window_hours=0.05 / 3600.0)
    outcome = asyncio.run(orchestrator.monitor(None, monitor=monitor))

    assert outcome.result is MonitoringResult.STABLE
    assert orchestrator.status is DeploymentStatus.DEPLOYED
    assert orchestrator.rollback_log == []
    assert "Status: deployed" in orchestrator.summary()


def test_summary_reports_gains():
    orchestrator = DeploymentOrchestrator(PipelineConfig())
    orchestrator.recommend(training_result(), comparison())
    text = orchestrator.summary()
    assert "Performance gains" in text
    assert "+25.0 points" in text
    assert orchestrator.next_steps()[0] == "Deploy to production with monitoring"


def test_rollback_without_deployment_keeps_active_model(tmp_path):
    records = RecordStore(tmp_path)
    orchestrator = DeploymentOrchestrator(PipelineConfig(), records, active_model="v1")
    status = orchestrator.status

    assert orchestrator.rollback("operator pressed rollback") is None
    assert orchestrator.active_model == "v1"
    assert orchestrator.status is status
    assert orchestrator.rollback_log == []
    assert records.rollbacks() == []


def test_degradation_without_deployment_keeps_active_model():
    orchestrator = DeploymentOrchestrator(PipelineConfig(), active_model="v1")
    status = orchestrator.status

    def probe():
        return ProductionSnapshot(current_accuracy=0.5, baseline_accuracy=0.9)

    monitor = ProductionMonitor(probe, interval_s=0.01, window_hours=1.0)
    outcome = asyncio.run(orchestrator.monitor(probe, monitor=monitor))

    assert outcome.result is MonitoringResult.AUTO_ROLLBACK
    assert orchestrator.active_model == "v1"
    assert orchestrator.status is status
    assert orchestrator.rollback_log == []
