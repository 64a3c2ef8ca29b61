#!/usr/bin/env python3
"""
strokeml Retraining Pipeline

Trains a shape classifier from real drawing samples (topped up with
synthetic strokes where labels are short), compares it with a baseline over
the imperfection scenarios and writes a deployment recommendation.

Usage:
    python -m strokeml.train --data-dir data/RealDrawingData --output-dir out
    python -m strokeml.train --data-dir data --output-dir out --baseline out/prev_model --plot
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .classifier import HAS_TF, get_strategy
from .config import FEATURE_MODES, load_config
from .deployment import DeploymentOrchestrator
from .errors import StrokeMLError, ConfigError
from .evaluator import ClassifierProxy, PerformanceEvaluator, SimulatedModelProxy
from .storage import ConsentGate, RecordStore, SampleStore
from .training import TrainingOrchestrator, load_artifact, save_artifact

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description='Retrain the stroke shape classifier on real drawing data'
    )
    parser.add_argument(
        '--data-dir', type=str, default='data/RealDrawingData',
        help='Sample store directory (<label>/<id>.json)'
    )
    parser.add_argument(
        '--output-dir', type=str, default='models',
        help='Directory for the model artifact, records and report'
    )
    parser.add_argument(
        '--config', type=str, default=None,
        help='JSON pipeline configuration'
    )
    parser.add_argument(
        '--baseline', type=str, default=None,
        help='Saved artifact of the production model (default: simulated baseline)'
    )
    parser.add_argument(
        '--strategy', type=str, default='sklearn',
        choices=['sklearn', 'keras'],
        help='Classifier strategy'
    )
    parser.add_argument(
        '--feature-mode', type=str, default=None,
        choices=list(FEATURE_MODES),
        help='Override the configured feature mode'
    )
    parser.add_argument(
        '--seed', type=int, default=None,
        help='Random seed for synthesis, augmentation and splitting'
    )
    parser.add_argument(
        '--no-consent', action='store_true',
        help='Run as if data-collection consent was not granted'
    )
    parser.add_argument(
        '--plot', action='store_true',
        help='Save a scenario comparison chart'
    )
    parser.add_argument(
        '-v', '--verbose', action='store_true',
        help='Debug logging'
    )
    return parser.parse_args(argv)


def print_report(result, comparison, recommendation):
    print("\n" + "=" * 60)
    print(" TRAINING")
    print("=" * 60)
    print(f"  Samples: {result.total_samples} "
          f"({result.augmented_count} augmented, {result.dropped_count} dropped)")
    print(f"\n  {'Label':<12} {'Real':>6} {'Synthetic':>10}")
    for label, real in result.real_counts.items():
        print(f"  {label:<12} {real:>6} {result.synthetic_counts.get(label, 0):>10}")
    print(f"\n  Validation accuracy: {result.accuracy:.1%}")

    print("\n" + "=" * 60)
    print(" SCENARIO EVALUATION")
    print("=" * 60)
    print(f"\n  {'Scenario':<24} {'Old':>7} {'New':>7} {'Change':>8} {'Sig':>6}")
    print("  " + "-" * 54)
    for r in comparison.scenario_results:
        print(f"  {r.name:<24} {r.old_accuracy:>6.1%} {r.new_accuracy:>6.1%} "
              f"{r.improvement_pct:>+7.1f}% {r.significance:>6.2f}")
    print()
    for line in comparison.summary:
        print(f"  {line}")

    print("\n" + "=" * 60)
    print(" DEPLOYMENT")
    print("=" * 60)
    print(recommendation.summary)
    print(f"\n  Confidence: {recommendation.confidence:.0%}")
    print(f"  Overall risk: {recommendation.risk_assessment.overall_risk.label}")
    for risk in recommendation.risk_assessment.risks:
        print(f"    [{risk.severity.label}] {risk.description} -> {risk.mitigation}")


async def run_pipeline(args) -> int:
    config = load_config(args.config)
    if args.seed is not None:
        config.seed = args.seed
    if args.feature_mode is not None:
        config.feature_mode = args.feature_mode
    config.validate()

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    print("=" * 60)
    print("strokeml Retraining Pipeline")
    print("=" * 60)
    print(f"\nLoading samples from: {args.data_dir}")

    store = SampleStore(args.data_dir)
    trainer = TrainingOrchestrator(
        store,
        ConsentGate(granted=not args.no_consent),
        config,
        strategy=get_strategy(args.strategy, seed=config.seed)
    )
    for label, count in trainer.corpus_summary().items():
        print(f"  {label}: {count}")

    result = await trainer.run()
    save_artifact(result.artifact, output_dir / 'model')

    if args.baseline:
        baseline = ClassifierProxy(load_artifact(args.baseline), name="baseline")
    else:
        print("\nNo baseline artifact given; comparing against the simulated baseline")
        baseline = SimulatedModelProxy.baseline(seed=config.seed)

    evaluator = PerformanceEvaluator(baseline, ClassifierProxy(result.artifact, name="candidate"), config)
    comparison = await evaluator.compare()

    deployment = DeploymentOrchestrator(config, RecordStore(output_dir / 'records'),
                                        active_model=args.baseline)
    recommendation = deployment.recommend(result, comparison)

    print_report(result, comparison, recommendation)

    report = {
        'training': result.to_dict(),
        'comparison': comparison.to_dict(),
        'recommendation': recommendation.to_dict(),
        'config': config.to_dict(),
    }
    with open(output_dir / 'report.json', 'w') as f:
        json.dump(report, f, indent=2)
    print(f"\nReport saved to: {output_dir / 'report.json'}")

    if args.plot:
        from .visualize import plot_scenario_comparison
        chart = plot_scenario_comparison(comparison, output_dir / 'scenario_comparison.png')
        print(f"Chart saved to: {chart}")

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    if args.strategy == 'keras' and not HAS_TF:
        print("ERROR: TensorFlow/Keras not installed. Run: pip install tensorflow")
        return 1

    try:
        return asyncio.run(run_pipeline(args))
    except ConfigError as e:
        print(f"\nERROR: invalid configuration: {e}")
        return 2
    except StrokeMLError as e:
        print(f"\nERROR: {type(e).__name__}: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
