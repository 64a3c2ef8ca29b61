"""
Visualize old vs new model performance per imperfection scenario.

Writes a grouped bar chart of scenario accuracies with the improvement
annotated above each pair.
"""

from pathlib import Path
from typing import Union

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np

from .evaluator import PerformanceComparison


def plot_scenario_comparison(comparison: PerformanceComparison,
                             path: Union[str, Path]) -> Path:
    """
    Save a grouped bar chart of old/new accuracy per scenario.

    Args:
        comparison: Result of PerformanceEvaluator.compare()
        path: Output image path (format from the suffix, e.g. .png)

    Returns:
        The written path
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    results = comparison.scenario_results
    names = [r.name for r in results]
    old = np.array([r.old_accuracy for r in results])
    new = np.array([r.new_accuracy for r in results])
    x = np.arange(len(results))
    width = 0.38

    fig, ax = plt.subplots(figsize=(10, 5))
    ax.bar(x - width / 2, old * 100, width, label='Old model', color='#b0b0b0')
    ax.bar(x + width / 2, new * 100, width, label='New model', color='#3b7dd8')

    for i, r in enumerate(results):
        top = max(old[i], new[i]) * 100
        ax.annotate(f"{r.improvement_pct:+.0f}%", (x[i], top + 1.5),
                    ha='center', fontsize=9)

    ax.set_xticks(x)
    ax.set_xticklabels(names, rotation=15, ha='right')
    ax.set_ylabel('Accuracy (%)')
    ax.set_ylim(0, 110)
    ax.set_title(f"Scenario accuracy: {comparison.old_accuracy:.1%} -> "
                 f"{comparison.new_accuracy:.1%}")
    ax.legend(loc='upper left')
    ax.grid(axis='y', alpha=0.3)

    fig.tight_layout()
    fig.savefig(path, dpi=120)
    plt.close(fig)
    return path
