"""
strokeml Simulation Package

Synthetic data sources for training and evaluation:
- SyntheticStrokeGenerator: human-like strokes per shape label, used to
  top up labels with too few real samples
- scenarios: imperfection-specific test strokes for old vs new model
  comparison
"""

from .shapes import SyntheticStrokeGenerator
from .scenarios import (
    ScenarioStroke,
    generate_scenario_stroke,
    generate_scenario_strokes,
)

__all__ = [
    'SyntheticStrokeGenerator',
    'ScenarioStroke',
    'generate_scenario_stroke',
    'generate_scenario_strokes',
]
