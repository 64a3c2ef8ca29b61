"""
Tests for synthetic strokes and imperfection scenarios.
"""

import numpy as np
import pytest

from strokeml.normalizer import StrokeQualityValidator
from strokeml.schema import SampleSource, ScenarioKind, ShapeLabel
from strokeml.simulation import SyntheticStrokeGenerator, generate_scenario_strokes


@pytest.mark.parametrize("label", list(ShapeLabel))
def test_same_variation_reproduces_stroke(label):
    a = SyntheticStrokeGenerator(seed=5).generate(label, variation=3)
    b = SyntheticStrokeGenerator(seed=5).generate(label, variation=3)
    assert np.array_equal(a.points, b.points)
    assert a.stroke_id != b.stroke_id


@pytest.mark.parametrize("label", list(ShapeLabel))
def test_variations_differ(label):
    gen = SyntheticStrokeGenerator(seed=5)
    a = gen.generate(label, variation=1)
    b = gen.generate(label, variation=21)
    assert len(a) == len(b)
    assert not np.allclose(a.points, b.points)


def test_point_count_follows_variation():
    gen = SyntheticStrokeGenerator()
    for v in (0, 7, 19, 20, 45):
        stroke = gen.generate(ShapeLabel.CIRCLE, v)
        assert len(stroke) == 50 + v % 20
        assert stroke.duration == pytest.approx(stroke.timestamps[-1] - stroke.timestamps[0])
        assert stroke.duration > 0


@pytest.mark.parametrize("label", list(ShapeLabel))
def test_timestamps_never_decrease(label):
    stroke = SyntheticStrokeGenerator(seed=1).generate(label, variation=11)
    assert np.all(np.diff(stroke.timestamps) >= 0)
    assert np.all(stroke.pressures > 0) and np.all(stroke.pressures <= 1)


@pytest.mark.parametrize("label", list(ShapeLabel))
def test_synthetic_strokes_pass_quality_checks(label):
    validator = StrokeQualityValidator()
    gen = SyntheticStrokeGenerator(seed=0)
    for v in range(5):
        assert validator.failures(gen.generate(label, v)) == []


def test_generate_samples_tags_source():
    samples = SyntheticStrokeGenerator(seed=2).generate_samples(ShapeLabel.POLYGON, 4, start_variation=10)
    assert len(samples) == 4
    assert [s.metadata['variation'] for s in samples] == [10, 11, 12, 13]
    assert all(s.label is ShapeLabel.POLYGON for s in samples)
    assert all(s.source is SampleSource.SYNTHETIC for s in samples)


# =============================================================================
# Scenarios
# =============================================================================

EXPECTED = {
    ScenarioKind.SHAKY_LINES: (ShapeLabel.LINE, 30),
    ScenarioKind.HESITANT_STROKES: (ShapeLabel.CIRCLE, 40),
    ScenarioKind.IMPERFECT_CIRCLES: (ShapeLabel.CIRCLE, 36),
    ScenarioKind.CORRECTIVE_OVERDRAWS: (ShapeLabel.RECTANGLE, 56),
    ScenarioKind.VARIABLE_PRESSURE: (ShapeLabel.OVAL, 30),
}


@pytest.mark.parametrize("kind", list(ScenarioKind))
def test_scenario_batches(kind):
    label, points = EXPECTED[kind]
    batch = generate_scenario_strokes(kind, count=6, seed=3)

    assert len(batch) == 6
    assert [s.variation for s in batch] == list(range(6))
    for item in batch:
        assert item.scenario is kind
        assert item.expected_label is label
        assert len(item.stroke) == points


@pytest.mark.parametrize("kind", list(ScenarioKind))
def test_scenario_batches_are_reproducible(kind):
    a = generate_scenario_strokes(kind, count=4, seed=9)
    b = generate_scenario_strokes(kind, count=4, seed=9)
    for x, y in zip(a, b):
        assert np.array_equal(x.stroke.points, y.stroke.points)


def test_variable_pressure_stays_in_range():
    for item in generate_scenario_strokes(ScenarioKind.VARIABLE_PRESSURE, count=20):
        assert item.stroke.pressures.min() >= 0.1
        assert item.stroke.pressures.max() <= 1.0


def test_scenario_display_names():
    assert ScenarioKind.SHAKY_LINES.display_name == "Shaky Lines"
    assert ScenarioKind.CORRECTIVE_OVERDRAWS.display_name == "Corrective Overdraws"


def test_hesitant_strokes_differ_within_a_batch():
    batch = generate_scenario_strokes(ScenarioKind.HESITANT_STROKES, count=10, seed=0)
    distinct = {item.stroke.points.tobytes() for item in batch}
    assert len(distinct) == 10
    for item in batch:
        assert np.all(np.diff(item.stroke.timestamps) > 0)
        assert item.stroke.pressures.min() > 0
