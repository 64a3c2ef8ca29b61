"""
Imperfection Scenario Strokes

Test strokes that exhibit one specific real-world drawing imperfection each
(hand shake, hesitation, imperfect geometry, correction marks, pressure
variability). The performance evaluator runs both models against a batch of
these per scenario.
"""

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from ..schema import RawStroke, ShapeLabel, ScenarioKind, CANVAS_SIZE

CENTER = CANVAS_SIZE / 2
SECONDS_PER_POINT = 0.05


@dataclass
class ScenarioStroke:
    """A test stroke and the label a correct model should predict."""
    stroke: RawStroke
    expected_label: ShapeLabel
    scenario: ScenarioKind
    variation: int = 0


def _stroke(xs, ys, ts, ps) -> RawStroke:
    return RawStroke(points=np.column_stack([xs, ys, ts, ps]))


def shaky_line(rng: np.random.Generator, variation: int) -> ScenarioStroke:
    """Horizontal line (50,112) -> (174,112) with tremor growing with variation."""
    n = 30
    t = np.arange(n) / (n - 1)
    shake = rng.uniform(-4, 4, n) * (1.0 + (variation % 5) * 0.2)
    stroke = _stroke(
        50.0 + t * 124.0 + shake,
        CENTER + shake,
        np.arange(n) * SECONDS_PER_POINT,
        rng.uniform(0.4, 0.8, n)
    )
    return ScenarioStroke(stroke, ShapeLabel.LINE, ScenarioKind.SHAKY_LINES, variation)


def hesitant_circle(rng: np.random.Generator, variation: int) -> ScenarioStroke:
    """Clean circle drawn with irregular timing and pulsing pressure."""
    n = 40
    i = np.arange(n)
    angles = 2 * np.pi * i / n
    radius = rng.uniform(45.0, 55.0)
    cx, cy = CENTER + rng.uniform(-3, 3, 2)
    phase, pressure_phase = rng.uniform(0, 2 * np.pi, 2)
    amplitude = rng.uniform(0.2, 0.4)
    # Pauses stretch the interval between samples, never reverse it
    intervals = SECONDS_PER_POINT * (1.0 + amplitude * np.sin(phase + i * 0.5))
    stroke = _stroke(
        cx + radius * np.cos(angles),
        cy + radius * np.sin(angles),
        np.concatenate([[0.0], np.cumsum(intervals[:-1])]),
        0.5 + 0.3 * np.sin(pressure_phase + i * 0.3)
    )
    return ScenarioStroke(stroke, ShapeLabel.CIRCLE, ScenarioKind.HESITANT_STROKES, variation)


def imperfect_circle(rng: np.random.Generator, variation: int) -> ScenarioStroke:
    """Circle with a wandering radius and centre."""
    n = 36
    angles = 2 * np.pi * np.arange(n) / n
    radii = 50.0 + rng.uniform(-8, 8, n)
    cx = CENTER + rng.uniform(-3, 3, n)
    cy = CENTER + rng.uniform(-3, 3, n)
    stroke = _stroke(
        cx + radii * np.cos(angles),
        cy + radii * np.sin(angles),
        np.arange(n) * SECONDS_PER_POINT,
        rng.uniform(0.5, 0.9, n)
    )
    return ScenarioStroke(stroke, ShapeLabel.CIRCLE, ScenarioKind.IMPERFECT_CIRCLES, variation)


def corrective_rectangle(rng: np.random.Generator, variation: int) -> ScenarioStroke:
    """
    Rectangle (62, 62, 100x80) with a backtracking correction mark after
    every 5th point of each side.
    """
    corners = [(62.0, 62.0), (162.0, 62.0), (162.0, 142.0), (62.0, 142.0)]
    per_side = 50 // 4
    rows = []
    now = 0.0
    for side in range(4):
        (x0, y0), (x1, y1) = corners[side], corners[(side + 1) % 4]
        for i in range(per_side):
            t = i / (per_side - 1)
            rows.append((x0 + t * (x1 - x0), y0 + t * (y1 - y0), now, 0.7))
            now += SECONDS_PER_POINT
            if i % 5 == 0 and i > 0:
                px, py = rows[-2][0], rows[-2][1]
                dx, dy = rng.uniform(-3, 3, 2)
                rows.append((px + dx, py + dy, now, 0.4))
                now += 0.03
    stroke = RawStroke(points=np.array(rows))
    return ScenarioStroke(stroke, ShapeLabel.RECTANGLE, ScenarioKind.CORRECTIVE_OVERDRAWS, variation)


def variable_pressure_oval(rng: np.random.Generator, variation: int) -> ScenarioStroke:
    """Round shape drawn with alternating light touches and heavy presses."""
    n = 30
    i = np.arange(n)
    angles = 2 * np.pi * i / n
    pressure = np.sin(i * 0.4) * 0.4 + 0.5 + rng.uniform(-0.2, 0.2, n)
    stroke = _stroke(
        CENTER + 60.0 * np.cos(angles),
        CENTER + 60.0 * np.sin(angles),
        i * SECONDS_PER_POINT,
        np.clip(pressure, 0.1, 1.0)
    )
    return ScenarioStroke(stroke, ShapeLabel.OVAL, ScenarioKind.VARIABLE_PRESSURE, variation)


def generate_scenario_stroke(kind: ScenarioKind, rng: np.random.Generator,
                             variation: int) -> ScenarioStroke:
    kind = ScenarioKind(kind)
    if kind is ScenarioKind.SHAKY_LINES:
        return shaky_line(rng, variation)
    if kind is ScenarioKind.HESITANT_STROKES:
        return hesitant_circle(rng, variation)
    if kind is ScenarioKind.IMPERFECT_CIRCLES:
        return imperfect_circle(rng, variation)
    if kind is ScenarioKind.CORRECTIVE_OVERDRAWS:
        return corrective_rectangle(rng, variation)
    if kind is ScenarioKind.VARIABLE_PRESSURE:
        return variable_pressure_oval(rng, variation)
    raise ValueError(f"Unhandled scenario: {kind}")


def generate_scenario_strokes(
    kind: ScenarioKind,
    count: int = 50,
    seed: Optional[int] = None
) -> List[ScenarioStroke]:
    """
    Generate `count` test strokes for one scenario.

    Args:
        kind: Imperfection scenario
        count: Number of strokes
        seed: Base seed; the same seed reproduces the same batch

    Returns:
        List of ScenarioStroke
    """
    kind = ScenarioKind(kind)
    index = list(ScenarioKind).index(kind)
    base = 0 if seed is None else int(seed)
    return [
        generate_scenario_stroke(kind, np.random.default_rng([base, index, v]), v)
        for v in range(count)
    ]
