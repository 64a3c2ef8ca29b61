"""
Tests for feature extraction and the feature cache.
"""

import asyncio

import numpy as np
import pytest

from strokeml.features import (
    FEATURE_NAMES, NUM_FEATURES, FeatureCache, build_feature_matrix,
    extract, feature_length, featurize, featurize_many, flatten_points
)
from strokeml.normalizer import normalize
from strokeml.schema import RawStroke


def line_stroke(n=30):
    xs = np.linspace(50.0, 174.0, n)
    return RawStroke(points=np.column_stack([
        xs, np.full(n, 112.0), np.arange(n) * 0.05, np.linspace(0.2, 0.8, n)
    ]))


def circle_stroke(n=60, radius=50.0):
    angles = np.linspace(0, 2 * np.pi, n)
    return RawStroke(points=np.column_stack([
        112 + radius * np.cos(angles), 112 + radius * np.sin(angles),
        np.arange(n) * 0.05, np.full(n, 0.5)
    ]))


def feature(vec, name):
    return vec[FEATURE_NAMES.index(name)]


def test_feature_vector_has_fixed_length():
    assert NUM_FEATURES == 19
    assert featurize(line_stroke()).shape == (NUM_FEATURES,)
    assert featurize(normalize(circle_stroke())).shape == (NUM_FEATURES,)


def test_flat_line_has_zero_aspect_and_compactness():
    vec = featurize(normalize(line_stroke()))

    assert np.all(np.isfinite(vec))
    assert feature(vec, 'aspect_ratio') == 0.0
    assert feature(vec, 'bbox_aspect') == 0.0
    assert feature(vec, 'compactness') == 0.0
    assert feature(vec, 'straightness') == pytest.approx(1.0)


def test_normalized_stroke_keeps_canvas_size():
    vec = featurize(normalize(line_stroke()))
    assert feature(vec, 'width') == pytest.approx(124.0)
    assert feature(vec, 'height') == 0.0
    assert feature(vec, 'bbox_width') == pytest.approx(1.0)


def test_circle_features():
    vec = featurize(circle_stroke())
    assert feature(vec, 'length') == pytest.approx(2 * np.pi * 50, rel=0.01)
    assert feature(vec, 'aspect_ratio') == pytest.approx(1.0, rel=0.01)
    # Perimeter^2 / area is 4*pi for a circle
    assert feature(vec, 'compactness') == pytest.approx(4 * np.pi, rel=0.02)
    assert feature(vec, 'straightness') < 0.01
    assert feature(vec, 'pressure_std') == pytest.approx(0.0)


def test_zero_time_steps_do_not_produce_inf():
    points = line_stroke().points.copy()
    points[:, 2] = 0.0
    vec = featurize(RawStroke(points=points))
    assert np.all(np.isfinite(vec))
    assert feature(vec, 'mean_speed') == 0.0


def test_empty_stroke_gives_zero_vectors():
    empty = RawStroke(points=[])
    assert np.array_equal(featurize(empty), np.zeros(NUM_FEATURES))
    assert np.array_equal(flatten_points(empty, 100), np.zeros(300))


def test_flatten_points_resamples_short_strokes():
    flat = flatten_points(line_stroke(30), 100)
    assert flat.shape == (300,)
    triples = flat.reshape(100, 3)
    assert np.allclose(triples[0], [50.0, 112.0, 0.2])
    assert np.allclose(triples[-1], [174.0, 112.0, 0.8])


@pytest.mark.parametrize("mode", ['summary', 'points', 'combined'])
def test_extract_matches_feature_length(mode):
    assert extract(circle_stroke(), mode, 50).shape == (feature_length(mode, 50),)


def test_unknown_mode_raises():
    with pytest.raises(ValueError):
        extract(circle_stroke(), 'pixels')


def test_cache_hits_on_repeat():
    cache = FeatureCache()
    strokes = [line_stroke(), circle_stroke()]

    first = build_feature_matrix(strokes, cache=cache)
    assert cache.misses == 2 and cache.hits == 0
    second = build_feature_matrix(strokes, cache=cache)
    assert cache.hits == 2
    assert np.array_equal(first, second)
    assert len(cache) == 2

    cache.clear()
    assert len(cache) == 0 and cache.hits == 0


def test_concurrent_extraction_matches_sequential():
    strokes = [circle_stroke(radius=r) for r in (20.0, 40.0, 60.0)] + [line_stroke()]
    expected = build_feature_matrix(strokes, 'combined', 32)
    matrix = asyncio.run(featurize_many(strokes, 'combined', 32, FeatureCache()))
    assert np.allclose(matrix, expected)


def test_empty_matrix_shape():
    assert build_feature_matrix([], 'points', 10).shape == (0, 30)
    assert asyncio.run(featurize_many([], 'summary')).shape == (0, NUM_FEATURES)
