"""
End-to-end tests for the retraining command line.
"""

import json

import pytest

from strokeml.train import main, parse_args


@pytest.fixture
def small_config(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text(json.dumps({
        'minimumSamplesPerShape': 6,
        'augmentationMultiplier': 1,
        'scenario_sample_size': 10,
    }))
    return str(path)


def test_parse_args_defaults():
    args = parse_args([])
    assert args.strategy == 'sklearn'
    assert args.baseline is None
    assert not args.no_consent


def test_full_pipeline_writes_report(tmp_path, small_config):
    out = tmp_path / 'out'
    code = main(['--data-dir', str(tmp_path / 'data'), '--output-dir', str(out),
                 '--config', small_config, '--seed', '0', '--plot'])
    assert code == 0

    report = json.loads((out / 'report.json').read_text())
    assert report['training']['total_samples'] == 72
    assert len(report['comparison']['scenarios']) == 5
    assert isinstance(report['recommendation']['should_deploy'], bool)
    assert report['config']['seed'] == 0

    assert (out / 'model' / 'model.pkl').exists()
    assert (out / 'scenario_comparison.png').exists()
    assert list((out / 'records').glob('recommendation_*.json'))


def test_trained_model_can_be_the_next_baseline(tmp_path, small_config):
    out = tmp_path / 'first'
    assert main(['--data-dir', str(tmp_path / 'data'), '--output-dir', str(out),
                 '--config', small_config, '--seed', '1']) == 0
    assert main(['--data-dir', str(tmp_path / 'data'), '--output-dir', str(tmp_path / 'second'),
                 '--config', small_config, '--seed', '2',
                 '--baseline', str(out / 'model')]) == 0


def test_missing_consent_exits_with_error(tmp_path, small_config):
    code = main(['--data-dir', str(tmp_path / 'data'), '--output-dir', str(tmp_path / 'out'),
                 '--config', small_config, '--no-consent'])
    assert code == 1


def test_invalid_config_exits_with_usage_error(tmp_path):
    path = tmp_path / 'bad.json'
    path.write_text(json.dumps({'validationSplit': 3}))
    code = main(['--output-dir', str(tmp_path / 'out'), '--config', str(path)])
    assert code == 2
