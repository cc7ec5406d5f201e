"""
Tests for configuration management system.
"""

import pytest

from markovseq.config import (
    get_config, set_config, update_config,
    load_config_file, save_config_file,
    get_all_config, reset_config
)


def test_default_config():
    """Test that default configuration is loaded correctly."""
    # Test training config
    assert get_config('training', 'max_iterations') == 100
    assert get_config('training', 'default_iterations') == 9
    assert get_config('training', 'n_jobs') == 1

    # Test distance config
    assert get_config('distance', 'sample_count') == 10
    assert get_config('distance', 'sequence_length') == 1000

    assert get_config('hmm', 'tolerance') == 1e-6
    assert get_config('generation', 'random_seed') is None


def test_get_config_section():
    """Test getting entire configuration sections."""
    training_config = get_config('training')
    assert isinstance(training_config, dict)
    assert 'max_iterations' in training_config
    assert 'convergence_tolerance' in training_config


def test_set_config():
    """Test setting individual configuration values."""
    set_config('training', 'max_iterations', 25)
    assert get_config('training', 'max_iterations') == 25

    # Set value in new section
    set_config('test_section', 'test_key', 'test_value')
    assert get_config('test_section', 'test_key') == 'test_value'


def test_update_config():
    """Test updating configuration with dictionary."""
    update_config({
        'distance': {
            'sample_count': 50,
            'new_setting': True
        },
        'new_section': {
            'key1': 'value1'
        }
    })

    assert get_config('distance', 'sample_count') == 50
    assert get_config('distance', 'new_setting') is True
    assert get_config('new_section', 'key1') == 'value1'

    # Check that other values are preserved
    assert get_config('distance', 'sequence_length') == 1000


def test_config_file_operations(temp_dir):
    """Test saving and loading configuration files."""
    config_file = temp_dir / "test_config.json"

    set_config('training', 'n_jobs', 4)
    set_config('test', 'value', 123)

    save_config_file(str(config_file))
    assert config_file.exists()

    reset_config()
    assert get_config('training', 'n_jobs') == 1
    assert get_config('test', 'value') is None

    load_config_file(str(config_file))
    assert get_config('training', 'n_jobs') == 4
    assert get_config('test', 'value') == 123


def test_load_missing_config_file(temp_dir):
    """Test that a missing file raises ValueError."""
    with pytest.raises(ValueError, match="Failed to load config"):
        load_config_file(str(temp_dir / "missing.json"))


def test_get_all_config():
    """Test getting complete configuration dictionary."""
    all_config = get_all_config()

    assert 'training' in all_config
    assert 'hmm' in all_config
    assert 'logging' in all_config

    # Verify it's a copy (modifications don't affect original)
    all_config['training']['max_iterations'] = 99999
    assert get_config('training', 'max_iterations') != 99999


def test_reset_does_not_leak_nested_changes():
    """Test that defaults are restored after in-place edits of a section."""
    get_config('training')['max_iterations'] = 3

    reset_config()

    assert get_config('training', 'max_iterations') == 100


def test_environment_overrides(monkeypatch):
    """Test environment variable overrides."""
    monkeypatch.setenv('MARKOVSEQ_MAX_ITERATIONS', '12')
    monkeypatch.setenv('MARKOVSEQ_RANDOM_SEED', '2024')
    monkeypatch.setenv('MARKOVSEQ_N_JOBS', 'many')

    reset_config()

    assert get_config('training', 'max_iterations') == 12
    assert get_config('generation', 'random_seed') == 2024
    # Invalid values are ignored
    assert get_config('training', 'n_jobs') == 1


def test_config_file_from_environment(monkeypatch, temp_dir):
    """Test loading a config file named in the environment."""
    config_file = temp_dir / "env_config.json"
    config_file.write_text('{"distance": {"sample_count": 3}}')
    monkeypatch.setenv('MARKOVSEQ_CONFIG', str(config_file))

    reset_config()

    assert get_config('distance', 'sample_count') == 3
