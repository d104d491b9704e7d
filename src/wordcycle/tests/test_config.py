"""Tests for configuration settings."""
from dataclasses import replace

import pytest

from wordcycle.config import BOX_INTERVAL_PRESETS, DATA_DIR, SR_ALGORITHMS, Settings, settings


def test_base_directories_exist():
    """Test that all required directories exist."""
    from wordcycle.config import BASE_DIR

    assert BASE_DIR.exists()
    assert DATA_DIR.exists()


def test_settings_from_test_env():
    """Test that settings are read from .env.test."""
    assert settings.learning.algorithm == "sm2"
    assert settings.learning.leitner_box_count == 5
    assert settings.learning.max_retries_per_session == 3
    assert settings.learning.requeue_spacing == 2
    assert settings.learning.stats_timezone == "UTC"
    assert "test_wordcycle.db" in settings.database.url


def test_box_interval_presets():
    """Test that every supported box count has one interval per box."""
    for box_count, intervals in BOX_INTERVAL_PRESETS.items():
        assert len(intervals) == box_count
        assert intervals == sorted(intervals)
    assert BOX_INTERVAL_PRESETS[5] == [1, 3, 7, 14, 30]


def test_validate_accepts_defaults():
    """Test that the default settings validate."""
    Settings().validate()


@pytest.mark.parametrize(
    "field_name, value",
    [
        ("algorithm", "fsrs"),
        ("leitner_box_count", 4),
        ("new_words_ratio", 1.5),
        ("words_per_session", 0),
        ("new_words_per_session", -1),
        ("max_retries_per_session", 0),
        ("requeue_spacing", 0),
    ],
)
def test_validate_rejects_invalid_learning_settings(field_name, value):
    """Test that invalid learning settings raise ValueError."""
    invalid = Settings(learning=replace(settings.learning, **{field_name: value}))
    with pytest.raises(ValueError):
        invalid.validate()


def test_all_algorithms_valid():
    """Test that every listed algorithm passes validation."""
    for algorithm in SR_ALGORITHMS:
        Settings(learning=replace(settings.learning, algorithm=algorithm)).validate()


if __name__ == "__main__":
    pytest.main([__file__])
