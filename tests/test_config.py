"""
Tests for environment configuration.
"""

import os
from pathlib import Path

import pytest

from tgjobads.config import Settings, vectorization_params_from_env
from tgjobads.models import Currency


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Empty working directory and no TGJOBADS_* variables."""
    for name in list(os.environ):
        if name.startswith("TGJOBADS_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


class TestSettings:
    """Test Settings.from_env."""

    def test_defaults(self, clean_env):
        settings = Settings.from_env()
        assert settings.db_path == Path("data/ads.db")
        assert settings.reporting_currency is Currency.USD
        assert settings.llm_max_attempts == 3
        assert settings.vectorization.version == 1

    def test_overrides(self, clean_env):
        clean_env.setenv("TGJOBADS_WORKERS", "8")
        clean_env.setenv("TGJOBADS_REPORTING_CURRENCY", "eur")
        clean_env.setenv("TGJOBADS_LLM_TIMEOUT", "2.5")
        settings = Settings.from_env()
        assert settings.workers == 8
        assert settings.reporting_currency is Currency.EUR
        assert settings.llm_timeout == 2.5

    def test_dotenv_file(self, clean_env, tmp_path):
        # load_dotenv writes os.environ directly; make teardown remove the value
        clean_env.setenv("TGJOBADS_CLASSIFIER_VERSION", "")
        clean_env.delenv("TGJOBADS_CLASSIFIER_VERSION")

        (tmp_path / ".env").write_text("TGJOBADS_CLASSIFIER_VERSION=3\n", encoding="utf-8")
        assert Settings.from_env().classifier_version == 3

    def test_invalid_values(self, clean_env):
        clean_env.setenv("TGJOBADS_WORKERS", "many")
        with pytest.raises(ValueError):
            Settings.from_env()

        clean_env.setenv("TGJOBADS_WORKERS", "4")
        clean_env.setenv("TGJOBADS_REPORTING_CURRENCY", "XYZ")
        with pytest.raises(ValueError):
            Settings.from_env()

    def test_non_positive_version_falls_back(self, clean_env):
        clean_env.setenv("TGJOBADS_VECTOR_VERSION", "0")
        assert vectorization_params_from_env().version == 1
