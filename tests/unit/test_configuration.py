"""
Configuration and environment unit tests.

These tests verify that the project configuration is valid, all required
dependencies are available and pipeline settings resolve as documented.
"""

import argparse
import sys
from pathlib import Path

import pytest

from ranked_vote.config import PipelineSettings, add_pipeline_arguments


@pytest.mark.unit
@pytest.mark.smoke
def test_python_version():
    """Test that Python version meets requirements."""
    assert sys.version_info >= (3, 9), f"Python 3.9+ required, got {sys.version_info}"


@pytest.mark.unit
@pytest.mark.smoke
def test_project_structure():
    """Test that essential project directories exist."""
    project_root = Path(__file__).parent.parent.parent

    assert (project_root / "src" / "ranked_vote").exists(), "package directory missing"
    for subpackage in ("formats", "data", "analysis", "report", "web"):
        assert (
            project_root / "src" / "ranked_vote" / subpackage / "__init__.py"
        ).exists(), f"{subpackage} package missing"
    assert (project_root / "scripts").exists(), "scripts directory missing"
    assert (project_root / "pyproject.toml").exists(), "pyproject.toml missing"


@pytest.mark.unit
@pytest.mark.smoke
def test_core_dependencies():
    """Test that core dependencies can be imported."""
    try:
        import duckdb  # noqa: F401
        import fastapi  # noqa: F401
        import numpy  # noqa: F401
        import openpyxl  # noqa: F401
        import pandas  # noqa: F401
        import pyrankvote  # noqa: F401
    except ImportError as e:
        pytest.fail(f"Core dependency import failed: {e}")


def _parse(argv):
    parser = argparse.ArgumentParser()
    add_pipeline_arguments(parser)
    return parser.parse_args(argv)


@pytest.mark.unit
class TestPipelineSettings:
    def test_positional_arguments(self):
        settings = PipelineSettings.from_args(
            _parse(["meta", "raw", "pre", "reports", "--workers", "4", "--cross-check"])
        )
        assert settings.meta_dir == Path("meta")
        assert settings.report_dir == Path("reports")
        assert settings.workers == 4
        assert settings.cross_check
        assert not settings.force_preprocess
        assert not settings.use_cache_report
        assert settings.jurisdiction is None

    def test_environment_fallback(self, monkeypatch):
        monkeypatch.setenv("RANKED_VOTE_META_DIR", "/env/meta")
        monkeypatch.setenv("RANKED_VOTE_RAW_DIR", "/env/raw")
        monkeypatch.setenv("RANKED_VOTE_PREPROCESSED_DIR", "/env/pre")
        monkeypatch.setenv("RANKED_VOTE_REPORT_DIR", "/env/reports")
        monkeypatch.setenv("RANKED_VOTE_WORKERS", "0")

        settings = PipelineSettings.from_args(_parse(["--force-preprocess"]))
        assert settings.raw_dir == Path("/env/raw")
        assert settings.force_preprocess
        # At least one worker is always used.
        assert settings.workers == 1

    def test_missing_directory(self, monkeypatch):
        monkeypatch.delenv("RANKED_VOTE_META_DIR", raising=False)
        with pytest.raises(ValueError, match="RANKED_VOTE_META_DIR"):
            PipelineSettings.from_args(_parse([]))

    def test_jurisdiction_filter(self):
        args = _parse(["m", "r", "p", "o", "--jurisdiction", "us/ca/sfo"])
        assert PipelineSettings.from_args(args).jurisdiction == "us/ca/sfo"

    def test_report_cache_switch(self):
        args = _parse(["m", "r", "p", "o", "--use-cache-report"])
        assert PipelineSettings.from_args(args).use_cache_report
