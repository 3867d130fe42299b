"""
Shared pytest configuration and fixtures for the report pipeline tests.

This module provides common test fixtures and utilities used across
all test modules.
"""

import json
import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ranked_vote.data.database import BallotDatabase  # noqa: E402
from ranked_vote.model import Ballot, Candidate, NormalizedElection  # noqa: E402


def make_election(candidates, rankings, fingerprint=""):
    """
    Build a NormalizedElection from candidate names and lists of marks.

    Marks are candidate ids or the OVERVOTE / UNDERVOTE sentinels.
    """
    return NormalizedElection(
        candidates=tuple(Candidate(name) for name in candidates),
        ballots=tuple(
            Ballot(f"B{i + 1:03d}", tuple(marks)) for i, marks in enumerate(rankings)
        ),
        fingerprint=fingerprint,
    )


@pytest.fixture
def election_factory():
    """Provide the make_election helper to tests."""
    return make_election


@pytest.fixture
def temp_db():
    """In-memory BallotDatabase, closed after the test."""
    db = BallotDatabase()
    yield db
    db.close()


@pytest.fixture
def scenario_a():
    """Three candidates, five ballots; candidate 3 is eliminated and 1 wins."""
    # Candidates 1, 2, 3 map to ids 0, 1, 2.
    return make_election(
        ["One", "Two", "Three"],
        [[0, 1], [0, 2], [1, 0], [2, 0], [1]],
    )


@pytest.fixture
def cycle_election():
    """A > B > C > A majority cycle with no Condorcet winner."""
    return make_election(
        ["A", "B", "C"],
        [[0, 1, 2]] * 4 + [[1, 2, 0]] * 3 + [[2, 0, 1]] * 2,
    )


@pytest.fixture
def metadata_tree(tmp_path):
    """
    Provide metadata and raw directories with one simple_json contest.

    Returns:
        dict with meta_dir, raw_dir, preprocessed_dir, report_dir and ballots_file
    """
    meta_dir = tmp_path / "meta"
    raw_dir = tmp_path / "raw"
    meta_dir.mkdir()

    metadata = {
        "path": "us/xx/test",
        "name": "Testville",
        "offices": {"mayor": {"name": "Mayor"}, "council": {"name": "City Council"}},
        "elections": {
            "2023/11": {
                "name": "General Election",
                "date": "2023-11-07",
                "dataFormat": "simple_json",
                "tabulation": "irv",
                "contests": [
                    {"office": "mayor", "loaderParams": {"file": "mayor.json"}},
                    {"office": "council", "loaderParams": {"file": "council.json"}},
                ],
            }
        },
    }
    (meta_dir / "testville.json").write_text(json.dumps(metadata))

    election_dir = raw_dir / "us" / "xx" / "test" / "2023" / "11"
    election_dir.mkdir(parents=True)
    (election_dir / "mayor.json").write_text(
        json.dumps(
            {
                "candidates": ["One", "Two", "Three"],
                "ballots": [[1, 2], [1, 3], [2, 1], [3, 1], [2]],
            }
        )
    )
    (election_dir / "council.json").write_text(
        json.dumps(
            {
                "candidates": ["A", "B", "C"],
                "ballots": [
                    {"ranks": [1, 2, 3], "count": 4},
                    {"ranks": [2, 3, 1], "count": 3},
                    {"ranks": [3, 1, 2], "count": 2},
                ],
            }
        )
    )

    return {
        "meta_dir": meta_dir,
        "raw_dir": raw_dir,
        "preprocessed_dir": tmp_path / "preprocessed",
        "report_dir": tmp_path / "reports",
        "election_dir": election_dir,
    }


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (full pipeline on temporary directories)",
    )
    config.addinivalue_line(
        "markers",
        "golden: marks tests as golden dataset validation (hand-computed results)",
    )
    config.addinivalue_line(
        "markers", "invariant: marks tests as mathematical invariant validation"
    )
    config.addinivalue_line(
        "markers", "smoke: marks tests as smoke tests (basic functionality check)"
    )
