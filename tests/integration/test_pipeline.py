"""
End-to-end pipeline tests over temporary metadata, raw and report trees.
"""

import json
from unittest.mock import patch

import pytest

from ranked_vote.analysis.ranking_distribution import compute_ranking_distribution
from ranked_vote.config import PipelineSettings
from ranked_vote.errors import MetadataError
from ranked_vote.formats.simple_json import SimpleJsonLoader
from ranked_vote.pipeline import ReportPipeline, withdrawn_ids

MAYOR = "us/xx/test/2023/11/mayor"
COUNCIL = "us/xx/test/2023/11/council"


def _settings(tree, **overrides):
    return PipelineSettings(
        meta_dir=tree["meta_dir"],
        raw_dir=tree["raw_dir"],
        preprocessed_dir=tree["preprocessed_dir"],
        report_dir=tree["report_dir"],
        **overrides,
    )


def _read_report(tree, contest_path):
    with open(tree["report_dir"] / contest_path / "report.json", encoding="utf-8") as f:
        return json.load(f)


@pytest.mark.integration
class TestPipeline:
    def test_reports_and_index(self, metadata_tree):
        result = ReportPipeline(_settings(metadata_tree, workers=2)).run()

        assert result.ok
        assert result.succeeded == [COUNCIL, MAYOR]

        mayor = _read_report(metadata_tree, MAYOR)
        assert mayor["info"]["name"] == "Testville Mayor"
        assert mayor["winner"] == 0
        assert mayor["condorcet"] == 0
        assert mayor["ballotCount"] == 5

        council = _read_report(metadata_tree, COUNCIL)
        assert "condorcet" not in council
        assert sorted(council["smithSet"]) == [0, 1, 2]
        assert council["rankingDistribution"]["overallDistribution"] == {"3": 9}

        index = json.loads((metadata_tree["report_dir"] / "index.json").read_text())
        assert index == result.index
        contests = index["elections"][0]["contests"]
        assert [c["officeName"] for c in contests] == ["City Council", "Mayor"]
        assert contests[1]["winner"] == "One"

    def test_snapshots_written(self, metadata_tree):
        ReportPipeline(_settings(metadata_tree)).run()
        snapshot_dir = metadata_tree["preprocessed_dir"] / MAYOR
        assert (snapshot_dir / "normalized.parquet").exists()
        assert (snapshot_dir / "manifest.json").exists()

    def test_rerun_is_byte_identical_and_uses_snapshots(self, metadata_tree):
        ReportPipeline(_settings(metadata_tree)).run()
        report_file = metadata_tree["report_dir"] / MAYOR / "report.json"
        first = report_file.read_bytes()

        with patch.object(SimpleJsonLoader, "parse", side_effect=AssertionError("re-parsed")):
            result = ReportPipeline(_settings(metadata_tree)).run()

        assert result.ok
        assert report_file.read_bytes() == first

    def test_raw_change_regenerates(self, metadata_tree):
        ReportPipeline(_settings(metadata_tree)).run()
        (metadata_tree["election_dir"] / "mayor.json").write_text(
            json.dumps({"candidates": ["One", "Two", "Three"], "ballots": [[2], [2, 1], [3]]})
        )

        ReportPipeline(_settings(metadata_tree)).run()
        mayor = _read_report(metadata_tree, MAYOR)
        assert mayor["ballotCount"] == 3
        assert mayor["winner"] == 1

    def test_force_preprocess(self, metadata_tree):
        ReportPipeline(_settings(metadata_tree)).run()
        loader = SimpleJsonLoader()
        with patch.object(SimpleJsonLoader, "parse", wraps=loader.parse) as parse:
            ReportPipeline(_settings(metadata_tree, force_preprocess=True)).run()
        assert parse.call_count == 2

    def test_failing_contest_does_not_stop_siblings(self, metadata_tree):
        (metadata_tree["election_dir"] / "council.json").unlink()

        result = ReportPipeline(_settings(metadata_tree)).run()

        assert not result.ok
        assert result.succeeded == [MAYOR]
        assert [f.contest_path for f in result.failures] == [COUNCIL]
        assert result.failures[0].data_format == "simple_json"
        assert "not found" in result.failures[0].error
        assert [c["office"] for c in result.index["elections"][0]["contests"]] == ["mayor"]

    @pytest.mark.parametrize(
        "council",
        [
            {"candidates": [{"writeIn": True}], "ballots": []},
            {"candidates": ["A", "B"], "ballots": [{"ranks": [1], "count": "two"}]},
            {"candidates": ["A", "B"], "ballots": [{"ranks": [1], "count": 2.5}]},
            ["not", "an", "object"],
        ],
    )
    def test_malformed_raw_file_fails_only_its_contest(self, metadata_tree, council):
        (metadata_tree["election_dir"] / "council.json").write_text(json.dumps(council))

        result = ReportPipeline(_settings(metadata_tree)).run()

        assert result.succeeded == [MAYOR]
        assert [f.contest_path for f in result.failures] == [COUNCIL]
        assert result.failures[0].error.startswith("[simple_json]")
        index = json.loads((metadata_tree["report_dir"] / "index.json").read_text())
        assert [c["office"] for c in index["elections"][0]["contests"]] == ["mayor"]

    def test_undecodable_raw_file_fails_only_its_contest(self, metadata_tree):
        (metadata_tree["election_dir"] / "council.json").write_bytes(b'{"candidates": ["\xff"]}')

        result = ReportPipeline(_settings(metadata_tree)).run()

        assert result.succeeded == [MAYOR]
        assert "not valid UTF-8" in result.failures[0].error

    def test_unexpected_exception_is_recorded(self, metadata_tree, caplog):
        def failing_for_council(election):
            if len(election.ballots) == 9:
                raise RuntimeError("boom")
            return compute_ranking_distribution(election)

        with patch(
            "ranked_vote.pipeline.compute_ranking_distribution", side_effect=failing_for_council
        ):
            result = ReportPipeline(_settings(metadata_tree, workers=2)).run()

        assert result.succeeded == [MAYOR]
        assert result.failures[0].contest_path == COUNCIL
        assert result.failures[0].error == "RuntimeError: boom"
        assert "Unexpected error" in caplog.text
        assert (metadata_tree["report_dir"] / "index.json").exists()

    def test_cached_report_reused(self, metadata_tree):
        ReportPipeline(_settings(metadata_tree)).run()
        report_file = metadata_tree["report_dir"] / MAYOR / "report.json"
        first = report_file.read_bytes()

        with patch(
            "ranked_vote.pipeline.generate_report", side_effect=AssertionError("regenerated")
        ):
            result = ReportPipeline(_settings(metadata_tree, use_cache_report=True)).run()

        assert result.ok
        assert report_file.read_bytes() == first
        assert len(result.index["elections"][0]["contests"]) == 2

    def test_cached_report_regenerated_after_raw_change(self, metadata_tree):
        ReportPipeline(_settings(metadata_tree)).run()
        (metadata_tree["election_dir"] / "mayor.json").write_text(
            json.dumps({"candidates": ["One", "Two", "Three"], "ballots": [[2], [2, 1], [3]]})
        )

        ReportPipeline(_settings(metadata_tree, use_cache_report=True)).run()
        assert _read_report(metadata_tree, MAYOR)["ballotCount"] == 3

    def test_round_summary_logged_at_debug(self, metadata_tree, caplog):
        caplog.set_level("DEBUG", logger="ranked_vote.pipeline")
        ReportPipeline(_settings(metadata_tree)).run()
        assert f"[{MAYOR}] Round summary" in caplog.text
        assert "elected" in caplog.text

    def test_jurisdiction_filter(self, metadata_tree):
        result = ReportPipeline(_settings(metadata_tree, jurisdiction="us/zz/none")).run()
        assert result.succeeded == []
        assert result.index == {"elections": []}

    def test_withdrawn_candidate(self, metadata_tree):
        meta_file = metadata_tree["meta_dir"] / "testville.json"
        metadata = json.loads(meta_file.read_text())
        metadata["elections"]["2023/11"]["contests"][0]["withdrawn"] = ["Two"]
        meta_file.write_text(json.dumps(metadata))

        ReportPipeline(_settings(metadata_tree)).run()
        mayor = _read_report(metadata_tree, MAYOR)

        assert mayor["rounds"][0]["undervote"] == 1
        assert mayor["pairwisePreferences"]["rows"] == [0, 2]
        assert [v["candidate"] for v in mayor["totalVotes"]] == [0, 2, 1]

    def test_unsupported_tabulation_fails_contests(self, metadata_tree):
        meta_file = metadata_tree["meta_dir"] / "testville.json"
        metadata = json.loads(meta_file.read_text())
        metadata["elections"]["2023/11"]["tabulation"] = "nyc_style"
        meta_file.write_text(json.dumps(metadata))

        result = ReportPipeline(_settings(metadata_tree)).run()

        assert result.succeeded == []
        assert all("nyc_style" in f.error for f in result.failures)

    def test_cross_check(self, metadata_tree, caplog):
        caplog.set_level("INFO")
        result = ReportPipeline(_settings(metadata_tree, cross_check=True)).run()
        assert result.ok
        assert "PyRankVote agrees" in caplog.text


@pytest.mark.integration
def test_withdrawn_names_must_be_on_roster(scenario_a):
    assert withdrawn_ids(scenario_a, ["Three"]) == frozenset({2})
    with pytest.raises(MetadataError, match="Nobody"):
        withdrawn_ids(scenario_a, ["Nobody"])
