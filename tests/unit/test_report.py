"""
Report assembly, atomic writes, the index and the report store.
"""

import json
import os
from pathlib import Path

import pytest

from ranked_vote.analysis.pairwise import PairwiseAnalyzer
from ranked_vote.analysis.ranking_distribution import compute_ranking_distribution
from ranked_vote.analysis.tabulator import Tabulator
from ranked_vote.errors import AssemblyError, ReportLookupError
from ranked_vote.metadata import ContestContext, parse_jurisdiction
from ranked_vote.report import ReportStore, build_index, rebuild_index, write_json_atomic
from ranked_vote.report.assembler import election_info, generate_report
from ranked_vote.report.index import INDEX_FILE, contest_index_entry


def _context(office="mayor", office_name="Mayor", date="2023-11-07", election_path="2023/11"):
    jurisdiction = parse_jurisdiction(
        {
            "path": "us/xx/test",
            "name": "Testville",
            "offices": {office: {"name": office_name}},
            "elections": {
                election_path: {
                    "name": "General Election",
                    "date": date,
                    "dataFormat": "simple_json",
                    "contests": [{"office": office, "loaderParams": {"file": f"{office}.json"}}],
                }
            },
        },
        Path("test.json"),
    )
    election = jurisdiction.elections[election_path]
    return ContestContext(jurisdiction, election, election.contests[0])


def _report(context, election):
    tabulator = Tabulator(election)
    tabulator.tabulate()
    return generate_report(
        context,
        election,
        tabulator,
        PairwiseAnalyzer(election),
        compute_ranking_distribution(election),
    )


@pytest.mark.unit
class TestAssembler:
    def test_info_block(self):
        info = election_info(_context())
        assert info["name"] == "Testville Mayor"
        assert info["jurisdictionPath"] == "us/xx/test"
        assert info["electionPath"] == "2023/11"
        assert info["loaderParams"] == {"file": "mayor.json"}
        assert info["tabulation"] == "irv"
        assert "website" not in info

    def test_report_fields(self, scenario_a):
        report = _report(_context(), scenario_a)

        assert list(report) == [
            "info",
            "ballotCount",
            "candidates",
            "rounds",
            "winner",
            "condorcet",
            "smithSet",
            "numCandidates",
            "totalVotes",
            "pairwisePreferences",
            "firstAlternate",
            "firstFinal",
            "rankingDistribution",
        ]
        assert report["ballotCount"] == 5
        assert report["winner"] == 0
        assert report["condorcet"] == 0
        assert report["smithSet"] == [0]
        assert [v["candidate"] for v in report["totalVotes"]] == [0, 1, 2]
        assert report["totalVotes"][2]["roundEliminated"] == 1
        assert report["pairwisePreferences"]["rows"] == [0, 1, 2]
        assert report["firstAlternate"]["cols"] == [0, 1, 2, "X"]
        assert report["firstFinal"]["cols"] == [0, 1, "X"]
        assert report["rounds"][1]["transfers"] == [{"from": 2, "to": 0, "count": 1}]

    def test_no_condorcet_field_for_cycle(self, cycle_election):
        report = _report(_context(), cycle_election)
        assert "condorcet" not in report
        assert sorted(report["smithSet"]) == [0, 1, 2]
        # Smith set members follow display order, winner first.
        assert report["smithSet"][0] == report["winner"]

    def test_serializable(self, scenario_a):
        report = _report(_context(), scenario_a)
        assert json.loads(json.dumps(report)) == report

    def test_incomplete_tabulation(self, scenario_a):
        with pytest.raises(AssemblyError):
            generate_report(
                _context(), scenario_a, Tabulator(scenario_a), PairwiseAnalyzer(scenario_a)
            )

    def test_non_condorcet_winner_logged(self, election_factory, caplog):
        # A wins the runoff but B is preferred to both A and C head-to-head.
        election = election_factory(
            ["A", "B", "C"],
            [[0, 1]] * 4 + [[2, 1]] * 3 + [[1, 0]] * 2,
        )
        report = _report(_context(), election)
        assert report["winner"] == 0
        assert report["condorcet"] == 1
        assert "was not elected" in caplog.text


@pytest.mark.unit
class TestWriter:
    def test_writes_formatted_json(self, tmp_path):
        target = tmp_path / "a" / "b" / "report.json"
        write_json_atomic(target, {"name": "Zoë", "n": 1})

        text = target.read_text(encoding="utf-8")
        assert text.endswith("}\n")
        assert "Zoë" in text
        assert json.loads(text) == {"name": "Zoë", "n": 1}

    def test_failed_write_leaves_old_file(self, tmp_path):
        target = tmp_path / "report.json"
        write_json_atomic(target, {"version": 1})

        with pytest.raises(AssemblyError):
            write_json_atomic(target, {"bad": object()})

        assert json.loads(target.read_text()) == {"version": 1}
        assert os.listdir(tmp_path) == ["report.json"]


@pytest.mark.unit
class TestIndex:
    def write(self, report_dir, context, election):
        report = _report(context, election)
        write_json_atomic(context.report_path(report_dir), report)
        return report

    def test_contest_entry(self, scenario_a):
        entry = contest_index_entry(_report(_context(), scenario_a))
        assert entry == {
            "office": "mayor",
            "officeName": "Mayor",
            "name": "Testville Mayor",
            "winner": "One",
            "numCandidates": 3,
            "numRounds": 2,
            "condorcetWinner": "One",
            "hasNonCondorcetWinner": False,
        }

    def test_grouping_and_order(self, tmp_path, scenario_a, cycle_election):
        self.write(tmp_path, _context(), scenario_a)
        self.write(tmp_path, _context("council", "City Council"), cycle_election)
        self.write(
            tmp_path, _context(date="2021-06-22", election_path="2021/06"), scenario_a
        )

        index = build_index(tmp_path)
        assert [e["path"] for e in index["elections"]] == [
            "us/xx/test/2023/11",
            "us/xx/test/2021/06",
        ]
        latest = index["elections"][0]
        assert latest["jurisdictionName"] == "Testville"
        assert [c["officeName"] for c in latest["contests"]] == ["City Council", "Mayor"]
        assert "condorcetWinner" not in latest["contests"][0]

    def test_unreadable_report_skipped(self, tmp_path, scenario_a):
        self.write(tmp_path, _context(), scenario_a)
        broken = tmp_path / "us" / "broken" / "report.json"
        broken.parent.mkdir(parents=True)
        broken.write_text("{")

        index = build_index(tmp_path)
        assert len(index["elections"]) == 1

    def test_report_with_partial_info_skipped(self, tmp_path, scenario_a, caplog):
        self.write(tmp_path, _context(), scenario_a)
        partial = _report(_context("council", "City Council"), scenario_a)
        del partial["info"]["jurisdictionPath"]
        write_json_atomic(tmp_path / "us" / "partial" / "report.json", partial)

        index = build_index(tmp_path)
        assert [e["path"] for e in index["elections"]] == ["us/xx/test/2023/11"]
        assert [c["office"] for c in index["elections"][0]["contests"]] == ["mayor"]
        assert "jurisdictionPath" in caplog.text

    def test_undecodable_report_skipped(self, tmp_path, scenario_a):
        self.write(tmp_path, _context(), scenario_a)
        broken = tmp_path / "us" / "latin1" / "report.json"
        broken.parent.mkdir(parents=True)
        broken.write_bytes(b'{"info": "\xff\xfe"}')

        assert len(build_index(tmp_path)["elections"]) == 1

    def test_rebuild_writes_file(self, tmp_path, scenario_a):
        self.write(tmp_path, _context(), scenario_a)
        index = rebuild_index(tmp_path)
        assert json.loads((tmp_path / INDEX_FILE).read_text()) == index

    def test_empty_tree(self, tmp_path):
        assert rebuild_index(tmp_path / "reports") == {"elections": []}


@pytest.mark.unit
class TestReportStore:
    @pytest.fixture
    def store(self, tmp_path, scenario_a):
        context = _context()
        write_json_atomic(context.report_path(tmp_path), _report(context, scenario_a))
        return ReportStore(tmp_path)

    def test_lookup(self, store):
        report = store.get_report("us/xx/test/2023/11/mayor")
        assert report["info"]["name"] == "Testville Mayor"
        assert store.get_report("/us/xx/test/2023/11/mayor/report.json") == report

    def test_missing(self, store):
        assert store.get_report("us/xx/test/2023/11/sheriff") is None
        assert store.get_report("") is None

    def test_path_traversal_refused(self, store):
        assert store.get_report("us/../../etc") is None

    def test_report_without_info(self, store, tmp_path):
        write_json_atomic(tmp_path / "us" / "empty" / "report.json", {"rounds": []})
        assert store.get_report("us/empty") is None

    def test_unreadable_report(self, store, tmp_path):
        path = tmp_path / "us" / "bad" / "report.json"
        path.parent.mkdir(parents=True)
        path.write_text("not json")
        with pytest.raises(ReportLookupError):
            store.get_report("us/bad")

    def test_undecodable_report(self, store, tmp_path):
        path = tmp_path / "us" / "latin1" / "report.json"
        path.parent.mkdir(parents=True)
        path.write_bytes(b'{"info": "\xff\xfe"}')
        with pytest.raises(ReportLookupError):
            store.get_report("us/latin1")

    def test_index(self, store, tmp_path):
        assert store.get_index() is None
        rebuild_index(tmp_path)
        assert store.get_index()["elections"][0]["path"] == "us/xx/test/2023/11"
