"""
Pairwise preference, Condorcet and Smith set tests.
"""

import numpy as np
import pytest

from ranked_vote.analysis.pairwise import PairwiseAnalyzer, display_order, first_final_table
from ranked_vote.analysis.tabulator import Tabulator
from ranked_vote.errors import AnalysisError
from ranked_vote.model import EXHAUSTED, OVERVOTE, UNDERVOTE, PairEntry


@pytest.mark.unit
class TestPairwiseCounts:
    def test_cycle_counts(self, cycle_election):
        analyzer = PairwiseAnalyzer(cycle_election)
        table = analyzer.preference_table([0, 1, 2])

        assert table.get(0, 1) == PairEntry(6, 9)
        assert table.get(1, 2) == PairEntry(7, 9)
        assert table.get(2, 0) == PairEntry(5, 9)
        assert table.get(0, 0) is None

    def test_complementary_entries(self, cycle_election):
        wins = PairwiseAnalyzer(cycle_election).wins
        table = PairwiseAnalyzer(cycle_election).preference_table([2, 0, 1])
        for a in range(3):
            for b in range(3):
                if a == b:
                    continue
                ab, ba = table.get(a, b), table.get(b, a)
                assert ab.denominator == ba.denominator
                assert ab.numerator + ba.numerator == ab.denominator
                assert ab.numerator == wins[a, b]

    def test_ballots_ranking_neither_are_excluded(self, scenario_a):
        table = PairwiseAnalyzer(scenario_a).preference_table([0, 1, 2])
        # The ballot ranking only Two says nothing about One versus Three.
        assert table.get(0, 2) == PairEntry(3, 4)
        assert table.get(0, 1) == PairEntry(3, 5)

    def test_gaps_skipped_and_overvote_truncates(self, election_factory):
        election = election_factory(["A", "B", "C"], [[UNDERVOTE, 1, 0], [2, OVERVOTE, 0]])
        wins = PairwiseAnalyzer(election).wins
        assert wins[1, 0] == 1
        # The second ballot stops at the overvote, so it ranks only C.
        assert wins[2, 0] == 1
        assert wins[0, 2] == 0

    def test_subset_of_candidates(self, scenario_a):
        analyzer = PairwiseAnalyzer(scenario_a, candidates=[0, 2])
        assert analyzer.wins.shape == (2, 2)
        assert analyzer.preference_table([0, 2]).get(2, 0) == PairEntry(1, 4)


@pytest.mark.unit
class TestCondorcetAndSmith:
    def test_cycle_has_no_condorcet_winner(self, cycle_election):
        analyzer = PairwiseAnalyzer(cycle_election)
        assert analyzer.condorcet_winner() is None
        assert analyzer.smith_set() == [0, 1, 2]

    def test_condorcet_winner(self, scenario_a):
        analyzer = PairwiseAnalyzer(scenario_a)
        assert analyzer.condorcet_winner() == 0
        assert analyzer.smith_set() == [0]

    def test_pairwise_tie(self, election_factory):
        election = election_factory(["A", "B", "C"], [[0, 1, 2], [1, 0, 2]])
        analyzer = PairwiseAnalyzer(election)
        assert analyzer.condorcet_winner() is None
        assert analyzer.smith_set() == [0, 1]

    def test_condorcet_winner_is_smith_set(self, election_factory):
        election = election_factory(
            ["A", "B", "C", "D"],
            [[1, 0, 2, 3]] * 3 + [[2, 1, 0]] * 2 + [[3, 1]] * 2 + [[0, 3]],
        )
        analyzer = PairwiseAnalyzer(election)
        winner = analyzer.condorcet_winner()
        assert winner == 1
        assert analyzer.smith_set() == [winner]

    def test_single_candidate(self, election_factory):
        analyzer = PairwiseAnalyzer(election_factory(["Solo"], [[0], []]))
        assert np.array_equal(analyzer.wins, np.zeros((1, 1)))
        assert analyzer.condorcet_winner() == 0
        assert analyzer.smith_set() == [0]

    def test_no_candidates(self, election_factory):
        with pytest.raises(AnalysisError):
            PairwiseAnalyzer(election_factory([], [[]])).condorcet_winner()


@pytest.mark.unit
class TestCrossTables:
    def test_first_alternate(self, scenario_a):
        table = PairwiseAnalyzer(scenario_a).first_alternate_table([0, 1, 2])

        assert table.cols == (0, 1, 2, EXHAUSTED)
        assert table.get(0, 0) is None
        assert table.get(0, 1) == PairEntry(1, 2)
        assert table.get(0, 2) == PairEntry(1, 2)
        assert table.get(1, 0) == PairEntry(1, 2)
        assert table.get(1, EXHAUSTED) == PairEntry(1, 2)
        assert table.get(2, 0) == PairEntry(1, 1)

    def test_first_final(self, scenario_a):
        tabulator = Tabulator(scenario_a)
        tabulator.tabulate()
        table = first_final_table(
            [0, 1, 2], [0, 1], tabulator.final_allocations_by_first_choice()
        )

        assert table.cols == (0, 1, EXHAUSTED)
        assert table.get(0, 0) == PairEntry(2, 2)
        assert table.get(1, 1) == PairEntry(2, 2)
        assert table.get(2, 0) == PairEntry(1, 1)
        assert table.get(2, EXHAUSTED) == PairEntry(0, 1)

    def test_first_final_without_ballots(self):
        table = first_final_table([0, 1], [0], {0: {0: 3}})
        assert table.get(1, 0) == PairEntry(0, 0)
        assert table.get(1, 0).frac == 0.0


@pytest.mark.unit
class TestDisplayOrder:
    def test_winner_then_finalists_then_elimination_round(self, election_factory):
        election = election_factory(
            ["A", "B", "C", "D"],
            [[0]] * 4 + [[1]] * 2 + [[2]] * 3 + [[3, 1]],
        )
        tabulator = Tabulator(election)
        rounds = tabulator.tabulate()
        order = display_order(
            range(4),
            tabulator.winner,
            tabulator.total_votes(),
            list(rounds[-1].candidate_votes()),
        )
        # B went out in round 2, D in round 1.
        assert order == [0, 2, 1, 3]

    def test_first_round_votes_break_ties(self, scenario_a):
        tabulator = Tabulator(scenario_a)
        rounds = tabulator.tabulate()
        order = display_order(
            [2, 1, 0], tabulator.winner, tabulator.total_votes(), [0, 1]
        )
        assert order == [0, 1, 2]
        assert len(rounds) == 2
