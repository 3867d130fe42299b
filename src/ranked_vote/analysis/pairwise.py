"""
Head-to-head analysis: pairwise preferences, Condorcet winner, Smith set and
the first-alternate / first-final cross tabulations.

A ballot prefers A to B when it ranks A ahead of B, or ranks A and leaves B
unranked. A ballot that ranks neither candidate does not count toward that
pair at all, so each pair's denominator is the number of ballots expressing a
preference between the two.
"""

import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..errors import AnalysisError
from ..model import (
    EXHAUSTED,
    Allocatee,
    CandidatePairTable,
    CandidateVotes,
    NormalizedElection,
    PairEntry,
)

logger = logging.getLogger(__name__)


def display_order(
    candidates: Sequence[int],
    winner: int,
    total_votes: Sequence[CandidateVotes],
    final_round: Sequence[int],
) -> List[int]:
    """
    Order candidates for report tables.

    The winner comes first, then candidates by the round they were eliminated
    in (latest first; still standing at the end counts as latest), then by
    first-round votes.
    """
    by_candidate = {v.candidate: v for v in total_votes}
    last_round = max((v.round_eliminated or 0) for v in total_votes) + 1
    final = set(final_round)

    def sort_key(candidate: int):
        votes = by_candidate.get(candidate)
        if candidate in final:
            eliminated = last_round
        else:
            eliminated = (votes.round_eliminated if votes else None) or 0
        first_votes = votes.first_round_votes if votes else 0
        return (candidate != winner, -eliminated, -first_votes, candidate)

    return sorted(candidates, key=sort_key)


class PairwiseAnalyzer:
    """
    Pairwise counts over the effective rankings of a normalized election.

    Ballots with identical effective rankings are grouped and each distinct
    ranking contributes one vectorized update to the count matrix.
    """

    def __init__(self, election: NormalizedElection, candidates: Optional[Sequence[int]] = None):
        """
        Args:
            election: Normalized election to analyze
            candidates: Candidate ids to compare (default: all candidates)
        """
        self.election = election
        self.candidates = list(candidates) if candidates is not None else list(
            range(len(election.candidates))
        )
        self.rankings = Counter(b.effective_choices() for b in election.ballots)
        self._wins: Optional[np.ndarray] = None

    @property
    def wins(self) -> np.ndarray:
        """``wins[i, j]``: ballots preferring candidate i to candidate j (by position)."""
        if self._wins is None:
            self._wins = self._count_wins()
        return self._wins

    def _count_wins(self) -> np.ndarray:
        if not self.candidates:
            raise AnalysisError("Pairwise analysis needs at least one candidate")

        size = len(self.candidates)
        index = {c: i for i, c in enumerate(self.candidates)}
        wins = np.zeros((size, size), dtype=np.int64)
        unranked = size + 1

        for ranking, count in self.rankings.items():
            positions = np.full(size, unranked, dtype=np.int64)
            rank = 0
            for candidate in ranking:
                if candidate in index:
                    positions[index[candidate]] = rank
                    rank += 1
            if rank == 0:
                continue
            wins += count * (positions[:, None] < positions[None, :])

        logger.debug(f"Pairwise counts computed over {len(self.rankings)} distinct rankings")
        return wins

    def condorcet_winner(self) -> Optional[int]:
        """The candidate beating every other head-to-head, or None."""
        wins = self.wins
        beats = wins > wins.T
        np.fill_diagonal(beats, True)
        winners = np.flatnonzero(beats.all(axis=1))
        if len(winners) == 1:
            return self.candidates[int(winners[0])]
        return None

    def smith_set(self) -> List[int]:
        """
        Candidates that reach every other candidate through pairwise wins or ties.

        Equivalent to the smallest set whose members are unbeaten by anyone
        outside it. Returned in candidate id order.
        """
        wins = self.wins
        reach = wins >= wins.T
        np.fill_diagonal(reach, True)

        # Transitive closure by repeated squaring.
        size = len(self.candidates)
        steps = 1
        while steps < size:
            reach = reach | ((reach.astype(np.int64) @ reach.astype(np.int64)) > 0)
            steps *= 2

        members = np.flatnonzero(reach.all(axis=1))
        return sorted(self.candidates[int(i)] for i in members)

    def preference_table(self, order: Sequence[int]) -> CandidatePairTable:
        """Square table; cell (A, B) is the share of A-vs-B ballots preferring A."""
        index = {c: i for i, c in enumerate(self.candidates)}
        wins = self.wins
        entries = []
        for row in order:
            cells: List[Optional[PairEntry]] = []
            for col in order:
                if row == col:
                    cells.append(None)
                    continue
                a, b = index[row], index[col]
                for_row = int(wins[a, b])
                cells.append(PairEntry(for_row, for_row + int(wins[b, a])))
            entries.append(tuple(cells))
        return CandidatePairTable(tuple(order), tuple(order), tuple(entries))

    def first_alternate_table(self, order: Sequence[int]) -> CandidatePairTable:
        """
        Among ballots whose first effective choice is the row candidate, the
        share whose second effective choice is the column candidate (X: none).
        """
        counts: Dict[int, Counter] = {c: Counter() for c in order}
        for ranking, count in self.rankings.items():
            if not ranking or ranking[0] not in counts:
                continue
            second: Allocatee = ranking[1] if len(ranking) > 1 else EXHAUSTED
            counts[ranking[0]][second] += count

        cols: Tuple[Allocatee, ...] = tuple(order) + (EXHAUSTED,)
        return _share_table(tuple(order), cols, counts, skip_diagonal=True)


def first_final_table(
    order: Sequence[int],
    final_round: Sequence[int],
    final_allocations: Dict[int, Dict[Allocatee, int]],
) -> CandidatePairTable:
    """
    Among ballots whose first effective choice is the row candidate, the share
    allocated to each final-round candidate (or exhausted) in the last round.

    Args:
        order: Row candidates in display order
        final_round: Candidates still continuing in the final round, display order
        final_allocations: Output of ``Tabulator.final_allocations_by_first_choice``
    """
    counts = {c: Counter(final_allocations.get(c, {})) for c in order}
    cols: Tuple[Allocatee, ...] = tuple(final_round) + (EXHAUSTED,)
    return _share_table(tuple(order), cols, counts, skip_diagonal=False)


def _share_table(
    rows: Tuple[Allocatee, ...],
    cols: Tuple[Allocatee, ...],
    counts: Dict[int, Counter],
    skip_diagonal: bool,
) -> CandidatePairTable:
    entries = []
    for row in rows:
        total = sum(counts[row].values())
        cells: List[Optional[PairEntry]] = []
        for col in cols:
            if skip_diagonal and row == col:
                cells.append(None)
            else:
                cells.append(PairEntry(counts[row].get(col, 0), total))
        entries.append(tuple(cells))
    return CandidatePairTable(rows, cols, tuple(entries))
