"""
Canonical data model shared by loaders, the normalizer and the analyses.

Candidate ids are positions in the contest's candidate list. Ballot marks are
plain integers: non-negative values are candidate ids, ``OVERVOTE`` and
``UNDERVOTE`` are negative sentinels so a ballot can be stored as a compact
integer column.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

OVERVOTE = -1
UNDERVOTE = -2

EXHAUSTED = "X"

Allocatee = Union[int, str]


@dataclass(frozen=True)
class Candidate:
    """A contest candidate; its id is its index in the candidate list."""

    name: str
    write_in: bool = False
    candidate_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"name": self.name}
        if self.write_in:
            result["writeIn"] = True
        if self.candidate_type:
            result["candidate_type"] = self.candidate_type
        return result


@dataclass(frozen=True)
class Ballot:
    """One cast vote record: marks in rank order."""

    ballot_id: str
    choices: Tuple[int, ...]

    def effective_choices(self) -> Tuple[int, ...]:
        """Candidate ids before the first overvote, skipping undervote gaps."""
        result = []
        for choice in self.choices:
            if choice == OVERVOTE:
                break
            if choice >= 0:
                result.append(choice)
        return tuple(result)

    def ends_in_overvote(self) -> bool:
        """True if the usable marks stop at an overvote rather than running out."""
        for choice in self.choices:
            if choice == OVERVOTE:
                return True
        return False

    def ranks_used(self) -> int:
        """Number of candidate marks before the first gap, overvote or end."""
        used = 0
        for choice in self.choices:
            if choice < 0:
                break
            used += 1
        return used


@dataclass
class RawElection:
    """Loader output: candidate roster plus ballots in source order."""

    candidates: List[Candidate]
    ballots: List[Ballot]


@dataclass(frozen=True)
class NormalizedElection:
    """The canonical, immutable CVR for one contest."""

    candidates: Tuple[Candidate, ...]
    ballots: Tuple[Ballot, ...]
    fingerprint: str = ""

    @property
    def num_candidates(self) -> int:
        """Candidates counted for display; write-ins are excluded."""
        return sum(1 for c in self.candidates if not c.write_in)


@dataclass(frozen=True, order=True)
class Transfer:
    from_candidate: int
    to: Allocatee
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"from": self.from_candidate, "to": self.to, "count": self.count}


@dataclass(frozen=True)
class TabulatorAllocation:
    allocatee: Allocatee
    votes: int

    def to_dict(self) -> Dict[str, Any]:
        return {"allocatee": self.allocatee, "votes": self.votes}


@dataclass(frozen=True)
class TabulatorRound:
    """
    One round of IRV tabulation as it appears in the report.

    ``allocations`` lists candidates by descending votes followed by the
    exhausted entry. ``continuing_ballots`` is the sum of the candidate
    allocations. ``transfers`` are the ballots moved into this round by the
    previous round's elimination.
    """

    allocations: Tuple[TabulatorAllocation, ...]
    undervote: int
    overvote: int
    continuing_ballots: int
    transfers: Tuple[Transfer, ...] = ()

    def candidate_votes(self) -> Dict[int, int]:
        return {
            a.allocatee: a.votes
            for a in self.allocations
            if a.allocatee != EXHAUSTED
        }

    def exhausted(self) -> int:
        for a in self.allocations:
            if a.allocatee == EXHAUSTED:
                return a.votes
        return 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allocations": [a.to_dict() for a in self.allocations],
            "undervote": self.undervote,
            "overvote": self.overvote,
            "continuingBallots": self.continuing_ballots,
            "transfers": [t.to_dict() for t in self.transfers],
        }


@dataclass(frozen=True)
class CandidateVotes:
    candidate: int
    first_round_votes: int
    transfer_votes: int
    round_eliminated: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "candidate": self.candidate,
            "firstRoundVotes": self.first_round_votes,
            "transferVotes": self.transfer_votes,
        }
        if self.round_eliminated is not None:
            result["roundEliminated"] = self.round_eliminated
        return result


@dataclass(frozen=True)
class PairEntry:
    numerator: int
    denominator: int

    @property
    def frac(self) -> float:
        if self.denominator == 0:
            return 0.0
        return self.numerator / self.denominator

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frac": self.frac,
            "numerator": self.numerator,
            "denominator": self.denominator,
        }


@dataclass(frozen=True)
class CandidatePairTable:
    """Rows and columns are allocatee lists; ``entries[i][j]`` is row i, col j."""

    rows: Tuple[Allocatee, ...]
    cols: Tuple[Allocatee, ...]
    entries: Tuple[Tuple[Optional[PairEntry], ...], ...]

    def get(self, row: Allocatee, col: Allocatee) -> Optional[PairEntry]:
        return self.entries[self.rows.index(row)][self.cols.index(col)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rows": list(self.rows),
            "cols": list(self.cols),
            "entries": [
                [e.to_dict() if e is not None else None for e in row]
                for row in self.entries
            ],
        }


@dataclass
class RankingDistribution:
    overall_distribution: Dict[str, int] = field(default_factory=dict)
    candidate_distributions: Dict[str, Dict[str, int]] = field(default_factory=dict)
    total_ballots: int = 0
    candidate_totals: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overallDistribution": self.overall_distribution,
            "candidateDistributions": self.candidate_distributions,
            "totalBallots": self.total_ballots,
            "candidateTotals": self.candidate_totals,
        }
