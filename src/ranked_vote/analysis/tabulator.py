"""
Instant-runoff (single-winner RCV) tabulation.

The tabulation is a sequence of immutable TabulatorState values. Each state
holds the frozen set of continuing candidates and, for every continuing
candidate, the ballots currently counting for it. Ballots with identical
remaining rankings are grouped, so a pile maps ``(first choice, remaining
preferences, ends in overvote)`` to a ballot count. ``eliminate()`` returns
the next state; no state is modified in place.
"""

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

import pandas as pd

from ..errors import TabulationError, TabulationInvariantError
from ..model import (
    EXHAUSTED,
    OVERVOTE,
    Allocatee,
    CandidateVotes,
    NormalizedElection,
    TabulatorAllocation,
    TabulatorRound,
    Transfer,
)

logger = logging.getLogger(__name__)

# (first effective choice, candidate ids still to be tried after the current one,
#  whether the ballot reaches an overvote once those run out)
PileKey = Tuple[int, Tuple[int, ...], bool]


@dataclass(frozen=True)
class TabulatorState:
    """One round of an IRV count."""

    round_number: int
    continuing: FrozenSet[int]
    piles: Mapping[int, Mapping[PileKey, int]]
    exhausted: Mapping[int, int]
    undervote: int
    overvote: int
    transfers: Tuple[Transfer, ...] = ()

    def votes(self) -> Dict[int, int]:
        return {c: sum(self.piles.get(c, {}).values()) for c in self.continuing}

    def exhausted_total(self) -> int:
        return sum(self.exhausted.values())

    def as_round(self) -> TabulatorRound:
        """The report representation: candidates by descending votes, then X."""
        votes = self.votes()
        ordered = sorted(votes.items(), key=lambda item: (-item[1], item[0]))
        allocations = [TabulatorAllocation(c, v) for c, v in ordered]
        allocations.append(TabulatorAllocation(EXHAUSTED, self.exhausted_total()))
        return TabulatorRound(
            allocations=tuple(allocations),
            undervote=self.undervote,
            overvote=self.overvote,
            continuing_ballots=sum(votes.values()),
            transfers=self.transfers,
        )

    def eliminate(self, eliminated: Iterable[int]) -> "TabulatorState":
        """
        Remove candidates and move their ballots to each ballot's next
        continuing preference.

        A ballot with no continuing preference left goes to the exhausted
        pile, unless its next usable position is an overvote: then it is
        added to the overvote count, which can grow round over round, and
        no transfer is recorded for it.
        """
        eliminated = sorted(set(eliminated))
        continuing = self.continuing.difference(eliminated)
        piles: Dict[int, Counter] = {c: Counter(self.piles.get(c, {})) for c in continuing}
        exhausted = Counter(self.exhausted)
        overvote = self.overvote
        moved: Dict[Tuple[int, Allocatee], int] = defaultdict(int)

        for from_candidate in eliminated:
            for (first, remaining, overvoted), count in self.piles.get(from_candidate, {}).items():
                for position, candidate in enumerate(remaining):
                    if candidate in continuing:
                        piles[candidate][(first, remaining[position + 1 :], overvoted)] += count
                        moved[(from_candidate, candidate)] += count
                        break
                else:
                    if overvoted:
                        overvote += count
                    else:
                        exhausted[first] += count
                        moved[(from_candidate, EXHAUSTED)] += count

        new_votes = {c: sum(p.values()) for c, p in piles.items()}

        def transfer_order(transfer: Transfer):
            if transfer.to == EXHAUSTED:
                return (0, 0, transfer.from_candidate, -1)
            return (1, -new_votes[transfer.to], transfer.from_candidate, transfer.to)

        transfers = sorted(
            (Transfer(src, dest, count) for (src, dest), count in moved.items()),
            key=transfer_order,
        )

        return TabulatorState(
            round_number=self.round_number + 1,
            continuing=frozenset(continuing),
            piles={c: dict(p) for c, p in piles.items()},
            exhausted=dict(exhausted),
            undervote=self.undervote,
            overvote=overvote,
            transfers=tuple(transfers),
        )


def initial_state(election: NormalizedElection, continuing: FrozenSet[int]) -> TabulatorState:
    """
    Allocate every ballot to its first continuing candidate.

    A ballot whose first usable position is an overvote is counted as an
    overvote; one with no usable candidate mark at all as an undervote. Both
    stay out of every later round.
    """
    piles: Dict[int, Counter] = {c: Counter() for c in continuing}
    undervote = overvote = 0

    for ballot in election.ballots:
        effective = ballot.effective_choices()
        first_choice = effective[0] if effective else None
        overvoted = ballot.ends_in_overvote()

        for choice in ballot.choices:
            if choice == OVERVOTE:
                overvote += 1
                break
            if choice in continuing:
                remaining = effective[effective.index(choice) + 1 :]
                piles[choice][(first_choice, remaining, overvoted)] += 1
                break
        else:
            undervote += 1

    return TabulatorState(
        round_number=1,
        continuing=continuing,
        piles={c: dict(p) for c, p in piles.items()},
        exhausted={},
        undervote=undervote,
        overvote=overvote,
    )


@dataclass
class Tabulator:
    """
    Runs an IRV count over a normalized election.

    Elimination policy: the continuing candidate with the fewest votes is
    eliminated. Candidates tied for fewest are separated by the most recent
    earlier round in which their tallies differed (the lower one goes); if
    they were tied in every round, the highest candidate id goes. All
    zero-vote candidates are eliminated together.
    """

    election: NormalizedElection
    withdrawn: FrozenSet[int] = frozenset()
    states: List[TabulatorState] = field(default_factory=list)
    rounds: List[TabulatorRound] = field(default_factory=list)
    winner: Optional[int] = None
    eliminated_in: Dict[int, int] = field(default_factory=dict)

    def tabulate(self) -> List[TabulatorRound]:
        """
        Run the count to completion.

        Returns:
            Rounds in order, starting with round 1

        Raises:
            TabulationError: for an election that cannot be counted
            TabulationInvariantError: if vote conservation or round progression breaks
        """
        if not self.election.ballots:
            raise TabulationError("Contest has no ballots")
        if not self.election.candidates:
            raise TabulationError("Contest has no candidates")

        continuing = frozenset(range(len(self.election.candidates))) - self.withdrawn
        if not continuing:
            raise TabulationError("Every candidate has withdrawn")

        ballot_count = len(self.election.ballots)
        state = initial_state(self.election, continuing)
        self.states = []
        self.rounds = []
        self.eliminated_in = {}

        while True:
            current = state.as_round()
            self._check_round(current, ballot_count)
            self.states.append(state)
            self.rounds.append(current)

            if current.continuing_ballots == 0:
                raise TabulationError(f"No continuing ballots in round {state.round_number}")

            leader, leader_votes = current.allocations[0].allocatee, current.allocations[0].votes
            logger.debug(
                f"Round {state.round_number}: {len(state.continuing)} continuing, "
                f"leader {leader} with {leader_votes}/{current.continuing_ballots}"
            )

            if 2 * leader_votes > current.continuing_ballots or len(state.continuing) == 1:
                self.winner = leader
                break

            to_eliminate = self.select_eliminated(state)
            for candidate in to_eliminate:
                self.eliminated_in[candidate] = state.round_number
            state = state.eliminate(to_eliminate)

            if len(state.continuing) >= len(self.states[-1].continuing):
                raise TabulationInvariantError(
                    f"Round {state.round_number} did not eliminate a candidate"
                )

        logger.info(
            f"Tabulation complete: winner {self.winner} "
            f"({self.election.candidates[self.winner].name}) after {len(self.rounds)} rounds"
        )
        return self.rounds

    def _check_round(self, current: TabulatorRound, ballot_count: int):
        accounted = (
            current.continuing_ballots + current.exhausted() + current.undervote + current.overvote
        )
        if accounted != ballot_count:
            raise TabulationInvariantError(
                f"Round {len(self.rounds) + 1} accounts for {accounted} of {ballot_count} ballots"
            )
        if self.rounds:
            previous = self.rounds[-1]
            if current.continuing_ballots > previous.continuing_ballots:
                raise TabulationInvariantError(
                    f"Continuing ballots increased in round {len(self.rounds) + 1}"
                )
            # Undervotes are settled in round 1; overvotes only accumulate.
            if current.undervote != previous.undervote or current.overvote < previous.overvote:
                raise TabulationInvariantError(
                    f"Undervote/overvote counts went back in round {len(self.rounds) + 1}"
                )
        if len(self.rounds) >= len(self.election.candidates):
            raise TabulationInvariantError(
                f"Tabulation exceeded {len(self.election.candidates)} rounds"
            )

    def select_eliminated(self, state: TabulatorState) -> List[int]:
        """Pick the candidate(s) to eliminate at the end of ``state``'s round."""
        votes = state.votes()

        zero = sorted(c for c, v in votes.items() if v == 0)
        if zero:
            return zero

        fewest = min(votes.values())
        tied = [c for c, v in votes.items() if v == fewest]

        # self.states[-1] is the current round; look back from the one before.
        for earlier in reversed(self.states[:-1]):
            if len(tied) == 1:
                break
            earlier_votes = earlier.votes()
            lowest = min(earlier_votes[c] for c in tied)
            tied = [c for c in tied if earlier_votes[c] == lowest]

        if len(tied) > 1:
            logger.info(f"Round {state.round_number}: unresolved tie among {sorted(tied)}")
        return [max(tied)]

    def total_votes(self) -> List[CandidateVotes]:
        """First-round votes, transfer votes received and elimination round per candidate."""
        if not self.rounds:
            raise TabulationError("total_votes() requires a completed tabulation")

        first_round = self.rounds[0].candidate_votes()
        received: Dict[int, int] = defaultdict(int)
        for r in self.rounds:
            for transfer in r.transfers:
                if transfer.to != EXHAUSTED:
                    received[transfer.to] += transfer.count

        return [
            CandidateVotes(
                candidate=c,
                first_round_votes=first_round.get(c, 0),
                transfer_votes=received.get(c, 0),
                round_eliminated=self.eliminated_in.get(c),
            )
            for c in range(len(self.election.candidates))
        ]

    def final_allocations_by_first_choice(self) -> Dict[int, Dict[Allocatee, int]]:
        """
        For each first choice, how its ballots are allocated in the final round.

        Ballots counted as undervotes or overvotes are not included.
        """
        final = self.states[-1]
        result: Dict[int, Dict[Allocatee, int]] = defaultdict(dict)
        for candidate, pile in final.piles.items():
            for (first, _, _), count in pile.items():
                result[first][candidate] = result[first].get(candidate, 0) + count
        for first, count in final.exhausted.items():
            if count:
                result[first][EXHAUSTED] = result[first].get(EXHAUSTED, 0) + count
        return dict(result)

    def get_round_summary(self) -> pd.DataFrame:
        """
        Get summary of all rounds as a DataFrame.

        Returns:
            DataFrame with round, allocatee, votes and status columns
        """
        if not self.rounds:
            return pd.DataFrame()

        summary_data = []
        for number, r in enumerate(self.rounds, 1):
            for allocation in r.allocations:
                if allocation.allocatee == EXHAUSTED:
                    status = "exhausted"
                elif allocation.allocatee == self.winner and number == len(self.rounds):
                    status = "elected"
                elif self.eliminated_in.get(allocation.allocatee) == number:
                    status = "eliminated"
                else:
                    status = "continuing"
                summary_data.append(
                    {
                        "round": number,
                        "allocatee": allocation.allocatee,
                        "votes": allocation.votes,
                        "status": status,
                    }
                )
        return pd.DataFrame(summary_data)


def tabulate(
    election: NormalizedElection, withdrawn: Iterable[int] = ()
) -> Tuple[List[TabulatorRound], int]:
    """Convenience wrapper returning ``(rounds, winner)``."""
    tabulator = Tabulator(election, withdrawn=frozenset(withdrawn))
    rounds = tabulator.tabulate()
    return rounds, tabulator.winner
