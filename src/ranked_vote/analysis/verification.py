import logging
from typing import Iterable, Optional

from pyrankvote import Ballot, Candidate, instant_runoff_voting

from ..model import NormalizedElection

logger = logging.getLogger(__name__)


def pyrankvote_winner(election: NormalizedElection, withdrawn: Iterable[int] = ()) -> Optional[int]:
    """
    Run instant runoff with PyRankVote over the same effective rankings.

    Args:
        election: Normalized election
        withdrawn: Candidate ids excluded from the count

    Returns:
        Winning candidate id, or None if PyRankVote elected nobody
    """
    excluded = set(withdrawn)

    # PyRankVote identifies candidates by name; ids keep duplicate names apart.
    candidates_map = {
        candidate_id: Candidate(str(candidate_id))
        for candidate_id in range(len(election.candidates))
        if candidate_id not in excluded
    }

    ballots = []
    for ballot in election.ballots:
        ranked_candidates = [
            candidates_map[c] for c in ballot.effective_choices() if c in candidates_map
        ]
        if ranked_candidates:  # Only add ballots with valid preferences
            ballots.append(Ballot(ranked_candidates=ranked_candidates))

    logger.debug(f"Cross-checking with PyRankVote: {len(candidates_map)} candidates, {len(ballots)} ballots")
    result = instant_runoff_voting(list(candidates_map.values()), ballots)
    winners = result.get_winners()
    if not winners:
        return None
    return int(winners[0].name)


def cross_check_winner(
    election: NormalizedElection, winner: int, withdrawn: Iterable[int] = (), label: str = ""
) -> bool:
    """
    Compare our winner with PyRankVote's and warn on disagreement.

    The two implementations break elimination ties differently, so a mismatch
    is reported for review rather than treated as a failure.

    Returns:
        True if both agree
    """
    expected = pyrankvote_winner(election, withdrawn)
    if expected == winner:
        logger.info(f"{label}: PyRankVote agrees on winner {winner}")
        return True

    expected_name = election.candidates[expected].name if expected is not None else "no winner"
    logger.warning(
        f"{label}: PyRankVote elects {expected_name} ({expected}), "
        f"tabulator elected {election.candidates[winner].name} ({winner})"
    )
    return False
