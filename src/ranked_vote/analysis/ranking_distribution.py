import logging
from typing import Dict

import pandas as pd

from ..data.database import BallotDatabase
from ..data.normalizer import election_to_frame
from ..model import NormalizedElection, RankingDistribution

logger = logging.getLogger(__name__)

RANKS_USED_SQL = """
    WITH per_ballot AS (
        SELECT
            ballot_index,
            MIN(CASE WHEN choice < 0 THEN rank_position END) AS first_gap,
            MAX(rank_position) AS last_rank,
            MIN(CASE WHEN rank_position = 1 THEN choice END) AS first_choice
        FROM ballots_long
        WHERE rank_position > 0
        GROUP BY ballot_index
    )
    SELECT
        ballot_index,
        first_choice,
        COALESCE(first_gap - 1, last_rank) AS ranks_used
    FROM per_ballot
"""


def _histogram(df: pd.DataFrame) -> Dict[str, int]:
    counts = df.groupby("ranks_used").size().sort_index()
    return {str(int(k)): int(v) for k, v in counts.items()}


def compute_ranking_distribution(election: NormalizedElection) -> RankingDistribution:
    """
    How many ranking positions ballots actually used.

    Ranks used counts candidate marks before the first gap, overvote or end of
    the ballot. Ballots that used no ranks have no first choice and are left
    out of every histogram and total.

    Args:
        election: Normalized election

    Returns:
        RankingDistribution with string keys (ranks used, candidate ids)
    """
    with BallotDatabase() as db:
        db.register("ballots_long", election_to_frame(election))
        per_ballot = db.query(
            f"SELECT first_choice, ranks_used FROM ({RANKS_USED_SQL}) WHERE ranks_used > 0"
        )

    distribution = RankingDistribution()
    if per_ballot.empty:
        logger.info("No ballots used any ranks; ranking distribution is empty")
        return distribution

    per_ballot = per_ballot.astype({"first_choice": "int64", "ranks_used": "int64"})
    distribution.overall_distribution = _histogram(per_ballot)
    distribution.total_ballots = int(len(per_ballot))

    for candidate, group in sorted(per_ballot.groupby("first_choice"), key=lambda g: g[0]):
        key = str(int(candidate))
        distribution.candidate_distributions[key] = _histogram(group)
        distribution.candidate_totals[key] = int(len(group))

    logger.info(
        f"Ranking distribution over {distribution.total_ballots} ballots, "
        f"{len(distribution.candidate_totals)} first choices"
    )
    return distribution
