import logging
from typing import Any, Dict, Optional

from ..analysis.pairwise import PairwiseAnalyzer, display_order, first_final_table
from ..analysis.tabulator import Tabulator
from ..errors import AssemblyError
from ..metadata import ContestContext
from ..model import EXHAUSTED, NormalizedElection, RankingDistribution

logger = logging.getLogger(__name__)


def election_info(context: ContestContext) -> Dict[str, Any]:
    """The report's ``info`` block."""
    jurisdiction, election, contest = context.jurisdiction, context.election, context.contest
    office = context.office
    info: Dict[str, Any] = {
        "name": f"{jurisdiction.name} {office.name}",
        "date": election.date,
        "dataFormat": election.data_format,
        "tabulation": election.tabulation,
        "jurisdictionPath": jurisdiction.path,
        "electionPath": election.path,
        "office": contest.office,
    }
    if contest.loader_params:
        info["loaderParams"] = dict(sorted(contest.loader_params.items()))
    info["jurisdictionName"] = jurisdiction.name
    info["officeName"] = office.name
    info["electionName"] = election.name
    if election.website:
        info["website"] = election.website
    return info


def generate_report(
    context: ContestContext,
    election: NormalizedElection,
    tabulator: Tabulator,
    pairwise: PairwiseAnalyzer,
    distribution: Optional[RankingDistribution] = None,
) -> Dict[str, Any]:
    """
    Merge tabulation, pairwise and distribution results into one report.

    Args:
        context: Contest metadata
        election: The normalized election all analyses ran over
        tabulator: Completed tabulation
        pairwise: Pairwise analyzer over the contest's candidates
        distribution: Ranking distribution, if computed

    Returns:
        Report document with the camelCase field names of report.json
    """
    if tabulator.winner is None or not tabulator.rounds:
        raise AssemblyError(f"{context.contest_path}: tabulation has not completed")

    winner = tabulator.winner
    total_votes = tabulator.total_votes()
    final_round = [
        a.allocatee for a in tabulator.rounds[-1].allocations if a.allocatee != EXHAUSTED
    ]
    order = display_order(pairwise.candidates, winner, total_votes, final_round)
    rank = {c: i for i, c in enumerate(order)}
    final_in_order = sorted(final_round, key=lambda c: rank.get(c, len(rank)))

    condorcet = pairwise.condorcet_winner()
    smith_set = sorted(pairwise.smith_set(), key=lambda c: rank[c])

    report: Dict[str, Any] = {
        "info": election_info(context),
        "ballotCount": len(election.ballots),
        "candidates": [c.to_dict() for c in election.candidates],
        "rounds": [r.to_dict() for r in tabulator.rounds],
        "winner": winner,
    }
    if condorcet is not None:
        report["condorcet"] = condorcet
    report["smithSet"] = smith_set
    report["numCandidates"] = election.num_candidates
    report["totalVotes"] = [
        v.to_dict() for v in sorted(total_votes, key=lambda v: rank.get(v.candidate, len(rank)))
    ]
    report["pairwisePreferences"] = pairwise.preference_table(order).to_dict()
    report["firstAlternate"] = pairwise.first_alternate_table(order).to_dict()
    report["firstFinal"] = first_final_table(
        order, final_in_order, tabulator.final_allocations_by_first_choice()
    ).to_dict()
    if distribution is not None:
        report["rankingDistribution"] = distribution.to_dict()

    if condorcet is not None and condorcet != winner:
        logger.warning(
            f"{context.contest_path}: Condorcet winner {election.candidates[condorcet].name} "
            f"was not elected"
        )
    return report
