"""
Contest analyses over a normalized election.

- Tabulator: instant-runoff rounds, winner and per-candidate totals
- PairwiseAnalyzer: pairwise preferences, Condorcet winner, Smith set and
  first-alternate / first-final tables
- compute_ranking_distribution: ranking usage histograms (DuckDB)
- cross_check_winner: advisory comparison against PyRankVote
"""

from .pairwise import PairwiseAnalyzer, display_order, first_final_table
from .ranking_distribution import compute_ranking_distribution
from .tabulator import Tabulator, TabulatorState, tabulate
from .verification import cross_check_winner

__all__ = [
    "PairwiseAnalyzer",
    "Tabulator",
    "TabulatorState",
    "compute_ranking_distribution",
    "cross_check_winner",
    "display_order",
    "first_final_table",
    "tabulate",
]
