"""
Ranked-choice election report pipeline.

Raw ballot exports are loaded by a format-specific loader, normalized into a
canonical CVR, tabulated (instant runoff) and analyzed (pairwise preferences,
Condorcet winner, Smith set, ranking usage), then written as one report per
contest plus a cross-election index.
"""

__version__ = "0.1.0"
