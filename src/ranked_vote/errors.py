"""
Error types raised by the report pipeline.

Loader, normalization, tabulation and analysis errors abort only the contest
being processed. The pipeline catches them at the contest boundary and records
them with the contest path so sibling contests keep running.
"""

from typing import Optional


class RankedVoteError(Exception):
    """Base class for all pipeline errors."""


class MetadataError(RankedVoteError):
    """Election metadata is missing fields or references unknown offices."""


class LoadError(RankedVoteError):
    """
    Raw ballot data could not be parsed.

    Carries the format identifier, the file and (where known) the row so an
    operator can find the offending input.
    """

    def __init__(
        self,
        data_format: str,
        message: str,
        file: Optional[str] = None,
        row: Optional[int] = None,
    ):
        self.data_format = data_format
        self.file = str(file) if file is not None else None
        self.row = row
        self.message = message

        location = ""
        if self.file:
            location = f" in {self.file}"
            if row is not None:
                location += f" (row {row})"
        super().__init__(f"[{data_format}]{location}: {message}")


class NormalizationError(RankedVoteError):
    """Corrupt snapshot or inconsistent candidate references."""


class TabulationError(RankedVoteError):
    """The ballot set cannot be tabulated (no ballots, no candidates)."""


class TabulationInvariantError(TabulationError):
    """Vote conservation or round progression was violated during tabulation."""


class AnalysisError(RankedVoteError):
    """Pairwise or distribution analysis was asked to do something degenerate."""


class AssemblyError(RankedVoteError):
    """A report or index artifact could not be written."""


class ReportLookupError(RankedVoteError):
    """A stored report exists but could not be read."""
