"""
Minneapolis delimited export: one row per distinct ranking with a count.

Columns (by position): precinct, 1st choice, 2nd choice, 3rd choice, count.
Choices are candidate names or the literals ``undervote`` / ``overvote``;
``UWI`` is the undeclared write-in bucket.
"""

import logging
from pathlib import Path
from typing import Dict, List

import pandas as pd

from ..errors import LoadError
from ..model import OVERVOTE, UNDERVOTE, Ballot, Candidate, RawElection
from .base import CandidateMap, FormatLoader, register_loader

logger = logging.getLogger(__name__)

UNDECLARED_WRITE_IN = "Undeclared Write-ins"


def parse_choice(value: str, candidate_map: CandidateMap) -> int:
    """Convert one choice cell into a mark."""
    value = value.strip()
    if value == "" or value.lower() == "undervote":
        return UNDERVOTE
    if value.lower() == "overvote":
        return OVERVOTE
    if value.lower() == "uwi":
        return candidate_map.add(
            value, Candidate(UNDECLARED_WRITE_IN, write_in=True, candidate_type="WriteIn")
        )
    return candidate_map.add(value, Candidate(value))


@register_loader
class MinneapolisLoader(FormatLoader):
    format_id = "us_mn_mpls"

    def input_files(self, raw_dir: Path, params: Dict[str, str]) -> List[Path]:
        return [Path(raw_dir) / self.require_param(params, "file")]

    def parse(self, raw_dir: Path, params: Dict[str, str]) -> RawElection:
        path = self.require_file(self.input_files(raw_dir, params)[0])
        logger.info(f"Loading Minneapolis CVR from: {path}")

        try:
            df = pd.read_csv(path, dtype=str, keep_default_na=False)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise LoadError(self.format_id, f"Could not read CSV: {e}", file=str(path)) from e

        if df.shape[1] < 5:
            raise LoadError(
                self.format_id,
                f"Expected at least 5 columns, found {df.shape[1]}",
                file=str(path),
            )

        candidate_map = CandidateMap()
        ballots: List[Ballot] = []
        ballot_number = 0

        # Header is row 1 of the file, so data rows start at 2.
        for row_number, row in enumerate(df.itertuples(index=False), 2):
            precinct = row[0]
            count = self.parse_count(row[4].strip() or "1", path, row_number)

            choices = tuple(parse_choice(row[i], candidate_map) for i in (1, 2, 3))

            for _ in range(count):
                ballot_number += 1
                ballots.append(Ballot(f"{precinct}:{ballot_number}", choices))

        logger.info(f"Loaded {len(ballots)} ballots from {len(df)} rows")
        return RawElection(candidates=candidate_map.candidates(), ballots=ballots)
