"""
New York City Board of Elections CVR workbooks.

Each workbook row is one ballot covering every race on it. Rank columns are
named ``<office> Choice <n> of <m> <jurisdiction> (<column id>)``; cells hold a
numeric candidate id (resolved through the candidates workbook), ``Write-in``,
``undervote`` or ``overvote``.

Loader parameters: ``officeName``, ``jurisdictionName``, ``candidatesFile``
and ``cvrPattern`` (a regular expression matched against whole file names).
"""

import logging
import re
import zipfile
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from ..errors import LoadError
from ..model import OVERVOTE, UNDERVOTE, Ballot, Candidate, RawElection
from .base import CandidateMap, FormatLoader, register_loader

logger = logging.getLogger(__name__)

COLUMN_RX = re.compile(r"(.+) Choice ([1-5]) of ([1-5]) (.+) \((\d+)\)")
CVR_ID_COLUMNS = ("Cast Vote Record", "\ufeffCast Vote Record")
WRITE_IN = "Write-in"


def _parse_id(value: str) -> Optional[int]:
    try:
        return int(float(value))
    except (ValueError, OverflowError):
        return None


@register_loader
class NycLoader(FormatLoader):
    format_id = "us_ny_nyc"

    def _cvr_files(self, raw_dir: Path, params: Dict[str, str]) -> List[Path]:
        pattern = self.require_param(params, "cvrPattern")
        try:
            file_rx = re.compile(f"^(?:{pattern})$")
        except re.error as e:
            raise LoadError(self.format_id, f"Invalid cvrPattern {pattern!r}: {e}") from e
        if not Path(raw_dir).is_dir():
            raise LoadError(self.format_id, "Raw data directory not found", file=str(raw_dir))

        files = sorted(p for p in Path(raw_dir).iterdir() if file_rx.match(p.name))
        if not files:
            raise LoadError(
                self.format_id,
                f"No CVR files match pattern {pattern!r}",
                file=str(raw_dir),
            )
        return files

    def read_workbook(self, path: Path) -> pd.DataFrame:
        try:
            return pd.read_excel(path, dtype=str).fillna("")
        except (ValueError, zipfile.BadZipFile) as e:
            raise LoadError(self.format_id, f"Could not read workbook: {e}", file=str(path)) from e

    def input_files(self, raw_dir: Path, params: Dict[str, str]) -> List[Path]:
        candidates_file = Path(raw_dir) / self.require_param(params, "candidatesFile")
        return [candidates_file] + self._cvr_files(raw_dir, params)

    def read_candidate_ids(self, path: Path) -> Dict[int, str]:
        """Read the candidate id -> name workbook (header row, then id, name)."""
        df = self.read_workbook(self.require_file(path))
        if df.shape[1] < 2:
            raise LoadError(self.format_id, "Candidates workbook needs two columns", file=str(path))

        candidates = {}
        for row in df.itertuples(index=False):
            candidate_id = _parse_id(str(row[0]))
            if candidate_id is not None and row[1]:
                candidates[candidate_id] = str(row[1])
        return candidates

    def parse(self, raw_dir: Path, params: Dict[str, str]) -> RawElection:
        office_name = self.require_param(params, "officeName")
        jurisdiction_name = self.require_param(params, "jurisdictionName")
        names = self.read_candidate_ids(Path(raw_dir) / params["candidatesFile"])

        candidate_map = CandidateMap()
        ballots: List[Ballot] = []
        unknown_ids = 0

        for cvr_file in self._cvr_files(raw_dir, params):
            logger.info(f"Reading NYC workbook {cvr_file.name}")
            df = self.read_workbook(cvr_file)

            cvr_column = next((c for c in df.columns if c in CVR_ID_COLUMNS), None)
            if cvr_column is None:
                raise LoadError(self.format_id, "No 'Cast Vote Record' column", file=str(cvr_file))

            rank_columns = {}
            for column in df.columns:
                match = COLUMN_RX.match(str(column))
                if match and match.group(1) == office_name and match.group(4) == jurisdiction_name:
                    rank_columns[int(match.group(2))] = column
            if not rank_columns:
                logger.debug(f"{cvr_file.name} has no columns for {office_name} - {jurisdiction_name}")
                continue
            positions = [df.columns.get_loc(rank_columns[r]) for r in sorted(rank_columns)]
            cvr_position = df.columns.get_loc(cvr_column)

            for row_number, row in enumerate(df.itertuples(index=False, name=None), 2):
                values = [str(row[i]).strip() for i in positions]

                # Ballots from other districts carry only blanks for this race.
                if all(v in ("", "undervote") for v in values):
                    continue

                choices = []
                for value in values:
                    if value in ("", "undervote"):
                        choices.append(UNDERVOTE)
                    elif value == "overvote":
                        choices.append(OVERVOTE)
                    elif value == WRITE_IN:
                        choices.append(
                            candidate_map.add(
                                WRITE_IN, Candidate(WRITE_IN, write_in=True, candidate_type="WriteIn")
                            )
                        )
                    else:
                        external_id = _parse_id(value)
                        if external_id is None:
                            raise LoadError(
                                self.format_id,
                                f"Unrecognized choice {value!r}",
                                file=str(cvr_file),
                                row=row_number,
                            )
                        if external_id not in names:
                            unknown_ids += 1
                            choices.append(UNDERVOTE)
                            continue
                        choices.append(
                            candidate_map.add(external_id, Candidate(names[external_id]))
                        )

                ballots.append(Ballot(str(row[cvr_position]), tuple(choices)))

        if unknown_ids:
            logger.warning(
                f"{unknown_ids} marks referenced candidate ids missing from the "
                f"candidates file for {office_name} - {jurisdiction_name}; counted as undervotes"
            )
        logger.info(f"Processed {len(ballots)} ballots for {office_name} - {jurisdiction_name}")
        return RawElection(candidates=candidate_map.candidates(), ballots=ballots)
