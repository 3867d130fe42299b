"""
Round-by-round tally spreadsheets (CSV or Excel).

Some jurisdictions only publish the official round tallies::

    Candidate,Round 1,Round 2,Round 3
    Alice,40,45,60
    Bob,35,38,
    Carol,25,,
    Undervotes,2,,
    Overvotes,1,,

Ballots are reconstructed from the tallies with this rule:

1. Round 1 creates one single-choice ballot per first-round vote, plus empty
   ballots for ``Undervotes`` and overvoted ballots for ``Overvotes``.
2. Between consecutive rounds, candidates with a tally in round r-1 and none
   in round r were eliminated. Their ballots are pooled in candidate-id order.
3. Each surviving candidate's increase is taken from the front of the pool
   (survivors in candidate-id order) and the survivor is appended to each
   taken ballot's ranking. Ballots left in the pool exhaust.

Tabulating the result reproduces the published round totals, but the rankings
are a modelling choice: the source records transfers, not voter intent.
"""

import logging
import math
import zipfile
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from ..errors import LoadError
from ..model import OVERVOTE, Ballot, Candidate, RawElection
from .base import FormatLoader, register_loader

logger = logging.getLogger(__name__)

UNDERVOTE_ROWS = {"undervote", "undervotes", "blank", "blanks"}
OVERVOTE_ROWS = {"overvote", "overvotes"}
IGNORED_ROWS = {"exhausted", "inactive", "total", "totals", "continuing", "continuing ballots"}


def parse_tally(value) -> Optional[int]:
    """Parse a tally cell; blank or dash cells mean the candidate is gone."""
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return None
    text = str(value).strip().replace(",", "")
    if text in ("", "-", "--"):
        return None
    number = float(text)
    if not number.is_integer() or number < 0:
        raise ValueError(f"{text!r} is not a whole number of votes")
    return int(number)


@register_loader
class RoundTallyLoader(FormatLoader):
    format_id = "rcv_rounds"

    def input_files(self, raw_dir: Path, params: Dict[str, str]) -> List[Path]:
        return [Path(raw_dir) / self.require_param(params, "file")]

    def read_table(self, path: Path) -> pd.DataFrame:
        try:
            if path.suffix.lower() in (".xlsx", ".xls"):
                return pd.read_excel(path, dtype=object)
            return pd.read_csv(path, dtype=object)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise LoadError(self.format_id, f"Could not read table: {e}", file=str(path)) from e
        except (ValueError, zipfile.BadZipFile) as e:
            raise LoadError(self.format_id, f"Could not read workbook: {e}", file=str(path)) from e

    def parse(self, raw_dir: Path, params: Dict[str, str]) -> RawElection:
        path = self.require_file(self.input_files(raw_dir, params)[0])
        logger.info(f"Loading round tallies from: {path}")

        table = self.read_table(path)
        if table.shape[1] < 2:
            raise LoadError(self.format_id, "Expected a name column and round columns", file=str(path))

        num_rounds = table.shape[1] - 1
        if params.get("rounds"):
            try:
                limit = int(params["rounds"])
            except (TypeError, ValueError):
                raise LoadError(
                    self.format_id, f"Invalid 'rounds' parameter {params['rounds']!r}"
                ) from None
            if limit < 1:
                raise LoadError(self.format_id, f"Invalid 'rounds' parameter {limit}")
            num_rounds = min(num_rounds, limit)

        candidates: List[Candidate] = []
        tallies: List[List[Optional[int]]] = []
        undervotes = overvotes = 0

        for row_number, row in enumerate(table.itertuples(index=False, name=None), 2):
            label = str(row[0]).strip()
            if label == "" or label.lower() == "nan":
                continue
            try:
                values = [parse_tally(v) for v in row[1 : num_rounds + 1]]
            except ValueError as e:
                raise LoadError(self.format_id, f"Invalid tally: {e}", file=str(path), row=row_number) from e

            key = label.lower()
            if key in UNDERVOTE_ROWS:
                undervotes = values[0] or 0
            elif key in OVERVOTE_ROWS:
                overvotes = values[0] or 0
            elif key in IGNORED_ROWS:
                continue
            else:
                if values[0] is None:
                    raise LoadError(
                        self.format_id, f"{label} has no round 1 tally", file=str(path), row=row_number
                    )
                write_in = "write-in" in key or "write in" in key
                candidates.append(
                    Candidate(label, write_in=write_in, candidate_type="WriteIn" if write_in else None)
                )
                tallies.append(values)

        rankings = self.reconstruct(tallies, num_rounds, path)

        ballots = [Ballot(f"r{i + 1}", tuple(ranking)) for i, ranking in enumerate(rankings)]
        start = len(ballots)
        ballots.extend(Ballot(f"u{i + 1}", ()) for i in range(undervotes))
        ballots.extend(Ballot(f"o{i + 1}", (OVERVOTE,)) for i in range(overvotes))

        logger.warning(
            f"{path.name}: {start} ballots reconstructed from round transfers; "
            "rankings are inferred, not recorded"
        )
        return RawElection(candidates=candidates, ballots=ballots)

    def reconstruct(self, tallies: List[List[Optional[int]]], num_rounds: int, path: Path) -> List[List[int]]:
        """Build per-ballot rankings that replay the published transfers."""
        rankings: List[List[int]] = []
        holding: Dict[int, List[int]] = {}

        for candidate, values in enumerate(tallies):
            holding[candidate] = []
            for _ in range(values[0]):
                holding[candidate].append(len(rankings))
                rankings.append([candidate])

        for r in range(1, num_rounds):
            survivors = [c for c, v in enumerate(tallies) if v[r] is not None]
            eliminated = [c for c, v in enumerate(tallies) if v[r - 1] is not None and v[r] is None]
            if not survivors:
                break

            pool: List[int] = []
            for candidate in eliminated:
                pool.extend(holding.pop(candidate, []))

            taken = 0
            for candidate in survivors:
                previous = tallies[candidate][r - 1]
                if previous is None:
                    raise LoadError(
                        self.format_id,
                        f"Candidate {candidate + 1} reappears in round {r + 1}",
                        file=str(path),
                    )
                gained = tallies[candidate][r] - previous
                if gained < 0:
                    raise LoadError(
                        self.format_id,
                        f"Candidate {candidate + 1} loses votes in round {r + 1}",
                        file=str(path),
                    )
                if taken + gained > len(pool):
                    raise LoadError(
                        self.format_id,
                        f"Round {r + 1} transfers more votes than eliminated candidates held",
                        file=str(path),
                    )
                for ballot_index in pool[taken : taken + gained]:
                    rankings[ballot_index].append(candidate)
                    holding[candidate].append(ballot_index)
                taken += gained

        return rankings
