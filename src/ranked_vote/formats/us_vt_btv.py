"""
Burlington, VT ballot listing.

Candidates are declared as ``.CANDIDATE C01, "Name"``; each ballot line is
``<ballot id>, <n>) C04,C03=C06,C01`` where ranks are comma separated and
``=`` joins candidates marked at the same rank (an overvote).
"""

import logging
import re
from pathlib import Path
from typing import Dict, List, Tuple

from ..errors import LoadError
from ..model import OVERVOTE, Ballot, Candidate, RawElection
from .base import FormatLoader, register_loader

logger = logging.getLogger(__name__)

CANDIDATE_RX = re.compile(r'\.CANDIDATE C(\d+), "(.+)"')
BALLOT_RX = re.compile(r"([^,]+), \d+\)(.*)")


def parse_ballot(source: str) -> Tuple[int, ...]:
    """
    Parse the rank list of one ballot line.

    >>> parse_ballot("C04=C06,C03")
    (-1, 2)
    """
    source = source.strip()
    if not source:
        return ()

    choices = []
    for rank in source.split(","):
        rank = rank.strip()
        if "=" in rank:
            choices.append(OVERVOTE)
        elif rank.startswith("C") and rank[1:].isdigit() and int(rank[1:]) > 0:
            choices.append(int(rank[1:]) - 1)
        else:
            raise ValueError(f"Bad candidate list ({rank})")
    return tuple(choices)


@register_loader
class BurlingtonLoader(FormatLoader):
    format_id = "us_vt_btv"

    def input_files(self, raw_dir: Path, params: Dict[str, str]) -> List[Path]:
        return [Path(raw_dir) / self.require_param(params, "ballots")]

    def parse(self, raw_dir: Path, params: Dict[str, str]) -> RawElection:
        path = self.require_file(self.input_files(raw_dir, params)[0])
        logger.info(f"Loading Burlington ballots from: {path}")

        candidates: List[Candidate] = []
        ballots: List[Ballot] = []

        for line_number, line in enumerate(self.read_text(path).splitlines(), 1):
            candidate_match = CANDIDATE_RX.match(line)
            if candidate_match:
                number = int(candidate_match.group(1))
                if number - 1 != len(candidates):
                    raise LoadError(
                        self.format_id,
                        f"Candidate C{number:02d} declared out of order",
                        file=str(path),
                        row=line_number,
                    )
                candidates.append(Candidate(candidate_match.group(2)))
                continue

            ballot_match = BALLOT_RX.match(line)
            if not ballot_match:
                # Header and comment lines (.ELECTION, .ROUNDS, ...) carry no votes.
                continue

            try:
                choices = parse_ballot(ballot_match.group(2))
            except ValueError as e:
                raise LoadError(
                    self.format_id, str(e), file=str(path), row=line_number
                ) from e

            for choice in choices:
                if choice >= len(candidates):
                    raise LoadError(
                        self.format_id,
                        f"Ballot references undeclared candidate C{choice + 1:02d}",
                        file=str(path),
                        row=line_number,
                    )
            ballots.append(Ballot(ballot_match.group(1).strip(), choices))

        logger.info(f"Loaded {len(ballots)} ballots, {len(candidates)} candidates")
        return RawElection(candidates=candidates, ballots=ballots)
