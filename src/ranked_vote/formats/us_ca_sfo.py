"""
Fixed-width ballot image export (San Francisco / Alameda legacy Dominion format).

Two files are read:

- the master lookup, whose records are ``type(10) id(7) description(50)
  list order(7) contest id(7) write-in flag(1)``;
- the ballot image, one line per rank per ballot: ``contest(7) voter(9)
  serial(7) tally type(3) precinct(7) rank(3) candidate(7) overvote(1)
  undervote(1)``.

Consecutive lines with the same voter id form one ballot.

Loader parameters: ``ballotImage``, ``masterLookup``, ``contest``.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Tuple

from ..errors import LoadError
from ..model import OVERVOTE, UNDERVOTE, Ballot, Candidate, RawElection
from .base import CandidateMap, FormatLoader, register_loader

logger = logging.getLogger(__name__)


def parse_master_lookup(lines: Iterable[str]) -> Dict[str, List[Tuple[str, str, int, str, bool]]]:
    """
    Group master lookup records by record type.

    Returns:
        {record type: [(id, description, list order, contest id, is write-in)]}
    """
    records: Dict[str, List[Tuple[str, str, int, str, bool]]] = {}
    for line in lines:
        if not line.strip():
            continue
        record_type = line[:10].strip()
        list_order = line[67:74].strip()
        records.setdefault(record_type, []).append(
            (
                line[10:17].strip(),
                line[17:67].strip(),
                int(list_order) if list_order.isdigit() else 0,
                line[74:81].strip(),
                line[81:82] == "1",
            )
        )
    return records


@register_loader
class BallotImageLoader(FormatLoader):
    format_id = "us_ca_sfo"

    def input_files(self, raw_dir: Path, params: Dict[str, str]) -> List[Path]:
        return [
            Path(raw_dir) / self.require_param(params, "masterLookup"),
            Path(raw_dir) / self.require_param(params, "ballotImage"),
        ]

    def parse(self, raw_dir: Path, params: Dict[str, str]) -> RawElection:
        master_path, image_path = (self.require_file(p) for p in self.input_files(raw_dir, params))
        contest_id = self.require_param(params, "contest").strip().zfill(7)

        candidate_map = CandidateMap()
        lookup = parse_master_lookup(self.read_text(master_path).splitlines())
        roster = sorted(
            (c for c in lookup.get("Candidate", []) if c[3].zfill(7) == contest_id),
            key=lambda c: c[2],
        )
        for candidate_id, description, _, _, write_in in roster:
            candidate_map.add(
                candidate_id.zfill(7),
                Candidate(description, write_in=write_in, candidate_type="WriteIn" if write_in else None),
            )
        if len(candidate_map) == 0:
            raise LoadError(
                self.format_id, f"No candidates for contest {contest_id}", file=str(master_path)
            )

        logger.info(f"Loading ballot image {image_path} for contest {contest_id}")
        ballots: List[Ballot] = []
        seen_voters = set()
        voter_id = None
        choices: List[int] = []

        def flush():
            if voter_id is None:
                return
            if voter_id in seen_voters:
                raise LoadError(
                    self.format_id, f"Voter id {voter_id} is not contiguous", file=str(image_path)
                )
            seen_voters.add(voter_id)
            ballots.append(Ballot(voter_id, tuple(choices)))

        for line_number, line in enumerate(self.read_text(image_path).splitlines(), 1):
            if not line.strip() or line[:7] != contest_id:
                continue
            if len(line) < 45:
                raise LoadError(
                    self.format_id, "Truncated ballot image record", file=str(image_path), row=line_number
                )

            if line[7:16] != voter_id:
                flush()
                voter_id = line[7:16]
                choices = []

            try:
                rank = int(line[33:36])
                candidate_code = line[36:43]
                candidate_number = int(candidate_code)
                overvote = int(line[43])
                undervote = int(line[44])
            except ValueError:
                raise LoadError(
                    self.format_id, "Non-numeric field", file=str(image_path), row=line_number
                ) from None

            if candidate_number:
                mapped = candidate_map.lookup(candidate_code)
                if mapped is None:
                    raise LoadError(
                        self.format_id,
                        f"Unknown candidate {candidate_code}",
                        file=str(image_path),
                        row=line_number,
                    )
                choices.append(mapped)
            elif overvote:
                choices.append(OVERVOTE)
            elif undervote:
                choices.append(UNDERVOTE)
            else:
                raise LoadError(
                    self.format_id, "Record has no candidate or flag", file=str(image_path), row=line_number
                )

            if rank != len(choices):
                raise LoadError(
                    self.format_id,
                    f"Rank {rank} out of sequence for voter {voter_id}",
                    file=str(image_path),
                    row=line_number,
                )
        flush()

        logger.info(f"Loaded {len(ballots)} ballots")
        return RawElection(candidates=candidate_map.candidates(), ballots=ballots)
