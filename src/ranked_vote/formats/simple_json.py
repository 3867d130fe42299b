"""
Direct JSON ranking format, used for tests and small elections.

::

    {
      "candidates": ["Alice", {"name": "Write-in", "writeIn": true}],
      "ballots": [
        [1, 2],
        [2, "overvote", 1],
        {"id": "B7", "ranks": [null, 1], "count": 3}
      ]
    }

Integer marks are 1-based positions in ``candidates``; string marks are
candidate names (added to the roster on first appearance) or the literals
``overvote`` / ``undervote``; ``null`` is an undervote.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List

from ..errors import LoadError
from ..model import OVERVOTE, UNDERVOTE, Ballot, Candidate, RawElection
from .base import CandidateMap, FormatLoader, register_loader

logger = logging.getLogger(__name__)


@register_loader
class SimpleJsonLoader(FormatLoader):
    format_id = "simple_json"

    def input_files(self, raw_dir: Path, params: Dict[str, str]) -> List[Path]:
        return [Path(raw_dir) / params.get("file", "ballots.json")]

    def parse(self, raw_dir: Path, params: Dict[str, str]) -> RawElection:
        path = self.require_file(self.input_files(raw_dir, params)[0])
        logger.info(f"Loading JSON ballots from: {path}")

        try:
            data = json.loads(self.read_text(path))
        except json.JSONDecodeError as e:
            raise LoadError(self.format_id, f"Invalid JSON: {e}", file=str(path)) from e

        if not isinstance(data, dict) or "candidates" not in data or "ballots" not in data:
            raise LoadError(
                self.format_id, "Expected 'candidates' and 'ballots' keys", file=str(path)
            )
        if not isinstance(data["candidates"], list) or not isinstance(data["ballots"], list):
            raise LoadError(
                self.format_id, "'candidates' and 'ballots' must be lists", file=str(path)
            )

        candidate_map = CandidateMap()
        for entry in data["candidates"]:
            if isinstance(entry, str):
                candidate = Candidate(entry)
            elif isinstance(entry, dict) and isinstance(entry.get("name"), str):
                candidate = Candidate(
                    entry["name"],
                    write_in=bool(entry.get("writeIn", False)),
                    candidate_type=entry.get("candidate_type"),
                )
            else:
                raise LoadError(
                    self.format_id, f"Malformed candidate {entry!r}", file=str(path)
                )
            candidate_map.add(candidate.name, candidate)
        roster_size = len(candidate_map)

        ballots: List[Ballot] = []
        for row, entry in enumerate(data["ballots"], 1):
            if isinstance(entry, list):
                ballot_id, ranks, count = str(row), entry, 1
            elif isinstance(entry, dict) and isinstance(entry.get("ranks"), list):
                ballot_id = str(entry.get("id", row))
                ranks = entry["ranks"]
                count = self.parse_count(entry.get("count", 1), path, row)
            else:
                raise LoadError(self.format_id, "Malformed ballot", file=str(path), row=row)

            choices = tuple(
                self._parse_mark(mark, candidate_map, roster_size, path, row)
                for mark in ranks
            )
            if count == 1:
                ballots.append(Ballot(ballot_id, choices))
            else:
                ballots.extend(
                    Ballot(f"{ballot_id}:{i}", choices) for i in range(1, count + 1)
                )

        return RawElection(candidates=candidate_map.candidates(), ballots=ballots)

    def _parse_mark(self, mark, candidate_map: CandidateMap, roster_size: int, path, row) -> int:
        if mark is None:
            return UNDERVOTE
        if isinstance(mark, bool):
            raise LoadError(self.format_id, f"Invalid mark {mark!r}", file=str(path), row=row)
        if isinstance(mark, int):
            if not 1 <= mark <= roster_size:
                raise LoadError(
                    self.format_id,
                    f"Candidate number {mark} outside roster of {roster_size}",
                    file=str(path),
                    row=row,
                )
            return mark - 1
        if isinstance(mark, str):
            lowered = mark.strip().lower()
            if lowered == "overvote":
                return OVERVOTE
            if lowered in ("", "undervote"):
                return UNDERVOTE
            return candidate_map.add(mark.strip(), Candidate(mark.strip()))
        raise LoadError(self.format_id, f"Invalid mark {mark!r}", file=str(path), row=row)
