"""
NIST SP 1500-103 style JSON export (Dominion ``CvrExport.json``).

Loader parameters:

- ``cvr``: an export file, or a directory holding ``CvrExport*.json`` parts
- ``contest``: numeric contest id to extract
- ``candidates`` (optional): candidate manifest, default ``CandidateManifest.json``

A session's ``Modified`` ballot (adjudicated) takes precedence over
``Original``. Ambiguous marks are ignored; two or more distinct candidates
at the same rank are an overvote; a redacted mark list counts as blank.
"""

import json
import logging
from collections import defaultdict
from pathlib import Path
from typing import Dict, Iterator, List, Set

from ..errors import LoadError
from ..model import OVERVOTE, UNDERVOTE, Ballot, Candidate, RawElection
from .base import CandidateMap, FormatLoader, register_loader

logger = logging.getLogger(__name__)


def session_ballot(session: dict) -> dict:
    return session.get("Modified") or session["Original"]


def session_contests(session: dict) -> Iterator[dict]:
    """Yield the contest mark lists of a session, whether or not it has cards."""
    ballot = session_ballot(session)
    if ballot.get("Contests") is not None:
        yield from ballot["Contests"]
        return
    for card in ballot.get("Cards") or []:
        yield from card.get("Contests", [])


def marks_to_choices(marks) -> List[int]:
    """
    Turn a NIST mark list into rank-ordered choices.

    Candidate choices are external (manifest) ids, which are never negative,
    so they cannot collide with the overvote/undervote sentinels.
    """
    if not isinstance(marks, list):
        # Redacted ballots carry a placeholder string instead of marks.
        return []

    by_rank: Dict[int, Set[int]] = defaultdict(set)
    for mark in marks:
        if mark.get("IsAmbiguous"):
            continue
        by_rank[int(mark["Rank"])].add(int(mark["CandidateId"]))

    if not by_rank:
        return []

    choices = []
    for rank in range(1, max(by_rank) + 1):
        at_rank = by_rank.get(rank)
        if not at_rank:
            choices.append(UNDERVOTE)
        elif len(at_rank) > 1:
            choices.append(OVERVOTE)
        else:
            choices.append(next(iter(at_rank)))
    return choices


@register_loader
class NistLoader(FormatLoader):
    format_id = "nist_sp_1500"

    def _cvr_files(self, raw_dir: Path, params: Dict[str, str]) -> List[Path]:
        cvr_path = Path(raw_dir) / params.get("cvr", "CvrExport.json")
        if cvr_path.is_dir():
            files = sorted(cvr_path.glob("CvrExport*.json"))
            if not files:
                raise LoadError(self.format_id, "No CvrExport*.json files", file=str(cvr_path))
            return files
        return [self.require_file(cvr_path)]

    def _manifest_file(self, raw_dir: Path, params: Dict[str, str]) -> Path:
        return Path(raw_dir) / params.get("candidates", "CandidateManifest.json")

    def input_files(self, raw_dir: Path, params: Dict[str, str]) -> List[Path]:
        return [self._manifest_file(raw_dir, params)] + self._cvr_files(raw_dir, params)

    def _read_json(self, path: Path) -> dict:
        with open(self.require_file(path), "r", encoding="utf-8-sig") as f:
            try:
                data = json.load(f)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise LoadError(self.format_id, f"Invalid JSON: {e}", file=str(path)) from e
        if not isinstance(data, dict):
            raise LoadError(self.format_id, "Expected a JSON object", file=str(path))
        return data

    def parse(self, raw_dir: Path, params: Dict[str, str]) -> RawElection:
        try:
            contest_id = int(self.require_param(params, "contest"))
        except ValueError:
            raise LoadError(self.format_id, "Loader parameter 'contest' must be an integer") from None

        manifest_path = self._manifest_file(raw_dir, params)
        manifest = self._read_json(manifest_path)

        candidate_map = CandidateMap()
        for index, entry in enumerate(manifest.get("List", []), 1):
            try:
                if int(entry["ContestId"]) != contest_id:
                    continue
                external_id = int(entry["Id"])
                name = entry["Description"]
            except (KeyError, TypeError, ValueError) as e:
                raise LoadError(
                    self.format_id,
                    f"Malformed manifest entry: {e!r}",
                    file=str(manifest_path),
                    row=index,
                ) from e
            write_in = entry.get("Type") == "WriteIn"
            candidate_map.add(
                external_id,
                Candidate(
                    name,
                    write_in=write_in,
                    candidate_type=entry.get("Type") if write_in else None,
                ),
            )
        if len(candidate_map) == 0:
            raise LoadError(
                self.format_id,
                f"No candidates for contest {contest_id}",
                file=str(manifest_path),
            )

        ballots: List[Ballot] = []
        for cvr_file in self._cvr_files(raw_dir, params):
            logger.info(f"Reading CVR export {cvr_file}")
            export = self._read_json(cvr_file)
            for index, session in enumerate(export.get("Sessions", []), 1):
                try:
                    contests = [
                        (contest, marks_to_choices(contest.get("Marks", [])))
                        for contest in session_contests(session)
                        if int(contest["Id"]) == contest_id
                    ]
                except (KeyError, TypeError, ValueError, AttributeError) as e:
                    raise LoadError(
                        self.format_id,
                        f"Malformed session: {e!r}",
                        file=str(cvr_file),
                        row=index,
                    ) from e

                for contest, marks in contests:
                    choices = []
                    for choice in marks:
                        if choice >= 0:
                            mapped = candidate_map.lookup(choice)
                            if mapped is None:
                                raise LoadError(
                                    self.format_id,
                                    f"Mark for unknown candidate {choice}",
                                    file=str(cvr_file),
                                    row=index,
                                )
                            choices.append(mapped)
                        else:
                            choices.append(choice)

                    ballot_id = "{}-{}-{}".format(
                        session.get("TabulatorId"),
                        session.get("BatchId"),
                        session.get("RecordId"),
                    )
                    ballots.append(Ballot(ballot_id, tuple(choices)))

        logger.info(f"Loaded {len(ballots)} ballots for contest {contest_id}")
        return RawElection(candidates=candidate_map.candidates(), ballots=ballots)
