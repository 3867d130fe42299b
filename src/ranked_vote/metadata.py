"""
Read-only election metadata registry.

Each jurisdiction is described by one JSON file somewhere under the metadata
directory::

    {
      "path": "us/ca/sfo",
      "name": "San Francisco",
      "offices": {"mayor": {"name": "Mayor"}},
      "elections": {
        "2019/11": {
          "name": "Consolidated Municipal Election",
          "date": "2019-11-05",
          "dataFormat": "us_ca_sfo",
          "tabulation": "irv",
          "contests": [{"office": "mayor", "loaderParams": {...}}]
        }
      }
    }
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

from .errors import MetadataError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Office:
    office_id: str
    name: str


@dataclass(frozen=True)
class Contest:
    office: str
    loader_params: Dict[str, str] = field(default_factory=dict)
    withdrawn: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ElectionMetadata:
    path: str
    name: str
    date: str
    data_format: str
    tabulation: str
    contests: List[Contest]
    website: Optional[str] = None


@dataclass(frozen=True)
class Jurisdiction:
    path: str
    name: str
    offices: Dict[str, Office]
    elections: Dict[str, ElectionMetadata]

    def office(self, office_id: str) -> Office:
        try:
            return self.offices[office_id]
        except KeyError:
            raise MetadataError(
                f"Office {office_id!r} is not declared for jurisdiction {self.path}"
            ) from None


@dataclass(frozen=True)
class ContestContext:
    """Everything needed to locate and describe a single contest."""

    jurisdiction: Jurisdiction
    election: ElectionMetadata
    contest: Contest

    @property
    def office(self) -> Office:
        return self.jurisdiction.office(self.contest.office)

    @property
    def contest_path(self) -> str:
        return f"{self.jurisdiction.path}/{self.election.path}/{self.contest.office}"

    def raw_dir(self, raw_root: Path) -> Path:
        return raw_root / self.jurisdiction.path / self.election.path

    def preprocessed_dir(self, preprocessed_root: Path) -> Path:
        return preprocessed_root / self.contest_path

    def report_path(self, report_root: Path) -> Path:
        return report_root / self.contest_path / "report.json"


def _require(data: dict, key: str, source: Path):
    if key not in data:
        raise MetadataError(f"{source}: missing required field {key!r}")
    return data[key]


def parse_jurisdiction(data: dict, source: Path) -> Jurisdiction:
    """
    Build a Jurisdiction from its JSON description.

    Args:
        data: Decoded JSON document
        source: File it came from (for error messages)

    Returns:
        Jurisdiction
    """
    offices = {
        office_id: Office(office_id=office_id, name=_require(office, "name", source))
        for office_id, office in _require(data, "offices", source).items()
    }

    elections = {}
    for election_path, election in _require(data, "elections", source).items():
        contests = [
            Contest(
                office=_require(contest, "office", source),
                loader_params={
                    k: str(v) for k, v in (contest.get("loaderParams") or {}).items()
                },
                withdrawn=list(contest.get("withdrawn") or []),
            )
            for contest in _require(election, "contests", source)
        ]
        for contest in contests:
            if contest.office not in offices:
                raise MetadataError(
                    f"{source}: contest office {contest.office!r} not in offices"
                )

        elections[election_path] = ElectionMetadata(
            path=election_path,
            name=_require(election, "name", source),
            date=_require(election, "date", source),
            data_format=_require(election, "dataFormat", source),
            tabulation=election.get("tabulation", "irv"),
            contests=contests,
            website=election.get("website"),
        )

    return Jurisdiction(
        path=_require(data, "path", source),
        name=_require(data, "name", source),
        offices=offices,
        elections=elections,
    )


def read_metadata(meta_dir: Path) -> Iterator[Jurisdiction]:
    """Yield every jurisdiction described under ``meta_dir`` in path order."""
    meta_dir = Path(meta_dir)
    if not meta_dir.is_dir():
        raise MetadataError(f"Metadata directory not found: {meta_dir}")

    for meta_file in sorted(meta_dir.rglob("*.json")):
        logger.debug(f"Reading metadata file {meta_file}")
        with open(meta_file, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except ValueError as e:
                raise MetadataError(f"{meta_file}: invalid JSON ({e})") from e
        if not isinstance(data, dict):
            raise MetadataError(f"{meta_file}: expected a JSON object")
        yield parse_jurisdiction(data, meta_file)


def iter_contests(
    jurisdictions: List[Jurisdiction], jurisdiction_filter: Optional[str] = None
) -> Iterator[ContestContext]:
    """Flatten jurisdictions into contests, optionally restricted to one path."""
    for jurisdiction in jurisdictions:
        if jurisdiction_filter and jurisdiction.path != jurisdiction_filter:
            continue
        for election in jurisdiction.elections.values():
            for contest in election.contests:
                yield ContestContext(jurisdiction, election, contest)


SUPPORTED_TABULATIONS = ("irv",)


def check_jurisdiction(jurisdiction: Jurisdiction, known_formats: Iterable[str]) -> List[str]:
    """
    Find registry entries that would make their contests fail.

    Args:
        jurisdiction: Parsed jurisdiction
        known_formats: Data format ids that have a loader

    Returns:
        One message per problem, empty if the jurisdiction is usable
    """
    known_formats = set(known_formats)
    problems = []
    for election in jurisdiction.elections.values():
        where = f"{jurisdiction.path}/{election.path}"
        if election.data_format not in known_formats:
            problems.append(f"{where}: unsupported data format {election.data_format!r}")
        if election.tabulation not in SUPPORTED_TABULATIONS:
            problems.append(f"{where}: unsupported tabulation {election.tabulation!r}")
        try:
            date.fromisoformat(str(election.date))
        except ValueError:
            problems.append(f"{where}: date {election.date!r} is not YYYY-MM-DD")
        if not election.contests:
            problems.append(f"{where}: no contests")

        seen = set()
        for contest in election.contests:
            if contest.office in seen:
                problems.append(f"{where}: office {contest.office!r} listed twice")
            seen.add(contest.office)
    return problems
