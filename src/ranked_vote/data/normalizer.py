"""
Canonical CVR construction and the normalized snapshot cache.

The normalizer turns loader output into a NormalizedElection: candidate ids in
roster order, repeat marks collapsed to their first occurrence, trailing
undervotes trimmed and write-ins flagged. The cache stores that result as a
ZSTD-compressed Parquet table (written through DuckDB) next to a JSON manifest,
keyed by a fingerprint of the raw inputs.
"""

import hashlib
import json
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional

import duckdb
import pandas as pd

from ..errors import NormalizationError
from ..formats.base import CandidateMap, FormatLoader
from ..model import OVERVOTE, UNDERVOTE, Ballot, Candidate, NormalizedElection, RawElection
from ..report.writer import write_json_atomic
from .database import BallotDatabase

logger = logging.getLogger(__name__)

# Bump when normalization output changes so cached snapshots are rebuilt.
NORMALIZER_VERSION = "1"

SNAPSHOT_FILE = "normalized.parquet"
MANIFEST_FILE = "manifest.json"

WRITE_IN_RX = re.compile(r"write[- ]?in|^uwi$", re.IGNORECASE)


class BallotNormalizer:
    """Maps a RawElection onto the canonical CVR model."""

    def normalize(self, raw: RawElection, fingerprint: str = "") -> NormalizedElection:
        """
        Build the canonical election.

        Args:
            raw: Loader output
            fingerprint: Content fingerprint of the raw inputs

        Returns:
            NormalizedElection with deduplicated, trimmed ballots

        Raises:
            NormalizationError: if a ballot references an unknown candidate
        """
        candidate_map = CandidateMap()
        remap: Dict[int, int] = {}
        for raw_id, candidate in enumerate(raw.candidates):
            if not candidate.write_in and WRITE_IN_RX.search(candidate.name):
                candidate = Candidate(candidate.name, write_in=True, candidate_type="WriteIn")
            remap[raw_id] = candidate_map.add(raw_id, candidate)

        if len(candidate_map) < len(raw.candidates):
            logger.info(
                f"Merged {len(raw.candidates) - len(candidate_map)} duplicate candidate name(s)"
            )

        ballots = []
        for ballot in raw.ballots:
            choices: List[int] = []
            seen = set()
            for choice in ballot.choices:
                if choice >= 0:
                    if choice not in remap:
                        raise NormalizationError(
                            f"Ballot {ballot.ballot_id} references unknown candidate {choice}"
                        )
                    choice = remap[choice]
                    if choice in seen:
                        continue
                    seen.add(choice)
                elif choice not in (OVERVOTE, UNDERVOTE):
                    raise NormalizationError(
                        f"Ballot {ballot.ballot_id} has invalid mark {choice}"
                    )
                choices.append(choice)

            while choices and choices[-1] == UNDERVOTE:
                choices.pop()
            ballots.append(Ballot(ballot.ballot_id, tuple(choices)))

        return NormalizedElection(
            candidates=tuple(candidate_map.candidates()),
            ballots=tuple(ballots),
            fingerprint=fingerprint,
        )


def compute_fingerprint(loader: FormatLoader, raw_dir: Path, params: Dict[str, str]) -> str:
    """
    SHA-256 over the format id, loader parameters, normalizer version and the
    bytes of every raw input file.
    """
    digest = hashlib.sha256()
    digest.update(loader.format_id.encode("utf-8"))
    digest.update(json.dumps(params, sort_keys=True).encode("utf-8"))
    digest.update(NORMALIZER_VERSION.encode("utf-8"))

    for path in loader.input_files(raw_dir, params):
        digest.update(Path(path).name.encode("utf-8"))
        if not Path(path).is_file():
            # The loader reports missing files with its own context.
            digest.update(b"<missing>")
            continue
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(1 << 20), b""):
                digest.update(chunk)
    return digest.hexdigest()


def election_to_frame(election: NormalizedElection) -> pd.DataFrame:
    """
    Long-format table with one row per mark.

    A ballot without marks is kept as a single row with rank_position 0 and a
    NULL choice so ballot count and order survive the round trip.
    """
    ballot_index: List[int] = []
    ballot_ids: List[str] = []
    positions: List[int] = []
    choices: List[Optional[int]] = []

    for index, ballot in enumerate(election.ballots):
        if not ballot.choices:
            ballot_index.append(index)
            ballot_ids.append(ballot.ballot_id)
            positions.append(0)
            choices.append(None)
            continue
        for position, choice in enumerate(ballot.choices, 1):
            ballot_index.append(index)
            ballot_ids.append(ballot.ballot_id)
            positions.append(position)
            choices.append(choice)

    return pd.DataFrame(
        {
            "ballot_index": pd.Series(ballot_index, dtype="int64"),
            "ballot_id": pd.Series(ballot_ids, dtype="object"),
            "rank_position": pd.Series(positions, dtype="int32"),
            "choice": pd.Series(choices, dtype="Int32"),
        }
    )


class NormalizedCache:
    """
    Snapshot store for one contest's NormalizedElection.

    ``load`` returns None when there is no snapshot or it was built from
    different raw inputs (stale); it raises NormalizationError when the
    snapshot is corrupt.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.snapshot_path = self.directory / SNAPSHOT_FILE
        self.manifest_path = self.directory / MANIFEST_FILE

    def _read_manifest(self) -> Optional[dict]:
        if not self.manifest_path.exists():
            return None
        try:
            with open(self.manifest_path, "r", encoding="utf-8") as f:
                manifest = json.load(f)
        except (OSError, ValueError) as e:
            raise NormalizationError(f"Unreadable manifest {self.manifest_path}: {e}") from e
        if not isinstance(manifest, dict):
            raise NormalizationError(f"Malformed manifest {self.manifest_path}")
        return manifest

    def is_current(self, fingerprint: str) -> bool:
        """True if a snapshot built from inputs with ``fingerprint`` is on disk."""
        try:
            manifest = self._read_manifest()
        except NormalizationError:
            return False
        return (
            manifest is not None
            and manifest.get("fingerprint") == fingerprint
            and self.snapshot_path.exists()
        )

    def load(self, fingerprint: str) -> Optional[NormalizedElection]:
        """
        Load the cached election if it matches ``fingerprint``.

        Raises:
            NormalizationError: if the manifest and snapshot disagree
        """
        manifest = self._read_manifest()
        if manifest is None:
            return None
        if manifest.get("fingerprint") != fingerprint:
            logger.info(f"Snapshot {self.snapshot_path} is stale; raw inputs changed")
            return None
        if not self.snapshot_path.exists():
            raise NormalizationError(f"Manifest present but {self.snapshot_path} is missing")

        try:
            candidates = tuple(
                Candidate(
                    c["name"],
                    write_in=bool(c.get("writeIn", False)),
                    candidate_type=c.get("candidate_type"),
                )
                for c in manifest["candidates"]
            )
            expected_ballots = int(manifest["ballotCount"])
        except (KeyError, TypeError, ValueError) as e:
            raise NormalizationError(f"Malformed manifest {self.manifest_path}: {e}") from e

        try:
            with BallotDatabase() as db:
                ballot_rows = db.read_parquet(
                    self.snapshot_path,
                    "SELECT DISTINCT ballot_index, ballot_id FROM snapshot ORDER BY ballot_index",
                )
                marks = db.query(
                    "SELECT ballot_index, choice FROM snapshot "
                    "WHERE rank_position > 0 ORDER BY ballot_index, rank_position"
                )
        except duckdb.Error as e:
            raise NormalizationError(f"Unreadable snapshot {self.snapshot_path}: {e}") from e

        if len(ballot_rows) != expected_ballots or (
            expected_ballots and ballot_rows["ballot_index"].iloc[-1] != expected_ballots - 1
        ):
            raise NormalizationError(
                f"Snapshot {self.snapshot_path} holds {len(ballot_rows)} ballots, "
                f"manifest says {expected_ballots}"
            )

        choices_by_ballot: List[List[int]] = [[] for _ in range(expected_ballots)]
        try:
            for index, choice in zip(marks["ballot_index"].tolist(), marks["choice"].tolist()):
                if not 0 <= index < expected_ballots:
                    raise NormalizationError(
                        f"Snapshot {self.snapshot_path} has invalid ballot index {index}"
                    )
                if not UNDERVOTE <= choice < len(candidates):
                    raise NormalizationError(
                        f"Snapshot {self.snapshot_path} has invalid mark {choice}"
                    )
                choices_by_ballot[index].append(int(choice))
        except (TypeError, ValueError) as e:
            # NULL marks come back as pd.NA, which refuses comparison.
            raise NormalizationError(
                f"Snapshot {self.snapshot_path} has an undecodable mark: {e}"
            ) from e

        ballots = tuple(
            Ballot(str(ballot_id), tuple(choices))
            for ballot_id, choices in zip(ballot_rows["ballot_id"].tolist(), choices_by_ballot)
        )
        logger.info(f"Loaded {len(ballots)} ballots from snapshot {self.snapshot_path}")
        return NormalizedElection(candidates=candidates, ballots=ballots, fingerprint=fingerprint)

    def store(self, election: NormalizedElection):
        """Write the snapshot, then the manifest that validates it."""
        self.directory.mkdir(parents=True, exist_ok=True)
        if self.manifest_path.exists():
            self.manifest_path.unlink()

        temp_path = self.snapshot_path.with_suffix(".parquet.tmp")
        frame = election_to_frame(election)
        try:
            with BallotDatabase() as db:
                db.register("ballots_long", frame)
                db.write_parquet("ballots_long", temp_path)
            temp_path.replace(self.snapshot_path)
        except (duckdb.Error, OSError) as e:
            raise NormalizationError(f"Failed to write snapshot {self.snapshot_path}: {e}") from e

        write_json_atomic(
            self.manifest_path,
            {
                "fingerprint": election.fingerprint,
                "normalizerVersion": NORMALIZER_VERSION,
                "ballotCount": len(election.ballots),
                "candidates": [c.to_dict() for c in election.candidates],
            },
        )
        logger.info(f"Wrote snapshot {self.snapshot_path} ({len(election.ballots)} ballots)")

    def clear(self):
        for path in (self.manifest_path, self.snapshot_path):
            if path.exists():
                path.unlink()


def prepare_election(
    loader: FormatLoader,
    raw_dir: Path,
    params: Dict[str, str],
    cache: NormalizedCache,
    force: bool = False,
) -> NormalizedElection:
    """
    Return the contest's canonical election, reusing a current snapshot.

    A stale snapshot is ignored and a corrupt one is discarded; either way the
    raw files are parsed again and a fresh snapshot is written.

    Args:
        loader: Loader for the election's data format
        raw_dir: Directory holding the raw files
        params: Loader parameters from the metadata
        cache: Snapshot store for this contest
        force: Skip the snapshot and always re-parse

    Returns:
        NormalizedElection
    """
    fingerprint = compute_fingerprint(loader, raw_dir, params)

    if not force:
        try:
            cached = cache.load(fingerprint)
        except NormalizationError as e:
            logger.warning(f"Discarding corrupt snapshot: {e}")
            cache.clear()
            cached = None
        if cached is not None:
            return cached

    logger.info(f"Parsing raw {loader.format_id} data in {raw_dir}")
    raw = loader.parse(raw_dir, params)
    election = BallotNormalizer().normalize(raw, fingerprint)
    logger.info(
        f"Normalized {len(election.ballots)} ballots, {len(election.candidates)} candidates"
    )
    cache.store(election)
    return election
