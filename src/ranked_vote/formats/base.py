import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Hashable, List, Optional

from ..errors import LoadError
from ..model import Candidate, RawElection

logger = logging.getLogger(__name__)


class CandidateMap:
    """
    Maps a format's own candidate identifiers to contest candidate ids.

    Ids are handed out in the order candidates are added. An external id whose
    candidate name is already known is mapped onto the existing candidate, so
    the same person listed under two source codes is counted once.
    """

    def __init__(self):
        self._id_to_index: Dict[Hashable, int] = {}
        self._candidates: List[Candidate] = []

    def __len__(self) -> int:
        return len(self._candidates)

    def add(self, external_id: Hashable, candidate: Candidate) -> int:
        """
        Register a candidate and return its contest id.

        Args:
            external_id: Identifier used by the source format
            candidate: Candidate to register if not already known

        Returns:
            Contest candidate id
        """
        if external_id in self._id_to_index:
            return self._id_to_index[external_id]

        for index, existing in enumerate(self._candidates):
            if existing.name == candidate.name:
                self._id_to_index[external_id] = index
                return index

        index = len(self._candidates)
        self._id_to_index[external_id] = index
        self._candidates.append(candidate)
        return index

    def lookup(self, external_id: Hashable) -> Optional[int]:
        return self._id_to_index.get(external_id)

    def candidates(self) -> List[Candidate]:
        return list(self._candidates)


class FormatLoader(ABC):
    """
    Reads one raw data format into a RawElection.

    Subclasses set ``format_id`` and implement ``parse`` and ``input_files``.
    ``input_files`` lists every file whose contents affect the result; it is
    used to fingerprint the raw inputs for the normalized snapshot cache.
    """

    format_id: str = ""

    @abstractmethod
    def parse(self, raw_dir: Path, params: Dict[str, str]) -> RawElection:
        """Parse the raw files for one contest."""

    @abstractmethod
    def input_files(self, raw_dir: Path, params: Dict[str, str]) -> List[Path]:
        """Return the raw files ``parse`` would read, in a stable order."""

    def require_param(self, params: Dict[str, str], name: str) -> str:
        value = params.get(name)
        if value is None or value == "":
            raise LoadError(self.format_id, f"Missing loader parameter {name!r}")
        return value

    def require_file(self, path: Path) -> Path:
        if not path.is_file():
            raise LoadError(self.format_id, "Raw data file not found", file=str(path))
        return path

    def parse_count(self, value, path: Path, row: Optional[int] = None) -> int:
        """
        Read a ballot multiplicity.

        Whole numbers are accepted as ints, floats or strings ("3", "3.0").
        Fractional, zero and negative counts are never rounded or dropped.

        Raises:
            LoadError: for a non-integer or non-positive count
        """
        count = None
        if not isinstance(value, bool):
            try:
                number = float(str(value).strip()) if isinstance(value, str) else float(value)
            except (TypeError, ValueError):
                number = None
            if number is not None and number.is_integer():
                count = int(number)
        if count is None or count < 1:
            raise LoadError(
                self.format_id, f"Invalid ballot count {value!r}", file=str(path), row=row
            )
        return count

    def read_text(self, path: Path) -> str:
        """Read a UTF-8 text file, reporting undecodable bytes as a LoadError."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except UnicodeDecodeError as e:
            raise LoadError(
                self.format_id, f"File is not valid UTF-8: {e.reason}", file=str(path)
            ) from e


_LOADERS: Dict[str, FormatLoader] = {}


def register_loader(loader_cls):
    """Class decorator adding a loader to the format registry."""
    instance = loader_cls()
    if not instance.format_id:
        raise ValueError(f"{loader_cls.__name__} has no format_id")
    _LOADERS[instance.format_id] = instance
    return loader_cls


def get_loader(format_id: str) -> FormatLoader:
    """
    Look up the loader for a data format identifier.

    Raises:
        LoadError: if no loader handles the format
    """
    try:
        return _LOADERS[format_id]
    except KeyError:
        raise LoadError(format_id, "Unsupported data format") from None


def available_formats() -> List[str]:
    return sorted(_LOADERS)
