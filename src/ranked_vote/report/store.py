import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from ..errors import ReportLookupError
from .index import INDEX_FILE, REPORT_FILE

logger = logging.getLogger(__name__)


class ReportStore:
    """
    Read-only access to the published report tree.

    A missing report (or one without ``info``) is "not found" and returns
    None; a report that exists but cannot be read raises ReportLookupError.
    """

    def __init__(self, report_dir: Path):
        self.report_dir = Path(report_dir)

    def _resolve(self, path: str) -> Optional[Path]:
        """Map a contest path onto its report file, refusing paths outside the tree."""
        parts = [p for p in path.strip("/").split("/") if p]
        if not parts or any(p in (".", "..") for p in parts):
            return None
        if parts[-1] == REPORT_FILE:
            parts = parts[:-1]
        return self.report_dir.joinpath(*parts, REPORT_FILE)

    def _read(self, file_path: Path) -> Any:
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read {file_path}: {e}")
            raise ReportLookupError(f"Failed to read {file_path}") from e

    def get_report(self, path: str) -> Optional[Dict[str, Any]]:
        """
        Look up a contest report.

        Args:
            path: Contest path, e.g. ``us/ca/sfo/2019/11/mayor``

        Returns:
            Report document, or None if there is no such report
        """
        file_path = self._resolve(path)
        if file_path is None or not file_path.is_file():
            return None

        report = self._read(file_path)
        if not isinstance(report, dict) or "info" not in report:
            logger.warning(f"Report {file_path} has no info block")
            return None
        return report

    def get_index(self) -> Optional[Dict[str, Any]]:
        """The current index document, or None if it has not been built."""
        file_path = self.report_dir / INDEX_FILE
        if not file_path.is_file():
            return None
        return self._read(file_path)
