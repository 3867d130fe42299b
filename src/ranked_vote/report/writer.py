import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from ..errors import AssemblyError

logger = logging.getLogger(__name__)


def write_json_atomic(path: Path, data: Any) -> None:
    """
    Write ``data`` as JSON so readers only ever see the old or the new file.

    The document is written to a temporary file in the destination directory
    and moved into place with ``os.replace``.

    Args:
        path: Destination file
        data: JSON-serializable document

    Raises:
        AssemblyError: if the file could not be written
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    except OSError as e:
        raise AssemblyError(f"Cannot create {path.parent}: {e}") from e

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.write("\n")
        os.replace(temp_name, path)
    except (OSError, TypeError, ValueError) as e:
        if os.path.exists(temp_name):
            os.unlink(temp_name)
        raise AssemblyError(f"Failed to write {path}: {e}") from e

    logger.debug(f"Wrote {path}")
