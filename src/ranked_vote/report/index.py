import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from .writer import write_json_atomic

logger = logging.getLogger(__name__)

INDEX_FILE = "index.json"
REPORT_FILE = "report.json"


def contest_index_entry(report: Dict[str, Any]) -> Dict[str, Any]:
    """Summarize one report for the index."""
    info = report["info"]
    candidates = report["candidates"]
    winner = report.get("winner")
    condorcet = report.get("condorcet")

    entry: Dict[str, Any] = {
        "office": info["office"],
        "officeName": info["officeName"],
        "name": info["name"],
        "winner": candidates[winner]["name"] if winner is not None else "No Winner",
        "numCandidates": report["numCandidates"],
        "numRounds": len(report["rounds"]),
    }
    if condorcet is not None:
        entry["condorcetWinner"] = candidates[condorcet]["name"]
    entry["hasNonCondorcetWinner"] = condorcet is not None and condorcet != winner
    return entry


def build_index(report_dir: Path) -> Dict[str, Any]:
    """
    Scan every report under ``report_dir`` and group contests by election.

    Elections are ordered by date then path, newest first; contests within an
    election by office name. Reports that cannot be read are logged and
    skipped.

    Args:
        report_dir: Root of the report tree

    Returns:
        Index document: ``{"elections": [...]}``
    """
    elections: Dict[str, Dict[str, Any]] = {}

    for report_path in sorted(Path(report_dir).rglob(REPORT_FILE)):
        try:
            with open(report_path, "r", encoding="utf-8") as f:
                report = json.load(f)
            info = report["info"]
            entry = contest_index_entry(report)
            election_path = f"{info['jurisdictionPath']}/{info['electionPath']}"
            header = {
                "path": election_path,
                "jurisdictionName": info["jurisdictionName"],
                "electionName": info["electionName"],
                "date": str(info["date"]),
            }
        except (OSError, ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning(f"Skipping unreadable report {report_path}: {e!r}")
            continue

        election = elections.setdefault(election_path, dict(header, contests=[]))
        election["contests"].append(entry)

    ordered: List[Dict[str, Any]] = sorted(
        elections.values(), key=lambda e: (e["date"], e["path"]), reverse=True
    )
    for election in ordered:
        election["contests"].sort(key=lambda c: (c["officeName"], c["office"]))

    return {"elections": ordered}


def rebuild_index(report_dir: Path) -> Dict[str, Any]:
    """Rebuild ``index.json`` from the current reports and write it atomically."""
    index = build_index(report_dir)
    write_json_atomic(Path(report_dir) / INDEX_FILE, index)
    contests = sum(len(e["contests"]) for e in index["elections"])
    logger.info(f"Index rebuilt: {len(index['elections'])} elections, {contests} contests")
    return index
