#!/usr/bin/env python3
"""
Rebuild index.json from the reports already on disk.
"""

import argparse
import os
import sys
from pathlib import Path

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ranked_vote.config import configure_logging  # noqa: E402
from ranked_vote.errors import AssemblyError  # noqa: E402
from ranked_vote.report.index import rebuild_index  # noqa: E402


def main():
    parser = argparse.ArgumentParser(description="Rebuild the report index")
    parser.add_argument(
        "report_dir", nargs="?", default=os.environ.get("RANKED_VOTE_REPORT_DIR"),
        help="Report directory (default: $RANKED_VOTE_REPORT_DIR)",
    )
    parser.add_argument("--log-level", help="Logging level (default: INFO)")
    args = parser.parse_args()
    configure_logging(args.log_level)

    if not args.report_dir:
        parser.error("report_dir is required (or set RANKED_VOTE_REPORT_DIR)")

    report_dir = Path(args.report_dir)
    if not report_dir.is_dir():
        print(f"Error: Report directory not found: {report_dir}")
        sys.exit(1)

    try:
        index = rebuild_index(report_dir)
    except AssemblyError as e:
        print(f"Error: {e}")
        sys.exit(1)

    contests = sum(len(e["contests"]) for e in index["elections"])
    print(f"✓ Indexed {len(index['elections'])} elections, {contests} contests")


if __name__ == "__main__":
    main()
