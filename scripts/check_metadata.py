#!/usr/bin/env python3
"""
Validate the election metadata registry and print what it describes.

Usage:
    check_metadata.py META_DIR [--jurisdiction us/ca/sfo]
"""

import argparse
import os
import sys
from pathlib import Path

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ranked_vote.config import configure_logging  # noqa: E402
from ranked_vote.errors import MetadataError  # noqa: E402
from ranked_vote.formats import available_formats  # noqa: E402
from ranked_vote.metadata import check_jurisdiction, read_metadata  # noqa: E402


def main():
    parser = argparse.ArgumentParser(description="Validate and dump election metadata")
    parser.add_argument(
        "meta_dir", nargs="?", default=os.environ.get("RANKED_VOTE_META_DIR"),
        help="Election metadata directory (default: $RANKED_VOTE_META_DIR)",
    )
    parser.add_argument("--jurisdiction", help='Only check one jurisdiction (e.g. "us/ca/sfo")')
    parser.add_argument("--log-level", help="Logging level (default: WARNING)")
    args = parser.parse_args()
    configure_logging(args.log_level or "WARNING")

    if not args.meta_dir:
        parser.error("meta_dir is required (or set RANKED_VOTE_META_DIR)")

    try:
        jurisdictions = list(read_metadata(Path(args.meta_dir)))
    except MetadataError as e:
        print(f"Error: {e}")
        sys.exit(1)

    formats = available_formats()
    problems = []
    for jurisdiction in jurisdictions:
        if args.jurisdiction and jurisdiction.path != args.jurisdiction:
            continue
        print(f"{jurisdiction.path}: {jurisdiction.name}")
        for election in jurisdiction.elections.values():
            print(
                f"  {election.path}  {election.name} ({election.date}) "
                f"[{election.data_format}, {election.tabulation}]"
            )
            for contest in election.contests:
                office = jurisdiction.office(contest.office)
                print(f"    {contest.office}: {office.name}  {contest.loader_params}")
        problems.extend(check_jurisdiction(jurisdiction, formats))

    if problems:
        print(f"\n⚠️  {len(problems)} problem(s):")
        for problem in problems:
            print(f"  {problem}")
        sys.exit(1)
    print(f"\n✓ Metadata OK ({len(jurisdictions)} jurisdiction(s))")


if __name__ == "__main__":
    main()
