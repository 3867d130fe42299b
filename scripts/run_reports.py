#!/usr/bin/env python3
"""
Generate contest reports and the election index.

Usage:
    run_reports.py META_DIR RAW_DIR PREPROCESSED_DIR REPORT_DIR [--jurisdiction us/ca/sfo]

Directories may also come from RANKED_VOTE_META_DIR, RANKED_VOTE_RAW_DIR,
RANKED_VOTE_PREPROCESSED_DIR and RANKED_VOTE_REPORT_DIR.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ranked_vote.config import PipelineSettings, add_pipeline_arguments, configure_logging  # noqa: E402
from ranked_vote.errors import RankedVoteError  # noqa: E402
from ranked_vote.pipeline import ReportPipeline  # noqa: E402

logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Generate ranked-choice contest reports")
    add_pipeline_arguments(parser)
    args = parser.parse_args()
    configure_logging(args.log_level)

    try:
        settings = PipelineSettings.from_args(args)
    except ValueError as e:
        parser.error(str(e))

    try:
        result = ReportPipeline(settings).run()
    except RankedVoteError as e:
        logger.error(f"Pipeline aborted: {e}")
        sys.exit(1)

    print(f"✓ {len(result.succeeded)} contest report(s) written to {settings.report_dir}")
    if result.failures:
        print(f"⚠️  {len(result.failures)} contest(s) failed:")
        for failure in result.failures:
            print(f"  {failure.contest_path} [{failure.data_format}]: {failure.error}")
        sys.exit(1)


if __name__ == "__main__":
    main()
