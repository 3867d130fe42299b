import argparse
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
LOG_LEVEL_ENV = "RANKED_VOTE_LOG_LEVEL"


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure root logging for scripts.

    Args:
        level: Level name; falls back to RANKED_VOTE_LOG_LEVEL, then INFO
    """
    level_name = (level or os.environ.get(LOG_LEVEL_ENV) or "INFO").upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)


@dataclass(frozen=True)
class PipelineSettings:
    """Directories and switches for one pipeline run."""

    meta_dir: Path
    raw_dir: Path
    preprocessed_dir: Path
    report_dir: Path
    force_preprocess: bool = False
    jurisdiction: Optional[str] = None
    workers: int = 1
    cross_check: bool = False
    use_cache_report: bool = False

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "PipelineSettings":
        """
        Build settings from parsed arguments, with environment fallbacks.

        Args:
            args: Namespace produced by ``add_pipeline_arguments``

        Returns:
            PipelineSettings instance
        """

        def pick(value: Optional[str], env_name: str) -> Path:
            chosen = value or os.environ.get(env_name)
            if not chosen:
                raise ValueError(f"Missing directory: pass it explicitly or set {env_name}")
            return Path(chosen)

        workers = args.workers
        if workers is None:
            workers = int(os.environ.get("RANKED_VOTE_WORKERS", "1"))

        return cls(
            meta_dir=pick(args.meta_dir, "RANKED_VOTE_META_DIR"),
            raw_dir=pick(args.raw_dir, "RANKED_VOTE_RAW_DIR"),
            preprocessed_dir=pick(args.preprocessed_dir, "RANKED_VOTE_PREPROCESSED_DIR"),
            report_dir=pick(args.report_dir, "RANKED_VOTE_REPORT_DIR"),
            force_preprocess=args.force_preprocess,
            jurisdiction=args.jurisdiction,
            workers=max(1, workers),
            cross_check=args.cross_check,
            use_cache_report=args.use_cache_report,
        )


def add_pipeline_arguments(parser: argparse.ArgumentParser) -> None:
    """Register the pipeline's command-line arguments on ``parser``."""
    parser.add_argument("meta_dir", nargs="?", help="Election metadata directory")
    parser.add_argument("raw_dir", nargs="?", help="Raw ballot data directory")
    parser.add_argument(
        "preprocessed_dir", nargs="?", help="Normalized snapshot output directory"
    )
    parser.add_argument("report_dir", nargs="?", help="Report output directory")
    parser.add_argument(
        "--force-preprocess",
        action="store_true",
        help="Regenerate normalized snapshots even if they are current",
    )
    parser.add_argument(
        "--jurisdiction", help='Only process one jurisdiction (e.g. "us/ca/sfo")'
    )
    parser.add_argument(
        "--workers", type=int, default=None, help="Contests processed in parallel"
    )
    parser.add_argument(
        "--cross-check",
        action="store_true",
        help="Re-run each winner through PyRankVote and warn on mismatch",
    )
    parser.add_argument(
        "--use-cache-report",
        action="store_true",
        help="Keep an existing report.json when its normalized snapshot is current",
    )
    parser.add_argument("--log-level", help="Logging level (default: INFO)")
