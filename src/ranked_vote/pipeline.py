"""
Per-contest report pipeline.

Each contest runs load -> normalize -> analyze -> assemble independently.
Contests are spread over a thread pool; inside a contest the tabulation,
pairwise counts and ranking distribution run concurrently over the same
immutable NormalizedElection, and assembly waits for all three. The index is
rebuilt once every contest has finished.
"""

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pandas as pd

from .analysis.pairwise import PairwiseAnalyzer
from .analysis.ranking_distribution import compute_ranking_distribution
from .analysis.tabulator import Tabulator
from .analysis.verification import cross_check_winner
from .config import PipelineSettings
from .data.normalizer import NormalizedCache, compute_fingerprint, prepare_election
from .errors import MetadataError, RankedVoteError
from .formats import FormatLoader, get_loader
from .metadata import SUPPORTED_TABULATIONS, ContestContext, iter_contests, read_metadata
from .model import NormalizedElection
from .report.assembler import generate_report
from .report.index import rebuild_index
from .report.writer import write_json_atomic

logger = logging.getLogger(__name__)


@dataclass
class ContestFailure:
    contest_path: str
    data_format: str
    error: str


@dataclass
class PipelineResult:
    """Summary of one pipeline run."""

    succeeded: List[str] = field(default_factory=list)
    failures: List[ContestFailure] = field(default_factory=list)
    index: Optional[Dict] = None

    @property
    def ok(self) -> bool:
        return not self.failures


def withdrawn_ids(election: NormalizedElection, names: List[str]) -> frozenset:
    """Map withdrawn candidate names from metadata onto candidate ids."""
    by_name = {c.name: i for i, c in enumerate(election.candidates)}
    unknown = [n for n in names if n not in by_name]
    if unknown:
        raise MetadataError(f"Withdrawn candidates not on the roster: {', '.join(unknown)}")
    return frozenset(by_name[n] for n in names)


class ReportPipeline:
    """Generates reports for every contest in the metadata registry."""

    def __init__(self, settings: PipelineSettings):
        self.settings = settings

    def cached_report(self, context: ContestContext, loader: FormatLoader) -> Optional[Dict]:
        """
        Return the existing report if it was written after the current snapshot.

        The snapshot counts as current when its manifest fingerprint matches
        the raw inputs. Metadata edits are not tracked, so a changed contest
        name or withdrawn list needs a run without ``use_cache_report``.
        """
        settings = self.settings
        report_path = context.report_path(settings.report_dir)
        cache = NormalizedCache(context.preprocessed_dir(settings.preprocessed_dir))
        if not report_path.exists():
            return None

        raw_dir = context.raw_dir(settings.raw_dir)
        fingerprint = compute_fingerprint(loader, raw_dir, context.contest.loader_params)
        if not cache.is_current(fingerprint):
            return None
        if report_path.stat().st_mtime < cache.manifest_path.stat().st_mtime:
            return None

        try:
            with open(report_path, "r", encoding="utf-8") as f:
                report = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"[{context.contest_path}] Ignoring unreadable cached report: {e}")
            return None
        if not isinstance(report, dict) or "info" not in report:
            return None
        return report

    def process_contest(self, context: ContestContext) -> Dict:
        """
        Build and write the report for one contest.

        With ``use_cache_report`` a report that is newer than a current
        snapshot is returned as is.

        Args:
            context: Contest to process

        Returns:
            The report document that was written (or reused)
        """
        settings = self.settings
        path = context.contest_path
        logger.info(f"[{path}] Processing ({context.election.data_format})")

        if context.election.tabulation not in SUPPORTED_TABULATIONS:
            raise MetadataError(f"Unsupported tabulation {context.election.tabulation!r}")
        loader = get_loader(context.election.data_format)
        if settings.use_cache_report and not settings.force_preprocess:
            report = self.cached_report(context, loader)
            if report is not None:
                logger.info(f"[{path}] Report is current; skipping")
                return report

        election = prepare_election(
            loader,
            context.raw_dir(settings.raw_dir),
            context.contest.loader_params,
            NormalizedCache(context.preprocessed_dir(settings.preprocessed_dir)),
            force=settings.force_preprocess,
        )
        withdrawn = withdrawn_ids(election, context.contest.withdrawn)
        candidates = [c for c in range(len(election.candidates)) if c not in withdrawn]

        tabulator = Tabulator(election, withdrawn=withdrawn)
        pairwise = PairwiseAnalyzer(election, candidates)

        with ThreadPoolExecutor(max_workers=3, thread_name_prefix="analysis") as executor:
            tabulation = executor.submit(tabulator.tabulate)
            pairwise_counts = executor.submit(lambda: pairwise.wins)
            distribution = executor.submit(compute_ranking_distribution, election)
            tabulation.result()
            pairwise_counts.result()
            ranking_distribution = distribution.result()

        logger.info(f"[{path}] {len(tabulator.rounds)} rounds, winner {tabulator.winner}")
        if logger.isEnabledFor(logging.DEBUG):
            with pd.option_context("display.max_rows", None):
                logger.debug(f"[{path}] Round summary:\n{tabulator.get_round_summary()}")

        if settings.cross_check:
            cross_check_winner(election, tabulator.winner, withdrawn, label=path)

        report = generate_report(context, election, tabulator, pairwise, ranking_distribution)
        write_json_atomic(context.report_path(settings.report_dir), report)
        logger.info(f"[{path}] Report written")
        return report

    def _run_one(self, context: ContestContext, result: PipelineResult):
        try:
            self.process_contest(context)
        except RankedVoteError as e:
            logger.error(f"[{context.contest_path}] Failed: {e}")
            result.failures.append(
                ContestFailure(context.contest_path, context.election.data_format, str(e))
            )
        except Exception as e:
            logger.exception(f"[{context.contest_path}] Unexpected error")
            result.failures.append(
                ContestFailure(
                    context.contest_path,
                    context.election.data_format,
                    f"{type(e).__name__}: {e}",
                )
            )
        else:
            result.succeeded.append(context.contest_path)

    def run(self) -> PipelineResult:
        """
        Process every selected contest, then rebuild the index.

        Returns:
            PipelineResult listing succeeded and failed contests
        """
        settings = self.settings
        jurisdictions = list(read_metadata(settings.meta_dir))
        contests = list(iter_contests(jurisdictions, settings.jurisdiction))
        logger.info(f"Processing {len(contests)} contests with {settings.workers} worker(s)")

        result = PipelineResult()
        with ThreadPoolExecutor(
            max_workers=settings.workers, thread_name_prefix="contest"
        ) as executor:
            futures = [executor.submit(self._run_one, context, result) for context in contests]
            for future in futures:
                future.result()

        result.succeeded.sort()
        result.failures.sort(key=lambda f: f.contest_path)
        result.index = rebuild_index(settings.report_dir)

        logger.info(
            f"Pipeline complete: {len(result.succeeded)} succeeded, {len(result.failures)} failed"
        )
        return result
