"""
Report artifacts: atomic JSON writes, the cross-election index and the
read-only report store. The assembler lives in ``ranked_vote.report.assembler``.
"""

from .index import build_index, rebuild_index
from .store import ReportStore
from .writer import write_json_atomic

__all__ = ["ReportStore", "build_index", "rebuild_index", "write_json_atomic"]
