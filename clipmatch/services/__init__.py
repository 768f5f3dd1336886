"""Services package."""

from clipmatch.services.adapters import NormalizedTransaction, SourceAdapter, build_adapter, normalize_phone
from clipmatch.services.aggregator import compute_report_stats, load_reports_summary, recompute, summarize_reports
from clipmatch.services.candidates import CandidateFinder, parse_scope
from clipmatch.services.engine import MatchingEngine
from clipmatch.services.errors import (
    AutoMatchInterruptedError,
    ComputationError,
    ConfigurationError,
    ConflictError,
    MatchingError,
    NotFoundError,
    ReportBusyError,
    ValidationError,
)
from clipmatch.services.jobs import AutoMatchJobRunner, job_runner
from clipmatch.services.matcher import MatchRun, MatchThresholds, ProposedMatch, iter_matches, match
from clipmatch.services.metrics import MatchMetrics, RoleMapping, compute_metrics
from clipmatch.services.profiles import PROFILES, MatchingProfile, get_profile
from clipmatch.services.store import MatchStore, SqlMatchStore

__all__ = [
    "PROFILES",
    "AutoMatchInterruptedError",
    "AutoMatchJobRunner",
    "CandidateFinder",
    "ComputationError",
    "ConfigurationError",
    "ConflictError",
    "MatchMetrics",
    "MatchRun",
    "MatchStore",
    "MatchThresholds",
    "MatchingEngine",
    "MatchingError",
    "MatchingProfile",
    "NormalizedTransaction",
    "NotFoundError",
    "ProposedMatch",
    "ReportBusyError",
    "RoleMapping",
    "SourceAdapter",
    "SqlMatchStore",
    "ValidationError",
    "build_adapter",
    "compute_metrics",
    "compute_report_stats",
    "get_profile",
    "iter_matches",
    "job_runner",
    "load_reports_summary",
    "match",
    "normalize_phone",
    "parse_scope",
    "recompute",
    "summarize_reports",
]
