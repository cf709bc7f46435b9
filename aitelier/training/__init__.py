"""
Training module: run records, the run orchestrator and the caller-facing
training service.
"""

from .evaluation import EvalResult, EvalSummary, summarize, write_eval_summary
from .orchestrator import REMOTE_TO_LOCAL, RunOrchestrator
from .schema import (
    STATUS_RANK,
    TERMINAL_STATUSES,
    Comparison,
    Run,
    RunStatus,
    RunSummary,
    StartResult,
    is_forward_transition,
)
from .service import TrainingService
from .store import InMemoryRunStore, JsonRunStore, RunStore

__all__ = [
    "Run",
    "RunStatus",
    "RunSummary",
    "StartResult",
    "Comparison",
    "STATUS_RANK",
    "TERMINAL_STATUSES",
    "is_forward_transition",
    "RunStore",
    "InMemoryRunStore",
    "JsonRunStore",
    "RunOrchestrator",
    "REMOTE_TO_LOCAL",
    "TrainingService",
    "EvalResult",
    "EvalSummary",
    "summarize",
    "write_eval_summary",
]
