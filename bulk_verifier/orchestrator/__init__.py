"""Workflow orchestration for batch submission, polling and crash resumption."""

from .resume import ResumeBlockedError, ResumeController, ResumeOutcome
from .service import BatchOrchestrator, RunState, partition_batches

__all__ = [
    "BatchOrchestrator",
    "ResumeBlockedError",
    "ResumeController",
    "ResumeOutcome",
    "RunState",
    "partition_batches",
]
