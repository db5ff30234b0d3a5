"""Batch email verification against the Reoon bulk API with crash resumption."""

from . import models  # noqa: F401
from .checkpoint import CheckpointStore
from .classifier import ResultClassifier, is_valid_verdict
from .client import TaskPollTimeout, VerificationClient, VerificationServiceError
from .config import ConfigurationError, VerifierSettings, resolve_settings
from .filtering import filter_emails
from .io import LeadFileError, load_leads
from .models import (
    AccountBalance,
    FilterResult,
    Lead,
    RunSummary,
    TaskCheckpoint,
    TaskCreation,
    TaskResult,
    TaskStatus,
    VerificationVerdict,
)
from .orchestrator import BatchOrchestrator, ResumeBlockedError, RunState
from .stores import OutputStore

__all__ = [
    "AccountBalance",
    "BatchOrchestrator",
    "CheckpointStore",
    "ConfigurationError",
    "FilterResult",
    "Lead",
    "LeadFileError",
    "OutputStore",
    "ResultClassifier",
    "ResumeBlockedError",
    "RunState",
    "RunSummary",
    "TaskCheckpoint",
    "TaskCreation",
    "TaskPollTimeout",
    "TaskResult",
    "TaskStatus",
    "VerificationClient",
    "VerificationServiceError",
    "VerificationVerdict",
    "VerifierSettings",
    "filter_emails",
    "is_valid_verdict",
    "load_leads",
    "resolve_settings",
    "orchestrator",
]
