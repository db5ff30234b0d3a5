"""Data models shared by the filter, client, orchestrator and output stores."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


def normalise_email(value: str) -> str:
    """Return the identity key used to compare email addresses."""

    return value.strip().lower()


# --- Core Input Models ---

@dataclass(frozen=True)
class Lead:
    """A lead record read from the input file.

    ``record`` holds every field exactly as it was loaded so that the
    output stores can re-emit the lead unchanged.
    """

    email: str
    record: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return normalise_email(self.email)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Lead":
        email = record.get("email")
        if not isinstance(email, str):
            raise ValueError("Lead records require an 'email' string")
        return cls(email=email, record=dict(record))

    def to_record(self) -> Dict[str, Any]:
        return dict(self.record)


@dataclass
class FilterResult:
    """Outcome of the local syntax and duplicate filter for one batch."""

    to_submit: List[str] = field(default_factory=list)
    rejected: List[str] = field(default_factory=list)
    duplicate_count: int = 0

    @property
    def invalid_count(self) -> int:
        return len(self.rejected)


# --- Verification Service Models ---

class TaskStatus(str, Enum):
    """Lifecycle labels reported by the bulk verification service."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"
    NOT_FOUND = "file_not_found"

    @classmethod
    def parse(cls, value: Optional[str]) -> "TaskStatus":
        for status in cls:
            if status.value == value:
                return status
        # Anything else ("waiting", "running", ...) means the task is still in flight.
        return cls.PROCESSING


@dataclass(slots=True)
class AccountBalance:
    daily_credits: Optional[int] = None
    instant_credits: Optional[int] = None


@dataclass(slots=True)
class TaskCreation:
    """Response returned when a bulk verification task is accepted."""

    task_id: str
    count_submitted: int = 0
    count_duplicates_removed: int = 0
    count_rejected: int = 0
    count_processing: int = 0

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "TaskCreation":
        return cls(
            task_id=str(payload["task_id"]),
            count_submitted=_count(payload.get("count_submitted")),
            count_duplicates_removed=_count(payload.get("count_duplicates_removed")),
            count_rejected=_count(payload.get("count_rejected_emails")),
            count_processing=_count(payload.get("count_processing")),
        )


@dataclass
class VerificationVerdict:
    """Per-email result reported by the service.

    Boolean signals are ``None`` when the service omitted them.
    """

    email: str
    is_valid_syntax: Optional[bool] = None
    is_deliverable: Optional[bool] = None
    is_disposable: Optional[bool] = None
    is_spamtrap: Optional[bool] = None
    is_disabled: Optional[bool] = None
    is_safe_to_send: Optional[bool] = None
    status: Optional[str] = None
    score: Optional[float] = None

    @classmethod
    def from_payload(cls, email: str, payload: Dict[str, Any]) -> "VerificationVerdict":
        score = payload.get("overall_score")
        try:
            score = float(score) if score is not None else None
        except (TypeError, ValueError):
            score = None
        return cls(
            email=email,
            is_valid_syntax=_optional_bool(payload.get("is_valid_syntax")),
            is_deliverable=_optional_bool(payload.get("is_deliverable")),
            is_disposable=_optional_bool(payload.get("is_disposable")),
            is_spamtrap=_optional_bool(payload.get("is_spamtrap")),
            is_disabled=_optional_bool(payload.get("is_disabled")),
            is_safe_to_send=_optional_bool(payload.get("is_safe_to_send")),
            status=payload.get("status"),
            score=score,
        )


_BOOL_STRINGS = {"true": True, "yes": True, "1": True, "false": False, "no": False, "0": False}


def _optional_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, str):
        return _BOOL_STRINGS.get(value.strip().lower())
    return bool(value)


def _count(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _percent(value: Any) -> float:
    try:
        return float(value or 0.0)
    except (TypeError, ValueError):
        return 0.0


@dataclass
class TaskResult:
    """Snapshot of a bulk task as returned by the results endpoint."""

    task_id: str
    status: TaskStatus
    progress_percent: float = 0.0
    verdicts: List[VerificationVerdict] = field(default_factory=list)
    count_checked: int = 0
    count_total: int = 0
    reason: Optional[str] = None

    @classmethod
    def from_payload(cls, task_id: str, payload: Dict[str, Any]) -> "TaskResult":
        """Build a snapshot from a results response.

        Raises :class:`ValueError` when a completed task carries results that
        are not a mapping of address to verdict object.
        """

        status = TaskStatus.parse(payload.get("status"))
        verdicts: List[VerificationVerdict] = []
        if status is TaskStatus.COMPLETED:
            results = payload.get("results") or {}
            if not isinstance(results, dict):
                raise ValueError("Task results are not an object")
            for email, verdict in results.items():
                if verdict is not None and not isinstance(verdict, dict):
                    raise ValueError(f"Verdict for {email} is not an object")
                verdicts.append(VerificationVerdict.from_payload(str(email), verdict or {}))
        return cls(
            task_id=task_id,
            status=status,
            progress_percent=_percent(payload.get("progress_percentage")),
            verdicts=verdicts,
            count_checked=_count(payload.get("count_checked")),
            count_total=_count(payload.get("count_total")),
            reason=payload.get("reason"),
        )


# --- Resumability Models ---

@dataclass
class TaskCheckpoint:
    """Durable record of the single in-flight task."""

    task_id: str
    batch_index: int
    total_batches: int
    created_at: str
    emails: List[str] = field(default_factory=list)
    status: str = TaskStatus.PROCESSING.value

    @property
    def email_count(self) -> int:
        return len(self.emails)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "taskId": self.task_id,
            "batchIndex": self.batch_index,
            "totalBatches": self.total_batches,
            "createdAt": self.created_at,
            "emailCount": self.email_count,
            "emails": list(self.emails),
            "status": self.status,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "TaskCheckpoint":
        emails = payload.get("emails") or []
        if not isinstance(emails, list):
            raise ValueError("Checkpoint 'emails' must be a list")
        return cls(
            task_id=str(payload["taskId"]),
            # Checkpoints written by older runs carry no batch position.
            batch_index=int(payload.get("batchIndex", -1)),
            total_batches=int(payload.get("totalBatches", 0)),
            created_at=str(payload.get("createdAt", "")),
            emails=[str(email) for email in emails],
            status=str(payload.get("status", TaskStatus.PROCESSING.value)),
        )


@dataclass
class RunSummary:
    """Aggregate counters threaded through a single orchestrator run."""

    valid: int = 0
    invalid: int = 0
    service_duplicates: int = 0
    service_rejected: int = 0
    local_invalid: int = 0
    local_duplicates: int = 0
    batches_total: int = 0
    batches_completed: int = 0
    failed_batches: List[int] = field(default_factory=list)
    rejected_local: List[str] = field(default_factory=list)
    resumed_task_id: Optional[str] = None

    def record_filter(self, result: FilterResult) -> None:
        self.local_invalid += result.invalid_count
        self.local_duplicates += result.duplicate_count
        self.rejected_local.extend(result.rejected)

    def record_creation(self, creation: TaskCreation) -> None:
        self.service_duplicates += creation.count_duplicates_removed
        self.service_rejected += creation.count_rejected


__all__ = [
    "AccountBalance",
    "FilterResult",
    "Lead",
    "RunSummary",
    "TaskCheckpoint",
    "TaskCreation",
    "TaskResult",
    "TaskStatus",
    "VerificationVerdict",
    "normalise_email",
]
