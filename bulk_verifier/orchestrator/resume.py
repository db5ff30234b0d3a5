"""Reattaching to a task left in flight by an interrupted run."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol, Set

from ..checkpoint import CheckpointStore
from ..classifier import ClassificationCounts, ResultClassifier, build_lead_map
from ..client import TaskPollTimeout, VerificationServiceError
from ..models import Lead, TaskCheckpoint, TaskResult, normalise_email

LOGGER = logging.getLogger(__name__)


class TaskPoller(Protocol):
    def poll_results(self, task_id: str, max_wait: float, poll_interval: float) -> TaskResult:  # pragma: no cover - runtime protocol
        """Wait for ``task_id`` to finish."""


class ResumeBlockedError(RuntimeError):
    """Raised when the checkpointed task is still processing on the service."""

    def __init__(self, checkpoint: TaskCheckpoint, checkpoint_path: Optional[str] = None) -> None:
        location = f" ({checkpoint_path})" if checkpoint_path else ""
        super().__init__(
            f"Task {checkpoint.task_id} from a previous run is still processing. "
            f"Wait for it to finish and run again, or remove the checkpoint{location} "
            "to abandon it."
        )
        self.checkpoint = checkpoint


@dataclass
class ResumeOutcome:
    start_index: int
    counts: Optional[ClassificationCounts] = None


class ResumeController:
    """Probes a checkpointed task and decides where the next run starts."""

    def __init__(
        self,
        client: TaskPoller,
        checkpoints: CheckpointStore,
        classifier: ResultClassifier,
        *,
        probe_timeout: float = 30.0,
        poll_interval: float = 5.0,
    ) -> None:
        self._client = client
        self._checkpoints = checkpoints
        self._classifier = classifier
        self._probe_timeout = probe_timeout
        self._poll_interval = poll_interval

    def resume(self, checkpoint: TaskCheckpoint, leads: Iterable[Lead]) -> ResumeOutcome:
        LOGGER.info(
            "Found checkpoint for task %s (batch %s/%s, %s emails, created %s, last status %s)",
            checkpoint.task_id,
            checkpoint.batch_index + 1,
            checkpoint.total_batches,
            checkpoint.email_count,
            checkpoint.created_at or "unknown",
            checkpoint.status,
        )
        try:
            result = self._client.poll_results(checkpoint.task_id, self._probe_timeout, self._poll_interval)
        except TaskPollTimeout as exc:
            status = exc.last_status.value if exc.last_status else "processing"
            LOGGER.error("Task %s is still %s after the resume probe", checkpoint.task_id, status)
            raise ResumeBlockedError(checkpoint, str(self._checkpoints.path)) from exc
        except VerificationServiceError as exc:
            LOGGER.warning("Checkpoint for task %s is stale (%s); starting over", checkpoint.task_id, exc)
            self._checkpoints.clear()
            return ResumeOutcome(start_index=0)

        in_flight: Set[str] = {normalise_email(email) for email in checkpoint.emails}
        lead_map = build_lead_map(lead for lead in leads if lead.key in in_flight)
        counts = self._classifier.classify(result.verdicts, lead_map)
        self._checkpoints.clear()
        LOGGER.info(
            "Recovered task %s: %s valid, %s invalid",
            checkpoint.task_id,
            counts.valid,
            counts.invalid,
        )
        return ResumeOutcome(start_index=max(checkpoint.batch_index + 1, 0), counts=counts)


__all__ = ["ResumeBlockedError", "ResumeController", "ResumeOutcome", "TaskPoller"]
