"""Batch orchestrator driving leads through submit, poll and classify."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, List, Optional, Protocol, Sequence, Set, TypeVar

from ..checkpoint import CheckpointStore
from ..classifier import ResultClassifier, build_lead_map
from ..client import TaskPollTimeout, VerificationServiceError
from ..config import VerifierSettings
from ..filtering import filter_emails
from ..models import AccountBalance, Lead, RunSummary, TaskCreation, TaskResult, TaskStatus
from ..stores import OutputStore, classified_keys
from .resume import ResumeBlockedError, ResumeController

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class VerificationClientProtocol(Protocol):
    """Interface the orchestrator expects from the service client."""

    def check_balance(self) -> Optional[AccountBalance]:  # pragma: no cover - runtime protocol
        """Return remaining credits or ``None``."""

    def create_task(self, emails: Sequence[str], name: str) -> TaskCreation:  # pragma: no cover - runtime protocol
        """Submit a bulk task."""

    def poll_results(self, task_id: str, max_wait: float, poll_interval: float) -> TaskResult:  # pragma: no cover - runtime protocol
        """Wait for a task to finish."""


class RunState(str, Enum):
    RESUMING = "resuming"
    BALANCE_CHECK = "balance_check"
    FILTERING = "filtering"
    BATCHING = "batching"
    SUBMIT = "submit"
    AWAIT_RESULTS = "await_results"
    CLASSIFY = "classify"
    DONE = "done"
    ABORTED = "aborted"


def partition_batches(items: Sequence[T], batch_size: int) -> List[List[T]]:
    """Split ``items`` into consecutive slices of at most ``batch_size``."""

    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    return [list(items[start : start + batch_size]) for start in range(0, len(items), batch_size)]


class BatchOrchestrator:
    """Runs pending leads through the verification service one batch at a time.

    At most one task is in flight. A checkpoint is written as soon as a task
    is accepted and removed once its results are stored, so an interrupted
    run can pick the task up again instead of paying for it twice.
    """

    def __init__(
        self,
        client: VerificationClientProtocol,
        *,
        valid_store: OutputStore,
        invalid_store: OutputStore,
        checkpoints: CheckpointStore,
        batch_size: int = 100,
        max_wait: float = 3600.0,
        poll_interval: float = 5.0,
        probe_timeout: float = 30.0,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._client = client
        self.valid_store = valid_store
        self.invalid_store = invalid_store
        self.checkpoints = checkpoints
        self._batch_size = batch_size
        self._max_wait = max_wait
        self._poll_interval = poll_interval
        self._probe_timeout = probe_timeout
        self.state: Optional[RunState] = None
        self.history: List[RunState] = []

    @classmethod
    def from_settings(cls, client: VerificationClientProtocol, settings: VerifierSettings) -> "BatchOrchestrator":
        return cls(
            client,
            valid_store=OutputStore(settings.valid_path, label="valid"),
            invalid_store=OutputStore(settings.invalid_path, label="invalid"),
            checkpoints=CheckpointStore(settings.checkpoint_path),
            batch_size=settings.batch_size,
            max_wait=settings.max_wait,
            poll_interval=settings.poll_interval,
            probe_timeout=settings.probe_timeout,
        )

    def _enter(self, state: RunState) -> None:
        self.state = state
        self.history.append(state)
        LOGGER.debug("Orchestrator state -> %s", state.value)

    # ------------------------------------------------------------------
    def run(self, leads: Iterable[Lead]) -> RunSummary:
        """Verify every lead not yet present in either output store."""

        leads = list(leads)
        self.history = []
        summary = RunSummary()
        classifier = ResultClassifier(
            self.valid_store,
            self.invalid_store,
            classified_keys([self.valid_store, self.invalid_store]),
        )

        self._enter(RunState.RESUMING)
        start_index = 0
        checkpoint = self.checkpoints.load()
        if checkpoint is not None:
            controller = ResumeController(
                self._client,
                self.checkpoints,
                classifier,
                probe_timeout=self._probe_timeout,
                poll_interval=self._poll_interval,
            )
            try:
                outcome = controller.resume(checkpoint, leads)
            except ResumeBlockedError:
                self._enter(RunState.ABORTED)
                raise
            start_index = outcome.start_index
            if outcome.counts is not None:
                summary.valid += outcome.counts.valid
                summary.invalid += outcome.counts.invalid
                summary.resumed_task_id = checkpoint.task_id

        self._enter(RunState.BALANCE_CHECK)
        self._report_balance()

        self._enter(RunState.FILTERING)
        unclassified = [lead for lead in leads if lead.key not in classifier.classified]
        pending = _first_occurrences(unclassified)
        summary.local_duplicates += len(unclassified) - len(pending)
        LOGGER.info("Total leads: %s", len(leads))
        LOGGER.info("Already verified: %s", len(classifier.classified))
        if not pending:
            LOGGER.info("All emails have been verified already")
            self._enter(RunState.DONE)
            return summary
        LOGGER.info("Pending verification: %s", len(pending))

        self._enter(RunState.BATCHING)
        batches = partition_batches(pending, self._batch_size)
        total = start_index + len(batches)
        summary.batches_total = len(batches)
        LOGGER.info("Processing %s bulk task(s) starting at batch %s", len(batches), start_index + 1)

        for offset, batch in enumerate(batches):
            self._process_batch(batch, start_index + offset, total, classifier, summary)

        self._enter(RunState.DONE)
        log_summary(summary)
        return summary

    def _report_balance(self) -> None:
        balance = self._client.check_balance()
        if balance is None:
            LOGGER.info("Account balance unavailable")
            return
        LOGGER.info(
            "Account balance: %s daily credits, %s instant credits",
            balance.daily_credits,
            balance.instant_credits,
        )

    def _process_batch(
        self,
        batch: List[Lead],
        index: int,
        total: int,
        classifier: ResultClassifier,
        summary: RunSummary,
    ) -> None:
        name = f"Batch {index + 1}/{total} ({len(batch)} emails)"
        LOGGER.info("=" * 60)
        LOGGER.info(name)

        self._enter(RunState.SUBMIT)
        filtered = filter_emails([lead.email for lead in batch])
        summary.record_filter(filtered)
        if filtered.rejected or filtered.duplicate_count:
            LOGGER.warning(
                "Batch %s: %s address(es) failed the local syntax check, %s duplicate(s) dropped",
                index + 1,
                filtered.invalid_count,
                filtered.duplicate_count,
            )
        if not filtered.to_submit:
            LOGGER.warning("Batch %s has no addresses left to submit, skipping", index + 1)
            return

        try:
            creation = self._client.create_task(filtered.to_submit, name)
        except VerificationServiceError as exc:
            LOGGER.error("Failed to create task for batch %s: %s", index + 1, exc)
            summary.failed_batches.append(index)
            return
        summary.record_creation(creation)
        LOGGER.info(
            "Task %s created: %s submitted, %s duplicates removed, %s rejected, %s processing",
            creation.task_id,
            creation.count_submitted,
            creation.count_duplicates_removed,
            creation.count_rejected,
            creation.count_processing,
        )
        self.checkpoints.record(creation.task_id, filtered.to_submit, batch_index=index, total_batches=total)

        self._enter(RunState.AWAIT_RESULTS)
        try:
            result = self._client.poll_results(creation.task_id, self._max_wait, self._poll_interval)
        except VerificationServiceError as exc:
            self.checkpoints.mark(_failure_status(exc))
            LOGGER.error(
                "Failed to get results for batch %s (task %s): %s. Checkpoint kept at %s",
                index + 1,
                creation.task_id,
                exc,
                self.checkpoints.path,
            )
            summary.failed_batches.append(index)
            return

        self._enter(RunState.CLASSIFY)
        counts = classifier.classify(result.verdicts, build_lead_map(batch))
        summary.valid += counts.valid
        summary.invalid += counts.invalid
        summary.batches_completed += 1
        self.checkpoints.clear()
        LOGGER.info("Batch %s stats: %s valid, %s invalid", index + 1, counts.valid, counts.invalid)


def _first_occurrences(leads: Sequence[Lead]) -> List[Lead]:
    seen: Set[str] = set()
    pending: List[Lead] = []
    for lead in leads:
        if lead.key in seen:
            continue
        seen.add(lead.key)
        pending.append(lead)
    return pending


def _failure_status(exc: VerificationServiceError) -> str:
    if isinstance(exc, TaskPollTimeout) and exc.last_status is not None:
        return exc.last_status.value
    return TaskStatus.ERROR.value


def log_summary(summary: RunSummary) -> None:
    LOGGER.info("=" * 60)
    LOGGER.info("Email verification complete")
    LOGGER.info("Batches completed: %s/%s", summary.batches_completed, summary.batches_total)
    LOGGER.info("Valid emails: %s", summary.valid)
    LOGGER.info("Invalid emails: %s", summary.invalid)
    LOGGER.info("Duplicates removed by service: %s", summary.service_duplicates)
    LOGGER.info("Rejected by service: %s", summary.service_rejected)
    if summary.local_invalid or summary.local_duplicates:
        LOGGER.info(
            "Filtered locally: %s invalid, %s duplicate",
            summary.local_invalid,
            summary.local_duplicates,
        )
    if summary.failed_batches:
        LOGGER.warning(
            "Batches without results: %s. Run again to retry them",
            ", ".join(str(index + 1) for index in summary.failed_batches),
        )


__all__ = [
    "BatchOrchestrator",
    "RunState",
    "VerificationClientProtocol",
    "log_summary",
    "partition_batches",
]
