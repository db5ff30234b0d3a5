from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import pytest

from bulk_verifier.client import TaskPollTimeout, VerificationServiceError
from bulk_verifier.models import (
    AccountBalance,
    TaskCreation,
    TaskResult,
    TaskStatus,
    VerificationVerdict,
)


def default_verdict(email: str) -> dict:
    if "bad" in email.lower():
        return {"status": "invalid", "is_deliverable": False, "is_safe_to_send": False}
    return {"status": "safe", "is_valid_syntax": True, "is_deliverable": True, "is_safe_to_send": True}


class FakeClient:
    """In-memory stand-in for :class:`bulk_verifier.client.VerificationClient`."""

    def __init__(
        self,
        *,
        verdict: Callable[[str], dict] = default_verdict,
        fail_create: Iterable[int] = (),
        fail_poll: Iterable[str] = (),
        processing: Iterable[str] = (),
        known_tasks: Optional[Dict[str, Sequence[str]]] = None,
        balance: Optional[AccountBalance] = AccountBalance(daily_credits=100, instant_credits=5),
    ) -> None:
        self.verdict = verdict
        self.fail_create: Set[int] = set(fail_create)
        self.fail_poll: Set[str] = set(fail_poll)
        self.processing: Set[str] = set(processing)
        self.tasks: Dict[str, List[str]] = {key: list(value) for key, value in (known_tasks or {}).items()}
        self.balance = balance
        self.created: List[Tuple[List[str], str]] = []
        self.polled: List[Tuple[str, float]] = []
        self.balance_calls = 0
        self.closed = False

    def check_balance(self) -> Optional[AccountBalance]:
        self.balance_calls += 1
        return self.balance

    def create_task(self, emails: Sequence[str], name: str) -> TaskCreation:
        index = len(self.created)
        self.created.append((list(emails), name))
        if index in self.fail_create:
            raise VerificationServiceError("Task creation failed: not enough credits")
        task_id = f"task-{index}"
        self.tasks[task_id] = list(emails)
        return TaskCreation(task_id=task_id, count_submitted=len(emails), count_processing=len(emails))

    def poll_results(self, task_id: str, max_wait: float, poll_interval: float) -> TaskResult:
        self.polled.append((task_id, max_wait))
        if task_id in self.processing:
            raise TaskPollTimeout(task_id, max_wait, TaskStatus.PROCESSING)
        if task_id in self.fail_poll or task_id not in self.tasks:
            raise VerificationServiceError("Task error: file_not_found", task_id=task_id)
        emails = self.tasks[task_id]
        return TaskResult(
            task_id=task_id,
            status=TaskStatus.COMPLETED,
            progress_percent=100.0,
            verdicts=[VerificationVerdict.from_payload(email, self.verdict(email)) for email in emails],
            count_checked=len(emails),
            count_total=len(emails),
        )

    @property
    def submitted_emails(self) -> List[str]:
        return [email for emails, _ in self.created for email in emails]

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "FakeClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


@pytest.fixture()
def make_client() -> Callable[..., FakeClient]:
    return FakeClient
