"""HTTP client for the Reoon bulk email verification API."""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional, Sequence

import requests

from .config import DEFAULT_BASE_URL
from .models import AccountBalance, TaskCreation, TaskResult, TaskStatus

LOGGER = logging.getLogger(__name__)

CREATE_TASK_PATH = "create-bulk-verification-task/"
GET_RESULTS_PATH = "get-result-bulk-verification-task/"
CHECK_BALANCE_PATH = "check-account-balance/"


class VerificationServiceError(RuntimeError):
    """Raised when the verification service cannot fulfil a request."""

    def __init__(self, message: str, *, task_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.task_id = task_id


class TaskPollTimeout(VerificationServiceError):
    """Raised when a task is still unfinished after the polling budget."""

    def __init__(self, task_id: str, waited: float, last_status: Optional[TaskStatus] = None) -> None:
        super().__init__(f"Task {task_id} still unfinished after {waited:.0f} seconds", task_id=task_id)
        self.waited = waited
        self.last_status = last_status


class VerificationClient:
    """Thin adapter around the create, results and balance endpoints.

    Every call is a single round trip; nothing is retried here.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        request_timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/") + "/"
        self._timeout = request_timeout
        self._session = session or requests.Session()
        self._sleep = sleep
        self._clock = clock

    def __enter__(self) -> "VerificationClient":
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        self._session.close()

    def _url(self, path: str) -> str:
        return self._base_url + path

    # ------------------------------------------------------------------
    def check_balance(self) -> Optional[AccountBalance]:
        """Return remaining credits, or ``None`` if they cannot be retrieved."""

        try:
            response = self._session.get(
                self._url(CHECK_BALANCE_PATH),
                params={"key": self._api_key},
                timeout=self._timeout,
            )
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            LOGGER.warning("Error checking account balance: %s", exc)
            return None

        if not isinstance(data, dict) or data.get("status") != "success":
            LOGGER.warning("Could not retrieve account balance")
            return None
        return AccountBalance(
            daily_credits=_optional_int(data.get("remaining_daily_credits")),
            instant_credits=_optional_int(data.get("remaining_instant_credits")),
        )

    def create_task(self, emails: Sequence[str], name: str) -> TaskCreation:
        """Submit ``emails`` as one bulk task."""

        payload = {"name": name, "emails": list(emails), "key": self._api_key}
        try:
            response = self._session.post(self._url(CREATE_TASK_PATH), json=payload, timeout=self._timeout)
        except requests.RequestException as exc:
            raise VerificationServiceError(f"Error creating bulk task: {exc}") from exc

        data = _json_or_empty(response)
        if response.status_code == 201 and data.get("status") == "success" and data.get("task_id") is not None:
            return TaskCreation.from_payload(data)

        reason = data.get("reason") or f"HTTP {response.status_code}"
        raise VerificationServiceError(f"Task creation failed: {reason}")

    def get_task(self, task_id: str) -> TaskResult:
        """Fetch the current state of a task once."""

        try:
            response = self._session.get(
                self._url(GET_RESULTS_PATH),
                params={"key": self._api_key, "task-id": task_id},
                timeout=self._timeout,
            )
            data = response.json()
        except requests.RequestException as exc:
            raise VerificationServiceError(f"Error polling task results: {exc}", task_id=task_id) from exc
        except ValueError as exc:
            raise VerificationServiceError(
                f"Unreadable response while polling task (HTTP {response.status_code})", task_id=task_id
            ) from exc
        if not isinstance(data, dict):
            raise VerificationServiceError("Unexpected response while polling task", task_id=task_id)
        try:
            return TaskResult.from_payload(task_id, data)
        except ValueError as exc:
            raise VerificationServiceError(f"Malformed task results: {exc}", task_id=task_id) from exc

    def poll_results(self, task_id: str, max_wait: float, poll_interval: float) -> TaskResult:
        """Block until the task completes, fails or ``max_wait`` seconds pass."""

        started = self._clock()
        poll_count = 0
        last_status: Optional[TaskStatus] = None
        while self._clock() - started < max_wait:
            poll_count += 1
            result = self.get_task(task_id)
            last_status = result.status
            LOGGER.info(
                "Poll #%s for task %s: status=%s, progress=%.1f%%",
                poll_count,
                task_id,
                result.status.value,
                result.progress_percent,
            )

            if result.status is TaskStatus.COMPLETED:
                LOGGER.info("Task %s completed: %s/%s checked", task_id, result.count_checked, result.count_total)
                return result
            if result.status in (TaskStatus.ERROR, TaskStatus.NOT_FOUND):
                raise VerificationServiceError(
                    f"Task error: {result.reason or result.status.value}", task_id=task_id
                )

            remaining = max_wait - (self._clock() - started)
            if remaining <= 0:
                break
            self._sleep(min(poll_interval, remaining))

        raise TaskPollTimeout(task_id, max_wait, last_status)


def _json_or_empty(response: requests.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _optional_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


__all__ = ["TaskPollTimeout", "VerificationClient", "VerificationServiceError"]
