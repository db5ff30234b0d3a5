"""Behavioural tests for the batch orchestrator state machine."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, List

import pytest

from bulk_verifier.checkpoint import CheckpointStore
from bulk_verifier.client import VerificationClient
from bulk_verifier.models import Lead
from bulk_verifier.orchestrator import BatchOrchestrator, ResumeBlockedError, RunState, partition_batches
from bulk_verifier.stores import OutputStore


def _leads(emails: List[str]) -> List[Lead]:
    return [Lead.from_record({"email": email, "row": index}) for index, email in enumerate(emails)]


def _orchestrator(client, tmp_path: Path, **kwargs) -> BatchOrchestrator:
    return BatchOrchestrator(
        client,
        valid_store=OutputStore(tmp_path / "valid.json"),
        invalid_store=OutputStore(tmp_path / "invalid.json"),
        checkpoints=CheckpointStore(tmp_path / "task-info.json"),
        **kwargs,
    )


def _stored_emails(path: Path) -> List[str]:
    if not path.exists():
        return []
    return [item["email"] for item in json.loads(path.read_text(encoding="utf-8"))]


def test_partition_batches_keeps_order_and_sizes() -> None:
    batches = partition_batches(list(range(250)), 100)

    assert [len(batch) for batch in batches] == [100, 100, 50]
    assert batches[1][0] == 100
    assert partition_batches([], 10) == []


def test_run_submits_fixed_size_batches_in_order(make_client, tmp_path, caplog) -> None:
    client = make_client()
    emails = [f"user{index}@example.com" for index in range(250)]

    with caplog.at_level(logging.INFO):
        summary = _orchestrator(client, tmp_path, batch_size=100).run(_leads(emails))

    assert [len(batch) for batch, _ in client.created] == [100, 100, 50]
    assert [name for _, name in client.created] == [
        "Batch 1/3 (100 emails)",
        "Batch 2/3 (100 emails)",
        "Batch 3/3 (50 emails)",
    ]
    assert client.submitted_emails == emails
    assert [task_id for task_id, _ in client.polled] == ["task-0", "task-1", "task-2"]
    assert summary.valid == 250
    assert summary.batches_completed == 3
    assert "Batches completed: 3/3" in caplog.text


def test_run_partitions_results_between_stores(make_client, tmp_path) -> None:
    client = make_client()
    orchestrator = _orchestrator(client, tmp_path, batch_size=2)
    leads = _leads(["ok1@example.com", "bad1@example.com", "ok2@example.com", "bad2@example.com", "ok3@example.com"])

    summary = orchestrator.run(leads)

    valid = _stored_emails(tmp_path / "valid.json")
    invalid = _stored_emails(tmp_path / "invalid.json")
    assert valid == ["ok1@example.com", "ok2@example.com", "ok3@example.com"]
    assert invalid == ["bad1@example.com", "bad2@example.com"]
    assert not set(valid) & set(invalid)
    assert (summary.valid, summary.invalid) == (3, 2)
    assert not (tmp_path / "task-info.json").exists()
    assert orchestrator.state is RunState.DONE
    assert orchestrator.history[:4] == [
        RunState.RESUMING,
        RunState.BALANCE_CHECK,
        RunState.FILTERING,
        RunState.BATCHING,
    ]


def test_stored_records_are_the_original_leads(make_client, tmp_path) -> None:
    lead = Lead.from_record({"email": "ok@example.com", "name": "Ada", "extra": {"source": "import"}})

    _orchestrator(make_client(), tmp_path).run([lead])

    assert json.loads((tmp_path / "valid.json").read_text(encoding="utf-8")) == [
        {"email": "ok@example.com", "name": "Ada", "extra": {"source": "import"}}
    ]


def test_second_run_makes_no_task_calls(make_client, tmp_path) -> None:
    leads = _leads(["ok1@example.com", "bad1@example.com", "ok2@example.com"])
    _orchestrator(make_client(), tmp_path, batch_size=2).run(leads)

    client = make_client()
    orchestrator = _orchestrator(client, tmp_path, batch_size=2)
    summary = orchestrator.run(leads)

    assert client.created == []
    assert client.polled == []
    assert summary.valid == summary.invalid == 0
    assert orchestrator.state is RunState.DONE
    assert RunState.BATCHING not in orchestrator.history


def test_local_filter_applies_within_a_batch(make_client, tmp_path) -> None:
    client = make_client()
    leads = _leads(["a@b.com", "A@B.com", "not-an-email", "c@d.com"])

    summary = _orchestrator(client, tmp_path, batch_size=10).run(leads)

    assert client.created[0][0] == ["a@b.com", "c@d.com"]
    assert summary.local_duplicates == 1
    assert summary.local_invalid == 1
    assert summary.rejected_local == ["not-an-email"]
    stored = json.loads((tmp_path / "valid.json").read_text(encoding="utf-8"))
    assert stored == [{"email": "a@b.com", "row": 0}, {"email": "c@d.com", "row": 3}]


def test_repeated_address_is_submitted_once(make_client, tmp_path) -> None:
    client = make_client()

    summary = _orchestrator(client, tmp_path, batch_size=1).run(_leads(["a@b.com", "A@B.COM"]))

    assert client.created == [(["a@b.com"], "Batch 1/1 (1 emails)")]
    assert summary.local_duplicates == 1
    assert _stored_emails(tmp_path / "valid.json") == ["a@b.com"]


def test_batch_with_nothing_to_submit_makes_no_call(make_client, tmp_path) -> None:
    client = make_client()

    summary = _orchestrator(client, tmp_path, batch_size=2).run(_leads(["nope", "also nope", "ok@example.com"]))

    assert [batch for batch, _ in client.created] == [["ok@example.com"]]
    assert client.created[0][1] == "Batch 2/2 (1 emails)"
    assert summary.local_invalid == 2


def test_create_failure_skips_batch_and_continues(make_client, tmp_path) -> None:
    client = make_client(fail_create={0})
    leads = _leads(["ok1@example.com", "ok2@example.com", "ok3@example.com"])

    summary = _orchestrator(client, tmp_path, batch_size=2).run(leads)

    assert len(client.created) == 2
    assert summary.failed_batches == [0]
    assert _stored_emails(tmp_path / "valid.json") == ["ok3@example.com"]
    assert not (tmp_path / "task-info.json").exists()


def test_poll_failure_keeps_checkpoint_and_moves_on(make_client, tmp_path) -> None:
    client = make_client(fail_poll={"task-0"})
    leads = _leads(["ok1@example.com", "ok2@example.com", "ok3@example.com"])

    summary = _orchestrator(client, tmp_path, batch_size=2, max_wait=120).run(leads)

    assert summary.failed_batches == [0]
    assert _stored_emails(tmp_path / "valid.json") == ["ok3@example.com"]
    assert client.polled == [("task-0", 120), ("task-1", 120)]


def test_poll_failure_on_last_batch_leaves_its_checkpoint(make_client, tmp_path) -> None:
    client = make_client(fail_poll={"task-1"})
    leads = _leads(["ok1@example.com", "ok2@example.com", "ok3@example.com"])

    _orchestrator(client, tmp_path, batch_size=2).run(leads)

    checkpoint = json.loads((tmp_path / "task-info.json").read_text(encoding="utf-8"))
    assert checkpoint["taskId"] == "task-1"
    assert checkpoint["batchIndex"] == 1
    assert checkpoint["emails"] == ["ok3@example.com"]
    assert checkpoint["status"] == "error"


def test_resume_classifies_completed_task_and_continues_after_it(make_client, tmp_path) -> None:
    emails = [f"ok{index}@example.com" for index in range(10)]
    leads = _leads(emails)
    valid = OutputStore(tmp_path / "valid.json")
    for lead in leads[:4]:
        valid.append(lead)
    CheckpointStore(tmp_path / "task-info.json").record("T", emails[4:6], batch_index=2, total_batches=5)
    client = make_client(known_tasks={"T": emails[4:6]})
    orchestrator = _orchestrator(client, tmp_path, batch_size=2, probe_timeout=7)

    summary = orchestrator.run(leads)

    assert client.polled[0] == ("T", 7)
    assert summary.resumed_task_id == "T"
    assert [name for _, name in client.created] == ["Batch 4/5 (2 emails)", "Batch 5/5 (2 emails)"]
    assert not set(client.submitted_emails) & set(emails[:6])
    assert _stored_emails(tmp_path / "valid.json") == emails
    assert summary.valid == 6
    assert not (tmp_path / "task-info.json").exists()


def test_resume_aborts_while_task_is_still_processing(make_client, tmp_path) -> None:
    leads = _leads(["ok1@example.com", "ok2@example.com"])
    CheckpointStore(tmp_path / "task-info.json").record("T", ["ok1@example.com"], batch_index=0, total_batches=2)
    client = make_client(known_tasks={"T": ["ok1@example.com"]}, processing={"T"})
    orchestrator = _orchestrator(client, tmp_path)

    with pytest.raises(ResumeBlockedError) as excinfo:
        orchestrator.run(leads)

    assert "T" in str(excinfo.value)
    assert client.created == []
    assert client.balance_calls == 0
    assert orchestrator.state is RunState.ABORTED
    assert (tmp_path / "task-info.json").exists()


def test_stale_checkpoint_is_dropped_and_run_starts_over(make_client, tmp_path) -> None:
    leads = _leads(["ok1@example.com", "ok2@example.com", "ok3@example.com"])
    CheckpointStore(tmp_path / "task-info.json").record("gone", ["ok1@example.com"], batch_index=3, total_batches=4)
    client = make_client()

    summary = _orchestrator(client, tmp_path, batch_size=2).run(leads)

    assert client.polled[0][0] == "gone"
    assert summary.resumed_task_id is None
    assert [name for _, name in client.created] == ["Batch 1/2 (2 emails)", "Batch 2/2 (1 emails)"]
    assert _stored_emails(tmp_path / "valid.json") == ["ok1@example.com", "ok2@example.com", "ok3@example.com"]
    assert not (tmp_path / "task-info.json").exists()


def test_corrupt_checkpoint_and_store_do_not_stop_the_run(make_client, tmp_path) -> None:
    (tmp_path / "task-info.json").write_text("not json", encoding="utf-8")
    (tmp_path / "valid.json").write_text("{", encoding="utf-8")
    client = make_client()

    summary = _orchestrator(client, tmp_path).run(_leads(["ok1@example.com"]))

    assert summary.valid == 1
    assert _stored_emails(tmp_path / "valid.json") == ["ok1@example.com"]
    assert client.polled == [("task-0", 3600.0)]


def test_unavailable_balance_does_not_block(make_client, tmp_path) -> None:
    client = make_client(balance=None)

    summary = _orchestrator(client, tmp_path).run(_leads(["ok1@example.com"]))

    assert client.balance_calls == 1
    assert summary.valid == 1


def test_batch_size_must_be_positive(make_client, tmp_path) -> None:
    with pytest.raises(ValueError):
        _orchestrator(make_client(), tmp_path, batch_size=0)


def test_poll_timeout_records_last_status_on_checkpoint(make_client, tmp_path) -> None:
    client = make_client(processing={"task-0"})

    summary = _orchestrator(client, tmp_path).run(_leads(["ok1@example.com"]))

    assert summary.failed_batches == [0]
    checkpoint = CheckpointStore(tmp_path / "task-info.json").load()
    assert checkpoint.task_id == "task-0"
    assert checkpoint.status == "processing"


class _ScriptedResponse:
    def __init__(self, payload: Any, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    def json(self) -> Any:
        return self._payload


class _ScriptedSession:
    def __init__(self, responses: List[_ScriptedResponse]) -> None:
        self._responses = list(responses)

    def get(self, url: str, **kwargs: Any) -> _ScriptedResponse:
        return self._responses.pop(0)

    def post(self, url: str, **kwargs: Any) -> _ScriptedResponse:
        return self._responses.pop(0)

    def close(self) -> None:
        pass


def test_malformed_service_payloads_only_fail_their_batch(tmp_path) -> None:
    session = _ScriptedSession(
        [
            _ScriptedResponse({"status": "success", "remaining_daily_credits": "lots"}),
            _ScriptedResponse({"status": "success", "task_id": "t1", "count_submitted": "1 email"}, 201),
            _ScriptedResponse({"status": "completed", "results": ["ok1@example.com"]}),
            _ScriptedResponse({"status": "success", "task_id": "t2"}, 201),
            _ScriptedResponse(
                {
                    "status": "completed",
                    "progress_percentage": "n/a",
                    "results": {"ok2@example.com": {"is_safe_to_send": True}},
                }
            ),
        ]
    )
    client = VerificationClient("secret", session=session, sleep=lambda seconds: None)  # type: ignore[arg-type]

    summary = _orchestrator(client, tmp_path, batch_size=1).run(_leads(["ok1@example.com", "ok2@example.com"]))

    assert summary.failed_batches == [0]
    assert summary.valid == 1
    assert _stored_emails(tmp_path / "valid.json") == ["ok2@example.com"]
    assert not (tmp_path / "task-info.json").exists()
