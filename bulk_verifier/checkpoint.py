"""Single-slot persistence for the in-flight verification task."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

from .io import read_json, write_json
from .models import TaskCheckpoint

LOGGER = logging.getLogger(__name__)


class CheckpointStore:
    """Holds zero or one :class:`TaskCheckpoint` in a JSON file.

    ``save`` replaces whatever was stored before, ``clear`` removes it.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> Optional[TaskCheckpoint]:
        if not self.path.exists():
            return None
        try:
            payload = read_json(self.path)
            if not isinstance(payload, dict):
                raise ValueError("checkpoint is not a JSON object")
            return TaskCheckpoint.from_payload(payload)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            LOGGER.warning("Could not parse checkpoint %s, ignoring it: %s", self.path, exc)
            return None

    def save(self, checkpoint: TaskCheckpoint) -> TaskCheckpoint:
        write_json(self.path, checkpoint.to_payload())
        LOGGER.debug("Saved checkpoint for task %s (batch %s)", checkpoint.task_id, checkpoint.batch_index + 1)
        return checkpoint

    def record(
        self,
        task_id: str,
        emails: Sequence[str],
        *,
        batch_index: int,
        total_batches: int,
    ) -> TaskCheckpoint:
        """Persist a new checkpoint for a task that was just submitted."""

        checkpoint = TaskCheckpoint(
            task_id=task_id,
            batch_index=batch_index,
            total_batches=total_batches,
            created_at=datetime.now(timezone.utc).isoformat(),
            emails=list(emails),
        )
        return self.save(checkpoint)

    def mark(self, status: str) -> Optional[TaskCheckpoint]:
        """Record the last known service status on the stored checkpoint."""

        checkpoint = self.load()
        if checkpoint is None:
            return None
        checkpoint.status = status
        return self.save(checkpoint)

    def clear(self) -> bool:
        """Delete the checkpoint file. Returns ``True`` if one existed."""

        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        LOGGER.debug("Removed checkpoint %s", self.path)
        return True


__all__ = ["CheckpointStore"]
