"""Batch file loading and per-item processing against a tracker client.

Items are processed in file order: every created task (each followed by its
subtasks), then updates, then deletions. A failing item is recorded in the
report and processing moves on; nothing short of process exit stops a batch.
"""

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Literal

from pydantic import ValidationError

from ytb.models import (
    BatchOutcome,
    BatchReport,
    CreatedTask,
    DeletedTask,
    ErrorKind,
    Failure,
    InvalidItem,
    Success,
    TaskBatch,
    UpdatedTask,
)
from ytb.providers.base import TrackerClient, TrackerError

logger = logging.getLogger(__name__)

Result = Success | Failure


class BatchFileError(Exception):
    """The batch file is missing, malformed, or contains no tasks."""


def load_batch(path: Path) -> TaskBatch:
    try:
        raw = Path(path).read_text()
    except OSError as exc:
        raise BatchFileError(f"Could not read {path}: {exc}") from exc
    try:
        batch = TaskBatch.model_validate_json(raw)
    except ValidationError as exc:
        raise BatchFileError(f"Invalid batch file {path}:\n{exc}") from exc
    if batch.is_empty():
        raise BatchFileError(f"{path} contains no tasks")
    return batch


def classify(status_code: int | None) -> ErrorKind:
    """Map an HTTP status (None for transport failures) to an item error kind."""
    if status_code is None or status_code >= 500:
        return ErrorKind.TRANSIENT
    if status_code in (401, 403):
        return ErrorKind.UNAUTHORIZED
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    return ErrorKind.REJECTED


class BatchProcessor:
    def __init__(
        self,
        client: TrackerClient,
        default_queue: str | None = None,
        allow_delete: bool = True,
        request_delay: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._default_queue = default_queue
        self._allow_delete = allow_delete
        self._request_delay = request_delay
        self._sleep = sleep
        self._outcomes: list[BatchOutcome] = []
        self._calls = 0

    def process(self, batch: TaskBatch) -> BatchReport:
        self._outcomes = []
        self._calls = 0

        for item in batch.items():
            match item:
                case CreatedTask():
                    self._create(item)
                case UpdatedTask():
                    self._update(item)
                case DeletedTask():
                    self._delete(item)
                case InvalidItem():
                    self._record(item.kind, item.reference, Failure(kind=ErrorKind.VALIDATION, message=item.error))

        report = BatchReport(outcomes=self._outcomes)
        logger.info("Batch finished: %d succeeded, %d failed", report.succeeded, report.failed)
        return report

    # -----------------------------------------------------------------------

    def _record(self, kind: Literal["create", "update", "delete"], reference: str, result: Result) -> None:
        outcome = BatchOutcome(index=len(self._outcomes), kind=kind, reference=reference, result=result)
        if isinstance(result, Failure):
            logger.warning("%s %s failed (%s): %s", kind, reference, result.kind.value, result.message)
        self._outcomes.append(outcome)

    def _call(self, label: str, fn: Callable[[], str | None]) -> Result:
        if self._calls and self._request_delay > 0:
            self._sleep(self._request_delay)
        self._calls += 1
        try:
            key = fn()
        except TrackerError as exc:
            return Failure(kind=classify(exc.status_code), message=f"{label}: {exc}")
        return Success(issue_key=key or label)

    def _create(self, task: CreatedTask, parent_key: str | None = None, parent_queue: str | None = None) -> None:
        if parent_key:
            task = task.model_copy(update={"parent": parent_key})
        queue = task.queue or parent_queue or self._default_queue

        result: Result
        if not task.summary.strip():
            result = Failure(kind=ErrorKind.VALIDATION, message="summary is empty")
        elif not queue:
            result = Failure(kind=ErrorKind.VALIDATION, message="no queue given and no default_queue configured")
        else:
            resolved = task.model_copy(update={"queue": queue})
            result = self._call(task.summary, lambda: self._client.create_issue(resolved))
        self._record("create", task.summary, result)

        for subtask in task.subtasks:
            if isinstance(result, Success):
                self._create(subtask, parent_key=result.issue_key, parent_queue=queue)
            else:
                self._skip(subtask, f"parent '{task.summary}' was not created")

    def _skip(self, task: CreatedTask, reason: str) -> None:
        self._record("create", task.summary, Failure(kind=ErrorKind.SKIPPED, message=reason))
        for subtask in task.subtasks:
            self._skip(subtask, reason)

    def _update(self, item: UpdatedTask) -> None:
        issue_id = item.issue_id.strip()
        result: Result
        if not issue_id:
            result = Failure(kind=ErrorKind.VALIDATION, message="issue_id is empty")
        elif item.mut_task.is_empty():
            result = Failure(kind=ErrorKind.VALIDATION, message=f"{issue_id}: mut_task has no fields to change")
        else:
            result = self._call(issue_id, lambda: self._client.update_issue(issue_id, item.mut_task))
        self._record("update", item.issue_id, result)

    def _delete(self, item: DeletedTask) -> None:
        issue_id = item.issue_id.strip()
        result: Result
        if not issue_id:
            result = Failure(kind=ErrorKind.VALIDATION, message="issue_id is empty")
        elif not self._allow_delete:
            result = Failure(kind=ErrorKind.VALIDATION, message=f"{issue_id}: deletion is disabled by allow_delete")
        else:
            result = self._call(issue_id, lambda: self._client.delete_issue(issue_id))
        self._record("delete", item.issue_id, result)


def process(batch: TaskBatch, client: TrackerClient, **options) -> BatchReport:
    """Process batch with a client already bound to the run's token."""
    return BatchProcessor(client, **options).process(batch)
