"""Shared test fixtures."""

from collections import defaultdict
from datetime import datetime, timedelta, timezone

import pytest

from ytb.models import CreatedTask, TaskPatch, TokenRecord
from ytb.providers.base import TrackerClient, TrackerError
from ytb.settings import YtbSettings

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeTrackerClient(TrackerClient):
    """In-memory tracker. fail_on maps a summary or issue id to an HTTP status (None = network error)."""

    def __init__(self, fail_on: dict[str, int | None] | None = None) -> None:
        self.fail_on = fail_on or {}
        self.calls: list[tuple[str, object]] = []
        self._counters: dict[str, int] = defaultdict(int)

    def _maybe_fail(self, reference: str) -> None:
        if reference in self.fail_on:
            status = self.fail_on[reference]
            raise TrackerError(f"HTTP {status}", status_code=status)

    def create_issue(self, task: CreatedTask) -> str:
        self.calls.append(("create", task))
        self._maybe_fail(task.summary)
        self._counters[task.queue or ""] += 1
        return f"{task.queue}-{self._counters[task.queue or '']}"

    def update_issue(self, issue_id: str, patch: TaskPatch) -> None:
        self.calls.append(("update", (issue_id, patch)))
        self._maybe_fail(issue_id)

    def delete_issue(self, issue_id: str) -> None:
        self.calls.append(("delete", issue_id))
        self._maybe_fail(issue_id)


@pytest.fixture
def fake_client() -> FakeTrackerClient:
    return FakeTrackerClient()


@pytest.fixture
def settings(tmp_path) -> YtbSettings:
    return YtbSettings(
        organization_id="org-123",
        yandex_client_id="client-id",
        yandex_client_secret="client-secret",  # type: ignore[arg-type]
        token_path=tmp_path / "token.json",
        tasks_path=tmp_path / "tasks.json",
        request_delay=0,
    )


@pytest.fixture
def valid_token() -> TokenRecord:
    return TokenRecord(access_token="tok_valid", obtained_at=NOW - timedelta(seconds=3600), expires_in=7200)


@pytest.fixture
def expired_token() -> TokenRecord:
    return TokenRecord(access_token="tok_expired", obtained_at=NOW - timedelta(seconds=3600), expires_in=1800)
