"""Shared pydantic models: the contract between the batch file, auth, providers and main.py."""

from collections import Counter
from collections.abc import Iterator
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Literal

from pydantic import (
    AliasChoices,
    AwareDatetime,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
)


class TokenRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    obtained_at: AwareDatetime
    expires_in: int | None = None  # seconds; None when the server didn't say

    @property
    def expires_at(self) -> datetime | None:
        if self.expires_in is None:
            return None
        return self.obtained_at + timedelta(seconds=self.expires_in)


# ---------------------------------------------------------------------------
# Batch file
# ---------------------------------------------------------------------------


class CreatedTask(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    queue: str | None = None  # falls back to default_queue
    summary: str
    description: str | None = None
    type: str | None = Field(default=None, validation_alias=AliasChoices("type", "task_type"))
    assignee: str | None = None
    priority: str | None = None
    parent: str | None = None
    author: str | None = None
    unique: str | None = None
    followers: list[str] = []
    sprint: list[str] = []
    attachment_ids: list[str] = Field(default=[], validation_alias=AliasChoices("attachmentIds", "attachment_ids"))
    subtasks: list["CreatedTask"] = []


class TaskPatch(BaseModel):
    """Partial payload for an update; only fields present in the file are sent, unknown ones are rejected."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    summary: str | None = None
    description: str | None = None
    type: str | None = Field(default=None, validation_alias=AliasChoices("type", "task_type"))
    assignee: str | None = None
    priority: str | None = None
    parent: str | None = None
    sprint: str | None = None
    followers: list[str] | None = None
    attachment_ids: list[str] | None = Field(
        default=None, validation_alias=AliasChoices("attachmentIds", "attachment_ids")
    )
    description_attachment_ids: list[str] | None = Field(
        default=None, validation_alias=AliasChoices("descriptionAttachmentIds", "description_attachment_ids")
    )

    def is_empty(self) -> bool:
        return not self.model_fields_set


class UpdatedTask(BaseModel):
    model_config = ConfigDict(frozen=True)

    issue_id: str
    mut_task: TaskPatch


class DeletedTask(BaseModel):
    model_config = ConfigDict(frozen=True)

    issue_id: str


class InvalidItem(BaseModel):
    """A batch entry that did not match its schema; reported, never sent."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["create", "update", "delete"]
    reference: str
    error: str


BatchItem = CreatedTask | UpdatedTask | DeletedTask | InvalidItem

_ITEM_SCHEMAS: dict[str, tuple[Literal["create", "update", "delete"], type[BaseModel] | None, str]] = {
    "created": ("create", CreatedTask, "summary"),
    "updated": ("update", UpdatedTask, "issue_id"),
    "deleted": ("delete", None, ""),
}


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


def _reference(raw: Any, key: str, position: int) -> str:
    value = raw.get(key) if isinstance(raw, dict) and key else raw
    if isinstance(value, str) and value.strip():
        return value
    return f"item {position + 1}"


class TaskBatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    created: list[CreatedTask | InvalidItem] = []
    updated: list[UpdatedTask | InvalidItem] = []
    deleted: list[str | InvalidItem] = []

    @field_validator("created", "updated", "deleted", mode="before")
    @classmethod
    def _validate_each_item(cls, value: Any, info: ValidationInfo) -> Any:
        """Validate entries one by one so a bad entry becomes an InvalidItem instead of failing the file."""
        if value is None:
            return []
        if not isinstance(value, list):
            return value

        kind, schema, key = _ITEM_SCHEMAS[info.field_name]
        items: list[Any] = []
        for position, raw in enumerate(value):
            if isinstance(raw, BaseModel):
                items.append(raw)
            elif schema is None:
                if isinstance(raw, str):
                    items.append(raw)
                else:
                    error = "expected an issue id string"
                    items.append(InvalidItem(kind=kind, reference=_reference(raw, key, position), error=error))
            else:
                try:
                    items.append(schema.model_validate(raw))
                except ValidationError as exc:
                    reference = _reference(raw, key, position)
                    items.append(InvalidItem(kind=kind, reference=reference, error=_describe(exc)))
        return items

    def is_empty(self) -> bool:
        return not (self.created or self.updated or self.deleted)

    def items(self) -> Iterator[BatchItem]:
        """Top-level items in processing order: created, updated, deleted."""
        yield from self.created
        yield from self.updated
        for entry in self.deleted:
            yield entry if isinstance(entry, InvalidItem) else DeletedTask(issue_id=entry)


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    REJECTED = "rejected"
    TRANSIENT = "transient"
    SKIPPED = "skipped"  # subtask of a parent that was never created


class Success(BaseModel):
    model_config = ConfigDict(frozen=True)

    issue_key: str


class Failure(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    message: str


class BatchOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int  # position in processing order
    kind: Literal["create", "update", "delete"]
    reference: str  # summary for creates, issue id otherwise
    result: Success | Failure

    @property
    def ok(self) -> bool:
        return isinstance(self.result, Success)


class BatchReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    outcomes: list[BatchOutcome] = []

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.succeeded

    @property
    def has_failures(self) -> bool:
        return self.failed > 0

    def failures_by_kind(self) -> dict[ErrorKind, int]:
        return dict(Counter(o.result.kind for o in self.outcomes if isinstance(o.result, Failure)))
