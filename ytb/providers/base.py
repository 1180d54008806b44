"""Abstract base class for issue tracker clients."""

from abc import ABC, abstractmethod

from ytb.models import CreatedTask, TaskPatch


class TrackerError(Exception):
    """A tracker call failed. status_code is None for transport failures."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TrackerClient(ABC):
    @abstractmethod
    def create_issue(self, task: CreatedTask) -> str:
        """Create the issue and return its key (e.g. QUEUE-12)."""

    @abstractmethod
    def update_issue(self, issue_id: str, patch: TaskPatch) -> None: ...

    @abstractmethod
    def delete_issue(self, issue_id: str) -> None: ...
