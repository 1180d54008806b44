"""Yandex Tracker REST API v2 client."""

import logging

import httpx

from ytb.models import CreatedTask, TaskPatch
from ytb.providers.base import TrackerClient, TrackerError

logger = logging.getLogger(__name__)

BASE_URL = "https://api.tracker.yandex.net"

# Batch-file field name -> Tracker API field name, where they differ
_API_FIELDS = {
    "attachment_ids": "attachmentIds",
    "description_attachment_ids": "descriptionAttachmentIds",
}


def _issue_body(task: CreatedTask) -> dict:
    raw = task.model_dump(exclude={"subtasks"})
    return {_API_FIELDS.get(k, k): v for k, v in raw.items() if v not in (None, [])}


def _error_message(response: httpx.Response) -> str:
    """Join Tracker's errorMessages, falling back to the raw body."""
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    messages = data.get("errorMessages") if isinstance(data, dict) else None
    if messages:
        return "; ".join(str(m) for m in messages)
    return response.text


class YandexTrackerClient(TrackerClient):
    def __init__(self, token: str, org_id: str, base_url: str = BASE_URL) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = {
            "Authorization": f"OAuth {token}",
            "X-Org-ID": org_id,
        }

    def _request(self, method: str, path: str, body: dict | None = None) -> httpx.Response:
        try:
            response = httpx.request(
                method,
                f"{self._base_url}{path}",
                headers=self._headers,
                json=body,
                timeout=30,
            )
        except httpx.TransportError as exc:
            raise TrackerError(f"{method} {path} failed: {exc}") from exc
        logger.debug("%s %s -> %s", method, path, response.status_code)
        if not response.is_success:
            raise TrackerError(_error_message(response), status_code=response.status_code)
        return response

    def create_issue(self, task: CreatedTask) -> str:
        response = self._request("POST", "/v2/issues", _issue_body(task))
        try:
            return response.json()["key"]
        except (ValueError, KeyError, TypeError) as exc:
            raise TrackerError(f"Unexpected create response: {response.text}") from exc

    def update_issue(self, issue_id: str, patch: TaskPatch) -> None:
        body = {_API_FIELDS.get(k, k): v for k, v in patch.model_dump(exclude_unset=True).items()}
        self._request("PATCH", f"/v2/issues/{issue_id}", body)

    def delete_issue(self, issue_id: str) -> None:
        self._request("DELETE", f"/v2/issues/{issue_id}")
