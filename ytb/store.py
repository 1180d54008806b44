"""On-disk persistence for the single OAuth token record."""

import logging
from pathlib import Path

from pydantic import ValidationError

from ytb.models import TokenRecord

logger = logging.getLogger(__name__)


class StoreError(OSError):
    """The token file could not be written."""


class CredentialStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> TokenRecord | None:
        """Return the stored token, or None if it is missing or unreadable."""
        if not self.path.exists():
            logger.debug("No token file at %s", self.path)
            return None
        try:
            return TokenRecord.model_validate_json(self.path.read_text())
        except (OSError, ValueError, ValidationError) as exc:
            logger.warning("Ignoring unreadable token file %s: %s", self.path, exc)
            return None

    def save(self, record: TokenRecord) -> None:
        """Overwrite the token file with record."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(record.model_dump_json(indent=2))
            self.path.chmod(0o600)
        except OSError as exc:
            raise StoreError(f"Could not write token file {self.path}: {exc}") from exc
        logger.debug("Saved token to %s", self.path)
