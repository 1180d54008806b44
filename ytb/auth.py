"""OAuth2 authorization-code flow against Yandex OAuth, with a persisted token.

The stored token is reused for as long as it is valid. Otherwise the operator is
sent to the authorization page and asked to paste back the code, which is then
exchanged for a new token and written over the old one.
"""

import logging
import webbrowser
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from urllib.parse import parse_qs, urlencode, urlparse

import httpx
import typer

from ytb.models import TokenRecord
from ytb.settings import YtbSettings
from ytb.store import CredentialStore, StoreError

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://oauth.yandex.ru/authorize"
TOKEN_URL = "https://oauth.yandex.ru/token"


class AuthError(Exception):
    """No usable token could be obtained; the run cannot continue."""


class ExchangeFailed(AuthError):
    pass


class TokenPersistFailed(AuthError):
    pass


class TokenState(str, Enum):
    NO_TOKEN = "no_token"
    UNVALIDATED = "unvalidated"
    VALID = "valid"
    EXPIRED = "expired"
    EXCHANGING = "exchanging"
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _prompt_for_code(auth_url: str) -> str:
    typer.echo("Open this URL, grant access and paste the code (or the full redirect URL):")
    typer.echo(auth_url)
    return typer.prompt("Authorization code")


def _open_browser(url: str) -> None:
    try:
        webbrowser.open(url)
    except webbrowser.Error as exc:
        logger.debug("Could not open a browser: %s", exc)


def is_usable(record: TokenRecord, now: datetime) -> bool:
    """A token is usable while elapsed time is strictly less than expires_in.

    Tokens without expires_in are assumed usable; a stale one surfaces as 401s.
    """
    if record.expires_in is None:
        return True
    elapsed = (now - record.obtained_at).total_seconds()
    return elapsed < record.expires_in


def _parse_expires_in(value: object) -> int | None:
    """Seconds from the token response; numeric strings are accepted, anything else is malformed."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ExchangeFailed(f"Token endpoint returned a malformed expires_in: {value!r}")
    if isinstance(value, int | float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value.strip()))
        except ValueError:
            pass
    raise ExchangeFailed(f"Token endpoint returned a malformed expires_in: {value!r}")


def extract_code(answer: str) -> str:
    """Accept either a bare code or a pasted redirect URL carrying ?code=..."""
    answer = answer.strip()
    if "://" in answer:
        codes = parse_qs(urlparse(answer).query).get("code")
        return codes[0].strip() if codes else ""
    return answer


class TokenManager:
    def __init__(
        self,
        settings: YtbSettings,
        store: CredentialStore,
        prompt: Callable[[str], str] = _prompt_for_code,
        opener: Callable[[str], None] = _open_browser,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not settings.yandex_client_id or not settings.yandex_client_secret:
            raise AuthError("yandex_client_id and yandex_client_secret are required")
        self._client_id = settings.yandex_client_id
        self._client_secret = settings.yandex_client_secret.get_secret_value()
        self._redirect_uri = settings.redirect_uri
        self._scopes = settings.scopes
        self._store = store
        self._prompt = prompt
        self._opener = opener
        self._clock = clock

    def _state(self, state: TokenState) -> None:
        logger.debug("token state: %s", state.value)

    def authorize_url(self) -> str:
        params = {
            "response_type": "code",
            "client_id": self._client_id,
            "redirect_uri": self._redirect_uri,
        }
        if self._scopes:
            params["scope"] = " ".join(self._scopes)
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    def obtain_token(self, force: bool = False) -> TokenRecord:
        """Return a usable token, running the interactive exchange if needed.

        Raises ExchangeFailed if the exchange fails and TokenPersistFailed if the
        new token can't be saved. Neither is retried.
        """
        if not force:
            record = self._store.load()
            if record is None:
                self._state(TokenState.NO_TOKEN)
            else:
                self._state(TokenState.UNVALIDATED)
                if is_usable(record, self._clock()):
                    self._state(TokenState.VALID)
                    return record
                self._state(TokenState.EXPIRED)
                logger.info("Stored token expired at %s", record.expires_at)

        self._state(TokenState.EXCHANGING)
        try:
            record = self._exchange_interactively()
        except AuthError:
            self._state(TokenState.FAILED)
            raise

        try:
            self._store.save(record)
        except StoreError as exc:
            self._state(TokenState.FAILED)
            raise TokenPersistFailed(str(exc)) from exc

        self._state(TokenState.VALID)
        return record

    def _exchange_interactively(self) -> TokenRecord:
        url = self.authorize_url()
        self._opener(url)
        code = extract_code(self._prompt(url))
        if not code:
            raise ExchangeFailed("No authorization code supplied")
        return self.exchange_code(code)

    def exchange_code(self, code: str) -> TokenRecord:
        try:
            response = httpx.post(
                TOKEN_URL,
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "redirect_uri": self._redirect_uri,
                },
                timeout=30,
            )
        except httpx.HTTPError as exc:
            raise ExchangeFailed(f"Token request failed: {exc}") from exc

        if not response.is_success:
            raise ExchangeFailed(f"Token endpoint returned {response.status_code}: {response.text}")

        try:
            body = response.json()
        except ValueError as exc:
            raise ExchangeFailed("Token endpoint returned a non-JSON body") from exc

        access_token = body.get("access_token") if isinstance(body, dict) else None
        if not access_token:
            raise ExchangeFailed("Token endpoint response has no access_token")

        logger.info("Obtained a new access token")
        return TokenRecord(
            access_token=access_token,
            obtained_at=self._clock(),
            expires_in=_parse_expires_in(body.get("expires_in")),
        )
