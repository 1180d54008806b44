"""Settings resolution: config.toml in the working directory, overridden by YTB_* env vars."""

from functools import lru_cache
from pathlib import Path

import tomlkit
import typer
from pydantic import SecretStr
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

CONFIG_PATH = Path("config.toml")

VERIFICATION_CODE_URI = "https://oauth.yandex.ru/verification_code"

_REQUIRED = ("organization_id", "yandex_client_id", "yandex_client_secret")


class YtbSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="YTB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Tracker organization + OAuth application
    organization_id: str | None = None
    yandex_client_id: str | None = None
    yandex_client_secret: SecretStr | None = None
    redirect_uri: str = VERIFICATION_CODE_URI
    scopes: list[str] = []

    # Batch behaviour
    default_queue: str | None = None
    allow_delete: bool = True
    request_delay: float = 1.0  # seconds between API calls

    # Files
    token_path: Path = Path("token.json")
    tasks_path: Path = Path("tasks.json")

    api_base_url: str = "https://api.tracker.yandex.net"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # config.toml values arrive as init kwargs; env and .env must win over them
        return env_settings, dotenv_settings, init_settings, file_secret_settings


@lru_cache(maxsize=1)
def _load_toml(path: Path) -> tomlkit.TOMLDocument:
    """Load the config file, returning an empty document if missing."""
    if not path.exists():
        return tomlkit.document()
    with path.open() as fh:
        return tomlkit.load(fh)


def get_settings(config_path: Path | None = None) -> YtbSettings:
    """Return settings with env vars and .env taking precedence over the TOML file.

    Exits with status 1 when the organization or OAuth application credentials
    are missing from both sources.
    """
    path = config_path or CONFIG_PATH
    file_values = _load_toml(path).unwrap()

    settings = YtbSettings(**file_values)

    missing = [name for name in _REQUIRED if not getattr(settings, name)]
    if missing:
        typer.echo(
            f"Missing configuration: {', '.join(missing)}. Set them in {path} "
            "or as YTB_* environment variables (run 'ytb template-config' for an example)."
        )
        raise typer.Exit(1)

    return settings


def write_config_template(path: Path, force: bool = False) -> bool:
    """Write an example config.toml. Returns False if the file exists and force is not set."""
    if path.exists() and not force:
        return False

    doc = tomlkit.document()
    doc.add(tomlkit.comment("ytb configuration. Every key can be overridden with a YTB_<KEY> env var."))
    doc.add(tomlkit.nl())
    doc.add("organization_id", "your-organization-id")
    doc.add("yandex_client_id", "your-oauth-client-id")
    doc.add("yandex_client_secret", "your-oauth-client-secret")
    doc.add("redirect_uri", VERIFICATION_CODE_URI)
    doc.add(tomlkit.nl())
    doc.add(tomlkit.comment("Queue used for created tasks that don't name one"))
    doc.add("default_queue", "QUEUE")
    doc.add("allow_delete", True)
    doc.add("request_delay", 1.0)

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(tomlkit.dumps(doc))
    return True
