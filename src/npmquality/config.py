"""Runtime settings loaded from the environment and an optional .env file."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_CHUNK_SIZE = 100
DEFAULT_STORE_TIMEOUT = 2.0
DEFAULT_HTTP_TIMEOUT = 30.0


@dataclass
class Settings:
    """Settings shared by the CLI, the sources and the scheduler."""

    github_token: str | None = None
    data_dir: Path = Path("data")
    chunk_size: int = DEFAULT_CHUNK_SIZE
    store_timeout: float = DEFAULT_STORE_TIMEOUT
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    log_level: str = "INFO"
    packages_collection: str = "packages"
    pending_collection: str = "pending"


def _env_number(name: str, default, cast):
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


def load_settings(env_file: Path | None = None) -> Settings:
    """Build Settings from the environment.

    Args:
        env_file: Optional .env file. Defaults to .env in the working directory.
            Variables already set in the environment take precedence.

    Returns:
        Populated Settings.

    Raises:
        ValueError: If a numeric variable cannot be parsed.
    """
    load_dotenv(env_file)

    return Settings(
        github_token=os.environ.get("GITHUB_TOKEN") or None,
        data_dir=Path(os.environ.get("NPMQUALITY_DATA_DIR") or "data"),
        chunk_size=_env_number("NPMQUALITY_CHUNK_SIZE", DEFAULT_CHUNK_SIZE, int),
        store_timeout=_env_number("NPMQUALITY_STORE_TIMEOUT", DEFAULT_STORE_TIMEOUT, float),
        http_timeout=_env_number("NPMQUALITY_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT, float),
        log_level=(os.environ.get("NPMQUALITY_LOG_LEVEL") or "INFO").upper(),
    )
