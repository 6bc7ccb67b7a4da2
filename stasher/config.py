"""
Configuration
Immutable settings, resolved once at startup and passed to each component.

The API base URL comes from the STASHED_API environment variable, then
from a STASHED_API line in a local .env file, then the public default.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import dotenv_values

from stasher.ingest import MAX_SECRET_SIZE, STDIN_TIMEOUT
from stasher.transport import (
    DEFAULT_ATTEMPT_TIMEOUT,
    DEFAULT_BASE_DELAY,
    DEFAULT_MAX_DELAY,
    DEFAULT_MAX_RETRIES,
)

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.stasher.dev"
MAX_PAYLOAD_SIZE = 10 * 1024  # serialized wire JSON, bytes
API_ENV_VAR = "STASHED_API"


@dataclass(frozen=True)
class StashConfig:
    """Settings for one Stasher client."""
    api_base_url: str = DEFAULT_API_BASE_URL
    max_secret_size: int = MAX_SECRET_SIZE
    max_payload_size: int = MAX_PAYLOAD_SIZE
    stdin_timeout: float = STDIN_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY
    attempt_timeout: float = DEFAULT_ATTEMPT_TIMEOUT
    max_delay: float = DEFAULT_MAX_DELAY


def _from_env_file(env_file: str | Path) -> str | None:
    path = Path(env_file)
    if not path.is_file():
        return None
    try:
        values = dotenv_values(path)
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("Ignoring unreadable %s: %s", path, e)
        return None
    return values.get(API_ENV_VAR) or None


def load_config(environ: dict = None, env_file: str | Path = ".env") -> StashConfig:
    """
    Resolve the configuration.

    Args:
        environ: Mapping to read variables from. Defaults to os.environ.
        env_file: Dotfile consulted when the variable is not set.

    Returns:
        A frozen StashConfig.
    """
    environ = os.environ if environ is None else environ

    api_base_url = environ.get(API_ENV_VAR) or _from_env_file(env_file) or DEFAULT_API_BASE_URL
    api_base_url = api_base_url.strip().rstrip("/")

    logger.debug("Using API base URL %s", api_base_url)
    return StashConfig(api_base_url=api_base_url)
