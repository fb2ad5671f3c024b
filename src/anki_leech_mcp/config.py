"""
Environment-based configuration and logging setup.

Settings are read once at start-up. A ``.env`` file in the working directory
is loaded first (``.env.test`` when ``ANKI_LEECH_ENV=test``); variables that
are already set in the process environment take precedence.
"""

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Union

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_ANKI_CONNECT_URL = "http://localhost:8765"
DEFAULT_ANKI_CONNECT_VERSION = 6
DEFAULT_TAG_PREFIX = "見直し"

_TRUTHY = {"1", "true", "yes", "on"}

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _get_env(env: Mapping[str, str], name: str, default: Optional[str]) -> Optional[str]:
    value = env.get(name)
    return value if value is not None and value != "" else default


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = _get_env(env, name, None)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


def _get_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    value = _get_env(env, name, None)
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


def load_environment(root: Union[str, Path, None] = None) -> Optional[Path]:
    """Load variables from a dotenv file into ``os.environ``.

    Returns the path of the file that was loaded, or None if none was found.
    """
    root = Path(root) if root is not None else Path.cwd()
    candidates = [root / ".env"]
    if os.getenv("ANKI_LEECH_ENV") == "test":
        candidates.insert(0, root / ".env.test")

    for env_file in candidates:
        if env_file.is_file():
            load_dotenv(env_file, override=False)
            return env_file
    return None


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the server."""

    anki_connect_url: str = DEFAULT_ANKI_CONNECT_URL
    anki_connect_version: int = DEFAULT_ANKI_CONNECT_VERSION
    anki_api_key: Optional[str] = None
    mock_mode: bool = False
    tag_prefix: str = DEFAULT_TAG_PREFIX
    log_level: str = "INFO"
    mcp_transport: str = "stdio"
    mcp_host: str = "127.0.0.1"
    mcp_port: int = 8000
    mcp_path: str = "/mcp"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        return cls(
            anki_connect_url=_get_env(env, "ANKI_CONNECT_URL", DEFAULT_ANKI_CONNECT_URL),
            anki_connect_version=_get_int(env, "ANKI_CONNECT_VERSION", DEFAULT_ANKI_CONNECT_VERSION),
            anki_api_key=_get_env(env, "ANKI_CONNECT_API_KEY", None),
            mock_mode=_get_bool(env, "ANKI_MOCK_MODE"),
            tag_prefix=_get_env(env, "ANKI_REVIEWED_TAG_PREFIX", DEFAULT_TAG_PREFIX),
            log_level=_get_env(env, "LOG_LEVEL", "INFO").upper(),
            mcp_transport=_get_env(env, "MCP_TRANSPORT", "stdio"),
            mcp_host=_get_env(env, "MCP_HOST", "127.0.0.1"),
            mcp_port=_get_int(env, "MCP_PORT", 8000),
            mcp_path=_get_env(env, "MCP_PATH", "/mcp"),
        )

    def log_summary(self) -> None:
        logger.info("ANKI_CONNECT_URL: %s", self.anki_connect_url)
        logger.info("ANKI_CONNECT_VERSION: %s", self.anki_connect_version)
        logger.info("ANKI_MOCK_MODE: %s", self.mock_mode)
        if self.anki_api_key:
            logger.info("ANKI_CONNECT_API_KEY: set")


def configure_logging(level: str = "INFO") -> None:
    """Send log records to stderr; stdout belongs to the MCP stdio transport."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )
