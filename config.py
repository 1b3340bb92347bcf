# config.py
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from errors import ConfigError
from session_store import default_session_path

REQUIRED_VARS = ("TG_APP_ID", "TG_APP_HASH")


@dataclass(frozen=True)
class Settings:
    api_id: int
    api_hash: str
    session_file: Path
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False


def missing_vars(env: Mapping[str, str]) -> list:
    return [name for name in REQUIRED_VARS if not env.get(name)]


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Read settings from the environment (and .env when reading os.environ)."""
    if env is None:
        load_dotenv()
        env = os.environ

    missing = missing_vars(env)
    if missing:
        raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

    try:
        api_id = int(env["TG_APP_ID"])
    except ValueError:
        raise ConfigError("TG_APP_ID must be a number") from None

    try:
        port = int(env.get("PORT", "8000"))
    except ValueError:
        raise ConfigError("PORT must be a number") from None

    session_file = env.get("TG_SESSION_FILE")
    return Settings(
        api_id=api_id,
        api_hash=env["TG_APP_HASH"],
        session_file=Path(session_file).expanduser() if session_file else default_session_path(),
        host=env.get("HOST", "0.0.0.0"),
        port=port,
        reload=env.get("RELOAD", "false").lower() == "true",
    )
