# session_store.py
import base64
import binascii
import json
import os
import threading
from pathlib import Path
from typing import Optional, Union

from errors import PersistenceError, SessionNotFound

DEFAULT_SESSION_FILE = "~/.tg-bridge-session.json"

DIR_MODE = 0o700
FILE_MODE = 0o600


def default_session_path() -> Path:
    return Path(DEFAULT_SESSION_FILE).expanduser()


class FileSessionStore:
    """
    Keeps the single session credential in a JSON file: ``{"data": "<base64>"}``.

    The blob is a bearer credential, so the directory is created 0700 and the
    file written 0600. A missing file is the logged-out state.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self._path = Path(path).expanduser() if path else default_session_path()
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> bytes:
        with self._lock:
            try:
                raw = self._path.read_text(encoding="utf-8")
            except FileNotFoundError:
                raise SessionNotFound(self._path) from None
            except OSError as e:
                raise PersistenceError(f"failed to read session file {self._path}: {e}") from e

            try:
                stored = json.loads(raw)
                return base64.b64decode(stored["data"], validate=True)
            except (ValueError, KeyError, TypeError, binascii.Error) as e:
                raise PersistenceError(f"corrupt session file {self._path}: {e}") from e

    def store(self, blob: bytes) -> None:
        payload = json.dumps({"data": base64.b64encode(blob).decode("ascii")}, indent=2)
        with self._lock:
            try:
                self._path.parent.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
                fd = os.open(self._path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, FILE_MODE)
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                # os.open only applies the mode to new files
                os.chmod(self._path, FILE_MODE)
            except OSError as e:
                raise PersistenceError(f"failed to store session: {e}") from e

    def clear(self) -> None:
        with self._lock:
            try:
                self._path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                raise PersistenceError(f"failed to clear session: {e}") from e
