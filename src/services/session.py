"""
Session Settings Store

The signed-in user survives restarts as two string values in a small
key-value settings store, under the fixed keys "userID" and "name".
An empty "userID" means nobody is signed in; logging out writes the
empty string to both keys.

DESIGN DECISION: The store is only read at startup and written on
sign-in, profile edits and sign-out. Everything else receives the
resulting Session value explicitly instead of reading ambient state.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path

from src.models.identity import Session


USER_ID_KEY = "userID"
NAME_KEY = "name"


class SessionStore(ABC):
    """Key-value persistence for the current session."""

    @abstractmethod
    def _read(self) -> dict[str, str]:
        pass

    @abstractmethod
    def _write(self, values: dict[str, str]) -> None:
        pass

    def load(self) -> Session:
        """Return the stored session (anonymous when nothing is stored)."""
        values = self._read()
        return Session(
            user_id=values.get(USER_ID_KEY, "") or "",
            display_name=values.get(NAME_KEY, "") or "",
        )

    def save(self, session: Session) -> None:
        self._write({
            USER_ID_KEY: session.user_id,
            NAME_KEY: session.display_name,
        })

    def clear(self) -> Session:
        """Log out: both keys become empty strings."""
        anonymous = Session.anonymous()
        self.save(anonymous)
        return anonymous


class InMemorySessionStore(SessionStore):
    """Session store that lives as long as the process."""

    def __init__(self):
        self._values: dict[str, str] = {}

    def _read(self) -> dict[str, str]:
        return dict(self._values)

    def _write(self, values: dict[str, str]) -> None:
        self._values = dict(values)


class JsonFileSessionStore(SessionStore):
    """
    Session store backed by a small JSON file.

    A missing or unreadable file reads as "no session".
    """

    def __init__(self, path: str):
        self._path = Path(path).expanduser()

    def _read(self) -> dict[str, str]:
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
        if not isinstance(raw, dict):
            return {}
        return {k: v for k, v in raw.items() if isinstance(v, str)}

    def _write(self, values: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(values), encoding="utf-8")
        tmp_path.replace(self._path)
