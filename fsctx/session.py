"""Generic persisted session store.

Each session id maps to a ``SessionEntry`` holding an arbitrary pydantic payload
plus creation and last-use timestamps. The whole mapping lives in memory behind
one lock and is rewritten to the backend after every access that changes it, so
the backend always holds a complete snapshot as of the last successful mutation.

Only one process may own a session file at a time; there is no cross-process
file locking.
"""
import contextlib
import os
import tempfile
import threading
from datetime import datetime
from typing import Callable, Dict, Generic, List, Optional, Protocol, Type, TypeVar, Union

import structlog
from pydantic import BaseModel, TypeAdapter, ValidationError

from fsctx.errors import StorageError
from fsctx.utils import utc_now

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


class SessionEntry(BaseModel, Generic[T]):
    data: T
    created_at: datetime
    last_used: datetime


class SessionBackend(Protocol):
    def load(self) -> Optional[str]:
        """Return the stored document, or None when nothing was stored yet."""

    def save(self, document: str) -> None:
        ...


class JsonFileBackend:
    """Keeps the document in a single JSON file, replaced atomically on save."""

    def __init__(self, path: str):
        self.path = os.path.abspath(os.path.expanduser(path))
        try:
            os.makedirs(os.path.dirname(self.path), exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Unable to create session directory for {self.path}: {exc}") from exc

    def load(self) -> Optional[str]:
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                return handle.read()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"Unable to read session file {self.path}: {exc}") from exc

    def save(self, document: str) -> None:
        directory = os.path.dirname(self.path)
        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", delete=False, dir=directory, prefix=".sessions-", suffix=".tmp", encoding="utf-8"
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(document)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, self.path)
        except OSError as exc:
            if tmp_name:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
            raise StorageError(f"Unable to write session file {self.path}: {exc}") from exc


class MemoryBackend:
    """Holds the serialized document in memory. Useful for tests and tooling."""

    def __init__(self, document: Optional[str] = None):
        self.document = document
        self.saves = 0

    def load(self) -> Optional[str]:
        return self.document

    def save(self, document: str) -> None:
        self.document = document
        self.saves += 1


class SessionStore(Generic[T]):
    def __init__(self, backend: Union[SessionBackend, str], payload_type: Type[T]):
        if isinstance(backend, (str, os.PathLike)):
            backend = JsonFileBackend(os.fspath(backend))
        self.backend = backend
        self.payload_type = payload_type
        self._adapter = TypeAdapter(Dict[str, SessionEntry[payload_type]])
        self.lock = threading.RLock()
        self.sessions: Dict[str, SessionEntry[T]] = self._load()

    def _load(self) -> Dict[str, SessionEntry[T]]:
        try:
            document = self.backend.load()
            if document is None or not document.strip():
                return {}
            sessions = self._adapter.validate_json(document)
        except (UnicodeDecodeError, ValidationError) as exc:
            logger.warning("session_store_corrupt", backend=repr(self.backend), error=str(exc))
            return {}
        logger.info("session_store_loaded", sessions=len(sessions))
        return sessions

    def _save(self) -> None:
        # Caller holds self.lock.
        document = self._adapter.dump_json(self.sessions, indent=2).decode("utf-8")
        self.backend.save(document)

    def _commit(self, session_id: str, entry: SessionEntry[T], previous: Optional[SessionEntry[T]]) -> None:
        # Caller holds self.lock. Restores the previous entry if the save fails.
        self.sessions[session_id] = entry
        try:
            self._save()
        except StorageError:
            if previous is None:
                self.sessions.pop(session_id, None)
            else:
                self.sessions[session_id] = previous
            logger.error("session_save_failed", session_id=session_id)
            raise

    def _new_entry(self) -> SessionEntry[T]:
        now = utc_now()
        return SessionEntry[self.payload_type](data=self.payload_type(), created_at=now, last_used=now)

    def get_or_create(self, session_id: str) -> T:
        with self.lock:
            previous = self.sessions.get(session_id)
            if previous is None:
                entry = self._new_entry()
                logger.debug("session_created", session_id=session_id)
            else:
                entry = previous.model_copy(update={"last_used": utc_now()})
            self._commit(session_id, entry, previous)
            return entry.data.model_copy(deep=True)

    def update(self, session_id: str, mutator: Callable[[T], Optional[T]]) -> T:
        """Apply ``mutator`` to the session payload and persist the result.

        The mutator gets a private copy; it may change it in place and return
        None, or return a replacement payload. If it raises, nothing changes.
        """
        with self.lock:
            previous = self.sessions.get(session_id)
            base = previous if previous is not None else self._new_entry()
            working = base.data.model_copy(deep=True)
            replaced = mutator(working)
            if replaced is not None:
                working = replaced
            if not isinstance(working, self.payload_type):
                raise TypeError(
                    f"session mutator returned {type(working).__name__}, "
                    f"expected {self.payload_type.__name__}"
                )
            entry = base.model_copy(update={"data": working, "last_used": utc_now()})
            self._commit(session_id, entry, previous)
            return working.model_copy(deep=True)

    def set(self, session_id: str, data: T) -> None:
        self.update(session_id, lambda _: data.model_copy(deep=True))

    def entry(self, session_id: str) -> Optional[SessionEntry[T]]:
        with self.lock:
            entry = self.sessions.get(session_id)
            return entry.model_copy(deep=True) if entry is not None else None

    def list_sessions(self) -> List[str]:
        with self.lock:
            return sorted(self.sessions.keys())

