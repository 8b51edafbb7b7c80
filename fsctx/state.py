import os
from pathlib import Path
from typing import Optional

import structlog
from pydantic import BaseModel

from fsctx.config import DEFAULT_SESSION_ID
from fsctx.errors import NoContextError
from fsctx.session import SessionStore

logger = structlog.get_logger(__name__)


class FsSessionData(BaseModel):
    """Per-session payload: the working directory relative paths resolve against."""

    context_path: Optional[str] = None


class FsTools:
    """Filesystem tool state: the session store plus path resolution on top of it."""

    def __init__(self, session_store: SessionStore[FsSessionData]):
        self.session_store = session_store

    @classmethod
    def from_file(cls, session_file: str) -> "FsTools":
        return cls(SessionStore(session_file, FsSessionData))

    def resolve_path(self, path_str: str, session_id: Optional[str] = None) -> Path:
        path = Path(os.path.expanduser(path_str))
        if path.is_absolute():
            return path

        session_id = session_id or DEFAULT_SESSION_ID
        context = self.get_context(session_id)
        if context is None:
            raise NoContextError(session_id)
        return context / path

    def get_context(self, session_id: Optional[str] = None) -> Optional[Path]:
        data = self.session_store.get_or_create(session_id or DEFAULT_SESSION_ID)
        if data.context_path is None:
            return None
        return Path(data.context_path)

    def set_working_directory(self, path_str: str, session_id: Optional[str] = None) -> Path:
        session_id = session_id or DEFAULT_SESSION_ID
        new_context = self.resolve_path(path_str, session_id)

        def apply(data: FsSessionData) -> None:
            data.context_path = str(new_context)

        self.session_store.update(session_id, apply)
        logger.info("context_set", session_id=session_id, context_path=str(new_context))
        return new_context
