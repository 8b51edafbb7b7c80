from typing import Any, Dict

# JSON-RPC 2.0 error codes
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class FsctxError(Exception):
    """Base error; ``code`` is the JSON-RPC error code it maps to."""

    code = INTERNAL_ERROR

    def to_wire(self) -> Dict[str, Any]:
        return {"code": self.code, "message": str(self)}


class StorageError(FsctxError):
    """Session file could not be read or written."""


class ToolExecutionError(FsctxError):
    """A filesystem operation failed."""


class NoContextError(ToolExecutionError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(
            f"No context found for session '{session_id}'. "
            "Use set_working_directory first or provide an absolute path."
        )


class MethodNotFoundError(FsctxError):
    code = METHOD_NOT_FOUND


class InvalidArgumentsError(FsctxError):
    code = INVALID_PARAMS


class InvalidRequestError(FsctxError):
    code = INVALID_REQUEST
