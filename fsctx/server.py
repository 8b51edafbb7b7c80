from typing import Any, Dict, Optional

import structlog

from fsctx.config import INSTRUCTIONS, PROTOCOL_VERSION, SERVER_NAME, SERVER_VERSION
from fsctx.errors import (
    FsctxError, InvalidRequestError, MethodNotFoundError, ToolExecutionError,
)
from fsctx.state import FsTools
from fsctx.tools import call_tool, tools_schema

logger = structlog.get_logger(__name__)


def format_tool_result(text: str) -> Dict[str, Any]:
    return {"content": [{"type": "text", "text": text}]}


def make_response(req_id: Any, result: Dict[str, Any]) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": req_id, "result": result}


def make_error(req_id: Any, error: FsctxError) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": req_id, "error": error.to_wire()}


def initialize_result(instructions: Optional[str] = INSTRUCTIONS) -> Dict[str, Any]:
    result = {
        "protocolVersion": PROTOCOL_VERSION,
        "capabilities": {"tools": {}},
        "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
    }
    if instructions:
        result["instructions"] = instructions
    return result


def tools_list() -> Dict[str, Any]:
    return {"tools": list(tools_schema())}


def tools_call(params: Any, state: FsTools) -> Dict[str, Any]:
    if not isinstance(params, dict) or "name" not in params:
        raise InvalidRequestError("tools/call requires params with a tool name")
    text = call_tool(state, params.get("name"), params.get("arguments"))
    return format_tool_result(text)


def handle_request(request: Dict[str, Any], state: FsTools) -> Optional[Dict[str, Any]]:
    """Answer one decoded request. Returns None for notifications."""
    method = request.get("method")
    params = request.get("params") or {}

    if "id" not in request:
        logger.debug("notification", method=method)
        return None
    req_id = request["id"]

    try:
        if method == "initialize":
            return make_response(req_id, initialize_result())
        if method == "tools/list":
            return make_response(req_id, tools_list())
        if method == "tools/call":
            return make_response(req_id, tools_call(params, state))
        raise MethodNotFoundError(f"Unknown method: {method}")
    except FsctxError as exc:
        logger.info("request_failed", method=method, req_id=req_id, code=exc.code, error=str(exc))
        return make_error(req_id, exc)
    except Exception as exc:
        logger.exception("tool_execution_error", method=method, req_id=req_id)
        return make_error(req_id, ToolExecutionError(f"Internal error: {exc}"))
