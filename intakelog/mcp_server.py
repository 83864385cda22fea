"""
MCP server endpoint.

Minimal Streamable HTTP (JSON-RPC 2.0) binding for the consumption tools:
`initialize`, `tools/list`, `tools/call` and empty `resources/list` /
`prompts/list`. Tool failures come back as `isError` results, not as
JSON-RPC errors, so agents can read the message.
"""

import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from intakelog.errors import ConsumptionError
from intakelog.service_events import EventService
from intakelog.tools import execute_tool, get_tool_definitions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mcp", tags=["MCP"])

PROTOCOL_VERSION = "2024-11-05"


def _jsonrpc_error(req_id: Any, code: int, message: str) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": req_id, "error": {"code": code, "message": message}}


def _initialize() -> Dict[str, Any]:
    return {
        "protocolVersion": PROTOCOL_VERSION,
        "capabilities": {"tools": {}, "resources": {}, "prompts": {}},
        "serverInfo": {"name": "intakelog", "version": "1.0.0"},
    }


def _call_tool(svc: EventService, params: Dict[str, Any]) -> Dict[str, Any]:
    try:
        result = execute_tool(svc, params.get("name"), params.get("arguments") or {})
    except ConsumptionError as e:
        logger.info("tool %s failed: %s", params.get("name"), e.message)
        return {"content": [{"type": "text", "text": e.message}], "isError": True}
    return {
        "content": [{"type": "text", "text": json.dumps(result, ensure_ascii=False)}],
        "structuredContent": result,
        "isError": False,
    }


def _dispatch(svc: EventService, req_id: Any, method: Any, params: Any) -> Dict[str, Any]:
    if method == "initialize":
        return {"jsonrpc": "2.0", "id": req_id, "result": _initialize()}
    if method == "ping":
        return {"jsonrpc": "2.0", "id": req_id, "result": {}}
    if method == "tools/list":
        return {"jsonrpc": "2.0", "id": req_id, "result": {"tools": get_tool_definitions()}}
    if method == "tools/call":
        if not isinstance(params, dict):
            return _jsonrpc_error(req_id, -32602, "Invalid params")
        name = params.get("name")
        if not isinstance(name, str) or not name:
            return _jsonrpc_error(req_id, -32602, "Missing tool name")
        return {"jsonrpc": "2.0", "id": req_id, "result": _call_tool(svc, params)}
    if method == "resources/list":
        return {"jsonrpc": "2.0", "id": req_id, "result": {"resources": []}}
    if method == "prompts/list":
        return {"jsonrpc": "2.0", "id": req_id, "result": {"prompts": []}}
    return _jsonrpc_error(req_id, -32601, f"Method not found: {method}")


def handle_one(svc: EventService, obj: Any) -> Optional[Dict[str, Any]]:
    """Handle one JSON-RPC message. Returns None for notifications."""

    if not isinstance(obj, dict):
        return _jsonrpc_error(None, -32600, "Invalid Request")
    req_id = obj.get("id")
    method = obj.get("method")
    params = obj.get("params") or {}

    if method == "notifications/initialized":
        return None
    response = _dispatch(svc, req_id, method, params)
    # Notifications have no id; they run but never get a response.
    if req_id is None:
        return None
    return response


def handle_payload(svc: EventService, payload: Any):
    if isinstance(payload, list):
        if not payload:
            return _jsonrpc_error(None, -32600, "Invalid Request")
        responses = [r for r in (handle_one(svc, item) for item in payload) if r is not None]
        return responses or None
    return handle_one(svc, payload)


@router.post("", summary="MCP JSON-RPC endpoint")
async def mcp_rpc(request: Request):
    try:
        payload = await request.json()
    except ValueError:
        return JSONResponse(_jsonrpc_error(None, -32700, "Parse error"), status_code=400)

    svc: EventService = request.app.state.svc
    # Store calls may block on the database; keep them off the event loop.
    response = await run_in_threadpool(handle_payload, svc, payload)
    if response is None:
        return Response(status_code=204)
    return JSONResponse(response)
