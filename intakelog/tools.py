"""
Tool definitions and dispatch.

The three operations are exposed by name, with JSON input schemas in the
shape the MCP `tools/list` method expects. Both transports (the plain
HTTP endpoint and the MCP JSON-RPC endpoint) call `execute_tool()` and
only marshal its result or its `ConsumptionError`.
"""

from typing import Any, Callable, Dict, List, Optional

from intakelog.errors import InvalidEventError, InvalidQueryError, UnknownOperationError
from intakelog.models import ListConsumptionOut, LogConsumptionOut
from intakelog.service_events import EventService

_EVENT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": "string", "description": "Event id. Re-using an id replaces that event."},
        "user_id": {"type": "string", "description": "Owner of the event"},
        "timestamp": {"type": "string", "description": "ISO-8601 date-time, e.g. 2024-01-15T08:30:00Z"},
        "item": {"type": "string", "description": "What was eaten or drunk"},
        "amount": {"type": "number"},
        "unit": {"type": "string", "enum": ["g", "ml", "piece", "serving"]},
        "source": {"type": "string", "description": "Where the event came from, default 'manual'"},
        "calories": {"type": "number", "description": "kcal, supplied by the caller"},
        "notes": {"type": "string"},
    },
    "required": ["timestamp", "item", "amount", "unit"],
}

_RANGE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "user_id": {"type": "string"},
        "from": {"type": "string", "description": "Inclusive start date, YYYY-MM-DD"},
        "to": {"type": "string", "description": "Inclusive end date, YYYY-MM-DD"},
    },
    "required": [],
}

TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "name": "log_consumption",
        "description": "Log one or more consumption events. The whole batch is rejected if any event is invalid.",
        "inputSchema": {
            "type": "object",
            "properties": {"events": {"type": "array", "items": _EVENT_SCHEMA}},
            "required": ["events"],
        },
    },
    {
        "name": "list_consumption",
        "description": "List consumption events for a user and optional date range, oldest first.",
        "inputSchema": _RANGE_SCHEMA,
    },
    {
        "name": "summarize_intake",
        "description": "Total calories and event count for a user and optional date range.",
        "inputSchema": _RANGE_SCHEMA,
    },
]


def get_tool_definitions() -> List[Dict[str, Any]]:
    return TOOL_DEFINITIONS


def _log_consumption(svc: EventService, args: Dict[str, Any]) -> Dict[str, Any]:
    events = args.get("events")
    if events is None:
        events = []
    if not isinstance(events, list):
        raise InvalidEventError("events", "must be a list")
    saved = svc.ingest_events(events)
    return LogConsumptionOut(saved_count=saved).model_dump()


def _list_consumption(svc: EventService, args: Dict[str, Any]) -> Dict[str, Any]:
    records = svc.list_events(args.get("user_id"), args.get("from"), args.get("to"))
    return ListConsumptionOut(events=[r.to_public() for r in records]).model_dump()


def _summarize_intake(svc: EventService, args: Dict[str, Any]) -> Dict[str, Any]:
    summary = svc.summarize_intake(args.get("user_id"), args.get("from"), args.get("to"))
    return summary.model_dump()


_HANDLERS: Dict[str, Callable[[EventService, Dict[str, Any]], Dict[str, Any]]] = {
    "log_consumption": _log_consumption,
    "list_consumption": _list_consumption,
    "summarize_intake": _summarize_intake,
}


def execute_tool(svc: EventService, name: Optional[str], args: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Run the named operation.

    Raises `UnknownOperationError` for names not in `TOOL_DEFINITIONS` and
    lets every other `ConsumptionError` through unchanged.
    """

    handler = _HANDLERS.get(name) if isinstance(name, str) else None
    if handler is None:
        raise UnknownOperationError(name)
    if args is None:
        args = {}
    if not isinstance(args, dict):
        if name == "log_consumption":
            raise InvalidEventError(None, "tool input must be an object")
        raise InvalidQueryError("input", "must be an object")
    return handler(svc, args)
