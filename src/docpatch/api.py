"""Request/response adapters for serverless or HTTP front ends.

Both handlers take an API-gateway style event (a dict, optionally carrying a
``body`` that is either a JSON string or an already decoded object) and return
``{"statusCode", "headers", "body"}`` with a JSON body.  Nothing raises.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from docpatch.core.errors import PatchError
from docpatch.patch.engine import PatchEngine

logger = logging.getLogger(__name__)

_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
}


def parse_event(event: dict[str, Any]) -> dict[str, Any]:
    """Return the request payload carried by ``event``."""
    body = event.get("body")
    if not body:
        return event
    if isinstance(body, dict):
        return body
    try:
        parsed = json.loads(body)
    except (TypeError, ValueError):
        logger.warning("Could not parse event body, using event as is")
        return event
    return parsed if isinstance(parsed, dict) else event


def _respond(status_code: int, body: dict[str, Any]) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": dict(_HEADERS),
        "body": json.dumps(body),
    }


def handle_apply_request(event: dict[str, Any], engine: PatchEngine | None = None) -> dict[str, Any]:
    """Apply the fixes named in ``event`` (``sessionId``, ``selectedFixIds``)."""
    payload = parse_event(event)
    session_id = payload.get("sessionId")
    if not session_id:
        return _respond(400, {"success": False, "error": "sessionId is required"})

    selected = payload.get("selectedFixIds") or []
    if not isinstance(selected, list):
        return _respond(400, {"success": False, "error": "selectedFixIds must be a list"})

    try:
        engine = engine or PatchEngine.from_config()
    except Exception:
        logger.exception("Could not set up the patch engine")
        return _respond(500, {"error": "Failed to apply fixes"})

    response = engine.apply_session(str(session_id), [str(i) for i in selected])
    return _respond(response.status_code, response.to_dict())


def handle_get_fixes_request(event: dict[str, Any], engine: PatchEngine | None = None) -> dict[str, Any]:
    """Return the stored fix list for ``pathParameters.sessionId``."""
    session_id = (event.get("pathParameters") or {}).get("sessionId")
    if not session_id:
        return _respond(400, {"error": "sessionId is required"})

    try:
        engine = engine or PatchEngine.from_config()
        fix_list = engine.store.read_fix_list(session_id)
    except PatchError as e:
        if e.status_code == 404:
            return _respond(404, {"error": "Fixes not found for this session"})
        logger.error("Error fetching fixes for %s: %s", session_id, e)
        return _respond(e.status_code, {"error": str(e)})
    except Exception:
        logger.exception("Error fetching fixes for %s", session_id)
        return _respond(500, {"error": "Failed to retrieve fixes"})

    return _respond(200, fix_list.to_dict())
