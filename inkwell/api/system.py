"""Health check and browser log ingestion."""

import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Request

from inkwell.api import deps
from inkwell.core.config import Settings
from inkwell.core.process import current_rss_mb, peak_rss_mb
from inkwell.core.rate_limit import get_client_ip

router = APIRouter()

MAX_CLIENT_LOGS = 100
CLIENT_LOG_LEVELS = {"debug", "info", "warning", "error"}
# Keys structlog or stdlib logging would misread if passed through as-is
RESERVED_LOG_KEYS = {"event", "level", "timestamp", "exc_info", "stack_info", "logger"}


def format_uptime(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s"


@router.get("/health")
def health(
    request: Request,
    settings: Settings = Depends(deps.get_settings),
) -> Any:
    uptime = time.monotonic() - request.app.state.started_at
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": format_uptime(uptime),
        "memory": {
            "rss_mb": round(current_rss_mb(), 1),
            "peak_rss_mb": round(peak_rss_mb(), 1),
        },
        "environment": settings.ENVIRONMENT,
    }


def _client_fields(entry: Dict[str, Any]) -> Dict[str, Any]:
    fields = {}
    for key, value in entry.items():
        key = str(key)
        if key in RESERVED_LOG_KEYS:
            key = f"client_{key}"
        fields[key] = value
    return fields


@router.post("/logs")
def ingest_client_logs(
    request: Request,
    payload: Any = Body(default=None),
    logger: Any = Depends(deps.get_app_logger),
) -> Any:
    """
    Record log entries shipped by the browser client.

    Always answers 200 so a logging failure never cascades into the UI.
    Only the first 100 entries of a batch are kept; malformed batches and
    entries that are not objects are skipped.
    """
    logs = payload.get("logs") if isinstance(payload, dict) else None
    entries = logs if isinstance(logs, list) else []
    client_ip = get_client_ip(request)

    accepted = 0
    for entry in entries[:MAX_CLIENT_LOGS]:
        if not isinstance(entry, dict):
            continue
        level = str(entry.get("level", "info")).lower()
        if level not in CLIENT_LOG_LEVELS:
            level = "info"
        message = str(entry.get("message", ""))
        fields = _client_fields({k: v for k, v in entry.items() if k not in ("level", "message")})
        fields.update(client_log=True, client_ip=client_ip, client_message=message)
        getattr(logger, level)("Client log", **fields)
        accepted += 1

    if len(entries) > MAX_CLIENT_LOGS:
        logger.warning("Client log batch truncated", received=len(entries), kept=MAX_CLIENT_LOGS)

    return {"success": True, "accepted": accepted}
