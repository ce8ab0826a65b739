"""
Client-side log buffer.

Keeps the most recent entries in memory and ships them to ``/api/logs``.
Error entries are sent as soon as they are recorded; everything else waits
for ``flush()``. Shipping failures are reported locally and never raised to
the caller.
"""

import asyncio
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Set

from inkwell.core.logging_config import get_logger

MAX_LOGS = 1000
BATCH_SIZE = 100  # server keeps at most this many entries per request

local_logger = get_logger(__name__)


class ClientLogger:
    def __init__(self, api: Optional[Any] = None, max_logs: int = MAX_LOGS, session_id: Optional[str] = None):
        self.api = api
        self.logs: Deque[Dict[str, Any]] = deque(maxlen=max_logs)
        self.session_id = session_id or f"session_{uuid.uuid4().hex[:12]}"
        self._unsent: List[Dict[str, Any]] = []
        self._sending: Set["asyncio.Task[None]"] = set()

    def debug(self, message: str, **data: Any) -> Dict[str, Any]:
        return self.log("debug", message, data)

    def info(self, message: str, **data: Any) -> Dict[str, Any]:
        return self.log("info", message, data)

    def warning(self, message: str, **data: Any) -> Dict[str, Any]:
        return self.log("warning", message, data)

    def error(self, message: str, **data: Any) -> Dict[str, Any]:
        return self.log("error", message, data)

    def log(self, level: str, message: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "message": message,
            "data": data or {},
            "session_id": self.session_id,
        }
        self.logs.append(entry)

        if level == "error":
            self._send_soon([entry])
        else:
            self._unsent.append(entry)
            if len(self._unsent) > self.logs.maxlen:
                del self._unsent[: len(self._unsent) - self.logs.maxlen]
        return entry

    def log_error(self, exc: BaseException, **context: Any) -> Dict[str, Any]:
        return self.error("Client error", error=str(exc), name=type(exc).__name__, **context)

    def log_api_call(self, method: str, url: str, status: Optional[int], duration_ms: float, **data: Any) -> Dict[str, Any]:
        level = "error" if status is None or status >= 400 else "info"
        return self.log(
            level,
            "API Call",
            {"method": method, "url": url, "status": status, "duration": f"{duration_ms:.0f}ms", **data},
        )

    def get_logs(self, level: Optional[str] = None, since: Optional[datetime] = None, message: Optional[str] = None) -> List[Dict[str, Any]]:
        entries = list(self.logs)
        if level:
            entries = [e for e in entries if e["level"] == level]
        if since:
            entries = [e for e in entries if datetime.fromisoformat(e["timestamp"]) >= since]
        if message:
            needle = message.lower()
            entries = [e for e in entries if needle in e["message"].lower()]
        return entries

    def clear(self) -> None:
        self.logs.clear()
        self._unsent.clear()

    def _send_soon(self, entries: List[Dict[str, Any]]) -> None:
        if self.api is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop to send from; keep it for the next flush
            self._unsent.extend(entries)
            return
        task = loop.create_task(self._send(entries))
        self._sending.add(task)
        task.add_done_callback(self._sending.discard)

    async def _send(self, entries: List[Dict[str, Any]]) -> None:
        try:
            await self.api.send_logs(entries)
        except Exception as e:
            local_logger.warning("Failed to send logs to server", error=str(e), count=len(entries))

    async def flush(self) -> None:
        """Ship buffered entries and wait for in-flight error reports."""
        if self._sending:
            await asyncio.gather(*list(self._sending))
        if self.api is None or not self._unsent:
            return
        pending, self._unsent = self._unsent, []
        for start in range(0, len(pending), BATCH_SIZE):
            await self._send(pending[start:start + BATCH_SIZE])
