"""
Server-Sent Events Transport

One long-lived ``text/event-stream`` response per ask. The pipeline writes
named events into a queue; the response body drains it. The HTTP status
line is already sent when the stream opens, so failures travel in-band in a
terminal ``error`` event that also carries the status code.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import StreamingResponse

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

_CLOSED = object()


def format_event(event: str, data: Any) -> str:
    payload = json.dumps(jsonable_encoder(data), ensure_ascii=False)
    return f"event: {event}\ndata: {payload}\n\n"


class SSEStream:
    """
    Event sink for one turn.

    Usage:
        stream = SSEStream()
        stream.emit_status("Classifying your question…", 10)
        stream.close_with("final", {...})
        return stream.response()
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False
        self._last_progress = 0
        self.status_code = 200
        self.terminal_event: str | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def last_progress(self) -> int:
        return self._last_progress

    def emit(self, event: str, data: Any) -> None:
        if self._closed:
            logger.debug(f"Dropping '{event}' event on closed stream")
            return
        self._queue.put_nowait(format_event(event, data))

    def emit_progress(self, progress: float) -> None:
        """Progress is clamped to [0, 100] and never goes backwards."""
        value = int(max(0, min(100, round(progress))))
        value = max(value, self._last_progress)
        self._last_progress = value
        self.emit("progress", {"progress": value})

    def emit_status(self, message: str, progress: float | None = None) -> None:
        if progress is None:
            self.emit("status", {"message": message})
            return
        value = int(max(0, min(100, round(progress))))
        value = max(value, self._last_progress)
        self.emit("status", {"message": message, "progress": value})
        self.emit_progress(value)

    def close_with(self, event: str, payload: Any, status_code: int = 200) -> None:
        """Write the single terminal event and end the stream."""
        if self._closed:
            logger.warning(f"Stream already closed, ignoring terminal '{event}' event")
            return
        self.status_code = status_code
        self.terminal_event = event
        self.emit(event, payload)
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def stream_error(
        self,
        status_code: int,
        code: str,
        message: str,
        extra: dict[str, Any] | None = None,
    ) -> None:
        payload = {"ok": False, "status": status_code, "code": code, "message": message}
        if extra:
            payload.update(extra)
        self.close_with("error", payload, status_code)

    async def events(self) -> AsyncIterator[str]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                break
            yield item

    def response(self) -> StreamingResponse:
        return StreamingResponse(
            self.events(),
            status_code=self.status_code,
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )
