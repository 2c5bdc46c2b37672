# pdf_chat/api/sse.py

"""
Server-sent events framing for chat responses.

Each event is one `data: <json>\n\n` frame. Frames stop at the first
terminal event, or as soon as the client is seen to have disconnected;
nothing is written after that.
"""

import logging
from typing import AsyncIterator, Awaitable, Callable

from pdf_chat.models import TERMINAL_EVENT_TYPES, StreamEvent

logger = logging.getLogger(__name__)

SSE_MEDIA_TYPE = "text/event-stream"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def encode_event(event: StreamEvent) -> str:

    return f"data: {event.model_dump_json(by_alias=True)}\n\n"


async def event_stream(
    events: AsyncIterator[StreamEvent],
    is_disconnected: Callable[[], Awaitable[bool]],
    request_id: str = "unknown",
) -> AsyncIterator[str]:
    """Encode `events` as SSE frames for a StreamingResponse body."""

    frames = 0

    try:

        async for event in events:

            if await is_disconnected():
                logger.info(
                    "Client disconnected",
                    extra={"request_id": request_id, "frames_sent": frames},
                )
                break

            yield encode_event(event)

            frames += 1

            if event.type in TERMINAL_EVENT_TYPES:
                break

    finally:

        await events.aclose()
