"""
Server-sent events transport for long-running operations.

An operation is any coroutine taking an ``emit`` callback. It runs as its
own task feeding a queue, and the response body drains that queue as
``event: <name>\\ndata: <json>\\n\\n`` frames. A client disconnect stops
delivery only: the task runs to completion and its cleanup still happens.
"""

import asyncio
import json
import logging
from typing import AsyncIterator, Awaitable, Callable, Iterable, Set

from fastapi.responses import StreamingResponse

from screener.services.progress import Emit, ErrorEvent, ProgressUpdate

logger = logging.getLogger(__name__)

Operation = Callable[[Emit], Awaitable[None]]
Cleanup = Callable[[], Awaitable[None]]

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

_END = object()

# Strong references so running operations are not garbage collected
_running: Set[asyncio.Task] = set()


def encode_sse(update: ProgressUpdate) -> str:
    return f"event: {update.event}\ndata: {json.dumps(update.to_payload())}\n\n"


def start_operation(
    operation: Operation,
    cleanup: Iterable[Cleanup] = (),
    name: str = "operation",
) -> "asyncio.Queue":
    """Run ``operation`` in the background and return the queue it feeds."""
    queue: asyncio.Queue = asyncio.Queue()
    cleanup = list(cleanup)

    async def runner() -> None:
        try:
            await operation(queue.put_nowait)
        except Exception as e:
            logger.error(f"Error in {name}: {e}", exc_info=True)
            queue.put_nowait(ErrorEvent(str(e) or type(e).__name__))
        finally:
            for close in cleanup:
                try:
                    await close()
                except Exception as e:
                    logger.warning(f"Cleanup after {name} failed: {e}")
            queue.put_nowait(_END)

    task = asyncio.create_task(runner())
    _running.add(task)
    task.add_done_callback(_running.discard)
    return queue


async def drain(queue: "asyncio.Queue") -> AsyncIterator[str]:
    while True:
        update = await queue.get()
        if update is _END:
            return
        yield encode_sse(update)


def event_stream(
    operation: Operation,
    cleanup: Iterable[Cleanup] = (),
    name: str = "operation",
) -> StreamingResponse:
    async def body() -> AsyncIterator[str]:
        queue = start_operation(operation, cleanup, name)
        async for frame in drain(queue):
            yield frame

    return StreamingResponse(body(), media_type="text/event-stream", headers=SSE_HEADERS)
