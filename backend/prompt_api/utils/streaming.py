"""Token stream channel and the NDJSON streaming response bridge."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncGenerator, Optional

from fastapi import Request
from fastapi.responses import StreamingResponse

from prompt_api.utils.exceptions import LLMServiceError, StreamCancelledError

logger = logging.getLogger(__name__)

NDJSON_MEDIA_TYPE = "application/x-ndjson"

_END_OF_STREAM = object()


class TokenStream:
    """Single-consumer channel of text chunks produced by one generation.

    The producer side calls :meth:`send` for every chunk and finishes with
    either :meth:`close` or :meth:`fail`. The consumer iterates the stream with
    ``async for`` and may call :meth:`cancel` to stop the producer early.

    The underlying queue is unbounded, so ``send`` never suspends the
    producer. A stream can only be consumed once.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False
        self._cancelled = False
        self._error: Optional[LLMServiceError] = None
        self._producer: Optional[asyncio.Task[Any]] = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def attach_producer(self, task: asyncio.Task[Any]) -> None:
        """Bind the task that feeds this stream so it can be cancelled."""
        self._producer = task

    def send(self, chunk: str) -> None:
        """Push a chunk to the consumer.

        Raises:
            StreamCancelledError: If the consumer already cancelled the stream
        """
        if self._cancelled:
            raise StreamCancelledError()
        if self._closed:
            raise RuntimeError("Token stream is closed")
        self._queue.put_nowait(chunk)

    def close(self) -> None:
        """Mark the end of the stream. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_END_OF_STREAM)

    def fail(self, error: LLMServiceError) -> None:
        """End the stream with an error raised to the consumer."""
        if self._closed:
            return
        self._error = error
        self.close()

    def cancel(self) -> None:
        """Close the stream from the consumer side and stop the producer."""
        self._cancelled = True
        self.close()
        if self._producer is not None and not self._producer.done():
            logger.debug("Cancelling token stream producer %s", self._producer.get_name())
            self._producer.cancel()

    def __aiter__(self) -> "TokenStream":
        return self

    async def __anext__(self) -> str:
        if self._cancelled:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END_OF_STREAM:
            if self._error is not None:
                raise self._error
            raise StopAsyncIteration
        return item


class NDJSONFormatter:
    """Formats payloads as newline-delimited JSON lines."""

    @staticmethod
    def format(data: dict[str, Any]) -> str:
        return json.dumps(data, ensure_ascii=False) + "\n"

    @staticmethod
    def format_text(text: str) -> str:
        """Format a text chunk line."""
        return NDJSONFormatter.format({"text": text})

    @staticmethod
    def format_error(error_message: str, error_code: str = "STREAM_ERROR") -> str:
        """Format the terminal error line written when generation fails mid-stream."""
        return NDJSONFormatter.format({"error": error_message, "code": error_code})


def create_ndjson_response(
    token_stream: TokenStream,
    request: Request,
    media_type: str = NDJSON_MEDIA_TYPE,
) -> StreamingResponse:
    """Relay a token stream to the client as NDJSON with cancellation support.

    Every chunk is written as one ``{"text": ...}`` line in the order it was
    produced. When the client goes away the stream is cancelled, which also
    cancels the generation task feeding it.

    Args:
        token_stream: Stream to relay; consumed exactly once
        request: FastAPI request object for disconnect detection
        media_type: Response media type

    Returns:
        StreamingResponse writing NDJSON lines
    """
    async def ndjson_stream() -> AsyncGenerator[str, None]:
        chunks = 0
        try:
            async for chunk in token_stream:
                if await request.is_disconnected():
                    logger.info("Client disconnected, stopping stream after %d chunks", chunks)
                    return
                chunks += 1
                yield NDJSONFormatter.format_text(chunk)
        except asyncio.CancelledError:
            logger.info("Stream cancelled after %d chunks", chunks)
            raise
        except LLMServiceError as exc:
            logger.error("Generation failed mid-stream after %d chunks: %s", chunks, exc.message)
            yield NDJSONFormatter.format_error(exc.message, exc.error_code)
        else:
            logger.debug("Stream completed with %d chunks", chunks)
        finally:
            token_stream.cancel()

    return StreamingResponse(
        ndjson_stream(),
        media_type=media_type,
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
            "Connection": "keep-alive",
        },
    )
