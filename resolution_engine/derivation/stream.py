"""Streaming model access and time-bounded response collection."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from anthropic import APIError, AsyncAnthropic

from resolution_engine.config import settings
from resolution_engine.exceptions import GenerationError

logger = logging.getLogger(__name__)


class StreamState(str, Enum):
    DELTA = "delta"
    FINAL = "final"
    ERROR = "error"
    ABORTED = "aborted"


@dataclass
class StreamEvent:
    """One signal from a streamed generation run."""

    state: StreamState
    text: str = ""
    error_message: str | None = None


class StreamingModel(Protocol):
    def stream(
        self, prompt: str, session_key: str, idempotency_key: str
    ) -> AsyncIterator[StreamEvent]: ...


def extract_text(message: Any) -> str:
    """Pull plain text out of a string, a ``content`` string, or content blocks."""
    if not message:
        return ""
    if isinstance(message, str):
        return message
    if isinstance(message, dict):
        content = message.get("content")
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            return "".join(
                c.get("text", "") or ""
                for c in content
                if isinstance(c, dict) and c.get("type") == "text"
            )
        text = message.get("text")
        if isinstance(text, str):
            return text
    return ""


def merge_delta_buffer(previous: str, incoming: str) -> str:
    """Merge an incoming delta into the accumulated buffer.

    Gateways send either cumulative snapshots or incremental chunks, and
    sometimes re-send stale snapshots. The merge keeps the longest consistent
    text without duplicating overlaps.
    """
    if not incoming:
        return previous
    if not previous:
        return incoming

    # Cumulative snapshot extends the buffer, or a stale duplicate of it.
    if incoming.startswith(previous):
        return incoming
    if previous.startswith(incoming):
        return previous

    common = 0
    for a, b in zip(previous, incoming):
        if a != b:
            break
        common += 1

    # Mostly-shared prefix: cumulative with drift; keep the longer one.
    if common > len(previous) * 0.5:
        return incoming if len(incoming) > len(previous) else previous

    # Large incoming with little overlap is a full replacement.
    if len(incoming) > len(previous) * 0.5:
        return incoming

    for size in range(min(len(previous), len(incoming)), 0, -1):
        if previous.endswith(incoming[:size]):
            return previous + incoming[size:]
    return previous + incoming


async def collect_stream(events: AsyncIterator[StreamEvent], timeout: float) -> str:
    """Accumulate a streamed response until a terminal signal or the timeout.

    Returns the final text on a ``final`` signal. On timeout, or if the stream
    ends without a terminal signal, returns the partial buffer when it is
    non-empty.

    Raises:
        GenerationError: on an ``error``/``aborted`` signal, or on timeout with
            nothing buffered.
    """
    buffer = ""

    async def _consume() -> str | None:
        nonlocal buffer
        async for event in events:
            if event.state is StreamState.DELTA:
                buffer = merge_delta_buffer(buffer, event.text)
            elif event.state is StreamState.FINAL:
                return merge_delta_buffer(buffer, event.text)
            else:
                raise GenerationError(event.error_message or "Resolution generation failed")
        return None

    try:
        final = await asyncio.wait_for(_consume(), timeout=timeout)
    except TimeoutError:
        final = None
        logger.warning("Resolution generation hit the %.0fs timeout", timeout)

    if final is not None:
        return final
    if buffer:
        logger.warning("Using partial resolution output (%d chars)", len(buffer))
        return buffer
    raise GenerationError("Resolution generation timeout")


class AnthropicStreamModel:
    """Streams completions from Claude as cumulative delta events."""

    def __init__(
        self,
        client: AsyncAnthropic | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
    ):
        self.client = client or AsyncAnthropic(api_key=settings.anthropic_api_key)
        self.model = model or settings.llm_model
        self.max_tokens = max_tokens or settings.llm_max_tokens

    async def stream(
        self, prompt: str, session_key: str, idempotency_key: str
    ) -> AsyncIterator[StreamEvent]:
        text = ""
        logger.debug("Streaming resolution run %s (%s)", idempotency_key, session_key)
        try:
            async with self.client.messages.stream(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
                extra_headers={"Idempotency-Key": idempotency_key},
            ) as stream:
                async for chunk in stream.text_stream:
                    text += chunk
                    yield StreamEvent(StreamState.DELTA, text)
                final = await stream.get_final_message()
        except APIError as exc:
            yield StreamEvent(StreamState.ERROR, error_message=f"LLM unavailable: {exc.message}")
            return

        final_text = "".join(
            block.text for block in final.content if getattr(block, "type", None) == "text"
        )
        yield StreamEvent(StreamState.FINAL, final_text or text)
