# /mdfinder/streaming.py
"""
Streamed assistant replies.

A request runs on a daemon worker thread and pushes text fragments onto a
FragmentQueue, ending with END_OF_STREAM once the server sends its [DONE]
marker. The UI loop is the only consumer; it drains the queue once per tick.
Failures never reach the queue: the worker logs them and stops, so the UI
simply sees a response that stops growing.
"""
from __future__ import annotations

import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

import httpx
from pydantic import BaseModel, ValidationError

from .config import API_MAX_TOKENS, API_MODEL_NAME, API_TIMEOUT_S, API_URL
from .observability import get_logger

logger = get_logger(__name__)

_DATA_PREFIX = "data: "
_DONE_MARKER = "[DONE]"


class _Sentinel(Enum):
    END_OF_STREAM = "end_of_stream"


END_OF_STREAM = _Sentinel.END_OF_STREAM
Fragment = Union[str, _Sentinel]


class ChatStreamError(RuntimeError):
    """Network or HTTP status failure of a streaming request."""


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str

    def to_payload(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class StreamDelta(BaseModel):
    content: str | None = None


class StreamChoice(BaseModel):
    delta: StreamDelta = StreamDelta()


class StreamChunk(BaseModel):
    """One SSE `data:` payload; unknown fields are ignored."""
    choices: list[StreamChoice] = []

    def first_content(self) -> str | None:
        if not self.choices:
            return None
        return self.choices[0].delta.content


class FragmentQueue:
    """Unbounded single-producer/single-consumer queue of fragments."""

    def __init__(self):
        self._queue: queue.SimpleQueue[Fragment] = queue.SimpleQueue()

    def put(self, fragment: str):
        self._queue.put(fragment)

    def finish(self):
        self._queue.put(END_OF_STREAM)

    def drain(self) -> list[Fragment]:
        """Takes everything queued right now without blocking, oldest first."""
        items: list[Fragment] = []
        while True:
            try:
                items.append(self._queue.get_nowait())
            except queue.Empty:
                return items


def stream_chat(
    api_key: str,
    messages: list[ChatMessage],
    out: FragmentQueue,
    *,
    client: httpx.Client | None = None,
    url: str = API_URL,
    model: str = API_MODEL_NAME,
    max_tokens: int = API_MAX_TOKENS,
    timeout: float = API_TIMEOUT_S,
) -> bool:
    """
    POSTs a streaming chat completion and forwards content deltas to `out`.
    Returns True once [DONE] was seen (and the sentinel queued), False if the
    body ended without it. Raises ChatStreamError on transport or status errors.
    """
    payload: dict[str, Any] = {
        "model": model,
        "messages": [message.to_payload() for message in messages],
        "stream": True,
        "max_tokens": int(max_tokens),
    }
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }

    owns_client = client is None
    http = client if client is not None else httpx.Client(timeout=timeout)
    try:
        with http.stream("POST", url, json=payload, headers=headers) as response:
            if not response.is_success:
                body = response.read().decode("utf-8", errors="replace")
                raise ChatStreamError(f"API error {response.status_code}: {body}")

            for raw_line in response.iter_lines():
                line = raw_line.strip()
                if not line or line.startswith(":"):
                    continue
                if not line.startswith(_DATA_PREFIX):
                    continue
                data = line[len(_DATA_PREFIX):]
                if data == _DONE_MARKER:
                    out.finish()
                    return True
                try:
                    chunk = StreamChunk.model_validate_json(data)
                except ValidationError:
                    continue
                fragment = chunk.first_content()
                if fragment:
                    out.put(fragment)
    except httpx.HTTPError as exc:
        raise ChatStreamError(str(exc)) from exc
    finally:
        if owns_client:
            http.close()
    return False


class StreamDispatcher:
    """
    Runs stream_chat on background threads.
    Once submitted, a request cannot be stopped from here; it runs until the
    server finishes or the connection fails.
    """

    def __init__(
        self,
        url: str = API_URL,
        model: str = API_MODEL_NAME,
        max_tokens: int = API_MAX_TOKENS,
        timeout: float = API_TIMEOUT_S,
        transport: httpx.BaseTransport | None = None,
    ):
        self.url = url
        self.model = model
        self.max_tokens = int(max_tokens)
        self.timeout = float(timeout)
        self._transport = transport

    def run(self, api_key: str, messages: list[ChatMessage], out: FragmentQueue) -> bool:
        logger.info("chat_stream_started", model=self.model, messages=len(messages))
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                completed = stream_chat(
                    api_key,
                    messages,
                    out,
                    client=client,
                    url=self.url,
                    model=self.model,
                    max_tokens=self.max_tokens,
                    timeout=self.timeout,
                )
        except ChatStreamError as exc:
            logger.warning("chat_stream_failed", model=self.model, error=str(exc))
            return False
        if not completed:
            logger.warning("chat_stream_incomplete", model=self.model)
        return completed

    def submit(self, api_key: str, messages: list[ChatMessage], out: FragmentQueue) -> threading.Thread:
        worker = threading.Thread(
            target=self.run,
            args=(api_key, list(messages), out),
            name="chat-stream",
            daemon=True,
        )
        worker.start()
        return worker
