import json
import unittest

import httpx

from mdfinder.streaming import (
    END_OF_STREAM,
    ChatMessage,
    ChatStreamError,
    FragmentQueue,
    StreamDispatcher,
    stream_chat,
)

URL = "https://llm.example.test/v1/chat/completions"

SSE_BODY = (
    ": keep-alive\n"
    "\n"
    'data: {"choices":[{"delta":{"content":"Hel"}}]}\n'
    "\n"
    "data: not json at all\n"
    "\n"
    'data: {"choices":[{"delta":{}}]}\n'
    "\n"
    'data: {"id":"x","choices":[{"index":0,"delta":{"content":"lo"}}]}\n'
    "\n"
    "event: ping\n"
    "data: [DONE]\n"
    "\n"
    'data: {"choices":[{"delta":{"content":"after done"}}]}\n'
)


def _sse_transport(body: str, status: int = 200, seen: list | None = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(
            status,
            content=body.encode("utf-8"),
            headers={"content-type": "text/event-stream"},
        )

    return httpx.MockTransport(handler)


class TestFragmentQueue(unittest.TestCase):
    def test_drain_is_fifo_and_non_blocking(self):
        out = FragmentQueue()
        self.assertEqual(out.drain(), [])
        out.put("a")
        out.put("b")
        out.finish()
        self.assertEqual(out.drain(), ["a", "b", END_OF_STREAM])
        self.assertEqual(out.drain(), [])


class TestStreamChat(unittest.TestCase):
    def test_forwards_content_deltas_and_finishes_on_done(self):
        seen: list[httpx.Request] = []
        out = FragmentQueue()
        messages = [ChatMessage("system", "be brief"), ChatMessage("user", "hi")]
        with httpx.Client(transport=_sse_transport(SSE_BODY, seen=seen)) as client:
            completed = stream_chat("secret", messages, out, client=client, url=URL, model="test-model", max_tokens=64)

        self.assertTrue(completed)
        self.assertEqual(out.drain(), ["Hel", "lo", END_OF_STREAM])

        request = seen[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(str(request.url), URL)
        self.assertEqual(request.headers["authorization"], "Bearer secret")
        self.assertEqual(
            json.loads(request.read()),
            {
                "model": "test-model",
                "messages": [
                    {"role": "system", "content": "be brief"},
                    {"role": "user", "content": "hi"},
                ],
                "stream": True,
                "max_tokens": 64,
            },
        )

    def test_body_without_done_marker_pushes_no_sentinel(self):
        out = FragmentQueue()
        body = 'data: {"choices":[{"delta":{"content":"partial"}}]}\n\n'
        with httpx.Client(transport=_sse_transport(body)) as client:
            completed = stream_chat("k", [ChatMessage("user", "q")], out, client=client, url=URL)
        self.assertFalse(completed)
        self.assertEqual(out.drain(), ["partial"])

    def test_error_status_raises_with_body(self):
        out = FragmentQueue()
        with httpx.Client(transport=_sse_transport("rate limited", status=429)) as client:
            with self.assertRaises(ChatStreamError) as ctx:
                stream_chat("k", [ChatMessage("user", "q")], out, client=client, url=URL)
        self.assertEqual(str(ctx.exception), "API error 429: rate limited")
        self.assertEqual(out.drain(), [])

    def test_transport_errors_become_stream_errors(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        out = FragmentQueue()
        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            with self.assertRaises(ChatStreamError):
                stream_chat("k", [ChatMessage("user", "q")], out, client=client, url=URL)


class TestStreamDispatcher(unittest.TestCase):
    def test_submit_streams_on_background_thread(self):
        out = FragmentQueue()
        dispatcher = StreamDispatcher(url=URL, model="m", transport=_sse_transport(SSE_BODY))
        worker = dispatcher.submit("k", [ChatMessage("user", "q")], out)
        worker.join(timeout=5)
        self.assertFalse(worker.is_alive())
        self.assertTrue(worker.daemon)
        self.assertEqual(out.drain(), ["Hel", "lo", END_OF_STREAM])

    def test_failures_are_swallowed_without_sentinel(self):
        out = FragmentQueue()
        dispatcher = StreamDispatcher(url=URL, transport=_sse_transport("boom", status=500))
        self.assertFalse(dispatcher.run("k", [ChatMessage("user", "q")], out))
        worker = dispatcher.submit("k", [ChatMessage("user", "q")], out)
        worker.join(timeout=5)
        self.assertEqual(out.drain(), [])


if __name__ == "__main__":
    unittest.main()
