"""Tests for the summarisation client against a mocked HTTP transport."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from voxnote.data.models import SummaryFailure
from voxnote.services.summarization import SummarizationClient


def _client(handler, **kwargs) -> SummarizationClient:
    kwargs.setdefault("timeout", 5)
    return SummarizationClient(base_url="http://llm.test", transport=httpx.MockTransport(handler), **kwargs)


def test_successful_summary_and_request_shape() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"response": "  Grocery: milk. Task: gym.\n"})

    result = asyncio.run(_client(handler).summarize("buy milk and go to the gym", language="en-US"))

    assert result.ok
    assert result.text == "Grocery: milk. Task: gym."
    request = requests[0]
    assert request.method == "POST"
    assert request.url.path == "/api/generate"
    body = json.loads(request.content)
    assert set(body) == {"prompt", "stream"}
    assert body["stream"] is False
    assert "buy milk and go to the gym" in body["prompt"]
    assert "en-US" in body["prompt"]


def test_model_is_sent_when_configured() -> None:
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"response": "ok"})

    asyncio.run(_client(handler, model="llama3").summarize("text"))

    assert bodies[0]["model"] == "llama3"


def test_base_url_with_generate_path_is_normalised() -> None:
    client = SummarizationClient(base_url="http://llm.test/api/generate/", timeout=1)

    assert client.base_url == "http://llm.test"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, content=b"not json"),
        httpx.Response(200, json={"result": "missing field"}),
        httpx.Response(200, json={"response": 42}),
        httpx.Response(200, json=["response"]),
        httpx.Response(200, json={"response": "   "}),
    ],
)
def test_malformed_responses(response: httpx.Response) -> None:
    result = asyncio.run(_client(lambda request: response).summarize("text"))

    assert not result.ok
    assert result.text is None
    assert result.failure == SummaryFailure.MALFORMED_RESPONSE


def test_http_error_status_is_network_error() -> None:
    result = asyncio.run(_client(lambda request: httpx.Response(500, text="boom")).summarize("text"))

    assert result.failure == SummaryFailure.NETWORK_ERROR
    assert "500" in result.detail


def test_connection_failure_is_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    result = asyncio.run(_client(handler).summarize("text"))

    assert result.failure == SummaryFailure.NETWORK_ERROR


def test_transport_timeout_is_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    result = asyncio.run(_client(handler).summarize("text"))

    assert result.failure == SummaryFailure.TIMEOUT


def test_deadline_applies_to_slow_service() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, json={"response": "too late"})

    result = asyncio.run(_client(handler).summarize("text", timeout=0.05))

    assert result.failure == SummaryFailure.TIMEOUT


def test_cancelling_the_task_aborts_the_request() -> None:
    async def scenario() -> None:
        started = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            started.set()
            await asyncio.sleep(5)
            return httpx.Response(200, json={"response": "too late"})

        task = asyncio.create_task(_client(handler).summarize("text"))
        await asyncio.wait_for(started.wait(), 2)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())


def test_summarize_blocking() -> None:
    client = _client(lambda request: httpx.Response(200, json={"response": "Short."}))

    assert client.summarize_blocking("long text").text == "Short."
