import asyncio
from types import SimpleNamespace

import httpx
import openai
import pytest

from services.errors import APOLOGY_UTTERANCE, GenerationUnavailable
from services.openai.generative_client import GenerativeClient


class FlakyResponses:
    """Fail a set number of times before answering."""

    def __init__(self, failures, error_factory):
        self.failures = failures
        self.error_factory = error_factory
        self.attempts = 0

    async def create(self, **kwargs):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise self.error_factory()
        return SimpleNamespace(output=[], output_text="hello", usage=None)


class HangingResponses:
    def __init__(self):
        self.attempts = 0

    async def create(self, **kwargs):
        self.attempts += 1
        await asyncio.sleep(10)


def _client(responses, max_attempts=3, timeout_seconds=5):
    delays = []

    async def record_sleep(delay):
        delays.append(delay)

    client = GenerativeClient(
        SimpleNamespace(responses=responses),
        timeout_seconds=timeout_seconds,
        max_attempts=max_attempts,
        backoff_seconds=0.5,
        sleep=record_sleep,
    )
    return client, delays


def _connection_error():
    return openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/responses"))


def _bad_request():
    request = httpx.Request("POST", "https://api.openai.com/v1/responses")
    response = httpx.Response(400, request=request)
    return openai.BadRequestError("bad request", response=response, body=None)


def test_transient_errors_are_retried_with_backoff():
    responses = FlakyResponses(2, _connection_error)
    client, delays = _client(responses)

    text = asyncio.run(client.generate_text("hi"))

    assert text == "hello"
    assert responses.attempts == 3
    assert delays == [0.5, 1.0]


def test_exhausted_retries_raise_generation_unavailable():
    responses = FlakyResponses(5, asyncio.TimeoutError)
    client, delays = _client(responses, max_attempts=3)

    with pytest.raises(GenerationUnavailable) as excinfo:
        asyncio.run(client.generate_text("hi", operation="greet"))

    assert responses.attempts == 3
    assert len(delays) == 2
    assert excinfo.value.operation == "greet"
    assert excinfo.value.utterance == APOLOGY_UTTERANCE


def test_hanging_call_times_out():
    responses = HangingResponses()
    client, _ = _client(responses, max_attempts=2, timeout_seconds=0.01)

    with pytest.raises(GenerationUnavailable):
        asyncio.run(client.generate_text("hi"))

    assert responses.attempts == 2


def test_non_transient_errors_are_not_retried():
    responses = FlakyResponses(1, _bad_request)
    client, delays = _client(responses)

    with pytest.raises(GenerationUnavailable):
        asyncio.run(client.generate_text("hi"))

    assert responses.attempts == 1
    assert delays == []


def test_call_function_forces_the_tool(generative_client, fake_openai):
    tool = {"type": "function", "name": "classify_user_reply", "parameters": {}}
    calls = []
    original = fake_openai.responses.create

    async def spy(**kwargs):
        calls.append(kwargs)
        return await original(**kwargs)

    fake_openai.responses.create = spy
    args = asyncio.run(
        generative_client.call_function("User reply: something else", system="rules", tool=tool)
    )

    assert args["wants_different_topics"] is True
    assert calls[0]["tool_choice"] == {"type": "function", "name": "classify_user_reply"}


def test_generate_image_decodes_bytes(generative_client, fake_openai):
    data = asyncio.run(generative_client.generate_image("a cup"))

    assert data.startswith(b"\x89PNG")
    assert fake_openai.images.calls[0]["model"] == generative_client.image_model


def test_generate_image_without_payload_is_rejected(generative_client, fake_openai):
    fake_openai.images.payload = None

    with pytest.raises(ValueError):
        asyncio.run(generative_client.generate_image("a cup"))


def test_client_is_required():
    with pytest.raises(ValueError):
        GenerativeClient(None)
