"""Tests for the litellm-backed delta stream source."""

from types import SimpleNamespace

import litellm
import pytest

from abot import llm
from abot.errors import StreamError
from abot.llm import (
    ChatRequest, LiteLLMStreamSource, StreamComplete, StreamFailure, TextDelta,
    build_context, build_request, classify_error,
)
from abot.models import Conversation, Message, MessageStatus, Role


def _chunk(content=None, usage=None):
    delta = SimpleNamespace(content=content)
    choices = [SimpleNamespace(delta=delta)] if content is not None else []
    return SimpleNamespace(choices=choices, usage=usage)


def _drain(source, handle, limit=100):
    out = []
    for _ in range(limit):
        delta = source.next(handle)
        out.append(delta)
        if not isinstance(delta, TextDelta):
            break
    return out


@pytest.fixture
def fake_completion(monkeypatch):
    calls = []

    def install(result=None, error=None):
        def completion(**kwargs):
            calls.append(kwargs)
            if error is not None:
                raise error
            return result
        monkeypatch.setattr(llm.litellm, "completion", completion)
        return calls

    return install


class TestContext:

    def test_notices_and_streaming_are_excluded(self):
        conversation = Conversation.start("sys")
        conversation.add(Message.of(Role.USER, "q"))
        conversation.add(Message.of(Role.ASSISTANT, "Error (api): x", notice=True))
        conversation.add(Message.streaming())
        assert build_context(conversation) == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "q"},
        ]

    def test_augmented_text_is_sent(self):
        conversation = Conversation.start()
        user = conversation.add(Message.of(Role.USER, "news @web"))
        user.augmented = "results + news"
        assert build_context(conversation) == [{"role": "user", "content": "results + news"}]

    def test_partial_answers_stay_in_context(self):
        conversation = Conversation.start()
        conversation.add(Message.of(Role.USER, "q"))
        partial = conversation.add(Message.streaming())
        partial.append("half")
        partial.finalize(MessageStatus.CANCELLED)
        assert build_context(conversation)[-1] == {"role": "assistant", "content": "half"}

    def test_build_request_uses_active_preset(self, config):
        conversation = Conversation.start("sys")
        request = build_request(conversation, config)
        assert request.model == "openai/model"
        assert request.options["api_base"] == "http://localhost:8080/v1"
        assert request.options["max_tokens"] == 512


class TestLiteLLMStreamSource:

    def _request(self, **options):
        options.setdefault("model", "openai/test")
        return ChatRequest([{"role": "user", "content": "hi"}], options)

    def test_streams_text_deltas(self, fake_completion):
        calls = fake_completion(iter([_chunk("Hel"), _chunk(""), _chunk("lo"),
                                      _chunk(usage=SimpleNamespace(prompt_tokens=3,
                                                                   completion_tokens=2,
                                                                   total_tokens=5))]))
        source = LiteLLMStreamSource()
        handle = source.open(self._request(stream=True, api_base=None))

        assert _drain(source, handle) == [TextDelta("Hel"), TextDelta("lo"), StreamComplete()]
        assert handle.usage == {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}
        assert "api_base" not in calls[0]
        assert calls[0]["messages"] == [{"role": "user", "content": "hi"}]

    def test_non_streaming_response(self, fake_completion):
        message = SimpleNamespace(content="whole answer")
        fake_completion(SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=None))
        source = LiteLLMStreamSource()
        handle = source.open(self._request(stream=False))
        assert _drain(source, handle) == [TextDelta("whole answer"), StreamComplete()]

    def test_open_failure_raises_stream_error(self, fake_completion):
        fake_completion(error=litellm.exceptions.AuthenticationError(
            message="bad key", llm_provider="openai", model="gpt-4o"))
        with pytest.raises(StreamError) as excinfo:
            LiteLLMStreamSource().open(self._request())
        assert excinfo.value.kind == "auth"

    def test_mid_stream_failure(self, fake_completion):
        def chunks():
            yield _chunk("partial")
            raise ConnectionResetError("reset by peer")

        fake_completion(chunks())
        source = LiteLLMStreamSource()
        handle = source.open(self._request())
        deltas = _drain(source, handle)
        assert deltas[0] == TextDelta("partial")
        assert isinstance(deltas[1], StreamFailure)
        assert "reset by peer" in deltas[1].message

    def test_cancel_closes_stream(self, fake_completion):
        closed = []

        def chunks():
            try:
                while True:
                    yield _chunk("x")
            finally:
                closed.append(True)

        fake_completion(chunks())
        source = LiteLLMStreamSource()
        handle = source.open(self._request())
        assert source.next(handle) == TextDelta("x")

        source.cancel(handle)

        assert closed == [True]
        assert source.next(handle) == StreamFailure("cancelled", "Stream cancelled.")


class TestClassifyError:

    def test_rate_limit(self):
        error = litellm.exceptions.RateLimitError(message="slow down", llm_provider="openai",
                                                  model="gpt-4o")
        assert classify_error(error).kind == "rate_limit"

    def test_connection(self):
        error = litellm.exceptions.APIConnectionError(message="refused", llm_provider="openai",
                                                      model="gpt-4o")
        assert classify_error(error).kind == "connection"

    def test_timeout(self):
        error = litellm.exceptions.Timeout(message="slow", model="gpt-4o", llm_provider="openai")
        assert classify_error(error).kind == "timeout"

    def test_other(self):
        result = classify_error(ValueError("odd"))
        assert result.kind == "api"
        assert "ValueError: odd" in str(result)
