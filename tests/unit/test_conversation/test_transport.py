"""Unit tests for toolrelay.conversation.transport."""

from __future__ import annotations

import logging
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock, patch

import httpx
import pytest
from openai import APIConnectionError, APIStatusError

from toolrelay.config import Settings
from toolrelay.conversation.transport import (
    CompletionResult,
    ResilientTransport,
    ToolCallRequest,
)
from toolrelay.errors import ConfigurationError, TransportError


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_REQUEST = httpx.Request("POST", "https://api.example.test/v1/chat/completions")
_PAYLOAD: dict[str, Any] = {
    "model": "gpt-4o-mini",
    "messages": [{"role": "user", "content": "Hi"}],
    "temperature": 0.7,
}


def _status_error(status: int, body: str = '{"error": "nope"}') -> APIStatusError:
    response = httpx.Response(status, request=_REQUEST, text=body)
    return APIStatusError(f"HTTP {status}", response=response, body=None)


def _completion(
    content: str | None = "Hello!",
    tool_calls: list[tuple[str, str, str]] | None = None,
    finish_reason: str = "stop",
    usage: tuple[int, int] | None = None,
) -> SimpleNamespace:
    """Build an object shaped like an SDK ChatCompletion."""
    calls = [
        SimpleNamespace(
            id=id_,
            type="function",
            function=SimpleNamespace(name=name, arguments=arguments),
        )
        for id_, name, arguments in tool_calls or []
    ]
    message = SimpleNamespace(content=content, tool_calls=calls or None)
    usage_ns = None
    if usage is not None:
        usage_ns = SimpleNamespace(
            prompt_tokens=usage[0],
            completion_tokens=usage[1],
            total_tokens=usage[0] + usage[1],
        )
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message, finish_reason=finish_reason)],
        usage=usage_ns,
    )


def _make_transport(*outcomes: Any, max_attempts: int = 5, backoff_unit: float = 1.0):
    """Return (transport, client_mock, recorded_sleeps)."""
    client = MagicMock()
    client.chat.completions.create.side_effect = list(outcomes)
    sleeps: list[float] = []
    transport = ResilientTransport(
        client,
        max_attempts=max_attempts,
        backoff_unit=backoff_unit,
        sleep=sleeps.append,
    )
    return transport, client, sleeps


# ---------------------------------------------------------------------------
# Successful responses
# ---------------------------------------------------------------------------


class TestSuccess:
    def test_returns_completion_result(self) -> None:
        transport, client, sleeps = _make_transport(_completion("Hello!"))

        result = transport.send(_PAYLOAD)

        assert isinstance(result, CompletionResult)
        assert result.content == "Hello!"
        assert result.finish_reason == "stop"
        assert result.tool_calls == []
        assert sleeps == []
        client.chat.completions.create.assert_called_once_with(**_PAYLOAD)

    def test_tool_call_arguments_kept_raw(self) -> None:
        transport, _, _ = _make_transport(
            _completion(
                content=None,
                tool_calls=[("call_1", "search", '{"query": "weather in ')],
                finish_reason="tool_calls",
            )
        )

        result = transport.send(_PAYLOAD)

        assert result.tool_calls == [
            ToolCallRequest(id="call_1", name="search", arguments='{"query": "weather in ')
        ]

    def test_multiple_tool_calls_keep_order(self) -> None:
        transport, _, _ = _make_transport(
            _completion(
                content=None,
                tool_calls=[("c1", "a", "{}"), ("c2", "b", "{}")],
                finish_reason="tool_calls",
            )
        )

        result = transport.send(_PAYLOAD)

        assert [tc.name for tc in result.tool_calls] == ["a", "b"]

    def test_usage_is_recorded(self) -> None:
        transport, _, _ = _make_transport(_completion(usage=(12, 8)))

        result = transport.send(_PAYLOAD)

        assert result.usage is not None
        assert result.usage.total_tokens == 20

    def test_length_truncation_is_a_warning_not_a_failure(self, caplog) -> None:
        transport, _, _ = _make_transport(_completion("partial", finish_reason="length"))

        with caplog.at_level(logging.WARNING, logger="toolrelay.conversation.transport"):
            result = transport.send(_PAYLOAD)

        assert result.content == "partial"
        assert result.truncated
        assert "truncated" in caplog.text


# ---------------------------------------------------------------------------
# Retry policy
# ---------------------------------------------------------------------------


class TestRetry:
    @pytest.mark.parametrize("status", [429, 500, 503])
    def test_transient_status_is_retried(self, status: int) -> None:
        transport, client, sleeps = _make_transport(_status_error(status), _completion("ok"))

        result = transport.send(_PAYLOAD)

        assert result.content == "ok"
        assert client.chat.completions.create.call_count == 2
        assert sleeps == [1.0]

    def test_connection_error_is_retried(self) -> None:
        transport, client, sleeps = _make_transport(
            APIConnectionError(request=_REQUEST), _completion("ok")
        )

        assert transport.send(_PAYLOAD).content == "ok"
        assert client.chat.completions.create.call_count == 2

    def test_backoff_doubles_and_gives_up(self) -> None:
        transport, client, sleeps = _make_transport(
            *[_status_error(429) for _ in range(5)], max_attempts=5
        )

        with pytest.raises(TransportError) as excinfo:
            transport.send(_PAYLOAD)

        assert client.chat.completions.create.call_count == 5
        assert sleeps == [1.0, 2.0, 4.0, 8.0]
        assert all(a < b for a, b in zip(sleeps, sleeps[1:]))
        assert excinfo.value.status_code == 429
        assert excinfo.value.attempts == 5

    def test_backoff_unit_scales_delay(self) -> None:
        transport, _, sleeps = _make_transport(
            _status_error(503), _status_error(503), _completion("ok"), backoff_unit=0.5
        )

        transport.send(_PAYLOAD)

        assert sleeps == [0.5, 1.0]

    def test_terminal_status_is_not_retried(self) -> None:
        transport, client, sleeps = _make_transport(
            _status_error(400, body='{"error": "bad request"}'), _completion("unused")
        )

        with pytest.raises(TransportError) as excinfo:
            transport.send(_PAYLOAD)

        assert client.chat.completions.create.call_count == 1
        assert sleeps == []
        assert excinfo.value.status_code == 400
        assert "bad request" in excinfo.value.body

    def test_backoff_delay(self) -> None:
        transport, _, _ = _make_transport()
        assert [transport.backoff_delay(n) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_invalid_max_attempts(self) -> None:
        with pytest.raises(ValueError):
            ResilientTransport(MagicMock(), max_attempts=0)


# ---------------------------------------------------------------------------
# Construction from settings
# ---------------------------------------------------------------------------


class TestFromSettings:
    def test_missing_api_key_raises(self) -> None:
        with pytest.raises(ConfigurationError):
            ResilientTransport.from_settings(Settings(api_key=None))

    def test_builds_client_without_sdk_retries(self) -> None:
        settings = Settings(
            api_key="sk-test",
            base_url="http://localhost:11434/v1",
            request_timeout=12.0,
            max_attempts=3,
            backoff_unit=0.25,
        )
        with patch("toolrelay.conversation.transport.OpenAI") as mock_cls:
            transport = ResilientTransport.from_settings(settings)

        mock_cls.assert_called_once_with(
            api_key="sk-test",
            base_url="http://localhost:11434/v1",
            timeout=12.0,
            max_retries=0,
        )
        assert transport.max_attempts == 3
        assert transport.backoff_unit == 0.25


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------


class TestCompletionResult:
    def test_tool_call_reply_needs_no_content(self) -> None:
        result = CompletionResult(
            finish_reason="tool_calls",
            tool_calls=[ToolCallRequest(id="call_1", name="search", arguments="{}")],
        )

        assert result.content is None
        assert result.usage is None
        assert not result.truncated
