"""
Unit tests for the agent loop and the streamed OpenAI client.
"""

import json
import threading
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from deepsearch.agent.llm import chat_with_tools_stream
from deepsearch.agent.runner import SYSTEM_PROMPT, run_chat_stream, to_openai_messages
from deepsearch.core.errors import SearchAbortedError, ServiceUnavailableError

RESULTS = [{"title": "Python", "link": "https://python.org", "snippet": "Official site"}]


def _steps(*steps):
    """Fake chat_with_tools_stream that replays one scripted step per call and records the messages sent."""
    calls = []
    remaining = list(steps)

    def _stream(messages, tools, max_tokens=0):
        calls.append([dict(m) for m in messages])
        yield from remaining.pop(0)

    return _stream, calls


class TestToOpenAIMessages:
    """Tests for to_openai_messages()."""

    def test_plain_text_messages(self) -> None:
        messages = [
            {"role": "user", "parts": [{"type": "text", "text": "hi"}]},
            {"role": "assistant", "content": "hello"},
            {"role": "data", "content": "ignored"},
        ]
        assert to_openai_messages(messages) == [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
        ]

    def test_tool_invocations_become_tool_messages(self) -> None:
        messages = [
            {"role": "user", "content": "news?"},
            {
                "role": "assistant",
                "parts": [
                    {"type": "text", "text": "Let me search."},
                    {
                        "type": "tool-invocation",
                        "toolInvocation": {
                            "state": "result",
                            "toolCallId": "call_1",
                            "toolName": "searchWeb",
                            "args": {"query": "news"},
                            "result": RESULTS,
                        },
                    },
                    {"type": "text", "text": "Here it is."},
                ],
            },
        ]
        out = to_openai_messages(messages)
        assert out[0] == {"role": "user", "content": "news?"}
        assert out[1]["role"] == "assistant"
        assert out[1]["content"] == "Let me search."
        assert out[1]["tool_calls"][0]["id"] == "call_1"
        assert json.loads(out[1]["tool_calls"][0]["function"]["arguments"]) == {"query": "news"}
        assert out[2] == {"role": "tool", "tool_call_id": "call_1", "content": json.dumps(RESULTS)}
        assert out[3] == {"role": "assistant", "content": "Here it is."}

    def test_unfinished_tool_calls_are_dropped(self) -> None:
        messages = [{
            "role": "assistant",
            "parts": [
                {"type": "tool-invocation", "toolInvocation": {"state": "call", "toolCallId": "c", "toolName": "searchWeb"}},
                {"type": "text", "text": "done"},
            ],
        }]
        assert to_openai_messages(messages) == [{"role": "assistant", "content": "done"}]


class TestRunChatStream:
    """Tests for run_chat_stream()."""

    def test_answer_without_tools(self) -> None:
        fake, calls = _steps([("content_delta", "Hel"), ("content_delta", "lo"), ("content_done",)])
        with patch("deepsearch.agent.runner.chat_with_tools_stream", fake):
            events = list(run_chat_stream([{"role": "user", "content": "hi"}]))
        assert [e["event"] for e in events] == ["text_delta", "text_delta", "done"]
        message = events[-1]["message"]
        assert message["role"] == "assistant"
        assert message["content"] == "Hello"
        assert message["parts"] == [{"type": "text", "text": "Hello"}]
        assert calls[0][0] == {"role": "system", "content": SYSTEM_PROMPT}

    def test_tool_step_then_answer(self) -> None:
        fake, calls = _steps(
            [("tool_calls", [{"id": "call_1", "name": "searchWeb", "arguments": {"query": "python"}}], "")],
            [("content_delta", "See [Python](https://python.org)."), ("content_done",)],
        )
        with patch("deepsearch.agent.runner.chat_with_tools_stream", fake), \
                patch("deepsearch.agent.runner.execute_tool", return_value=RESULTS) as mock_tool:
            events = list(run_chat_stream([{"role": "user", "content": "python?"}]))

        assert [e["event"] for e in events] == ["tool_call", "tool_result", "text_delta", "done"]
        assert events[0]["arguments"] == {"query": "python"}
        assert events[1]["result"] == RESULTS
        mock_tool.assert_called_once()
        parts = events[-1]["message"]["parts"]
        assert parts[0]["type"] == "tool-invocation"
        assert parts[0]["toolInvocation"] == {
            "state": "result",
            "toolCallId": "call_1",
            "toolName": "searchWeb",
            "args": {"query": "python"},
            "result": RESULTS,
        }
        assert parts[1] == {"type": "text", "text": "See [Python](https://python.org)."}
        # Second model call sees the tool call and its result
        second = calls[1]
        assert second[-2]["tool_calls"][0]["id"] == "call_1"
        assert second[-1] == {"role": "tool", "tool_call_id": "call_1", "content": json.dumps(RESULTS)}

    def test_stops_after_max_steps(self) -> None:
        step = [("tool_calls", [{"id": "c", "name": "searchWeb", "arguments": {"query": "q"}}], "")]
        fake, calls = _steps(*([step] * 3))
        with patch("deepsearch.agent.runner.chat_with_tools_stream", fake), \
                patch("deepsearch.agent.runner.execute_tool", return_value=[]), \
                patch("deepsearch.agent.runner.MAX_STEPS", 3):
            events = list(run_chat_stream([{"role": "user", "content": "q"}]))
        assert len(calls) == 3
        assert events[-1]["event"] == "done"
        assert len(events[-1]["message"]["parts"]) == 3

    def test_model_failure_yields_error(self) -> None:
        def _broken(messages, tools, max_tokens=0):
            raise ServiceUnavailableError("OPENAI_API_KEY must be set in .env")
            yield  # pragma: no cover

        with patch("deepsearch.agent.runner.chat_with_tools_stream", _broken):
            events = list(run_chat_stream([{"role": "user", "content": "q"}]))
        assert events == [{"event": "error", "message": "OPENAI_API_KEY must be set in .env"}]

    def test_abort_before_next_step_stops_without_model_call(self) -> None:
        abort = threading.Event()

        def _aborting_tool(name, args, abort=None):
            abort.set()
            return []

        step = [("tool_calls", [{"id": "c", "name": "searchWeb", "arguments": {"query": "q"}}], "")]
        fake, calls = _steps(step, [("content_done",)])
        with patch("deepsearch.agent.runner.chat_with_tools_stream", fake), \
                patch("deepsearch.agent.runner.execute_tool", _aborting_tool):
            events = list(run_chat_stream([{"role": "user", "content": "q"}], abort=abort))
        assert len(calls) == 1
        assert [e["event"] for e in events] == ["tool_call", "tool_result"]

    def test_aborted_search_ends_stream_quietly(self) -> None:
        step = [("tool_calls", [{"id": "c", "name": "searchWeb", "arguments": {"query": "q"}}], "")]
        fake, calls = _steps(step, [("content_done",)])
        with patch("deepsearch.agent.runner.chat_with_tools_stream", fake), \
                patch("deepsearch.agent.runner.execute_tool", side_effect=SearchAbortedError("aborted")):
            events = list(run_chat_stream([{"role": "user", "content": "q"}], abort=threading.Event()))
        assert len(calls) == 1
        assert [e["event"] for e in events] == ["tool_call"]


def _chunk(content=None, tool_calls=None):
    delta = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta)])


def _tool_delta(index, id=None, name=None, arguments=None):
    return SimpleNamespace(index=index, id=id, function=SimpleNamespace(name=name, arguments=arguments))


class TestChatWithToolsStream:
    """Tests for chat_with_tools_stream()."""

    def test_requires_api_key(self) -> None:
        with patch("deepsearch.agent.llm.OPENAI_API_KEY", ""):
            with pytest.raises(ServiceUnavailableError):
                list(chat_with_tools_stream([], []))

    def test_streams_content(self) -> None:
        client = MagicMock()
        client.chat.completions.create.return_value = iter([_chunk("a"), _chunk("b"), SimpleNamespace(choices=[])])
        with patch("deepsearch.agent.llm.OPENAI_API_KEY", "k"), \
                patch("deepsearch.agent.llm.OpenAI", return_value=client):
            items = list(chat_with_tools_stream([{"role": "user", "content": "hi"}], []))
        assert items == [("content_delta", "a"), ("content_delta", "b"), ("content_done",)]
        assert client.chat.completions.create.call_args.kwargs["stream"] is True

    def test_accumulates_tool_call_fragments(self) -> None:
        client = MagicMock()
        client.chat.completions.create.return_value = iter([
            _chunk(tool_calls=[_tool_delta(0, id="call_1", name="searchWeb", arguments='{"que')]),
            _chunk(tool_calls=[_tool_delta(0, arguments='ry": "python"}')]),
        ])
        with patch("deepsearch.agent.llm.OPENAI_API_KEY", "k"), \
                patch("deepsearch.agent.llm.OpenAI", return_value=client):
            items = list(chat_with_tools_stream([{"role": "user", "content": "hi"}], []))
        assert items == [
            ("tool_calls", [{"id": "call_1", "name": "searchWeb", "arguments": {"query": "python"}}], ""),
        ]
