"""Tests for the chat-completions wrapper and its retry helper."""

import json
from types import SimpleNamespace

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from classes.llm_client import ChatLlmClient, MaxRetryErrorsException, call_with_retries_sync


class FakeCompletions:
    def __init__(self, response):
        self.response = response
        self.params = []

    def create(self, **params):
        self.params.append(params)
        return self.response


def _fake_openai(response):
    completions = FakeCompletions(response)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def _response(content=None, tool_calls=None, prompt_tokens=10, completion_tokens=5):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    usage = SimpleNamespace(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens,
        prompt_tokens_details=None,
    )
    return SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=usage)


def _sdk_tool_call(call_id, name, arguments):
    return SimpleNamespace(id=call_id, type="function", function=SimpleNamespace(name=name, arguments=arguments))


class TestMessageConversion:
    def test_roles_and_tool_results(self):
        client = ChatLlmClient("m", api_key="k", client=object())
        wire_call = {"id": "c1", "type": "function", "function": {"name": "get_projects", "arguments": "{}"}}
        converted = client._to_openai_messages([
            SystemMessage(content="sys"),
            HumanMessage(content="hi"),
            AIMessage(content="", additional_kwargs={"tool_calls": [wire_call]}),
            ToolMessage(content='{"projects": []}', tool_call_id="c1"),
        ])

        assert [m["role"] for m in converted] == ["system", "user", "assistant", "tool"]
        assert converted[2]["tool_calls"] == [wire_call]
        assert converted[3]["tool_call_id"] == "c1"

    def test_plain_assistant_has_no_tool_calls_key(self):
        client = ChatLlmClient("m", api_key="k", client=object())
        [converted] = client._to_openai_messages([AIMessage(content="done")])
        assert "tool_calls" not in converted


class TestInvoke:
    def test_tool_calls_keep_wire_shape(self):
        fake, completions = _fake_openai(_response(tool_calls=[_sdk_tool_call("c1", "create_project", '{"name": "Infra"}')]))
        client = ChatLlmClient("llama", api_key="k", client=fake, temperature=0.1, max_tokens=100)
        tools = [{"type": "function", "function": {"name": "create_project"}}]

        reply = client.invoke([HumanMessage(content="hi")], tools=tools, retries=1)

        assert reply.additional_kwargs["tool_calls"] == [
            {"id": "c1", "type": "function", "function": {"name": "create_project", "arguments": '{"name": "Infra"}'}}
        ]
        params = completions.params[0]
        assert params["model"] == "llama"
        assert params["tools"] == tools
        assert params["tool_choice"] == "auto"
        assert params["temperature"] == 0.1
        assert params["max_tokens"] == 100

    def test_text_reply_without_tools(self):
        fake, completions = _fake_openai(_response(content="Which project?"))
        client = ChatLlmClient("llama", api_key="k", client=fake)

        reply = client.invoke([HumanMessage(content="hi")], retries=1)

        assert reply.content == "Which project?"
        assert "tool_calls" not in reply.additional_kwargs
        assert "tools" not in completions.params[0]

    def test_object_arguments_are_encoded(self):
        fake, _ = _fake_openai(_response(tool_calls=[_sdk_tool_call("c1", "get_projects", {"status": "active"})]))
        reply = ChatLlmClient("m", api_key="k", client=fake).invoke([], retries=1)
        assert json.loads(reply.additional_kwargs["tool_calls"][0]["function"]["arguments"]) == {"status": "active"}

    def test_usage_accumulates(self):
        fake, _ = _fake_openai(_response(content="x", prompt_tokens=7, completion_tokens=3))
        client = ChatLlmClient("m", api_key="k", client=fake)
        client.invoke([], retries=1)
        client.invoke([], retries=1)

        usage = client.get_accrued_usage()
        assert usage["prompt_token_count"] == 14
        assert usage["candidates_token_count"] == 6
        assert usage["total_token_count"] == 20

    def test_no_choices(self):
        fake, _ = _fake_openai(SimpleNamespace(choices=[], usage=None))
        reply = ChatLlmClient("m", api_key="k", client=fake).invoke([], retries=1)
        assert reply.content == ""


class TestCallWithRetries:
    def test_returns_first_success(self):
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) < 2:
                raise RuntimeError("transient")
            return "ok"

        assert call_with_retries_sync(flaky, retries=3) == "ok"
        assert len(attempts) == 2

    def test_gives_up_with_cause(self):
        logged = []

        def always_fails():
            raise RuntimeError("still broken")

        with pytest.raises(MaxRetryErrorsException) as info:
            call_with_retries_sync(always_fails, retries=2, log=logged.append)

        assert isinstance(info.value.__cause__, RuntimeError)
        assert len(logged) == 2

    def test_non_retryable_raised_at_once(self):
        attempts = []

        def rejected():
            attempts.append(1)
            raise PermissionError("bad key")

        with pytest.raises(PermissionError):
            call_with_retries_sync(rejected, retries=5, no_retry=lambda e: isinstance(e, PermissionError))
        assert len(attempts) == 1
