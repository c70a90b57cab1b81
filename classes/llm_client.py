import asyncio
import json
import logging
import random
import threading
import time
import traceback
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

import openai
from openai import OpenAI
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage

T = TypeVar("T")

logger = logging.getLogger("opsync_agent")


class MaxRetryErrorsException(Exception):
    pass


# Global backoff state (shared across all clients)
_global_backoff_lock = threading.Lock()
_global_wait_until = 0.0
_global_backoff_seconds = 30.0
_GLOBAL_BACKOFF_MAX = 600.0


def _is_non_retryable_error(e: Exception) -> bool:
    # a bad key or a malformed request will not get better by waiting
    return isinstance(
        e,
        (
            openai.AuthenticationError,
            openai.PermissionDeniedError,
            openai.BadRequestError,
            openai.NotFoundError,
        ),
    )


def call_with_retries_sync(
    fn: Callable[[], T],
    *,
    retries: int = 3,
    log: Callable[[str], None] | None = None,
    no_retry: Callable[[Exception], bool] = _is_non_retryable_error,
) -> T:
    """
    Run a sync LLM call with global 429/timeout backoff + retries.
    Errors for which no_retry(e) is true are re-raised immediately.
    """
    last_exception: Exception | None = None

    def _is_timeout_error(e: Exception) -> bool:
        if isinstance(e, (asyncio.TimeoutError, openai.APITimeoutError)):
            return True
        msg = repr(e)
        return "TimeoutError" in msg or "timed out" in msg.lower()

    def _is_resource_exhausted_error(e: Exception) -> bool:
        if isinstance(e, openai.RateLimitError):
            return True
        msg = str(e)
        return (
            "429" in msg
            and (
                "RESOURCE_EXHAUSTED" in msg
                or "Resource has been exhausted" in msg
                or "Too Many Requests" in msg
                or "rate limit" in msg.lower()
            )
        )

    def _respect_global_backoff() -> None:
        while True:
            with _global_backoff_lock:
                now = time.monotonic()
                wait = _global_wait_until - now
            if wait <= 0:
                return
            time.sleep(min(wait, 1.0))

    def _register_429_and_get_delay() -> float:
        global _global_wait_until, _global_backoff_seconds

        with _global_backoff_lock:
            now = time.monotonic()
            base = _global_backoff_seconds
            delay = random.uniform(base * 0.95, base * 1.35)
            _global_backoff_seconds = min(_global_backoff_seconds * 2, _GLOBAL_BACKOFF_MAX)
            _global_wait_until = max(_global_wait_until, now + delay)
            return delay

    def _reset_backoff_on_success() -> None:
        global _global_backoff_seconds
        _global_backoff_seconds = max(1.0, _global_backoff_seconds * 0.5)

    for attempt in range(retries):
        _respect_global_backoff()
        start_time = time.time()
        try:
            result = fn()
            _reset_backoff_on_success()
            return result
        except Exception as e:
            elapsed = time.time() - start_time
            last_exception = e

            if no_retry(e):
                if log:
                    log(f"Attempt {attempt+1} failed with a non-retryable error (elapsed={elapsed:.2f}s): {e}")
                raise

            if _is_resource_exhausted_error(e) or _is_timeout_error(e):
                # the last attempt does not need to arm the backoff for anybody
                if attempt + 1 < retries:
                    delay = _register_429_and_get_delay()
                    msg = f"Attempt {attempt+1} got 429/timeout, backing off ~{delay:.1f}s."
                else:
                    msg = f"Attempt {attempt+1} got 429/timeout."
            else:
                msg = f"Attempt {attempt+1} failed."

            if log:
                log(f"{msg} (elapsed={elapsed:.2f}s): {e}\n{traceback.format_exc()}")

    raise MaxRetryErrorsException(f"All {retries} retry attempts failed.") from last_exception


class BaseLlmClient:
    """
    Token usage accounting, accumulated over every call made by the client.
    """

    last_usage: Optional[Dict[str, int]]

    def _merge_usage(self, resp: Any) -> None:
        if resp is None:
            return
        usage = getattr(resp, "usage", None)
        if usage is None:
            return
        details = getattr(usage, "prompt_tokens_details", None)
        inc = {
            "prompt_token_count": getattr(usage, "prompt_tokens", 0) or 0,
            "candidates_token_count": getattr(usage, "completion_tokens", 0) or 0,
            "total_token_count": getattr(usage, "total_tokens", 0) or 0,
            "cached_content_token_count": (getattr(details, "cached_tokens", 0) or 0) if details else 0,
        }
        if self.last_usage is None:
            self.last_usage = inc
            return
        for k, v in inc.items():
            self.last_usage[k] = (self.last_usage.get(k, 0) or 0) + (v or 0)

    def get_accrued_usage(self) -> Dict[str, int]:
        return dict(self.last_usage or {})


class ChatLlmClient(BaseLlmClient):
    """
    Chat-completions wrapper with function tools, for any OpenAI-compatible endpoint:

        reply = chat_llm.invoke([SystemMessage(...), HumanMessage(...)], tools=[...])
        reply.additional_kwargs["tool_calls"]  # [{id, type, function: {name, arguments}}]

    Conversation in and out is langchain_core messages; the reply is an AIMessage
    whose content is the free text and whose tool calls keep the raw wire shape.
    """

    def __init__(
        self,
        model_name: str,
        *,
        api_key: str,
        base_url: str | None = None,
        timeout: float | None = None,
        temperature: float = 0.3,
        max_tokens: int = 4096,
        client: Any = None,
    ):
        self.model_name = model_name
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._timeout = timeout
        self.last_usage: Optional[Dict[str, int]] = None

        if client is not None:
            self._client = client
        else:
            client_kwargs: Dict[str, Any] = {"api_key": api_key, "max_retries": 0}
            if base_url:
                client_kwargs["base_url"] = base_url
            if timeout is not None:
                client_kwargs["timeout"] = timeout
            self._client = OpenAI(**client_kwargs)

    def _to_openai_messages(self, messages: Sequence[BaseMessage]) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        for m in messages:
            if isinstance(m, SystemMessage):
                out.append({"role": "system", "content": str(m.content)})
            elif isinstance(m, HumanMessage):
                out.append({"role": "user", "content": str(m.content)})
            elif isinstance(m, AIMessage):
                entry: Dict[str, Any] = {"role": "assistant", "content": str(m.content or "")}
                tool_calls = m.additional_kwargs.get("tool_calls")
                if tool_calls:
                    entry["tool_calls"] = tool_calls
                out.append(entry)
            elif isinstance(m, ToolMessage):
                out.append({"role": "tool", "tool_call_id": m.tool_call_id, "content": str(m.content)})
            else:
                out.append({"role": "user", "content": str(m.content)})
        return out

    @staticmethod
    def _tool_call_to_dict(tc: Any) -> Dict[str, Any]:
        if isinstance(tc, dict):
            fn = tc.get("function") or {}
            name, arguments, call_id = fn.get("name"), fn.get("arguments"), tc.get("id")
        else:
            fn = getattr(tc, "function", None)
            name = getattr(fn, "name", None)
            arguments = getattr(fn, "arguments", None)
            call_id = getattr(tc, "id", None)
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments or {})
        return {
            "id": call_id or "",
            "type": "function",
            "function": {"name": name or "", "arguments": arguments},
        }

    def _invoke_once(self, messages: Sequence[BaseMessage], tools: List[dict] | None) -> AIMessage:
        """
        Single HTTP call without retries/backoff.
        """
        params: Dict[str, Any] = {
            "model": self.model_name,
            "messages": self._to_openai_messages(messages),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if tools:
            params["tools"] = tools
            params["tool_choice"] = "auto"

        resp = self._client.chat.completions.create(**params)
        self._merge_usage(resp)

        choices = getattr(resp, "choices", None) or []
        if not choices:
            return AIMessage(content="")
        msg = choices[0].message
        tool_calls = [self._tool_call_to_dict(tc) for tc in (getattr(msg, "tool_calls", None) or [])]
        additional = {"tool_calls": tool_calls} if tool_calls else {}
        return AIMessage(content=getattr(msg, "content", None) or "", additional_kwargs=additional)

    def invoke(
        self,
        messages: Sequence[BaseMessage],
        *,
        tools: List[dict] | None = None,
        retries: int = 3,
    ) -> AIMessage:
        """
        Synchronous chat call with global 429/timeout backoff + retries.
        """
        return call_with_retries_sync(
            lambda: self._invoke_once(messages, tools),
            retries=retries,
            log=lambda msg: logger.warning(f"[CHAT-LLM-RETRY] {msg}"),
        )
