"""
Shared fixtures: an in-memory SQLite store seeded with a small team, and a
scripted stand-in for the reasoning backend.
"""
import json
from typing import Any, Callable, List, Union

import pytest
from langchain_core.messages import AIMessage
from sqlalchemy.pool import StaticPool

from classes.agent_models import ToolCall
from classes.data_store import DataStore
from classes.db_helpers import create_session_factory, get_db_engine
from classes.operation_catalog import (
    CreateProjectParams,
    CreateTeamMemberParams,
    OperationCatalog,
)


# ============================================================================
# Database
# ============================================================================


@pytest.fixture
def engine():
    engine = get_db_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def store(session_factory) -> DataStore:
    return DataStore(session_factory)


@pytest.fixture
def team(store) -> dict:
    """Mihir (default owner), two engineers and a direct report, keyed by nick."""
    members = {}
    for nick, role in [("Mihir", "Manager"), ("Maria", "Engineer"), ("Alex", "Engineer"), ("Dana", "Direct")]:
        members[nick] = store.create_team_member(CreateTeamMemberParams(nick=nick, role=role))["member"]
    return members


@pytest.fixture
def ops_project(store) -> dict:
    return store.create_project(CreateProjectParams(name="Operations Review", category="Operations"))["project"]


@pytest.fixture
def catalog() -> OperationCatalog:
    return OperationCatalog()


# ============================================================================
# Tool calls and the scripted backend
# ============================================================================


def wire_call(name: str, arguments: Union[dict, str], call_id: str = "call_1") -> dict:
    """A tool call exactly as the backend sends it (arguments JSON-encoded)."""
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return {"id": call_id, "type": "function", "function": {"name": name, "arguments": arguments}}


def tool_call(name: str, arguments: Union[dict, str], call_id: str = "call_1") -> ToolCall:
    return ToolCall.from_wire(wire_call(name, arguments, call_id))


def ai_reply(*calls: dict, content: str = "") -> AIMessage:
    additional = {"tool_calls": list(calls)} if calls else {}
    return AIMessage(content=content, additional_kwargs=additional)


Reply = Union[AIMessage, Callable[[List[Any]], AIMessage]]


class ScriptedChatClient:
    """
    Plays back one reply per invoke(). A reply may be a callable taking the
    conversation so far, for answers that depend on what a read returned.
    """

    def __init__(self, replies: List[Reply]):
        self.replies = list(replies)
        self.calls: List[List[Any]] = []
        self.tools_seen: List[Any] = []

    def invoke(self, messages, *, tools=None, retries=3) -> AIMessage:
        self.calls.append(list(messages))
        self.tools_seen.append(tools)
        if not self.replies:
            return AIMessage(content="")
        reply = self.replies.pop(0)
        if callable(reply):
            return reply(list(messages))
        return reply


@pytest.fixture
def scripted():
    """Factory: scripted(reply, reply, ...) -> ScriptedChatClient."""
    def _make(*replies: Reply) -> ScriptedChatClient:
        return ScriptedChatClient(list(replies))
    return _make


@pytest.fixture(autouse=True)
def _no_backend_key(monkeypatch):
    # tests never talk to a real backend
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    monkeypatch.delenv("LLM_API_KEY", raising=False)
