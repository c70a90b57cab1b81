# classes/round_orchestrator.py
"""
Bounded multi-round conversation with the reasoning backend.

Each round the backend sees the whole conversation plus the tool definitions
and answers with free text and/or tool calls. Read calls are executed right
away and their results fed back, so the backend can look things up before
deciding what to write. Write calls are only collected: they get a "queued"
acknowledgement and are returned in order as the plan.

    GATHERING -> (round had reads) READ_SATISFYING -> GATHERING ... -> DONE
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import List

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage

from classes.agent_models import ToolCall
from classes.base_utils import BaseUtils
from classes.errors import OperationError
from classes.operation_catalog import (
    OperationCatalog,
    check_identifiers,
    parse_tool_arguments,
    validate_arguments,
)

logger = logging.getLogger("opsync_agent")


class RoundState(str, enum.Enum):
    GATHERING = "gathering"
    READ_SATISFYING = "read_satisfying"
    DONE = "done"


@dataclass
class OrchestrationOutcome:
    tool_calls: List[ToolCall] = field(default_factory=list)
    reply_text: str = ""
    rounds: int = 0
    final_state: RoundState = RoundState.DONE


class RoundOrchestrator(BaseUtils):
    def __init__(self, chat_client, catalog: OperationCatalog, store, max_rounds: int = 5, retries: int = 2):
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        self.chat_client = chat_client
        self.catalog = catalog
        self.store = store
        self.max_rounds = max_rounds
        self.retries = retries

    def run(self, instruction: str, system_prompt: str) -> OrchestrationOutcome:
        messages: List[BaseMessage] = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=instruction),
        ]
        tools = self.catalog.tool_definitions()
        outcome = OrchestrationOutcome()

        for round_no in range(self.max_rounds):
            state = RoundState.GATHERING
            outcome.rounds = round_no + 1
            reply: AIMessage = self.chat_client.invoke(messages, tools=tools, retries=self.retries)
            raw_calls = reply.additional_kwargs.get("tool_calls") or []

            if not raw_calls:
                # free text only ends the conversation; on the first round it is the whole answer
                if round_no == 0:
                    outcome.reply_text = str(reply.content or "")
                state = RoundState.DONE
                break

            messages.append(reply)
            had_reads = False
            for raw in raw_calls:
                call = ToolCall.from_wire(raw)
                outcome.tool_calls.append(call)

                if self.catalog.is_read_operation(call.operation_name):
                    had_reads = True
                    content = self._run_read(call)
                else:
                    content = self.to_json({"status": "queued"})
                messages.append(ToolMessage(content=content, tool_call_id=call.id))

            logger.debug(
                "Round %d: %d tool call(s), reads=%s", round_no + 1, len(raw_calls), had_reads,
            )

            if not had_reads:
                state = RoundState.DONE
                break
            # the backend now gets to look at what the reads returned
            state = RoundState.READ_SATISFYING

        if state != RoundState.DONE:
            logger.info("Round cap (%d) reached; returning %d collected call(s)", self.max_rounds, len(outcome.tool_calls))
        outcome.final_state = RoundState.DONE
        return outcome

    def _run_read(self, call: ToolCall) -> str:
        spec = self.catalog.get(call.operation_name)
        try:
            args = parse_tool_arguments(call.raw_arguments)
        except OperationError:
            args = {}

        try:
            params = validate_arguments(spec, args)
            check_identifiers(spec, params)
            result = getattr(self.store, spec.name)(params)
        except Exception as e:
            logger.warning(f"Read operation {spec.name} failed during reasoning: {e}")
            return self.to_json({"error": str(e)})
        return self.to_json(result)
