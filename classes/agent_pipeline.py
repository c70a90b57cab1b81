# classes/agent_pipeline.py
"""
Invocation boundary of the agent: one instruction in, one CommandResponse out.

    rate-limit gate -> (confirmed plan?) ----------------------------> execute -> audit
                    -> entity dictionary -> reasoning rounds -> preview
                                                             -> execute -> audit
"""
import logging
import time
from datetime import date
from typing import Callable, List, Optional

import openai
from sqlalchemy.orm import sessionmaker

from classes import settings
from classes.agent_models import CommandRequest, CommandResponse, RateLimitInfo, ToolCall
from classes.agent_prompts import ADDITIONAL_RULES_BLOCK, AGENT_SYSTEM_PROMPT
from classes.audit_logger import AuditLogger
from classes.base_utils import BaseUtils
from classes.data_store import DataStore
from classes.entity_resolver import EntityDictionary, EntityResolver
from classes.errors import BackendError, ConfigurationError
from classes.execution_engine import ExecutionEngine, summarize
from classes.operation_catalog import DEFAULT_CATALOG, OperationCatalog
from classes.plan_expander import PreviewBuilder
from classes.rate_limiter import RateLimiter
from classes.round_orchestrator import RoundOrchestrator

logger = logging.getLogger("opsync_agent")

NO_OPERATIONS_MESSAGE = "No operations identified from your request."
RATE_LIMITED_MESSAGE = "Rate limit exceeded"
MISSING_INSTRUCTION_MESSAGE = "Instruction is required"
CONFIG_ERROR_MESSAGE = "Reasoning backend API key not configured"


def classify_backend_error(e: Exception) -> BackendError:
    """
    Map a reasoning-backend failure to what the operator is told.
    Retry wrappers are looked through via the exception cause chain.
    """
    if isinstance(e, BackendError):
        return e

    chain = []
    cur: Optional[BaseException] = e
    while cur is not None and cur not in chain:
        chain.append(cur)
        cur = cur.__cause__

    for err in chain:
        if isinstance(err, openai.AuthenticationError):
            return BackendError(BackendError.AUTH, "Authentication failed", "Invalid or missing reasoning backend API key.")
        if isinstance(err, openai.RateLimitError):
            return BackendError(BackendError.RATE_LIMIT, "Rate limit exceeded", "Too many requests. Please try again in a few moments.")
        if isinstance(err, openai.APIConnectionError):
            return BackendError(BackendError.NETWORK, "Network error", "Unable to connect to the reasoning backend.")

    for err in chain:
        text = str(err).lower()
        if "api key" in text:
            return BackendError(BackendError.AUTH, "Authentication failed", "Invalid or missing reasoning backend API key.")
        if "rate limit" in text:
            return BackendError(BackendError.RATE_LIMIT, "Rate limit exceeded", "Too many requests. Please try again in a few moments.")
        if "network" in text or "enotfound" in text:
            return BackendError(BackendError.NETWORK, "Network error", "Unable to connect to the reasoning backend.")

    return BackendError(BackendError.UNKNOWN, "Failed to process AI request", str(e) or "Unknown error")


class AgentPipeline(BaseUtils):
    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        catalog: OperationCatalog = DEFAULT_CATALOG,
        rate_limiter: RateLimiter | None = None,
        chat_client_factory: Callable[[], object] | None = None,
        default_owner_nick: str | None = settings.DEFAULT_OWNER_NICK,
        max_rounds: int = settings.MAX_ROUNDS,
        llm_retries: int = settings.LLM_RETRIES,
    ):
        self.SessionFactory = session_factory
        self.catalog = catalog
        self.store = DataStore(session_factory)
        self.audit = AuditLogger(session_factory)
        self.rate_limiter = rate_limiter
        # built per request so a missing key only fails the requests that need the backend
        self.chat_client_factory = chat_client_factory or self._build_chat_llm
        self.default_owner_nick = default_owner_nick
        self.max_rounds = max_rounds
        self.llm_retries = llm_retries

    # -----------------------
    # Entry point
    # -----------------------

    def execute_command(self, request: CommandRequest, caller_id: str | None = None) -> CommandResponse:
        start = time.monotonic()

        def elapsed_ms() -> int:
            return int((time.monotonic() - start) * 1000)

        rate_info = None
        if caller_id is not None and self.rate_limiter is not None:
            decision = self.rate_limiter.check(caller_id)
            rate_info = RateLimitInfo(remaining=decision.remaining, reset_in_seconds=decision.reset_in_seconds())
            if not decision.allowed:
                return CommandResponse(
                    success=False,
                    message=RATE_LIMITED_MESSAGE,
                    error=f"Too many requests. Please try again in {rate_info.reset_in_seconds} seconds.",
                    execution_time_ms=elapsed_ms(),
                    rate_limit=rate_info,
                    rate_limited=True,
                )

        prompt = request.instruction or ""

        if request.confirmed_plan:
            response = self._execute_plan(prompt, request.confirmed_plan, request.automation_id, elapsed_ms)
            response.rate_limit = rate_info
            return response

        if not prompt:
            return CommandResponse(
                success=False,
                message=MISSING_INSTRUCTION_MESSAGE,
                error="Provide an instruction or a confirmed plan.",
                execution_time_ms=elapsed_ms(),
                rate_limit=rate_info,
                missing_instruction=True,
            )

        try:
            chat_client = self.chat_client_factory()
        except ConfigurationError as e:
            logger.error(f"AI agent not configured: {e}")
            return CommandResponse(
                success=False,
                message=CONFIG_ERROR_MESSAGE,
                error=str(e),
                execution_time_ms=elapsed_ms(),
                rate_limit=rate_info,
                config_error=True,
            )

        try:
            dictionary = EntityResolver(self.store, self.default_owner_nick).build()
            system_prompt = self.build_system_prompt(request.extra_rules, dictionary)
            orchestrator = RoundOrchestrator(
                chat_client, self.catalog, self.store, max_rounds=self.max_rounds, retries=self.llm_retries,
            )
            outcome = orchestrator.run(prompt, system_prompt)
        except Exception as e:
            failure = classify_backend_error(e)
            logger.error(f"AI agent error ({failure.category}): {failure.detail}", exc_info=e)
            self._record_failure_quietly(prompt, failure.detail, elapsed_ms(), request.automation_id)
            return CommandResponse(
                success=False,
                message=failure.user_message,
                error=failure.detail,
                execution_time_ms=elapsed_ms(),
                rate_limit=rate_info,
                backend_failure=True,
            )

        if not outcome.tool_calls:
            return CommandResponse(
                success=False,
                message=outcome.reply_text or NO_OPERATIONS_MESSAGE,
                execution_time_ms=elapsed_ms(),
                rate_limit=rate_info,
            )

        if request.preview_only:
            entries = PreviewBuilder(self.catalog, self.store).build(outcome.tool_calls)
            return CommandResponse(
                success=True,
                preview=True,
                message=f"Found {len(entries)} operation(s) to execute. Please confirm.",
                operations=entries,
                plan=outcome.tool_calls,
                execution_time_ms=elapsed_ms(),
                rate_limit=rate_info,
            )

        response = self._execute_plan(prompt, outcome.tool_calls, request.automation_id, elapsed_ms)
        response.rate_limit = rate_info
        return response

    # -----------------------
    # Helpers
    # -----------------------

    def build_system_prompt(self, extra_rules: str | None, dictionary: EntityDictionary) -> str:
        additional = ""
        if extra_rules:
            additional = self.unsafe_string_format(ADDITIONAL_RULES_BLOCK, RULES=extra_rules)
        return self.unsafe_string_format(
            AGENT_SYSTEM_PROMPT,
            TODAY=date.today().isoformat(),
            ADDITIONAL_RULES=additional,
            PROJECT_DICTIONARY=dictionary.render_projects(),
            TEAM_CONTEXT=dictionary.render_team(),
        )

    def _execute_plan(self, prompt: str, plan: List[ToolCall], automation_id, elapsed_ms) -> CommandResponse:
        engine = ExecutionEngine(self.catalog, self.store, self.default_owner_nick)
        results = engine.execute(plan)
        success_count, error_count, message = summarize(results)
        execution_time = elapsed_ms()
        self.color_print(message, "green" if error_count == 0 else "yellow")

        log_id = None
        try:
            log_id = self.audit.record(prompt, results, execution_time, automation_id)
        except Exception as e:
            logger.warning(f"Failed to log AI execution: {e}")

        return CommandResponse(
            success=error_count == 0,
            message=message,
            operations=results,
            execution_time_ms=execution_time,
            log_id=log_id,
        )

    def _record_failure_quietly(self, prompt: str, error: str, execution_time: int, automation_id) -> None:
        try:
            self.audit.record_failure(prompt, error, execution_time, automation_id)
        except Exception as e:
            logger.warning(f"Failed to log AI execution error: {e}")
