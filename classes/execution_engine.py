# classes/execution_engine.py
"""
Runs an execution plan against the data store, strictly in plan order.

Every call ends up as exactly one OperationResult (a fan-out call as one per
targeted member). A failing call never stops the ones after it, and nothing
that already ran is undone.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from classes.agent_models import OperationResult, ToolCall
from classes.errors import OperationError
from classes.operation_catalog import (
    FAN_OUT_TARGET,
    OperationCatalog,
    OperationSpec,
    check_identifiers,
    parse_tool_arguments,
    validate_arguments,
)
from classes.plan_expander import expand_fan_out, members_for_fan_out

logger = logging.getLogger("opsync_agent")

# operations that may omit the project/template they attach to
_BACKFILLED_OPERATIONS = ("create_requirement", "create_requirements_for_all_team_members")


@dataclass
class ExecutionContext:
    """
    What earlier calls of the same plan produced. One per execute() call.
    """
    last_project: Optional[dict] = None
    last_template: Optional[dict] = None
    last_team_member: Optional[dict] = None
    team_members: List[dict] = field(default_factory=list)
    projects: List[dict] = field(default_factory=list)

    def backfill(self, arguments: dict) -> dict:
        args = dict(arguments)
        if _is_missing(args.get("projectId")) and self.last_project:
            args["projectId"] = self.last_project["id"]
        if _is_missing(args.get("templateId")) and self.last_template:
            args["templateId"] = self.last_template["id"]
        return args

    def remember(self, operation: str, result: dict) -> None:
        if operation == "create_project":
            self.last_project = result.get("project")
        elif operation == "create_template":
            self.last_template = result.get("template")
        elif operation == "create_team_member":
            self.last_team_member = result.get("member")
        elif operation == "get_team_members":
            self.team_members = result.get("members") or []
        elif operation == "get_projects":
            self.projects = result.get("projects") or []


def _is_missing(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def summarize(results: List[OperationResult]) -> Tuple[int, int, str]:
    success_count = sum(1 for r in results if r.status == "success")
    error_count = sum(1 for r in results if r.status == "error")
    message = f"Completed {success_count} operation(s) successfully"
    if error_count > 0:
        message += f", {error_count} failed"
    return success_count, error_count, message + "."


class ExecutionEngine:
    def __init__(self, catalog: OperationCatalog, store, default_owner_nick: str | None = None):
        self.catalog = catalog
        self.store = store
        self.default_owner_nick = default_owner_nick

    def execute(self, plan: List[ToolCall]) -> List[OperationResult]:
        context = ExecutionContext()
        results: List[OperationResult] = []
        for call in plan:
            results.extend(self._execute_call(call, context))
        return results

    def _execute_call(self, call: ToolCall, context: ExecutionContext) -> List[OperationResult]:
        name = call.operation_name
        try:
            args = parse_tool_arguments(call.raw_arguments)
            spec = self.catalog.get(name)
            if spec is None:
                raise OperationError(f"Unknown function: {name}")

            if name in _BACKFILLED_OPERATIONS:
                args = context.backfill(args)

            params = validate_arguments(spec, args)
            check_identifiers(spec, params)

            if spec.fan_out:
                return self._execute_fan_out(spec, args, params, context)

            return [self._dispatch(spec, params, context)]
        except OperationError as e:
            logger.warning(f"Operation {name} failed: {e}")
            return [OperationResult(tool=name, status="error", error=str(e))]
        except Exception as e:
            logger.exception(f"Unexpected failure in {name}")
            return [OperationResult(tool=name, status="error", error=str(e) or "Unknown error occurred")]

    def _execute_fan_out(self, spec: OperationSpec, args: dict, params, context: ExecutionContext) -> List[OperationResult]:
        role = getattr(params, "role", None)
        try:
            members = members_for_fan_out(self.store, role)
        except Exception as e:
            logger.exception(f"Could not resolve team members for {spec.name}")
            raise OperationError(str(e) or "Unknown error occurred") from e
        if not members:
            suffix = f' with role "{role}"' if role else ""
            raise OperationError(f"No team members found{suffix}.")

        target = self.catalog.get(FAN_OUT_TARGET)
        results = []
        for member_args in expand_fan_out(args, members):
            try:
                member_params = validate_arguments(target, member_args)
                check_identifiers(target, member_params)
                result = self._dispatch(target, member_params, context)
            except OperationError as e:
                logger.warning(f"Operation {FAN_OUT_TARGET} (from {spec.name}) failed: {e}")
                result = OperationResult(tool=FAN_OUT_TARGET, status="error", error=str(e))
            result.expanded_from = spec.name
            results.append(result)
        return results

    def _dispatch(self, spec: OperationSpec, params, context: ExecutionContext) -> OperationResult:
        try:
            if spec.name == FAN_OUT_TARGET and not params.owner_id:
                owner = self._default_owner()
                if owner:
                    params = params.model_copy(update={"owner_id": owner["id"]})
            result = getattr(self.store, spec.name)(params)
        except OperationError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected store failure in {spec.name}")
            raise OperationError(str(e) or "Unknown error occurred") from e

        context.remember(spec.name, result)
        return OperationResult(tool=spec.name, status="success", result=result)

    def _default_owner(self) -> Optional[dict]:
        # looked up on every use; the team may have changed since the plan was made
        if not self.default_owner_nick:
            return None
        return self.store.find_member_by_nick(self.default_owner_nick)
