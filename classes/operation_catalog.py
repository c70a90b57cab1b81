# classes/operation_catalog.py
"""
Static registry of the operations the agent is allowed to run.

Each OperationSpec carries:
  - the name the reasoning backend uses when calling it
  - a pydantic parameter model (camelCase aliases on the wire, unknown fields ignored)
  - a renderer producing the one-line human description used by previews
  - whether it is a read (side-effect free, executed inline during reasoning rounds)
  - whether it is a fan-out write (expanded into one call per team member)
  - which fields hold identifiers that must look like UUIDs before dispatch
"""
import copy
import json
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from classes.errors import ArgumentParseError, InvalidIdentifierError, OperationValidationError

ProjectStatus = Literal["active", "on-hold", "completed"]
RequirementType = Literal["recurring", "one-time"]
Recurrence = Literal["daily", "weekly", "monthly", "quarterly"]
RequirementStatus = Literal["pending", "completed", "overdue"]

FAN_OUT_TARGET = "create_requirement"

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


def is_valid_uuid(value: Any) -> bool:
    return isinstance(value, str) and bool(_UUID_RE.match(value))


# -----------------------
# Parameter models
# -----------------------

class OperationParams(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, str_strip_whitespace=True)

    @field_validator("*", mode="before")
    @classmethod
    def _blank_is_missing(cls, value):
        # the backend often sends "" for "not provided"
        if isinstance(value, str) and not value.strip():
            return None
        return value


class GetTeamMembersParams(OperationParams):
    role: Optional[str] = Field(
        None,
        description="Optional filter by role (e.g., 'Engineer', 'Manager', 'Direct', 'COE'). If not provided, returns all team members.",
    )


class GetProjectsParams(OperationParams):
    uncategorized_only: bool = Field(
        False,
        alias="uncategorizedOnly",
        description="If true, only return projects that have no category assigned",
    )
    status: Optional[ProjectStatus] = Field(None, description="Optional filter by project status")

    @field_validator("uncategorized_only", mode="before")
    @classmethod
    def _none_is_false(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return False
        return value


class GetRequirementsParams(OperationParams):
    project_id: Optional[str] = Field(None, alias="projectId", description="Optional UUID of the project to filter requirements by")
    status: Optional[RequirementStatus] = Field(None, description="Optional filter by requirement status")
    owner_id: Optional[str] = Field(None, alias="ownerId", description="Optional UUID of the team member to filter requirements by")


class GoalParams(OperationParams):
    goal: str = Field(..., description="The goal name")
    success_criteria: str = Field(..., alias="successCriteria", description="Success criteria for the goal")
    report_url: Optional[str] = Field(None, alias="reportUrl", description="Optional URL for the report")


class GoalAreaParams(OperationParams):
    name: str = Field(..., description="Name of the goal area")
    goals: List[GoalParams] = Field(default_factory=list)


class CreateTemplateParams(OperationParams):
    name: str = Field(..., description="The name of the template (e.g., 'SR Quality Review')")
    description: Optional[str] = Field(None, description="Optional description of the template")
    goal_areas: Optional[List[GoalAreaParams]] = Field(
        None,
        alias="goalAreas",
        description="Optional array of goal areas with their goals",
    )


class CreateProjectParams(OperationParams):
    name: str = Field(..., description="The name of the project")
    description: Optional[str] = Field(None, description="Optional description of the project")
    status: Optional[ProjectStatus] = Field(None, description="Project status (default: active)")
    color: Optional[str] = Field(None, description="Hex color code for the project (default: #4f6ff5)")
    category: Optional[str] = Field(None, description="Optional category for organizing projects")


class UpdateProjectParams(OperationParams):
    project_id: str = Field(..., alias="projectId", description="UUID of the project to update")
    name: Optional[str] = Field(None, description="New name for the project")
    description: Optional[str] = Field(None, description="New description for the project")
    status: Optional[ProjectStatus] = Field(None, description="New status for the project")
    color: Optional[str] = Field(None, description="New hex color code for the project")
    category: Optional[str] = Field(
        None,
        description="New category for organizing the project (e.g., 'Engineering', 'Operations', 'Planning')",
    )


class DeleteProjectParams(OperationParams):
    project_id: str = Field(..., alias="projectId", description="UUID of the project to delete")


class _RequirementFields(OperationParams):
    project_id: str = Field(..., alias="projectId", description="UUID of the project to add the requirement to")
    name: str = Field(..., description="Name of the requirement/task")
    description: Optional[str] = Field(None, description="Optional description")
    type: RequirementType = Field(..., description="Type of requirement")
    recurrence: Optional[Recurrence] = Field(None, description="Recurrence pattern (required if type is recurring)")
    due_date: date = Field(..., alias="dueDate", description="Due date in YYYY-MM-DD format")
    is_per_member_check_in: bool = Field(
        False,
        alias="isPerMemberCheckIn",
        description="Whether this is a per-member check-in requirement",
    )
    template_id: Optional[str] = Field(None, alias="templateId", description="Optional UUID of the check-in template to use")

    @field_validator("is_per_member_check_in", mode="before")
    @classmethod
    def _none_is_false(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return False
        return value


class CreateRequirementParams(_RequirementFields):
    owner_id: Optional[str] = Field(
        None,
        alias="ownerId",
        description="Optional UUID of the team member assigned to this requirement",
    )


class CreateRequirementsForAllParams(_RequirementFields):
    name: str = Field(..., description="Base name of the requirement (will be suffixed with the team member name)")
    role: Optional[str] = Field(
        None,
        description="Optional filter by role (e.g., 'Engineer', 'Manager', 'Direct', 'COE'). If provided, creates requirements only for team members with this role.",
    )


class UpdateRequirementParams(OperationParams):
    requirement_id: str = Field(..., alias="requirementId", description="UUID of the requirement to update")
    name: Optional[str] = Field(None, description="New name for the requirement")
    description: Optional[str] = Field(None, description="New description for the requirement")
    type: Optional[RequirementType] = Field(None, description="New type for the requirement")
    recurrence: Optional[Recurrence] = Field(None, description="New recurrence pattern")
    due_date: Optional[date] = Field(None, alias="dueDate", description="New due date in YYYY-MM-DD format")
    status: Optional[RequirementStatus] = Field(None, description="New status for the requirement")
    owner_id: Optional[str] = Field(None, alias="ownerId", description="UUID of the team member to assign the requirement to")


class DeleteRequirementParams(OperationParams):
    requirement_id: str = Field(..., alias="requirementId", description="UUID of the requirement to delete")


class CreateTeamMemberParams(OperationParams):
    nick: str = Field(..., description="The nickname/name of the team member (must be unique)")
    role: str = Field(
        ...,
        description="The role of the team member (e.g., 'Engineer', 'Manager', 'Direct', 'COE', 'Contractor')",
    )


class UpdateTeamMemberParams(OperationParams):
    member_id: str = Field(..., alias="memberId", description="UUID of the team member to update")
    nick: Optional[str] = Field(None, description="New nickname for the team member")
    role: Optional[str] = Field(
        None,
        description="New role for the team member (e.g., 'Engineer', 'Manager', 'Direct', 'COE', 'Contractor')",
    )


class DeleteTeamMemberParams(OperationParams):
    member_id: str = Field(..., alias="memberId", description="UUID of the team member to delete")


# -----------------------
# Renderers
# -----------------------

def _set_clause(updates: List[str]) -> str:
    return ", ".join(updates) or "fields"


def _render_get_team_members(args: dict, member_name: str | None = None) -> str:
    if args.get("role"):
        return f'Fetch team members with role "{args["role"]}"'
    return "Fetch all team members from the database"


def _render_get_projects(args: dict, member_name: str | None = None) -> str:
    if args.get("uncategorizedOnly"):
        return "Fetch uncategorized projects from the database"
    if args.get("status"):
        return f'Fetch projects with status "{args["status"]}"'
    return "Fetch all projects from the database"


def _render_get_requirements(args: dict, member_name: str | None = None) -> str:
    filters = []
    if args.get("projectId"):
        filters.append(f'project {args["projectId"]}')
    if args.get("status"):
        filters.append(f'status "{args["status"]}"')
    if args.get("ownerId"):
        filters.append(f'owner {args["ownerId"]}')
    if filters:
        return f"Fetch requirements filtered by {', '.join(filters)}"
    return "Fetch all requirements from the database"


def _render_create_template(args: dict, member_name: str | None = None) -> str:
    areas = args.get("goalAreas")
    suffix = f" with {len(areas)} goal area(s)" if isinstance(areas, list) and areas else ""
    return f'Create template "{args.get("name")}"{suffix}'


def _render_create_project(args: dict, member_name: str | None = None) -> str:
    category = f' in category "{args["category"]}"' if args.get("category") else ""
    return f'Create project "{args.get("name")}"{category}'


def _render_update_project(args: dict, member_name: str | None = None) -> str:
    updates = []
    if args.get("category"):
        updates.append(f'category to "{args["category"]}"')
    if args.get("name"):
        updates.append(f'name to "{args["name"]}"')
    if args.get("status"):
        updates.append(f'status to "{args["status"]}"')
    if args.get("color"):
        updates.append(f'color to "{args["color"]}"')
    if args.get("description"):
        updates.append("description")
    return f"Update project {args.get('projectId')}: set {_set_clause(updates)}"


def _render_delete_project(args: dict, member_name: str | None = None) -> str:
    return f"Delete project {args.get('projectId')} and all its requirements"


def _render_create_requirement(args: dict, member_name: str | None = None) -> str:
    if member_name:
        assigned = f" assigned to {member_name}"
    elif args.get("ownerId"):
        assigned = " (assigned)"
    else:
        assigned = ""
    return f'Create {args.get("type")} requirement "{args.get("name")}"{assigned} due {args.get("dueDate")}'


def _render_create_requirements_for_all(args: dict, member_name: str | None = None) -> str:
    role = f' with role "{args["role"]}"' if args.get("role") else ""
    return f'Create {args.get("type")} requirement "{args.get("name")}" for each team member{role}, due {args.get("dueDate")}'


def _render_update_requirement(args: dict, member_name: str | None = None) -> str:
    updates = []
    if args.get("name"):
        updates.append(f'name to "{args["name"]}"')
    if args.get("status"):
        updates.append(f'status to "{args["status"]}"')
    if args.get("dueDate"):
        updates.append(f"due date to {args['dueDate']}")
    if args.get("ownerId"):
        updates.append("owner")
    if args.get("type"):
        updates.append(f'type to "{args["type"]}"')
    return f"Update requirement {args.get('requirementId')}: set {_set_clause(updates)}"


def _render_delete_requirement(args: dict, member_name: str | None = None) -> str:
    return f"Delete requirement {args.get('requirementId')}"


def _render_create_team_member(args: dict, member_name: str | None = None) -> str:
    return f'Add team member "{args.get("nick")}" with role "{args.get("role")}"'


def _render_update_team_member(args: dict, member_name: str | None = None) -> str:
    updates = []
    if args.get("nick"):
        updates.append(f'nick to "{args["nick"]}"')
    if args.get("role"):
        updates.append(f'role to "{args["role"]}"')
    return f"Update team member {args.get('memberId')}: set {_set_clause(updates)}"


def _render_delete_team_member(args: dict, member_name: str | None = None) -> str:
    return f"Remove team member {args.get('memberId')}"


# -----------------------
# Registry
# -----------------------

@dataclass(frozen=True, eq=False)
class OperationSpec:
    name: str
    description: str
    params_model: Type[OperationParams]
    renderer: Callable[..., str]
    is_read: bool = False
    fan_out: bool = False
    # python field name -> label used in error messages
    identifier_fields: Dict[str, str] = field(default_factory=dict)

    def describe(self, arguments: dict | None, member_name: str | None = None) -> str:
        return self.renderer(arguments or {}, member_name)

    def tool_definition(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": simplify_json_schema(self.params_model.model_json_schema(by_alias=True)),
            },
        }


OPERATIONS: tuple[OperationSpec, ...] = (
    OperationSpec(
        name="get_team_members",
        description="Get team members from the database with optional filters. Use this to find team member IDs for assignment or to filter by specific roles.",
        params_model=GetTeamMembersParams,
        renderer=_render_get_team_members,
        is_read=True,
    ),
    OperationSpec(
        name="get_projects",
        description="Get existing projects from the database. Use this to find projects, especially uncategorized ones. Always call this before updating projects.",
        params_model=GetProjectsParams,
        renderer=_render_get_projects,
        is_read=True,
    ),
    OperationSpec(
        name="get_requirements",
        description="Get requirements (tasks) from the database with optional filters. Use this to find existing requirements by project, status, or owner.",
        params_model=GetRequirementsParams,
        renderer=_render_get_requirements,
        is_read=True,
        identifier_fields={"project_id": "project ID", "owner_id": "owner ID"},
    ),
    OperationSpec(
        name="create_template",
        description="Create a new check-in template with optional goal areas and goals.",
        params_model=CreateTemplateParams,
        renderer=_render_create_template,
    ),
    OperationSpec(
        name="create_project",
        description="Create a new project in the database.",
        params_model=CreateProjectParams,
        renderer=_render_create_project,
    ),
    OperationSpec(
        name="update_project",
        description="Update an existing project. Use this to change a project's category, name, description, status, or color. Use this when the user wants to categorize, recategorize, or modify existing projects.",
        params_model=UpdateProjectParams,
        renderer=_render_update_project,
        identifier_fields={"project_id": "project ID"},
    ),
    OperationSpec(
        name="delete_project",
        description="Delete a project and all its associated requirements from the database.",
        params_model=DeleteProjectParams,
        renderer=_render_delete_project,
        identifier_fields={"project_id": "project ID"},
    ),
    OperationSpec(
        name="create_requirement",
        description="Create a new requirement (task) for a project.",
        params_model=CreateRequirementParams,
        renderer=_render_create_requirement,
        identifier_fields={"project_id": "project ID", "owner_id": "owner ID", "template_id": "template ID"},
    ),
    OperationSpec(
        name="create_requirements_for_all_team_members",
        description="Create a requirement for each team member. Use this when the user asks to create a task/requirement for each or all team members. Supports filtering by role.",
        params_model=CreateRequirementsForAllParams,
        renderer=_render_create_requirements_for_all,
        fan_out=True,
        identifier_fields={"project_id": "project ID", "template_id": "template ID"},
    ),
    OperationSpec(
        name="update_requirement",
        description="Update an existing requirement (task). Use this to change a requirement's name, description, status, type, due date, owner, or other fields.",
        params_model=UpdateRequirementParams,
        renderer=_render_update_requirement,
        identifier_fields={"requirement_id": "requirement ID", "owner_id": "owner ID"},
    ),
    OperationSpec(
        name="delete_requirement",
        description="Delete a requirement (task) from the database.",
        params_model=DeleteRequirementParams,
        renderer=_render_delete_requirement,
        identifier_fields={"requirement_id": "requirement ID"},
    ),
    OperationSpec(
        name="create_team_member",
        description="Add a new team member to the database.",
        params_model=CreateTeamMemberParams,
        renderer=_render_create_team_member,
    ),
    OperationSpec(
        name="update_team_member",
        description="Update an existing team member's nick or role.",
        params_model=UpdateTeamMemberParams,
        renderer=_render_update_team_member,
        identifier_fields={"member_id": "member ID"},
    ),
    OperationSpec(
        name="delete_team_member",
        description="Remove a team member from the database.",
        params_model=DeleteTeamMemberParams,
        renderer=_render_delete_team_member,
        identifier_fields={"member_id": "member ID"},
    ),
)


class OperationCatalog:
    def __init__(self, operations=OPERATIONS):
        self._operations: Dict[str, OperationSpec] = {}
        for op in operations:
            if op.name in self._operations:
                raise ValueError(f"Duplicate operation name: {op.name}")
            self._operations[op.name] = op

    def list_operations(self) -> List[OperationSpec]:
        return list(self._operations.values())

    def get(self, name: str) -> OperationSpec | None:
        return self._operations.get(name)

    def is_read_operation(self, name: str) -> bool:
        op = self._operations.get(name)
        return bool(op and op.is_read)

    def is_fan_out_operation(self, name: str) -> bool:
        op = self._operations.get(name)
        return bool(op and op.fan_out)

    def describe(self, name: str, arguments: dict | None, member_name: str | None = None) -> str:
        op = self._operations.get(name)
        if op is None:
            return f"Execute {name}"
        return op.describe(arguments, member_name)

    def tool_definitions(self) -> List[dict]:
        return [op.tool_definition() for op in self._operations.values()]


DEFAULT_CATALOG = OperationCatalog()


# -----------------------
# Argument handling
# -----------------------

def parse_tool_arguments(raw: Any) -> dict:
    """
    Decode the JSON-encoded arguments of a tool call.
    Raises ArgumentParseError when they are not a JSON object.
    """
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ArgumentParseError("Failed to parse function arguments") from e
    if not isinstance(parsed, dict):
        raise ArgumentParseError("Failed to parse function arguments")
    return parsed


def validate_arguments(spec: OperationSpec, arguments: dict) -> OperationParams:
    try:
        return spec.params_model.model_validate(arguments)
    except ValidationError as e:
        problems = []
        for err in e.errors():
            loc = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
            problems.append(f"{loc}: {err.get('msg')}")
        raise OperationValidationError(
            f"Invalid arguments for {spec.name}: {'; '.join(problems)}"
        ) from e


def simplify_json_schema(schema: dict) -> dict:
    """
    Inline $defs, drop titles and collapse Optional[X] (anyOf X|null) so the
    function-tool schema stays small and flat for the reasoning backend.
    """
    defs = schema.get("$defs", {})

    def walk(node):
        if isinstance(node, list):
            return [walk(n) for n in node]
        if not isinstance(node, dict):
            return node

        if "$ref" in node:
            target = defs.get(node["$ref"].split("/")[-1], {})
            merged = {**copy.deepcopy(target), **{k: v for k, v in node.items() if k != "$ref"}}
            return walk(merged)

        out = {}
        for k, v in node.items():
            if k in ("title", "$defs"):
                continue
            if k == "default" and v is None:
                continue
            out[k] = walk(v)

        variants = out.get("anyOf")
        if isinstance(variants, list):
            non_null = [v for v in variants if v.get("type") != "null"]
            if len(non_null) == 1:
                out.pop("anyOf")
                out = {**non_null[0], **out}
        return out

    return walk(schema)


def check_identifiers(spec: OperationSpec, params: OperationParams) -> None:
    """
    Identifier-shaped fields must hold UUIDs before anything touches the store.
    """
    for field_name, label in spec.identifier_fields.items():
        value = getattr(params, field_name, None)
        if value is not None and not is_valid_uuid(value):
            raise InvalidIdentifierError(label, value)
