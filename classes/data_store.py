# classes/data_store.py
"""
SQLAlchemy-backed store for projects, requirements, team members and templates.

Every method opens its own session and commits (or rolls back) before
returning, so one failing operation never leaves another half-applied.
Results are plain JSON-able dicts.
"""
import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from classes.entities import (
    CheckInTemplate,
    Project,
    Requirement,
    TeamMember,
    TemplateGoal,
    TemplateGoalArea,
)
from classes.entity_resolver import normalize_role
from classes.errors import (
    ConstraintViolationError,
    DuplicateEntityError,
    EntityNotFoundError,
    OperationValidationError,
)
from classes.operation_catalog import (
    CreateProjectParams,
    CreateRequirementParams,
    CreateTeamMemberParams,
    CreateTemplateParams,
    DeleteProjectParams,
    DeleteRequirementParams,
    DeleteTeamMemberParams,
    GetProjectsParams,
    GetRequirementsParams,
    GetTeamMembersParams,
    UpdateProjectParams,
    UpdateRequirementParams,
    UpdateTeamMemberParams,
)

logger = logging.getLogger("opsync_agent")

DEFAULT_PROJECT_COLOR = "#4f6ff5"


def _strip(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class DataStore:
    def __init__(self, session_factory: sessionmaker):
        self.SessionFactory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session: Session = self.SessionFactory()
        try:
            yield session
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise ConstraintViolationError(f"Constraint violation: {e.orig}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # -----------------------
    # Plain listings (entity resolver / fan-out)
    # -----------------------

    def list_projects(self) -> List[dict]:
        with self._session() as session:
            rows = session.query(Project).order_by(Project.name).all()
            return [p.to_dict() for p in rows]

    def list_team_members(self, role: Optional[str] = None) -> List[dict]:
        normalized = normalize_role(role)
        with self._session() as session:
            query = session.query(TeamMember)
            if normalized:
                query = query.filter(TeamMember.role == normalized)
            return [m.to_dict() for m in query.order_by(TeamMember.nick).all()]

    def find_member_by_nick(self, nick: str) -> Optional[dict]:
        if not nick:
            return None
        with self._session() as session:
            member = session.query(TeamMember).filter(TeamMember.nick == nick).first()
            return member.to_dict() if member else None

    # -----------------------
    # Read operations
    # -----------------------

    def get_team_members(self, params: GetTeamMembersParams) -> dict:
        normalized = normalize_role(params.role)
        members = self.list_team_members(normalized)
        return {
            "members": members,
            "filter": {"role": normalized} if normalized else None,
            "count": len(members),
        }

    def get_projects(self, params: GetProjectsParams) -> dict:
        with self._session() as session:
            query = session.query(Project)
            if params.uncategorized_only:
                query = query.filter(Project.category.is_(None))
            if params.status:
                query = query.filter(Project.status == params.status)
            rows = [p.to_dict() for p in query.order_by(Project.created_at).all()]

        return {
            "projects": rows,
            "count": len(rows),
            "filter": {"uncategorizedOnly": params.uncategorized_only, "status": params.status},
        }

    def get_requirements(self, params: GetRequirementsParams) -> dict:
        with self._session() as session:
            query = (
                session.query(Requirement, TeamMember.nick, Project.name)
                .outerjoin(TeamMember, TeamMember.id == Requirement.owner_id)
                .outerjoin(Project, Project.id == Requirement.project_id)
            )
            if params.project_id:
                query = query.filter(Requirement.project_id == params.project_id)
            if params.status:
                query = query.filter(Requirement.status == params.status)
            if params.owner_id:
                query = query.filter(Requirement.owner_id == params.owner_id)

            rows = []
            for requirement, owner_nick, project_name in query.order_by(Requirement.created_at).all():
                row = requirement.to_dict()
                row["owner_nick"] = owner_nick
                row["project_name"] = project_name
                rows.append(row)

        return {"requirements": rows, "count": len(rows)}

    # -----------------------
    # Templates
    # -----------------------

    def create_template(self, params: CreateTemplateParams) -> dict:
        with self._session() as session:
            template = CheckInTemplate(name=params.name, description=_strip(params.description))
            session.add(template)
            session.flush()

            for i, area in enumerate(params.goal_areas or []):
                goal_area = TemplateGoalArea(template_id=template.id, name=area.name, display_order=i)
                session.add(goal_area)
                session.flush()

                for j, goal in enumerate(area.goals):
                    session.add(
                        TemplateGoal(
                            goal_area_id=goal_area.id,
                            goal=goal.goal,
                            success_criteria=goal.success_criteria,
                            report_url=goal.report_url,
                            display_order=j,
                        )
                    )
            session.flush()
            return {"template": template.to_dict()}

    # -----------------------
    # Projects
    # -----------------------

    def create_project(self, params: CreateProjectParams) -> dict:
        with self._session() as session:
            project = Project(
                name=params.name,
                description=_strip(params.description),
                status=params.status or "active",
                color=params.color or DEFAULT_PROJECT_COLOR,
                category=_strip(params.category),
            )
            session.add(project)
            session.flush()
            return {"project": project.to_dict()}

    def update_project(self, params: UpdateProjectParams) -> dict:
        updates = params.model_dump(
            include={"name", "description", "status", "color", "category"},
            exclude_none=True,
        )
        if not updates:
            raise OperationValidationError(
                "No fields to update. Provide at least one field (name, description, status, color, or category)."
            )

        with self._session() as session:
            project = session.get(Project, params.project_id)
            if project is None:
                raise EntityNotFoundError(f'Project with ID "{params.project_id}" not found.')
            for key, value in updates.items():
                setattr(project, key, value)
            session.flush()
            return {"project": project.to_dict()}

    def delete_project(self, params: DeleteProjectParams) -> dict:
        with self._session() as session:
            project = session.get(Project, params.project_id)
            if project is None:
                raise EntityNotFoundError(f'Project with ID "{params.project_id}" not found.')
            removed = (
                session.query(Requirement)
                .filter(Requirement.project_id == params.project_id)
                .delete(synchronize_session=False)
            )
            session.delete(project)
            logger.info(f"Deleting project {params.project_id} and {removed} requirement(s)")
            return {"deleted": True, "projectId": params.project_id, "requirementsDeleted": removed}

    # -----------------------
    # Requirements
    # -----------------------

    def _check_requirement_refs(self, session: Session, project_id=None, owner_id=None, template_id=None) -> None:
        if project_id and session.get(Project, project_id) is None:
            raise EntityNotFoundError(f'Project with ID "{project_id}" not found.')
        if owner_id and session.get(TeamMember, owner_id) is None:
            raise EntityNotFoundError(f'Team member with ID "{owner_id}" not found.')
        if template_id and session.get(CheckInTemplate, template_id) is None:
            raise EntityNotFoundError(f'Template with ID "{template_id}" not found.')

    def create_requirement(self, params: CreateRequirementParams) -> dict:
        with self._session() as session:
            self._check_requirement_refs(session, params.project_id, params.owner_id, params.template_id)
            requirement = Requirement(
                project_id=params.project_id,
                name=params.name,
                description=_strip(params.description),
                type=params.type,
                recurrence=params.recurrence if params.type == "recurring" else None,
                due_date=params.due_date,
                status="pending",
                owner_id=params.owner_id,
                is_per_member_check_in=params.is_per_member_check_in,
                template_id=params.template_id,
            )
            session.add(requirement)
            session.flush()
            return {"requirement": requirement.to_dict()}

    def update_requirement(self, params: UpdateRequirementParams) -> dict:
        updates = params.model_dump(
            include={"name", "description", "type", "recurrence", "due_date", "status", "owner_id"},
            exclude_none=True,
        )
        if not updates:
            raise OperationValidationError("No fields to update.")

        with self._session() as session:
            requirement = session.get(Requirement, params.requirement_id)
            if requirement is None:
                raise EntityNotFoundError(f'Requirement with ID "{params.requirement_id}" not found.')
            self._check_requirement_refs(session, owner_id=updates.get("owner_id"))
            for key, value in updates.items():
                setattr(requirement, key, value)
            session.flush()
            return {"requirement": requirement.to_dict()}

    def delete_requirement(self, params: DeleteRequirementParams) -> dict:
        with self._session() as session:
            requirement = session.get(Requirement, params.requirement_id)
            if requirement is None:
                raise EntityNotFoundError(f'Requirement with ID "{params.requirement_id}" not found.')
            session.delete(requirement)
            return {"deleted": True, "requirementId": params.requirement_id}

    # -----------------------
    # Team members
    # -----------------------

    def create_team_member(self, params: CreateTeamMemberParams) -> dict:
        with self._session() as session:
            existing = session.query(TeamMember).filter(TeamMember.nick == params.nick).first()
            if existing is not None:
                raise DuplicateEntityError(f'A team member with nick "{params.nick}" already exists.')
            member = TeamMember(nick=params.nick, role=params.role)
            session.add(member)
            session.flush()
            return {"member": member.to_dict()}

    def update_team_member(self, params: UpdateTeamMemberParams) -> dict:
        updates = params.model_dump(include={"nick", "role"}, exclude_none=True)
        if not updates:
            raise OperationValidationError("No fields to update. Provide at least nick or role.")

        with self._session() as session:
            member = session.get(TeamMember, params.member_id)
            if member is None:
                raise EntityNotFoundError(f'Team member with ID "{params.member_id}" not found.')
            for key, value in updates.items():
                setattr(member, key, value)
            session.flush()
            return {"member": member.to_dict()}

    def delete_team_member(self, params: DeleteTeamMemberParams) -> dict:
        with self._session() as session:
            member = session.get(TeamMember, params.member_id)
            if member is None:
                raise EntityNotFoundError(f'Team member with ID "{params.member_id}" not found.')
            session.delete(member)
            return {"deleted": True, "memberId": params.member_id}
