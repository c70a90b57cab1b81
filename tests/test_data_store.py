"""Tests for the SQLAlchemy-backed store behind the operations."""

import uuid
from datetime import date

import pytest

from classes.errors import ConstraintViolationError, DuplicateEntityError, EntityNotFoundError, OperationValidationError
from classes.operation_catalog import (
    CreateProjectParams,
    CreateRequirementParams,
    CreateTeamMemberParams,
    CreateTemplateParams,
    DeleteProjectParams,
    DeleteTeamMemberParams,
    GetProjectsParams,
    GetRequirementsParams,
    GetTeamMembersParams,
    UpdateProjectParams,
    UpdateRequirementParams,
)


def _requirement(project_id, **overrides):
    fields = {"projectId": project_id, "name": "Weekly sync", "type": "one-time", "dueDate": "2025-01-06"}
    fields.update(overrides)
    return CreateRequirementParams.model_validate(fields)


class TestProjects:
    def test_create_project_defaults(self, store):
        project = store.create_project(CreateProjectParams(name="Infra"))["project"]
        assert project["status"] == "active"
        assert project["color"] == "#4f6ff5"
        assert project["category"] is None
        uuid.UUID(project["id"])

    def test_uncategorized_filter(self, store, ops_project):
        store.create_project(CreateProjectParams(name="Loose Ends"))
        result = store.get_projects(GetProjectsParams(uncategorizedOnly=True))
        assert [p["name"] for p in result["projects"]] == ["Loose Ends"]
        assert result["count"] == 1

    def test_update_requires_a_field(self, store, ops_project):
        with pytest.raises(OperationValidationError, match="No fields to update"):
            store.update_project(UpdateProjectParams(projectId=ops_project["id"]))

    def test_update_missing_project(self, store):
        with pytest.raises(EntityNotFoundError):
            store.update_project(UpdateProjectParams(projectId=str(uuid.uuid4()), name="X"))

    def test_update_sets_only_given_fields(self, store, ops_project):
        updated = store.update_project(UpdateProjectParams(projectId=ops_project["id"], status="on-hold"))["project"]
        assert updated["status"] == "on-hold"
        assert updated["name"] == "Operations Review"

    def test_delete_project_takes_requirements_along(self, store, ops_project):
        store.create_requirement(_requirement(ops_project["id"]))
        result = store.delete_project(DeleteProjectParams(projectId=ops_project["id"]))
        assert result["deleted"] is True
        assert result["requirementsDeleted"] == 1
        assert store.get_requirements(GetRequirementsParams())["count"] == 0


class TestRequirements:
    def test_create_and_list_with_owner_nick(self, store, team, ops_project):
        created = store.create_requirement(_requirement(ops_project["id"], ownerId=team["Maria"]["id"]))["requirement"]
        assert created["status"] == "pending"
        assert created["due_date"] == "2025-01-06"

        listed = store.get_requirements(GetRequirementsParams(projectId=ops_project["id"]))["requirements"]
        assert listed[0]["owner_nick"] == "Maria"
        assert listed[0]["project_name"] == "Operations Review"

    def test_recurrence_only_kept_for_recurring(self, store, ops_project):
        created = store.create_requirement(_requirement(ops_project["id"], recurrence="weekly"))["requirement"]
        assert created["recurrence"] is None

    def test_unknown_project(self, store):
        with pytest.raises(EntityNotFoundError, match="Project with ID"):
            store.create_requirement(_requirement(str(uuid.uuid4())))

    def test_unknown_owner(self, store, ops_project):
        with pytest.raises(EntityNotFoundError, match="Team member with ID"):
            store.create_requirement(_requirement(ops_project["id"], ownerId=str(uuid.uuid4())))

    def test_update_requirement(self, store, ops_project):
        created = store.create_requirement(_requirement(ops_project["id"]))["requirement"]
        updated = store.update_requirement(
            UpdateRequirementParams(requirementId=created["id"], status="completed", dueDate=date(2025, 2, 1))
        )["requirement"]
        assert updated["status"] == "completed"
        assert updated["due_date"] == "2025-02-01"


class TestTeamAndTemplates:
    def test_duplicate_nick(self, store, team):
        with pytest.raises(DuplicateEntityError, match='nick "Maria" already exists'):
            store.create_team_member(CreateTeamMemberParams(nick="Maria", role="Engineer"))

    def test_members_filtered_by_loose_role(self, store, team):
        result = store.get_team_members(GetTeamMembersParams(role="engineers"))
        assert [m["nick"] for m in result["members"]] == ["Alex", "Maria"]
        assert result["filter"] == {"role": "Engineer"}

    def test_member_with_requirements_cannot_be_deleted(self, store, team, ops_project):
        store.create_requirement(_requirement(ops_project["id"], ownerId=team["Dana"]["id"]))
        with pytest.raises(ConstraintViolationError):
            store.delete_team_member(DeleteTeamMemberParams(memberId=team["Dana"]["id"]))
        assert store.find_member_by_nick("Dana") is not None

    def test_template_with_goal_areas(self, store):
        params = CreateTemplateParams.model_validate({
            "name": "SR Quality Review",
            "goalAreas": [
                {"name": "Quality", "goals": [{"goal": "Fewer escalations", "successCriteria": "< 5 per month"}]},
            ],
        })
        template = store.create_template(params)["template"]
        assert template["name"] == "SR Quality Review"
        uuid.UUID(template["id"])
