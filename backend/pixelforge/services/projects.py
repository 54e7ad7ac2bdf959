# pixelforge/services/projects.py
"""
Project and document service.

Projects and documents live in the workspace store (services/workspace.py).
Every mutation is gated by the permission predicates in
services/permissions.py using the caller's role and username; membership
checks (is the lead a project-lead? are the assignees developers?) read the
user directory.
"""
import datetime as dt
import logging
from typing import List, Optional

from pixelforge.models.user import UserRole
from pixelforge.schemas.project import Document, Project, ProjectResult, ProjectStatus
from pixelforge.schemas.user import UserProfile, utc_now
from pixelforge.services import permissions
from pixelforge.services.audit import AuditSink
from pixelforge.services.directory import DirectoryStore
from pixelforge.services.workspace import InMemoryWorkspaceStore, WorkspaceStore

logger = logging.getLogger("uvicorn.error")

PROJECT_NOT_FOUND_MESSAGE = "Project not found."
DOCUMENT_NOT_FOUND_MESSAGE = "Document not found."
FORBIDDEN_MESSAGE = "You do not have permission to perform this action."


def _fail(message: str) -> ProjectResult:
    return ProjectResult(success=False, message=message)


class ProjectService:
    def __init__(
        self,
        directory: DirectoryStore,
        audit: Optional[AuditSink] = None,
        workspace: Optional[WorkspaceStore] = None,
    ):
        self.directory = directory
        self.audit = audit
        self.workspace = workspace or InMemoryWorkspaceStore()

    async def _audit(self, username: str, action: str, details: str) -> None:
        if self.audit is None:
            return
        try:
            await self.audit.append(username, action, details)
        except Exception:
            logger.exception("[audit] could not record %s for %s", action, username)

    async def _has_role(self, username: str, role: UserRole) -> bool:
        user = await self.directory.get(username)
        return user is not None and user.role is role

    @staticmethod
    def _can_view(actor: UserProfile, project: Project) -> bool:
        if actor.role is UserRole.ADMIN:
            return True
        return actor.username == project.lead or actor.username in project.assigned_developers

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------
    async def create_project(
        self, actor: UserProfile, name: str, description: str, deadline: dt.date, lead: str
    ) -> ProjectResult:
        if not permissions.can_create_project(actor.role):
            return _fail(FORBIDDEN_MESSAGE)
        if not await self._has_role(lead, UserRole.PROJECT_LEAD):
            return _fail("The project lead must be an existing project lead.")

        async with self.workspace.edit() as state:
            project = Project(
                id=state.allocate_id("project"),
                name=name.strip(),
                description=description,
                deadline=deadline,
                lead=lead,
            )
            state.projects[project.id] = project

        await self._audit(actor.username, "CREATE_PROJECT", f"Created project '{project.name}' led by '{lead}'.")
        return ProjectResult(success=True, message="Project created successfully.", project=project)

    async def list_projects(self, actor: UserProfile) -> List[Project]:
        """Admins see everything; others see projects they lead or work on."""
        state = await self.workspace.read()
        return [p for p in state.projects.values() if self._can_view(actor, p)]

    async def get_project(self, actor: UserProfile, project_id: int) -> Optional[Project]:
        project = (await self.workspace.read()).projects.get(project_id)
        if project is None or not self._can_view(actor, project):
            return None
        return project

    async def assign_team(self, actor: UserProfile, project_id: int, developers: List[str]) -> ProjectResult:
        unique = list(dict.fromkeys(developers))
        not_developers = [u for u in unique if not await self._has_role(u, UserRole.DEVELOPER)]

        async with self.workspace.edit() as state:
            project = state.projects.get(project_id)
            if project is None:
                return _fail(PROJECT_NOT_FOUND_MESSAGE)
            if not permissions.can_assign_team(actor.role, actor.username, project):
                return _fail(FORBIDDEN_MESSAGE)
            if not_developers:
                return _fail(f"'{not_developers[0]}' is not a developer.")
            project = project.model_copy(update={"assigned_developers": unique})
            state.projects[project_id] = project

        await self._audit(actor.username, "ASSIGN_TEAM", f"Assigned {', '.join(unique) or 'nobody'} to project #{project_id}.")
        return ProjectResult(success=True, message="Team assigned successfully.", project=project)

    async def change_lead(self, actor: UserProfile, project_id: int, new_lead: str) -> ProjectResult:
        lead_ok = await self._has_role(new_lead, UserRole.PROJECT_LEAD)

        async with self.workspace.edit() as state:
            project = state.projects.get(project_id)
            if project is None:
                return _fail(PROJECT_NOT_FOUND_MESSAGE)
            if not permissions.can_change_project_lead(actor.role):
                return _fail(FORBIDDEN_MESSAGE)
            if not lead_ok:
                return _fail("The project lead must be an existing project lead.")
            project = project.model_copy(update={"lead": new_lead})
            state.projects[project_id] = project

        await self._audit(actor.username, "CHANGE_LEAD", f"Project #{project_id} is now led by '{new_lead}'.")
        return ProjectResult(success=True, message="Project lead updated successfully.", project=project)

    async def mark_complete(self, actor: UserProfile, project_id: int) -> ProjectResult:
        async with self.workspace.edit() as state:
            project = state.projects.get(project_id)
            if project is None:
                return _fail(PROJECT_NOT_FOUND_MESSAGE)
            if not permissions.can_mark_project_complete(actor.role):
                return _fail(FORBIDDEN_MESSAGE)
            project = project.model_copy(update={"status": ProjectStatus.COMPLETED})
            state.projects[project_id] = project

        await self._audit(actor.username, "COMPLETE_PROJECT", f"Marked project #{project_id} as completed.")
        return ProjectResult(success=True, message="Project marked as completed.", project=project)

    async def delete_project(self, actor: UserProfile, project_id: int) -> ProjectResult:
        """
        Permanently remove a completed project together with its documents.
        Active projects must be marked complete first.
        """
        async with self.workspace.edit() as state:
            project = state.projects.get(project_id)
            if project is None:
                return _fail(PROJECT_NOT_FOUND_MESSAGE)
            if not permissions.can_delete_project(actor.role):
                return _fail(FORBIDDEN_MESSAGE)
            if project.status is not ProjectStatus.COMPLETED:
                return _fail("Only completed projects can be deleted.")
            del state.projects[project_id]
            for document_id in [d.id for d in state.documents.values() if d.project_id == project_id]:
                del state.documents[document_id]

        logger.info("[projects] project #%d deleted by '%s'", project_id, actor.username)
        await self._audit(actor.username, "DELETE_PROJECT", f"Deleted project '{project.name}' (#{project_id}).")
        return ProjectResult(success=True, message="Project deleted.", project=project)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------
    async def add_document(self, actor: UserProfile, project_id: int, name: str, url: str) -> ProjectResult:
        async with self.workspace.edit() as state:
            project = state.projects.get(project_id)
            if project is None:
                return _fail(PROJECT_NOT_FOUND_MESSAGE)
            if not permissions.can_upload_or_delete_document(actor.role, actor.username, project):
                return _fail(FORBIDDEN_MESSAGE)
            document = Document(
                id=state.allocate_id("document"),
                project_id=project_id,
                name=name,
                url=url,
                uploaded_by=actor.username,
                uploaded_at=utc_now(),
            )
            state.documents[document.id] = document

        await self._audit(actor.username, "UPLOAD_DOCUMENT", f"Uploaded '{name}' to project #{project_id}.")
        return ProjectResult(success=True, message="Document uploaded successfully.", document=document)

    async def delete_document(self, actor: UserProfile, document_id: int) -> ProjectResult:
        async with self.workspace.edit() as state:
            document = state.documents.get(document_id)
            if document is None:
                return _fail(DOCUMENT_NOT_FOUND_MESSAGE)
            project = state.projects.get(document.project_id)
            if project is None or not permissions.can_upload_or_delete_document(actor.role, actor.username, project):
                return _fail(FORBIDDEN_MESSAGE)
            del state.documents[document_id]

        await self._audit(actor.username, "DELETE_DOCUMENT", f"Deleted '{document.name}' from project #{document.project_id}.")
        return ProjectResult(success=True, message="Document deleted successfully.", document=document)

    async def list_documents(self, actor: UserProfile, project_id: int) -> Optional[List[Document]]:
        """None when the project does not exist or is not visible to the caller."""
        state = await self.workspace.read()
        project = state.projects.get(project_id)
        if project is None or not self._can_view(actor, project):
            return None
        return [d for d in state.documents.values() if d.project_id == project_id]

    # ------------------------------------------------------------------
    # User removal (called by SessionService.remove_user)
    # ------------------------------------------------------------------
    async def removal_blocker(self, username: str) -> Optional[str]:
        """A reason to refuse removing `username`, or None."""
        led = [p for p in (await self.workspace.read()).projects.values() if p.lead == username]
        if led:
            names = ", ".join(f"'{p.name}'" for p in led)
            return f"'{username}' still leads {names}. Assign a new project lead first."
        return None

    async def forget_user(self, username: str) -> None:
        """Drop a removed user from every team so the name cannot be reused to gain access."""
        async with self.workspace.edit() as state:
            for project_id, project in list(state.projects.items()):
                if username in project.assigned_developers:
                    state.projects[project_id] = project.model_copy(update={
                        "assigned_developers": [d for d in project.assigned_developers if d != username],
                    })

    async def snapshot(self) -> dict:
        """Everything in the store (developer tools)."""
        state = await self.workspace.read()
        return {
            "projects": list(state.projects.values()),
            "documents": list(state.documents.values()),
        }
