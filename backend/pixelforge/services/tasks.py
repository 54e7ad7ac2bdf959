# pixelforge/services/tasks.py
"""
Task list: work items handed to individual users.

Admins and project leads create tasks for developers and project leads; the
assignee marks them complete. Tasks share the workspace store with projects.
"""
import datetime as dt
import logging
from typing import List, Optional

from pixelforge.models.user import UserRole
from pixelforge.schemas.project import Task, TaskPriority, TaskResult, TaskStatus
from pixelforge.schemas.user import UserProfile
from pixelforge.services import permissions
from pixelforge.services.audit import AuditSink
from pixelforge.services.directory import DirectoryStore
from pixelforge.services.workspace import InMemoryWorkspaceStore, WorkspaceStore

logger = logging.getLogger("uvicorn.error")

TASK_NOT_FOUND_MESSAGE = "Task not found."
FORBIDDEN_MESSAGE = "You do not have permission to perform this action."

ASSIGNABLE_ROLES = (UserRole.PROJECT_LEAD, UserRole.DEVELOPER)


def _fail(message: str) -> TaskResult:
    return TaskResult(success=False, message=message)


class TaskService:
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

    @staticmethod
    def _can_view(actor: UserProfile, task: Task) -> bool:
        if actor.role is UserRole.ADMIN:
            return True
        return actor.username in (task.assignee, task.created_by)

    async def create_task(
        self,
        actor: UserProfile,
        title: str,
        description: str,
        priority: TaskPriority,
        due_date: dt.date,
        assignee: str,
    ) -> TaskResult:
        if not permissions.can_create_task(actor.role):
            return _fail(FORBIDDEN_MESSAGE)
        user = await self.directory.get(assignee)
        if user is None or user.role not in ASSIGNABLE_ROLES:
            return _fail("Tasks can only be assigned to an existing developer or project lead.")

        async with self.workspace.edit() as state:
            task = Task(
                id=state.allocate_id("task"),
                title=title.strip(),
                description=description,
                priority=priority,
                due_date=due_date,
                assignee=assignee,
                created_by=actor.username,
            )
            state.tasks[task.id] = task

        await self._audit(actor.username, "CREATE_TASK", f"Assigned task '{task.title}' to '{assignee}'.")
        return TaskResult(success=True, message="Task created successfully.", task=task)

    async def list_tasks(self, actor: UserProfile) -> List[Task]:
        """Admins see every task; others see tasks assigned to or created by them."""
        state = await self.workspace.read()
        return [t for t in state.tasks.values() if self._can_view(actor, t)]

    async def complete_task(self, actor: UserProfile, task_id: int) -> TaskResult:
        async with self.workspace.edit() as state:
            task = state.tasks.get(task_id)
            if task is None or not self._can_view(actor, task):
                return _fail(TASK_NOT_FOUND_MESSAGE)
            if not permissions.can_complete_task(actor.role, actor.username, task):
                return _fail(FORBIDDEN_MESSAGE)
            task = task.model_copy(update={"status": TaskStatus.COMPLETED})
            state.tasks[task_id] = task

        await self._audit(actor.username, "COMPLETE_TASK", f"Completed task #{task_id}.")
        return TaskResult(success=True, message="Task marked as completed.", task=task)

    async def delete_task(self, actor: UserProfile, task_id: int) -> TaskResult:
        async with self.workspace.edit() as state:
            task = state.tasks.get(task_id)
            if task is None or not self._can_view(actor, task):
                return _fail(TASK_NOT_FOUND_MESSAGE)
            if not permissions.can_delete_task(actor.role, actor.username, task):
                return _fail(FORBIDDEN_MESSAGE)
            del state.tasks[task_id]

        await self._audit(actor.username, "DELETE_TASK", f"Deleted task '{task.title}' (#{task_id}).")
        return TaskResult(success=True, message="Task deleted.", task=task)

    # Called by SessionService.remove_user
    async def removal_blocker(self, username: str) -> Optional[str]:
        return None

    async def forget_user(self, username: str) -> None:
        """Clear a removed user from every task so a new account with the same name inherits nothing."""
        async with self.workspace.edit() as state:
            for task_id, task in list(state.tasks.items()):
                changes = {}
                if task.assignee == username:
                    changes["assignee"] = None
                if task.created_by == username:
                    changes["created_by"] = None
                if changes:
                    state.tasks[task_id] = task.model_copy(update=changes)

    async def snapshot(self) -> List[Task]:
        return list((await self.workspace.read()).tasks.values())
