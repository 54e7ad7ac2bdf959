"""
Services Module

Business logic behind the API:
- sessions: Authentication, lockout, password expiry, MFA and user directory operations
- projects / tasks: Projects, documents and tasks, gated by the permission predicates
- directory / audit / workspace: Pluggable persistence (memory, JSON file, Tortoise ORM)
- policy / permissions / mfa: Pure rules and TOTP helpers
"""

from .directory import (
    DirectoryStore,
    StorageUnavailableError,
    build_directory_store,
)
from .audit import AuditSink, build_audit_sink
from .policy import AccountPolicy
from .sessions import SessionService
from .workspace import WorkspaceStore, build_workspace_store
from .projects import ProjectService
from .tasks import TaskService

__all__ = [
    "DirectoryStore",
    "StorageUnavailableError",
    "build_directory_store",
    "AuditSink",
    "build_audit_sink",
    "AccountPolicy",
    "SessionService",
    "WorkspaceStore",
    "build_workspace_store",
    "ProjectService",
    "TaskService",
]
