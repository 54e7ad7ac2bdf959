# pixelforge/schemas/__init__.py
"""
Schema module initialization.
Exports the schema classes used across routers and services.
"""
from .user import SanitizedUser, UserProfile, UserRecord
from .auth import MfaSetup, OperationResult, OutcomeStatus, SessionOutcome
from .admin import AdminCreateUserIn, CreateUserIn
from .project import (
    Document,
    Project,
    ProjectResult,
    ProjectStatus,
    Task,
    TaskPriority,
    TaskResult,
    TaskStatus,
)
