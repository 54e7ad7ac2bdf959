# pixelforge/services/permissions.py
"""
Role-based permission predicates.

Each function answers "may this caller do X?". They accept a UserRole or its
string form, never raise, and deny anything they do not recognise.
"""
from typing import Any, Optional

from pixelforge.models.user import UserRole


def _role(role: Any) -> Optional[UserRole]:
    if isinstance(role, UserRole):
        return role
    if not isinstance(role, str):
        return None
    try:
        return UserRole(role)
    except ValueError:
        return None


def _leads(acting_user: Any, project: Any) -> bool:
    lead = getattr(project, "lead", None)
    if lead is None and isinstance(project, dict):
        lead = project.get("lead")
    return isinstance(acting_user, str) and bool(acting_user) and acting_user == lead


def can_manage_users(role) -> bool:
    return _role(role) is UserRole.ADMIN


def can_create_project(role) -> bool:
    return _role(role) is UserRole.ADMIN


def can_assign_team(role, acting_user, project) -> bool:
    return _role(role) is UserRole.PROJECT_LEAD and _leads(acting_user, project)


def can_upload_or_delete_document(role, acting_user, project) -> bool:
    r = _role(role)
    if r is UserRole.ADMIN:
        return True
    return r is UserRole.PROJECT_LEAD and _leads(acting_user, project)


def can_mark_project_complete(role) -> bool:
    return _role(role) is UserRole.ADMIN


def can_change_project_lead(role) -> bool:
    return _role(role) is UserRole.ADMIN


def can_view_audit_log(role) -> bool:
    return _role(role) is UserRole.ADMIN


def can_see_developer_tools(role, is_super_user) -> bool:
    return _role(role) is UserRole.ADMIN or is_super_user is True


def can_delete_project(role) -> bool:
    return _role(role) is UserRole.ADMIN


def can_create_task(role) -> bool:
    return _role(role) in (UserRole.ADMIN, UserRole.PROJECT_LEAD)


def can_complete_task(role, acting_user, task) -> bool:
    """Only the assignee closes a task; admins may close any."""
    if _role(role) is UserRole.ADMIN:
        return True
    assignee = getattr(task, "assignee", None)
    return isinstance(acting_user, str) and bool(acting_user) and acting_user == assignee


def can_delete_task(role, acting_user, task) -> bool:
    if _role(role) is UserRole.ADMIN:
        return True
    creator = getattr(task, "created_by", None)
    return _role(role) is UserRole.PROJECT_LEAD and isinstance(acting_user, str) and acting_user == creator
