# pixelforge/models/__init__.py
"""
Database models module initialization.
Exports all database models for convenient imports throughout the application.

Models exported:
- UserRole: The closed role enum shared by every layer
- User: User account row (Tortoise-backed directory store)
- AuditEntry: Append-only audit log row (Tortoise-backed audit sink)
- ProjectRow / DocumentRow / TaskRow / IdSequence: Workspace rows
  (Tortoise-backed workspace store)
"""
from .user import User, UserRole
from .audit import AuditEntry
from .project import DocumentRow, IdSequence, ProjectRow, TaskRow
