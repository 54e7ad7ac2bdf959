# pixelforge/models/project.py
"""
Database models for the project workspace: projects, their documents, tasks
and the id counters the workspace store hands out.
Ids are assigned by the application, not by the database, so every backend
numbers things the same way.
"""
from tortoise import fields, models

from pixelforge.schemas.project import ProjectStatus, TaskPriority, TaskStatus


class ProjectRow(models.Model):
    id = fields.IntField(pk=True, generated=False)
    name = fields.CharField(max_length=256)
    description = fields.TextField(default="")
    deadline = fields.DateField()
    status = fields.CharEnumField(ProjectStatus, max_length=16, default=ProjectStatus.ACTIVE)
    lead = fields.CharField(max_length=64, index=True)  # Username of the project lead
    assigned_developers = fields.JSONField(default=list)  # List of usernames

    class Meta:
        table = "projects"


class DocumentRow(models.Model):
    id = fields.IntField(pk=True, generated=False)
    project_id = fields.IntField(index=True)
    name = fields.CharField(max_length=256)
    url = fields.TextField()  # Link or base64 data URI
    uploaded_by = fields.CharField(max_length=64)
    uploaded_at = fields.DatetimeField()

    class Meta:
        table = "project_documents"


class TaskRow(models.Model):
    id = fields.IntField(pk=True, generated=False)
    title = fields.CharField(max_length=256)
    description = fields.TextField(default="")
    priority = fields.CharEnumField(TaskPriority, max_length=16, default=TaskPriority.MEDIUM)
    due_date = fields.DateField()
    status = fields.CharEnumField(TaskStatus, max_length=16, default=TaskStatus.PENDING)
    assignee = fields.CharField(max_length=64, null=True, index=True)
    created_by = fields.CharField(max_length=64, null=True)

    class Meta:
        table = "tasks"


class IdSequence(models.Model):
    """Next id to hand out per kind ("project", "document", "task")."""
    name = fields.CharField(max_length=32, pk=True)
    next_value = fields.IntField(default=1)

    class Meta:
        table = "id_sequences"
