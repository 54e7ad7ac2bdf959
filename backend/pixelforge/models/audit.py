# pixelforge/models/audit.py
"""
Database model for audit log entries.
Rows are append-only: the application inserts them and never updates or deletes.
"""
from tortoise import fields, models


class AuditEntry(models.Model):
    id = fields.IntField(pk=True)
    timestamp = fields.DatetimeField()  # When the action happened (UTC)
    username = fields.CharField(max_length=64, index=True)  # Acting user or "System"
    action = fields.CharField(max_length=64, index=True)  # e.g. LOGIN_SUCCESS, CREATE_USER
    details = fields.TextField()  # Human readable description

    class Meta:
        table = "audit_entries"
        ordering = ["id"]
