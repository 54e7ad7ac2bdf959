# pixelforge/schemas/project.py
"""
Pydantic schemas for projects and their documents.
"""
import datetime as dt
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ProjectStatus(str, Enum):
    ACTIVE = "Active"
    COMPLETED = "Completed"


class Project(BaseModel):
    """
    A project. `lead` and `assigned_developers` hold usernames.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    name: str
    description: str = ""
    deadline: dt.date
    status: ProjectStatus = ProjectStatus.ACTIVE
    lead: str
    assigned_developers: List[str] = Field(default_factory=list)


class Document(BaseModel):
    """
    A file attached to a project. `url` is a link or a base64 data URI.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    project_id: int
    name: str
    url: str
    uploaded_by: str
    uploaded_at: dt.datetime


class ProjectResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    message: str
    project: Optional[Project] = None
    document: Optional[Document] = None


# ========== Input models ==========
class ProjectCreateIn(BaseModel):
    name: str = Field(min_length=2)
    description: str = ""
    deadline: dt.date
    lead: str


class AssignTeamIn(BaseModel):
    developers: List[str]


class ChangeLeadIn(BaseModel):
    lead: str


class DocumentIn(BaseModel):
    name: str = Field(min_length=1)
    url: str = Field(min_length=1)


# ========== Tasks ==========
class TaskPriority(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class TaskStatus(str, Enum):
    PENDING = "Pending"
    COMPLETED = "Completed"


class Task(BaseModel):
    """
    A unit of work handed to one user. `assignee` and `created_by` hold
    usernames; both are cleared when that user is removed.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    title: str
    description: str = ""
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: dt.date
    status: TaskStatus = TaskStatus.PENDING
    assignee: Optional[str] = None
    created_by: Optional[str] = None


class TaskResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    message: str
    task: Optional[Task] = None


class TaskCreateIn(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: str = Field(min_length=2)
    description: str = ""
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: dt.date
    assignee: str
