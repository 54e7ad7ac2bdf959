# pixelforge/services/workspace.py
"""
Workspace store: projects, documents and tasks as one state value.

Backends mirror the directory store (memory, JSON file, Tortoise) and are
picked by the same backend name, so projects survive a restart whenever
users do. Callers either read a snapshot:

    state = await store.read()

or change it inside one locked read-modify-write cycle:

    async with store.edit() as state:
        state.projects[pid] = project

The state is written back only when the block exits normally and something
changed. Failures surface as StorageUnavailableError.
"""
import asyncio
import json
import logging
import os
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict, Optional

from pydantic import BaseModel, Field, ValidationError
from tortoise.exceptions import BaseORMException
from tortoise.transactions import in_transaction

from pixelforge.models.project import DocumentRow, IdSequence, ProjectRow, TaskRow
from pixelforge.schemas.project import Document, Project, Task
from pixelforge.schemas.user import as_utc
from pixelforge.services.directory import StorageUnavailableError

logger = logging.getLogger("uvicorn.error")


class WorkspaceState(BaseModel):
    projects: Dict[int, Project] = Field(default_factory=dict)
    documents: Dict[int, Document] = Field(default_factory=dict)
    tasks: Dict[int, Task] = Field(default_factory=dict)
    next_ids: Dict[str, int] = Field(default_factory=dict)

    def allocate_id(self, kind: str) -> int:
        """Hand out the next id for `kind`; ids are never reused."""
        value = self.next_ids.get(kind, 1)
        self.next_ids[kind] = value + 1
        return value


class WorkspaceStore:
    """Base class; subclasses implement _load / _save."""

    def __init__(self):
        self._lock = asyncio.Lock()

    async def _load(self) -> WorkspaceState:
        raise NotImplementedError

    async def _save(self, state: WorkspaceState) -> None:
        raise NotImplementedError

    async def read(self) -> WorkspaceState:
        async with self._lock:
            return await self._load()

    @asynccontextmanager
    async def edit(self) -> AsyncIterator[WorkspaceState]:
        async with self._lock:
            state = await self._load()
            before = state.model_copy(deep=True)
            yield state
            if state != before:
                await self._save(state)


class InMemoryWorkspaceStore(WorkspaceStore):
    def __init__(self, state: Optional[WorkspaceState] = None):
        super().__init__()
        self._state = (state or WorkspaceState()).model_copy(deep=True)

    async def _load(self) -> WorkspaceState:
        return self._state.model_copy(deep=True)

    async def _save(self, state: WorkspaceState) -> None:
        self._state = state.model_copy(deep=True)


class JsonFileWorkspaceStore(WorkspaceStore):
    """One JSON document, replaced atomically (temp file + os.replace)."""

    def __init__(self, path: str | Path):
        super().__init__()
        self.path = Path(path)

    async def _load(self) -> WorkspaceState:
        if not self.path.exists():
            return WorkspaceState()
        try:
            return WorkspaceState.model_validate_json(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError, ValidationError) as exc:
            logger.exception("[workspace] failed to read %s", self.path)
            raise StorageUnavailableError(f"cannot read workspace: {exc}") from exc

    async def _save(self, state: WorkspaceState) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".workspace-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(state.model_dump(mode="json"), fh, indent=2)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            logger.exception("[workspace] failed to write %s", self.path)
            raise StorageUnavailableError(f"cannot write workspace: {exc}") from exc


class TortoiseWorkspaceStore(WorkspaceStore):
    """
    Stores the workspace in the `projects`, `project_documents`, `tasks` and
    `id_sequences` tables (see models/project.py). Each save rewrites the
    tables inside one transaction.
    """
    async def _load(self) -> WorkspaceState:
        try:
            projects = await ProjectRow.all()
            documents = await DocumentRow.all()
            tasks = await TaskRow.all()
            sequences = await IdSequence.all()
        except BaseORMException as exc:
            logger.exception("[workspace] failed to read workspace tables")
            raise StorageUnavailableError(f"cannot read workspace: {exc}") from exc
        return WorkspaceState(
            projects={
                row.id: Project(
                    id=row.id,
                    name=row.name,
                    description=row.description,
                    deadline=row.deadline,
                    status=row.status,
                    lead=row.lead,
                    assigned_developers=list(row.assigned_developers or []),
                )
                for row in projects
            },
            documents={
                row.id: Document(
                    id=row.id,
                    project_id=row.project_id,
                    name=row.name,
                    url=row.url,
                    uploaded_by=row.uploaded_by,
                    uploaded_at=as_utc(row.uploaded_at),
                )
                for row in documents
            },
            tasks={
                row.id: Task(
                    id=row.id,
                    title=row.title,
                    description=row.description,
                    priority=row.priority,
                    due_date=row.due_date,
                    status=row.status,
                    assignee=row.assignee,
                    created_by=row.created_by,
                )
                for row in tasks
            },
            next_ids={row.name: row.next_value for row in sequences},
        )

    async def _save(self, state: WorkspaceState) -> None:
        try:
            async with in_transaction() as conn:
                for model in (ProjectRow, DocumentRow, TaskRow, IdSequence):
                    await model.all().using_db(conn).delete()
                for project in state.projects.values():
                    await ProjectRow.create(**project.model_dump(), using_db=conn)
                for document in state.documents.values():
                    await DocumentRow.create(**document.model_dump(), using_db=conn)
                for task in state.tasks.values():
                    await TaskRow.create(**task.model_dump(), using_db=conn)
                for name, value in state.next_ids.items():
                    await IdSequence.create(name=name, next_value=value, using_db=conn)
        except BaseORMException as exc:
            logger.exception("[workspace] failed to write workspace tables")
            raise StorageUnavailableError(f"cannot write workspace: {exc}") from exc


def build_workspace_store(backend: str, json_path: str | Path) -> WorkspaceStore:
    """Same backend names as the directory store."""
    if backend == "memory":
        return InMemoryWorkspaceStore()
    if backend == "json":
        return JsonFileWorkspaceStore(json_path)
    if backend == "db":
        return TortoiseWorkspaceStore()
    raise ValueError(f"unknown workspace backend: {backend!r}")
