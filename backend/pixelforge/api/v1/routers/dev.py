# pixelforge/api/v1/routers/dev.py
from fastapi import APIRouter, Depends

from pixelforge.api.v1.deps import get_project_service, get_session_service, get_task_service, require_developer_tools
from pixelforge.services.projects import ProjectService
from pixelforge.services.sessions import SessionService
from pixelforge.services.tasks import TaskService

router = APIRouter(prefix="/dev", tags=["dev"])


@router.get("/database", dependencies=[Depends(require_developer_tools)])
async def database_snapshot(
    sessions: SessionService = Depends(get_session_service),
    projects: ProjectService = Depends(get_project_service),
    tasks: TaskService = Depends(get_task_service),
):
    """
    Developer tools: dump of users (sanitized), projects, documents and tasks.

    Only admins and super users may call this; credentials, MFA secrets and
    attempt counters are never part of the dump.

    Raises:
        HTTPException (403): FORBIDDEN_DEVELOPER_TOOLS
    """
    users = await sessions.get_users()
    snapshot = await projects.snapshot()
    return {
        "success": True,
        "data": {
            "users": [u.model_dump(by_alias=True, mode="json") for u in users],
            "projects": [p.model_dump(by_alias=True, mode="json") for p in snapshot["projects"]],
            "documents": [d.model_dump(by_alias=True, mode="json") for d in snapshot["documents"]],
            "tasks": [t.model_dump(by_alias=True, mode="json") for t in await tasks.snapshot()],
        },
    }
