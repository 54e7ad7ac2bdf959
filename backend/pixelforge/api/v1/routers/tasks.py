# pixelforge/api/v1/routers/tasks.py
from fastapi import APIRouter, Depends, HTTPException, status

from pixelforge.api.v1.deps import get_current_user, get_task_service
from pixelforge.schemas.project import TaskCreateIn, TaskResult
from pixelforge.schemas.user import SanitizedUser
from pixelforge.services.tasks import FORBIDDEN_MESSAGE, TASK_NOT_FOUND_MESSAGE, TaskService

router = APIRouter(prefix="/tasks", tags=["tasks"])


def _unwrap(result: TaskResult) -> dict:
    if not result.success:
        if result.message == FORBIDDEN_MESSAGE:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                                detail={"code": "FORBIDDEN", "message": result.message})
        if result.message == TASK_NOT_FOUND_MESSAGE:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND,
                                detail={"code": "NOT_FOUND", "message": result.message})
        raise HTTPException(status_code=400, detail={"code": "BAD_REQUEST", "message": result.message})
    return {"success": True, "data": result.model_dump(by_alias=True, mode="json", exclude_none=True)}


@router.get("")
async def list_tasks(
    current: SanitizedUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Every task for admins; otherwise tasks assigned to or created by the caller."""
    items = [t.model_dump(by_alias=True, mode="json") for t in await service.list_tasks(current)]
    return {"success": True, "data": {"items": items, "total": len(items)}}


@router.post("")
async def create_task(
    body: TaskCreateIn,
    current: SanitizedUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """
    Create a task (admins and project leads).

    Raises:
        HTTPException (403): Caller may not create tasks
        HTTPException (400): Assignee is unknown or an admin
    """
    return _unwrap(await service.create_task(
        current, body.title, body.description, body.priority, body.due_date, body.assignee,
    ))


@router.post("/{task_id}/complete")
async def complete_task(
    task_id: int,
    current: SanitizedUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    return _unwrap(await service.complete_task(current, task_id))


@router.delete("/{task_id}")
async def delete_task(
    task_id: int,
    current: SanitizedUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    return _unwrap(await service.delete_task(current, task_id))
