# pixelforge/api/v1/routers/projects.py
from fastapi import APIRouter, Depends, HTTPException, status

from pixelforge.api.v1.deps import get_current_user, get_project_service
from pixelforge.schemas.project import AssignTeamIn, ChangeLeadIn, DocumentIn, ProjectCreateIn, ProjectResult
from pixelforge.schemas.user import SanitizedUser
from pixelforge.services.projects import (
    DOCUMENT_NOT_FOUND_MESSAGE,
    FORBIDDEN_MESSAGE,
    PROJECT_NOT_FOUND_MESSAGE,
    ProjectService,
)

router = APIRouter(prefix="/projects", tags=["projects"])


def _unwrap(result: ProjectResult) -> dict:
    if not result.success:
        if result.message == FORBIDDEN_MESSAGE:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                                detail={"code": "FORBIDDEN", "message": result.message})
        if result.message in (PROJECT_NOT_FOUND_MESSAGE, DOCUMENT_NOT_FOUND_MESSAGE):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND,
                                detail={"code": "NOT_FOUND", "message": result.message})
        raise HTTPException(status_code=400, detail={"code": "BAD_REQUEST", "message": result.message})
    return {"success": True, "data": result.model_dump(by_alias=True, mode="json", exclude_none=True)}


@router.get("")
async def list_projects(
    current: SanitizedUser = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    """
    Projects visible to the caller: all of them for admins, otherwise the
    ones the caller leads or is assigned to.
    """
    items = [p.model_dump(by_alias=True, mode="json") for p in await service.list_projects(current)]
    return {"success": True, "data": {"items": items, "total": len(items)}}


@router.post("")
async def create_project(
    body: ProjectCreateIn,
    current: SanitizedUser = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    """
    Create a project (admin only). `lead` must be an existing project lead.

    Raises:
        HTTPException (403): Caller may not create projects
        HTTPException (400): Unknown lead
    """
    return _unwrap(await service.create_project(current, body.name, body.description, body.deadline, body.lead))


@router.get("/{project_id}")
async def get_project(
    project_id: int,
    current: SanitizedUser = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    project = await service.get_project(current, project_id)
    if project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND,
                            detail={"code": "NOT_FOUND", "message": PROJECT_NOT_FOUND_MESSAGE})
    return {"success": True, "data": {"project": project.model_dump(by_alias=True, mode="json")}}


@router.put("/{project_id}/team")
async def assign_team(
    project_id: int,
    body: AssignTeamIn,
    current: SanitizedUser = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    """Replace the developer team (only the project's own lead)."""
    return _unwrap(await service.assign_team(current, project_id, body.developers))


@router.patch("/{project_id}/lead")
async def change_lead(
    project_id: int,
    body: ChangeLeadIn,
    current: SanitizedUser = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    return _unwrap(await service.change_lead(current, project_id, body.lead))


@router.post("/{project_id}/complete")
async def mark_complete(
    project_id: int,
    current: SanitizedUser = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    return _unwrap(await service.mark_complete(current, project_id))


@router.delete("/{project_id}")
async def delete_project(
    project_id: int,
    current: SanitizedUser = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    """
    Permanently delete a completed project and its documents (admin only).

    Raises:
        HTTPException (403): Caller is not an admin
        HTTPException (404): Unknown project
        HTTPException (400): Project is still active
    """
    return _unwrap(await service.delete_project(current, project_id))


@router.get("/{project_id}/documents")
async def list_documents(
    project_id: int,
    current: SanitizedUser = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    documents = await service.list_documents(current, project_id)
    if documents is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND,
                            detail={"code": "NOT_FOUND", "message": PROJECT_NOT_FOUND_MESSAGE})
    items = [d.model_dump(by_alias=True, mode="json") for d in documents]
    return {"success": True, "data": {"items": items, "total": len(items)}}


@router.post("/{project_id}/documents")
async def add_document(
    project_id: int,
    body: DocumentIn,
    current: SanitizedUser = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    """
    Attach a document (admin or the project's own lead).
    `url` may be a link or a base64 data URI.
    """
    return _unwrap(await service.add_document(current, project_id, body.name, body.url))


@router.delete("/documents/{document_id}")
async def delete_document(
    document_id: int,
    current: SanitizedUser = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    return _unwrap(await service.delete_document(current, document_id))
