from __future__ import annotations

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from writing_assistant.sources import SourceMaterialService, build_context_prompt

from api.dependencies import (
    bundle_payload,
    get_current_user,
    get_service,
    material_payload,
    search_payload,
)

router = APIRouter(prefix="/projects", tags=["projects"])


class UploadSlotRequest(BaseModel):
    filename: str
    mime_type: str
    size_bytes: int


@router.post("/{project_id}/sources/upload-slot", status_code=201)
def request_upload_slot(
    project_id: str,
    body: UploadSlotRequest,
    user_id: str = Depends(get_current_user),
    service: SourceMaterialService = Depends(get_service),
):
    slot = service.request_upload_slot(user_id, project_id, body.filename, body.mime_type, body.size_bytes)
    return {"material_id": slot.material_id, "write_reference": slot.write_reference}


@router.get("/{project_id}/sources")
def list_sources(
    project_id: str,
    user_id: str = Depends(get_current_user),
    service: SourceMaterialService = Depends(get_service),
):
    return [material_payload(m) for m in service.list_materials(user_id, project_id)]


@router.get("/{project_id}/sources/search")
def search_sources(
    project_id: str,
    query: str,
    user_id: str = Depends(get_current_user),
    service: SourceMaterialService = Depends(get_service),
):
    if not query or not query.strip():
        raise HTTPException(status_code=400, detail="Query must not be empty")
    return [search_payload(r) for r in service.search(user_id, project_id, query)]


@router.get("/{project_id}/context-budget")
def get_context_budget(
    project_id: str,
    user_id: str = Depends(get_current_user),
    service: SourceMaterialService = Depends(get_service),
):
    return asdict(service.get_context_budget(user_id, project_id))


@router.get("/{project_id}/context")
def assemble_context(
    project_id: str,
    session_id: Optional[str] = None,
    user_id: str = Depends(get_current_user),
    service: SourceMaterialService = Depends(get_service),
):
    bundle = service.assemble_context(user_id, project_id, session_id)
    payload = bundle_payload(bundle)
    payload["prompt"] = build_context_prompt(bundle)
    return payload
