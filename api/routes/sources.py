from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile

from writing_assistant.sources import SourceMaterialService

from api.dependencies import get_current_user, get_service, material_payload

router = APIRouter(prefix="/sources", tags=["sources"])


@router.put("/{material_id}/content", status_code=204)
async def upload_content(
    material_id: str,
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user),
    service: SourceMaterialService = Depends(get_service),
):
    payload = await file.read()
    service.upload_content(user_id, material_id, payload)


@router.post("/{material_id}/process", status_code=202)
def start_processing(
    material_id: str,
    user_id: str = Depends(get_current_user),
    service: SourceMaterialService = Depends(get_service),
):
    service.start_processing(user_id, material_id)
    return {"material_id": material_id, "status": "accepted"}


@router.get("/{material_id}")
def get_source(
    material_id: str,
    user_id: str = Depends(get_current_user),
    service: SourceMaterialService = Depends(get_service),
):
    return material_payload(service.get_material(user_id, material_id))


@router.post("/{material_id}/toggle")
def toggle_activation(
    material_id: str,
    user_id: str = Depends(get_current_user),
    service: SourceMaterialService = Depends(get_service),
):
    return {"is_active": service.toggle_activation(user_id, material_id)}


@router.delete("/{material_id}", status_code=204)
def delete_source(
    material_id: str,
    user_id: str = Depends(get_current_user),
    service: SourceMaterialService = Depends(get_service),
):
    service.delete_material(user_id, material_id)
