"""
Course material APIs (Admin): upload, list, download and delete.
"""
from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.orm import Session
from typing import Optional

from auth.dependencies import get_db_session, require_admin
from core.identity import Identity
from core.utils import content_disposition, material_to_dict
from services.material_service import MaterialService


router = APIRouter(prefix="/api/admin/courses/{course_id}/materials", tags=["materials"])


@router.get("")
async def list_materials(
    course_id: int,
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    materials = MaterialService.list_for_course(db, identity, course_id)
    return {"data": [material_to_dict(m) for m in materials]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def upload_material(
    course_id: int,
    file: UploadFile = File(...),
    title: str = Form(...),
    description: Optional[str] = Form(None),
    week: Optional[int] = Form(None),
    module: Optional[str] = Form(None),
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """Upload a file (max MAX_MATERIAL_SIZE_MB) to a course."""
    content = await file.read()
    material = MaterialService.upload(
        db,
        identity,
        course_id=course_id,
        title=title,
        file_name=file.filename,
        file_type=file.content_type,
        content=content,
        description=description,
        week=week,
        module=module
    )
    return material_to_dict(material)


@router.get("/{material_id}/download")
async def download_material(
    course_id: int,
    material_id: int,
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    material = MaterialService.download(db, identity, material_id, course_id=course_id)
    return Response(
        content=material.file_data,
        media_type=material.file_type,
        headers={"Content-Disposition": content_disposition(material.file_name)}
    )


@router.delete("/{material_id}")
async def delete_material(
    course_id: int,
    material_id: int,
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    MaterialService.delete(db, identity, material_id, course_id=course_id)
    return {"success": True, "message": "Material deleted successfully"}
