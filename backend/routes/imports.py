"""
ExeTeam - Routes Import Excel
Upload du fichier, lancement et suivi des jobs, modèles de mapping.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import Response

from models.common import camelize
from models.imports import (
    ImportEntityType,
    ListImportsQuery,
    ParseHeadersRequest,
    SaveTemplateRequest,
    StartImportRequest,
    template_headers,
)
from routes.deps import client_ip, get_db, get_import_service, query_model
from services.activity_logger import log_activity
from services.excel_reader import build_workbook
from services.import_service import XLSX_MIME, ImportService
from services.permissions import require_permission

router = APIRouter(prefix="/import", tags=["Import"])


# ==================== FICHIERS ====================

@router.post("/upload")
async def upload(
    file: UploadFile = File(...),
    user: dict = Depends(require_permission("imports.create")),
    service: ImportService = Depends(get_import_service),
):
    content = await file.read()
    return await service.upload_file(file.filename, content)


@router.post("/parse-headers")
async def parse_headers(
    data: ParseHeadersRequest,
    user: dict = Depends(require_permission("imports.create")),
    service: ImportService = Depends(get_import_service),
):
    return {"headers": await service.parse_headers(data.file_path)}


@router.get("/templates/{entity_type}/download")
async def download_template(
    entity_type: ImportEntityType,
    user: dict = Depends(require_permission("imports.read")),
):
    """Classeur vide avec les en-têtes attendus"""
    content = build_workbook([(entity_type.value, template_headers(entity_type), [])])
    return Response(
        content=content,
        media_type=XLSX_MIME,
        headers={"Content-Disposition": f'attachment; filename="modele-import-{entity_type.value}.xlsx"'},
    )


# ==================== JOBS ====================

@router.post("/start")
async def start(
    data: StartImportRequest,
    request: Request,
    user: dict = Depends(require_permission("imports.create")),
    service: ImportService = Depends(get_import_service),
    db=Depends(get_db),
):
    result = await service.start_import(data, user["id"])
    await log_activity(
        db, user, "import", "import_job",
        entity_id=result["jobId"],
        entity_name=data.file_name,
        details={"entity_type": data.entity_type.value},
        ip_address=client_ip(request),
    )
    return result


@router.get("/jobs")
async def list_jobs(
    query: ListImportsQuery = Depends(query_model(ListImportsQuery)),
    user: dict = Depends(require_permission("imports.read")),
    service: ImportService = Depends(get_import_service),
):
    return camelize(await service.list_jobs(query))


@router.get("/jobs/{job_id}")
async def get_job(
    job_id: str,
    user: dict = Depends(require_permission("imports.read")),
    service: ImportService = Depends(get_import_service),
):
    return camelize(await service.get_job(job_id))


# ==================== TEMPLATES ====================

@router.get("/templates")
async def list_templates(
    entityType: Optional[ImportEntityType] = None,
    user: dict = Depends(require_permission("imports.read")),
    service: ImportService = Depends(get_import_service),
):
    templates = await service.list_templates(entityType.value if entityType else None)
    return camelize(templates)


@router.post("/templates")
async def save_template(
    data: SaveTemplateRequest,
    user: dict = Depends(require_permission("imports.create")),
    service: ImportService = Depends(get_import_service),
):
    return camelize(await service.save_template(data, user["id"]))


@router.delete("/templates/{template_id}")
async def delete_template(
    template_id: str,
    user: dict = Depends(require_permission("imports.create")),
    service: ImportService = Depends(get_import_service),
):
    return await service.delete_template(template_id)
