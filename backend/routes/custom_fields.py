"""
ExeTeam - Routes Champs personnalisés
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Request

from models.common import camelize
from models.custom_fields import GetConfigQuery, UpdateConfigRequest
from routes.deps import client_ip, get_db, query_model
from services import custom_fields as service
from services.activity_logger import log_activity
from services.permissions import require_permission

router = APIRouter(prefix="/custom-fields", tags=["Champs personnalisés"])


@router.get("/config")
async def get_config(
    query: GetConfigQuery = Depends(query_model(GetConfigQuery)),
    user: dict = Depends(require_permission("custom_fields.read")),
    db=Depends(get_db),
):
    """Configuration du client, fusionnée avec celle du projet si fourni"""
    return camelize(await service.get_config(db, query.client_id, query.project_id))


@router.put("/clients/{client_id}/config")
async def update_client_config(
    client_id: str,
    data: UpdateConfigRequest,
    request: Request,
    user: dict = Depends(require_permission("custom_fields.configure")),
    db=Depends(get_db),
):
    result = await service.update_client_config(db, client_id, data.config)
    await log_activity(
        db, user, "update", "custom_fields", entity_id=client_id,
        details={"target": "client", "fields": len(data.config)},
        ip_address=client_ip(request),
    )
    return camelize(result)


@router.put("/projects/{project_id}/config")
async def update_project_config(
    project_id: str,
    data: UpdateConfigRequest,
    request: Request,
    user: dict = Depends(require_permission("custom_fields.configure")),
    db=Depends(get_db),
):
    result = await service.update_project_config(db, project_id, data.config)
    await log_activity(
        db, user, "update", "custom_fields", entity_id=project_id,
        details={"target": "project", "fields": len(data.config)},
        ip_address=client_ip(request),
    )
    return camelize(result)


@router.patch("/sites/{site_id}/data")
async def update_site_data(
    site_id: str,
    data: Dict[str, Any] = Body(...),
    user: dict = Depends(require_permission("custom_fields.update")),
    db=Depends(get_db),
):
    return camelize(await service.update_site_data(db, site_id, data))


@router.patch("/tasks/{task_id}/data")
async def update_task_data(
    task_id: str,
    data: Dict[str, Any] = Body(...),
    user: dict = Depends(require_permission("custom_fields.update")),
    db=Depends(get_db),
):
    return camelize(await service.update_task_data(db, task_id, data))
