"""
Champs personnalisés

La configuration est portée par le Client; un Projet hérite des champs
de son client et peut en ajouter ou en redéfinir (même key = le projet gagne).
Les valeurs saisies sont stockées sur le Site ou la Tâche (custom_fields_data).
"""

import logging
from typing import List, Optional

from config import now_iso
from models.custom_fields import CustomFieldConfig
from services.errors import NotFoundError

logger = logging.getLogger("custom_fields")

NOT_DELETED = {"deleted_at": None}


def merge_configs(client_fields: List[dict], project_fields: List[dict]) -> List[dict]:
    """Fusion client + projet, triée par `order`"""
    merged = {}
    for field in client_fields or []:
        merged[field["key"]] = field
    for field in project_fields or []:
        merged[field["key"]] = field
    return sorted(merged.values(), key=lambda f: f.get("order", 0))


async def get_config(db, client_id: str, project_id: Optional[str] = None) -> List[dict]:
    client = await db.clients.find_one(
        {"id": client_id, **NOT_DELETED}, {"_id": 0, "custom_fields_config": 1}
    )
    if not client:
        raise NotFoundError("Client introuvable")

    client_fields = client.get("custom_fields_config") or []
    if not project_id:
        return merge_configs(client_fields, [])

    project = await db.projects.find_one(
        {"id": project_id, **NOT_DELETED}, {"_id": 0, "custom_fields_config": 1}
    )
    if not project:
        raise NotFoundError("Projet introuvable")

    return merge_configs(client_fields, project.get("custom_fields_config") or [])


async def _update_config(db, collection: str, entity_id: str,
                         config: List[CustomFieldConfig], not_found: str) -> dict:
    docs = [f.to_doc() for f in config]
    result = await db[collection].update_one(
        {"id": entity_id, **NOT_DELETED},
        {"$set": {"custom_fields_config": docs, "updated_at": now_iso()}},
    )
    if result.matched_count == 0:
        raise NotFoundError(not_found)

    logger.info(f"[CUSTOM_FIELDS] {collection}/{entity_id}: {len(docs)} champ(s) configuré(s)")
    return {"id": entity_id, "custom_fields_config": docs}


async def update_client_config(db, client_id: str, config: List[CustomFieldConfig]) -> dict:
    return await _update_config(db, "clients", client_id, config, "Client introuvable")


async def update_project_config(db, project_id: str, config: List[CustomFieldConfig]) -> dict:
    return await _update_config(db, "projects", project_id, config, "Projet introuvable")


async def _update_data(db, collection: str, entity_id: str, data: dict, not_found: str) -> dict:
    result = await db[collection].update_one(
        {"id": entity_id, **NOT_DELETED},
        {"$set": {"custom_fields_data": data, "updated_at": now_iso()}},
    )
    if result.matched_count == 0:
        raise NotFoundError(not_found)
    return {"id": entity_id, "custom_fields_data": data}


async def update_site_data(db, site_id: str, data: dict) -> dict:
    return await _update_data(db, "sites", site_id, data, "Site introuvable")


async def update_task_data(db, task_id: str, data: dict) -> dict:
    return await _update_data(db, "tasks", task_id, data, "Tâche introuvable")
