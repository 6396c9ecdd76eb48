"""
Journal d'activité (collection `activity_logs`)

Actions: create, update, delete, login, logout, validate, export, import
Types d'entité: time_entry, custom_fields, import_job, import_template,
supplier, conversation, dashboard, user
"""

import logging
import uuid

from config import now_iso
from models.auth import ActivityLogQuery
from models.common import paginated

logger = logging.getLogger("activity")


def _display_name(user: dict) -> str:
    name = " ".join(p for p in (user.get("first_name"), user.get("last_name")) if p)
    return name or user.get("email") or "Système"


async def log_activity(
    db,
    user: dict,
    action: str,
    entity_type: str,
    entity_id: str = None,
    entity_name: str = None,
    details: dict = None,
    ip_address: str = None
):
    entry = {
        "id": str(uuid.uuid4()),
        "user_id": user.get("id", "system"),
        "user_email": user.get("email", "system"),
        "user_name": _display_name(user),
        "action": action,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "entity_name": entity_name,
        "details": details or {},
        "ip_address": ip_address,
        "created_at": now_iso(),
    }
    await db.activity_logs.insert_one(dict(entry))
    logger.debug(f"[ACTIVITY] {entry['user_email']} {action} {entity_type} {entity_id or ''}")
    return entry


async def get_activity_logs(db, query: ActivityLogQuery) -> dict:
    """Journal paginé, le plus récent d'abord"""
    where = {}
    if query.user_id:
        where["user_id"] = query.user_id
    if query.entity_type:
        where["entity_type"] = query.entity_type
    if query.action:
        where["action"] = query.action

    created = {}
    if query.date_from:
        created["$gte"] = query.date_from.isoformat()
    if query.date_to:
        # Borne incluse: toute la journée
        created["$lt"] = f"{query.date_to.isoformat()}T23:59:59.999999+00:00"
    if created:
        where["created_at"] = created

    logs = await db.activity_logs.find(where, {"_id": 0}) \
        .sort("created_at", -1).skip(query.skip).limit(query.limit).to_list(query.limit)
    total = await db.activity_logs.count_documents(where)
    return paginated(logs, total, query.page, query.limit)
