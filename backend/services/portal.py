"""
Espace client: demandes du client rattaché au compte connecté

Un compte client porte `client_id` et `project_id`. Tant qu'ils ne sont
pas renseignés, la liste renvoie un message à afficher au lieu d'une erreur.
"""

import logging
import re
import uuid

from config import now_iso, today_utc
from models.common import paginated
from models.portal import CreateDemandRequest, ListDemandsQuery
from services.errors import ServiceError

logger = logging.getLogger("portal")

NOT_LINKED_MESSAGE = (
    "Votre compte n'est pas encore associé à un client. Contactez votre administrateur."
)


def portal_link(user: dict):
    """(client_id, project_id) du compte, ou None si incomplet"""
    client_id = user.get("client_id")
    project_id = user.get("project_id")
    if not client_id or not project_id:
        return None
    return client_id, project_id


async def next_demand_reference(db) -> str:
    """DEM-YYYYMMDD-0001, séquence par jour"""
    prefix = f"DEM-{today_utc().strftime('%Y%m%d')}-"
    count = await db.demands.count_documents({"reference": {"$regex": f"^{re.escape(prefix)}"}})
    return f"{prefix}{count + 1:04d}"


async def list_my_demands(db, user: dict, query: ListDemandsQuery) -> dict:
    link = portal_link(user)
    if not link:
        return {"linked": False, "message": NOT_LINKED_MESSAGE, "data": [], "total": 0,
                "page": query.page, "limit": query.limit, "totalPages": 0}

    client_id, project_id = link
    where = {"client_id": client_id, "deleted_at": None}
    if query.status:
        where["status"] = query.status.value
    if query.search:
        pattern = {"$regex": re.escape(query.search), "$options": "i"}
        where["$or"] = [{"title": pattern}, {"reference": pattern}, {"description": pattern}]

    demands = await db.demands.find(where, {"_id": 0}) \
        .sort("created_at", -1).skip(query.skip).limit(query.limit).to_list(query.limit)
    total = await db.demands.count_documents(where)

    return {"linked": True, "client_id": client_id, "project_id": project_id,
            **paginated(demands, total, query.page, query.limit)}


async def create_my_demand(db, user: dict, data: CreateDemandRequest) -> dict:
    link = portal_link(user)
    if not link:
        raise ServiceError(NOT_LINKED_MESSAGE)

    client_id, project_id = link
    demand = {
        "id": str(uuid.uuid4()),
        "reference": await next_demand_reference(db),
        **data.to_doc(),
        "client_id": client_id,
        "project_id": project_id,
        "status": "nouvelle",
        "requested_at": now_iso(),
        "created_by_id": user["id"],
        "deleted_at": None,
        "created_at": now_iso(),
        "updated_at": now_iso(),
    }
    await db.demands.insert_one(dict(demand))
    logger.info(f"[PORTAL] Demande {demand['reference']} créée par {user.get('email')}")
    return demand
