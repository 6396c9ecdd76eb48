"""
ExeTeam - Routes Espace client (demandes)
"""

from fastapi import APIRouter, Depends

from models.common import camelize
from models.portal import CreateDemandRequest, ListDemandsQuery
from routes.deps import get_db, query_model
from services import portal
from services.permissions import require_permission

router = APIRouter(prefix="/portal", tags=["Espace client"])


@router.get("/demands")
async def my_demands(
    query: ListDemandsQuery = Depends(query_model(ListDemandsQuery)),
    user: dict = Depends(require_permission("demands.read")),
    db=Depends(get_db),
):
    """Demandes du client du compte, ou message si le compte n'est pas associé"""
    return camelize(await portal.list_my_demands(db, user, query))


@router.post("/demands")
async def create_demand(
    data: CreateDemandRequest,
    user: dict = Depends(require_permission("demands.create")),
    db=Depends(get_db),
):
    return camelize(await portal.create_my_demand(db, user, data))
