"""
ExeTeam - Routes Tableaux de bord
Financier et rentabilité réservés au gérant et au comptable (super_admin inclus).
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response

from models.common import camelize
from models.dashboard import (
    RESTRICTED_EXPORT_TYPES,
    XLSX_CONTENT_TYPE,
    ExportQuery,
    FinancierQuery,
    ProductionQuery,
)
from routes.deps import client_ip, get_db, query_model
from services import dashboard
from services.activity_logger import log_activity
from services.permissions import has_finance_access, require_permission

router = APIRouter(prefix="/dashboard", tags=["Tableaux de bord"])

RESTRICTED_DETAIL = "Accès réservé au gérant et au comptable."
RESTRICTED_EXPORT_DETAIL = "Export réservé au gérant et au comptable."


@router.get("/general")
async def general(
    user: dict = Depends(require_permission("dashboard.read")),
    db=Depends(get_db),
):
    return camelize(await dashboard.general(db))


@router.get("/production")
async def production(
    query: ProductionQuery = Depends(query_model(ProductionQuery)),
    user: dict = Depends(require_permission("dashboard.read")),
    db=Depends(get_db),
):
    return camelize(await dashboard.production(db, query))


@router.get("/financier")
async def financier(
    query: FinancierQuery = Depends(query_model(FinancierQuery)),
    user: dict = Depends(require_permission("dashboard.read")),
    db=Depends(get_db),
):
    if not has_finance_access(user):
        raise HTTPException(status_code=403, detail=RESTRICTED_DETAIL)
    return camelize(await dashboard.financier(db, query))


@router.get("/rentabilite-salariale")
async def rentabilite(
    query: FinancierQuery = Depends(query_model(FinancierQuery)),
    user: dict = Depends(require_permission("dashboard.read")),
    db=Depends(get_db),
):
    if not has_finance_access(user):
        raise HTTPException(status_code=403, detail=RESTRICTED_DETAIL)
    return camelize(await dashboard.rentabilite(db, query.year, query.month))


@router.get("/export")
async def export(
    request: Request,
    query: ExportQuery = Depends(query_model(ExportQuery)),
    user: dict = Depends(require_permission("dashboard.read")),
    db=Depends(get_db),
):
    """Classeur .xlsx: dashboard-<type>-<date>.xlsx"""
    if query.type in RESTRICTED_EXPORT_TYPES and not has_finance_access(user):
        raise HTTPException(status_code=403, detail=RESTRICTED_EXPORT_DETAIL)

    content = await dashboard.build_export(db, query.type, query.start_date, query.end_date)
    filename = dashboard.export_filename(query.type)

    await log_activity(
        db, user, "export", "dashboard",
        entity_name=filename,
        ip_address=client_ip(request),
    )
    return Response(
        content=content,
        media_type=XLSX_CONTENT_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
