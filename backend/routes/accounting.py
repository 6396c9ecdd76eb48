"""
ExeTeam - Routes Comptabilité
"""

from fastapi import APIRouter, Depends, Request

from models.accounting import (
    ListExpenseReportsQuery,
    ListPurchaseInvoicesQuery,
    ListSuppliersQuery,
    SupplierCreate,
)
from models.common import camelize
from routes.deps import client_ip, get_db, query_model
from services import accounting
from services.activity_logger import log_activity
from services.permissions import require_permission

router = APIRouter(prefix="/accounting", tags=["Comptabilité"])


# ==================== FOURNISSEURS ====================

@router.get("/suppliers")
async def list_suppliers(
    query: ListSuppliersQuery = Depends(query_model(ListSuppliersQuery)),
    user: dict = Depends(require_permission("accounting.read")),
    db=Depends(get_db),
):
    return camelize(await accounting.list_suppliers(db, query))


@router.get("/suppliers/stats")
async def supplier_stats(
    user: dict = Depends(require_permission("accounting.read")),
    db=Depends(get_db),
):
    return camelize(await accounting.supplier_stats(db))


@router.get("/suppliers/{supplier_id}")
async def get_supplier(
    supplier_id: str,
    user: dict = Depends(require_permission("accounting.read")),
    db=Depends(get_db),
):
    return camelize(await accounting.get_supplier(db, supplier_id))


@router.post("/suppliers")
async def create_supplier(
    data: SupplierCreate,
    request: Request,
    user: dict = Depends(require_permission("accounting.write")),
    db=Depends(get_db),
):
    supplier = await accounting.create_supplier(db, data)
    await log_activity(
        db, user, "create", "supplier",
        entity_id=supplier["id"], entity_name=supplier["name"],
        ip_address=client_ip(request),
    )
    return camelize(supplier)


# ==================== FACTURES / NOTES DE FRAIS ====================

@router.get("/purchase-invoices")
async def list_purchase_invoices(
    query: ListPurchaseInvoicesQuery = Depends(query_model(ListPurchaseInvoicesQuery)),
    user: dict = Depends(require_permission("accounting.read")),
    db=Depends(get_db),
):
    return camelize(await accounting.list_purchase_invoices(db, query))


@router.get("/expense-reports")
async def list_expense_reports(
    query: ListExpenseReportsQuery = Depends(query_model(ListExpenseReportsQuery)),
    user: dict = Depends(require_permission("accounting.read")),
    db=Depends(get_db),
):
    return camelize(await accounting.list_expense_reports(db, query))
