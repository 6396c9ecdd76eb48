"""
Comptabilité: fournisseurs, factures d'achat, notes de frais (lecture + création fournisseur)
"""

import logging
import re
import uuid
from typing import List

from config import now_iso
from models.accounting import (
    ExpenseReportSummary,
    ListExpenseReportsQuery,
    ListPurchaseInvoicesQuery,
    ListSuppliersQuery,
    PurchaseInvoiceSummary,
    SupplierCreate,
    SupplierSummary,
)
from models.common import paginated
from services.errors import NotFoundError

logger = logging.getLogger("accounting")


def _contains(text: str) -> dict:
    return {"$regex": re.escape(text), "$options": "i"}


def _date_range(field: str, start, end) -> dict:
    if not (start or end):
        return {}
    bounds = {}
    if start:
        bounds["$gte"] = start.isoformat()
    if end:
        bounds["$lte"] = end.isoformat()
    return {field: bounds}


async def _by_id(db, collection: str, ids: List[str], projection: dict) -> dict:
    ids = [i for i in set(ids) if i]
    if not ids:
        return {}
    docs = await db[collection].find({"id": {"$in": ids}}, {"_id": 0, **projection}).to_list(None)
    return {d["id"]: d for d in docs}


# ==================== FOURNISSEURS ====================

async def list_suppliers(db, query: ListSuppliersQuery) -> dict:
    where = {}
    if query.is_active is not None:
        where["is_active"] = query.is_active
    if query.search:
        where["$or"] = [
            {"name": _contains(query.search)},
            {"email": _contains(query.search)},
            {"siret": _contains(query.search)},
        ]

    suppliers = await db.suppliers.find(where, {"_id": 0}) \
        .sort("name", 1).skip(query.skip).limit(query.limit).to_list(query.limit)
    total = await db.suppliers.count_documents(where)

    data = []
    for supplier in suppliers:
        supplier["purchase_invoice_count"] = await db.purchase_invoices.count_documents(
            {"supplier_id": supplier["id"]}
        )
        data.append(SupplierSummary.model_validate(supplier).to_doc())
    return paginated(data, total, query.page, query.limit)


async def create_supplier(db, data: SupplierCreate) -> dict:
    supplier = {
        "id": str(uuid.uuid4()),
        **data.to_doc(),
        "created_at": now_iso(),
        "updated_at": now_iso(),
    }
    await db.suppliers.insert_one(dict(supplier))
    logger.info(f"[ACCOUNTING] Fournisseur créé: {data.name}")
    return supplier


async def get_supplier(db, supplier_id: str) -> dict:
    supplier = await db.suppliers.find_one({"id": supplier_id}, {"_id": 0})
    if not supplier:
        raise NotFoundError("Fournisseur introuvable")
    supplier["purchase_invoice_count"] = await db.purchase_invoices.count_documents(
        {"supplier_id": supplier_id}
    )
    return SupplierSummary.model_validate(supplier).to_doc()


async def supplier_stats(db) -> dict:
    total = await db.suppliers.count_documents({})
    active = await db.suppliers.count_documents({"is_active": True})
    invoices = await db.purchase_invoices.find({}, {"_id": 0, "total_ht": 1}).to_list(None)
    return {
        "total": total,
        "active": active,
        "inactive": total - active,
        "total_purchase_ht": sum(float(i.get("total_ht") or 0) for i in invoices),
    }


# ==================== FACTURES D'ACHAT ====================

async def list_purchase_invoices(db, query: ListPurchaseInvoicesQuery) -> dict:
    where = {}
    if query.supplier_id:
        where["supplier_id"] = query.supplier_id
    if query.status:
        where["status"] = query.status.value
    where.update(_date_range("invoice_date", query.start_date, query.end_date))
    if query.search:
        matching = await db.suppliers.find(
            {"name": _contains(query.search)}, {"_id": 0, "id": 1}
        ).to_list(None)
        where["$or"] = [
            {"reference": _contains(query.search)},
            {"notes": _contains(query.search)},
            {"supplier_id": {"$in": [s["id"] for s in matching]}},
        ]

    invoices = await db.purchase_invoices.find(where, {"_id": 0}) \
        .sort("invoice_date", -1).skip(query.skip).limit(query.limit).to_list(query.limit)
    total = await db.purchase_invoices.count_documents(where)

    suppliers = await _by_id(db, "suppliers", [i.get("supplier_id") for i in invoices], {"id": 1, "name": 1})
    data = []
    for invoice in invoices:
        invoice["supplier"] = suppliers.get(invoice.get("supplier_id"))
        data.append(PurchaseInvoiceSummary.model_validate(invoice).to_doc())
    return paginated(data, total, query.page, query.limit)


# ==================== NOTES DE FRAIS ====================

async def list_expense_reports(db, query: ListExpenseReportsQuery) -> dict:
    where = {}
    if query.employee_id:
        where["employee_id"] = query.employee_id
    if query.status:
        where["status"] = query.status.value
    if query.pending_approval:
        where["status"] = "en_attente"
    where.update(_date_range("expense_date", query.start_date, query.end_date))
    if query.search:
        matching = await db.employees.find(
            {"$or": [{"first_name": _contains(query.search)}, {"last_name": _contains(query.search)}]},
            {"_id": 0, "id": 1},
        ).to_list(None)
        where["$or"] = [
            {"title": _contains(query.search)},
            {"description": _contains(query.search)},
            {"employee_id": {"$in": [e["id"] for e in matching]}},
        ]

    reports = await db.expense_reports.find(where, {"_id": 0}) \
        .sort("expense_date", -1).skip(query.skip).limit(query.limit).to_list(query.limit)
    total = await db.expense_reports.count_documents(where)

    people = await _by_id(
        db, "employees",
        [r.get("employee_id") for r in reports] + [r.get("approver_id") for r in reports],
        {"id": 1, "first_name": 1, "last_name": 1},
    )
    data = []
    for report in reports:
        report["employee"] = people.get(report.get("employee_id"))
        report["approver"] = people.get(report.get("approver_id"))
        data.append(ExpenseReportSummary.model_validate(report).to_doc())
    return paginated(data, total, query.page, query.limit)
