"""
ExeTeam - Comptabilité (fournisseurs, factures d'achat, notes de frais)

Projections de lecture et filtres de liste.
"""

import datetime as dt
from enum import Enum
from typing import Optional

from pydantic import Field, StringConstraints, field_validator
from typing_extensions import Annotated

from .common import ApiModel, Pagination, UuidStr
from .imports import is_valid_email_format


class PurchaseInvoiceStatus(str, Enum):
    EN_ATTENTE = "en_attente"
    VALIDEE = "validee"
    PAYEE_PARTIELLEMENT = "payee_partiellement"
    PAYEE = "payee"
    ANNULEE = "annulee"


class ExpenseReportStatus(str, Enum):
    EN_ATTENTE = "en_attente"
    APPROUVE = "approuve"
    REFUSE = "refuse"
    REMBOURSE = "rembourse"


class NamedRef(ApiModel):
    id: str
    name: str


class PersonRef(ApiModel):
    id: str
    first_name: str
    last_name: str


class SupplierSummary(ApiModel):
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    vat_number: Optional[str] = None
    siret: Optional[str] = None
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    purchase_invoice_count: int = 0


class PurchaseInvoiceSummary(ApiModel):
    id: str
    reference: str
    supplier_id: str
    supplier: Optional[NamedRef] = None
    invoice_date: dt.date
    due_date: Optional[dt.date] = None
    status: PurchaseInvoiceStatus = PurchaseInvoiceStatus.EN_ATTENTE
    total_ht: float = 0
    vat_amount: float = 0
    total_ttc: float = 0
    amount_paid: float = 0
    file_url: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ExpenseReportSummary(ApiModel):
    id: str
    employee_id: str
    employee: Optional[PersonRef] = None
    approver_id: Optional[str] = None
    approver: Optional[PersonRef] = None
    title: str
    description: Optional[str] = None
    amount: float
    vat_amount: Optional[float] = None
    status: ExpenseReportStatus = ExpenseReportStatus.EN_ATTENTE
    expense_date: dt.date
    receipt_url: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# ==================== REQUÊTES ====================

class SupplierCreate(ApiModel):
    name: Annotated[str, StringConstraints(min_length=1, max_length=200)]
    email: Optional[str] = None
    phone: Optional[Annotated[str, StringConstraints(max_length=30)]] = None
    address: Optional[Annotated[str, StringConstraints(max_length=500)]] = None
    vat_number: Optional[Annotated[str, StringConstraints(max_length=30)]] = None
    siret: Optional[Annotated[str, StringConstraints(max_length=20)]] = None
    is_active: bool = True

    @field_validator("email")
    @classmethod
    def check_email(cls, v: Optional[str]) -> Optional[str]:
        # Chaîne vide acceptée comme "pas d'email"
        if not v:
            return None
        if not is_valid_email_format(v):
            raise ValueError("Email invalide")
        return v.lower()


class ListSuppliersQuery(Pagination):
    search: Optional[str] = None
    is_active: Optional[bool] = None


class ListPurchaseInvoicesQuery(Pagination):
    search: Optional[str] = None
    supplier_id: Optional[UuidStr] = None
    status: Optional[PurchaseInvoiceStatus] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None


class ListExpenseReportsQuery(Pagination):
    search: Optional[str] = None
    employee_id: Optional[UuidStr] = None
    status: Optional[ExpenseReportStatus] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    pending_approval: bool = Field(False)
