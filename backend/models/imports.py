"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  ExeTeam - Import Excel                                                      ║
║                                                                              ║
║  - DTOs des jobs et modèles de mapping                                       ║
║  - Schémas de validation ligne par ligne (une ligne Excel mappée)            ║
║  - Champs disponibles / obligatoires par type d'entité                       ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import datetime as dt
import re
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Type

from pydantic import BeforeValidator, ConfigDict, Field, StringConstraints, field_validator
from typing_extensions import Annotated

from .common import ApiModel, Pagination, UuidStr


class ImportEntityType(str, Enum):
    CLIENTS = "clients"
    EMPLOYEES = "employees"
    SITES = "sites"
    TASKS = "tasks"
    PURCHASE_INVOICES = "purchase-invoices"


class ImportJobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


class OnDuplicateAction(str, Enum):
    SKIP = "skip"
    UPDATE = "update"


# ==================== JOBS / TEMPLATES ====================

class StartImportRequest(ApiModel):
    entity_type: ImportEntityType
    file_path: Annotated[str, StringConstraints(min_length=1)]
    file_name: Annotated[str, StringConstraints(min_length=1)]
    mappings: Dict[str, str]
    on_duplicate: OnDuplicateAction = OnDuplicateAction.SKIP
    template_id: Optional[UuidStr] = None


class SaveTemplateRequest(ApiModel):
    name: Annotated[str, StringConstraints(min_length=1, max_length=100)]
    entity_type: ImportEntityType
    mappings: Dict[str, str]


class ParseHeadersRequest(ApiModel):
    file_path: Annotated[str, StringConstraints(min_length=1)]


class ListImportsQuery(Pagination):
    limit: int = Field(20, ge=1, le=100)
    entity_type: Optional[ImportEntityType] = None
    status: Optional[ImportJobStatus] = None


class ImportRowError(ApiModel):
    row: int
    field: str = ""
    message: str


# ==================== COERCITIONS CELLULES EXCEL ====================

EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'


def is_valid_email_format(email: str) -> bool:
    """Vérifie le format email basique"""
    if not email:
        return False
    return bool(re.match(EMAIL_PATTERN, email))


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


def _excel_date(v: Any) -> Any:
    """Cellule date: datetime openpyxl, ISO ou JJ/MM/AAAA"""
    v = _blank_to_none(v)
    if v is None:
        return None
    if isinstance(v, dt.datetime):
        return v.date()
    if isinstance(v, dt.date):
        return v
    if isinstance(v, str):
        for fmt in ("%d/%m/%Y", "%d-%m-%Y"):
            try:
                return dt.datetime.strptime(v, fmt).date()
            except ValueError:
                pass
        return v[:10]
    return v


def _excel_number(v: Any) -> Any:
    """Cellule nombre: accepte la virgule décimale française"""
    v = _blank_to_none(v)
    if isinstance(v, str):
        return v.replace(" ", "").replace(" ", "").replace(",", ".")
    return v


Text = Annotated[Optional[str], BeforeValidator(_blank_to_none)]
RequiredText = Annotated[str, BeforeValidator(_blank_to_none), StringConstraints(min_length=1)]
ExcelDate = Annotated[Optional[dt.date], BeforeValidator(_excel_date)]
RequiredExcelDate = Annotated[dt.date, BeforeValidator(_excel_date)]
ExcelNumber = Annotated[Optional[float], BeforeValidator(_excel_number)]
PositiveExcelNumber = Annotated[Optional[float], BeforeValidator(_excel_number), Field(ge=0)]
RequiredExcelNumber = Annotated[float, BeforeValidator(_excel_number)]


class RowModel(ApiModel):
    """Une ligne Excel mappée. Les identifiants numériques (SIRET...) restent du texte."""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    # Messages métier pour les champs obligatoires manquants
    required_messages: ClassVar[Dict[str, str]] = {}


def _optional_email(v: Optional[str]) -> Optional[str]:
    if v is not None and not is_valid_email_format(v):
        raise ValueError("Email invalide")
    return v


class ClientRow(RowModel):
    required_messages: ClassVar[Dict[str, str]] = {"name": "Nom requis"}

    name: RequiredText
    legal_name: Text = None
    siret: Text = None
    vat_number: Text = None
    email: Text = None
    phone: Text = None
    address_line1: Text = None
    postal_code: Text = None
    city: Text = None
    country: Text = None
    payment_conditions: Text = None
    notes: Text = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v: Optional[str]) -> Optional[str]:
        return _optional_email(v)


class EmployeeRow(RowModel):
    required_messages: ClassVar[Dict[str, str]] = {
        "first_name": "Prénom requis",
        "last_name": "Nom requis",
        "professional_email": "Email professionnel invalide",
    }

    first_name: RequiredText
    last_name: RequiredText
    professional_email: RequiredText
    personal_email: Text = None
    phone: Text = None
    position: Text = None
    contract_type: Text = None
    entry_date: ExcelDate = None
    weekly_hours: PositiveExcelNumber = None
    gross_salary: PositiveExcelNumber = None
    net_salary: PositiveExcelNumber = None
    address_line1: Text = None
    postal_code: Text = None
    city: Text = None

    @field_validator("professional_email")
    @classmethod
    def check_professional_email(cls, v: str) -> str:
        if not is_valid_email_format(v):
            raise ValueError("Email professionnel invalide")
        return v.lower()

    @field_validator("personal_email")
    @classmethod
    def check_personal_email(cls, v: Optional[str]) -> Optional[str]:
        return _optional_email(v)


class SiteRow(RowModel):
    required_messages: ClassVar[Dict[str, str]] = {
        "name": "Nom requis",
        "client_id": "Client requis",
        "address": "Adresse requise",
    }

    name: RequiredText
    client_id: RequiredText
    address: RequiredText
    postal_code: Text = None
    commune: Text = None
    departement: Text = None
    country: Text = None
    latitude: ExcelNumber = None
    longitude: ExcelNumber = None


class TaskRow(RowModel):
    required_messages: ClassVar[Dict[str, str]] = {"title": "Titre requis", "project_id": "Projet requis"}

    title: RequiredText
    project_id: RequiredText
    description: Text = None
    status: Text = None
    priority: Text = None
    employee_id: Text = None
    planned_start_date: ExcelDate = None
    planned_end_date: ExcelDate = None
    estimated_hours: PositiveExcelNumber = None


class PurchaseInvoiceRow(RowModel):
    required_messages: ClassVar[Dict[str, str]] = {
        "reference": "Référence requise",
        "supplier_id": "Fournisseur requis",
        "amount": "Montant requis",
        "date": "Date requise",
    }

    reference: RequiredText
    supplier_id: RequiredText
    amount: RequiredExcelNumber
    date: RequiredExcelDate
    vat_rate: PositiveExcelNumber = None
    due_date: ExcelDate = None
    notes: Text = None


ROW_MODELS: Dict[ImportEntityType, Type[RowModel]] = {
    ImportEntityType.CLIENTS: ClientRow,
    ImportEntityType.EMPLOYEES: EmployeeRow,
    ImportEntityType.SITES: SiteRow,
    ImportEntityType.TASKS: TaskRow,
    ImportEntityType.PURCHASE_INVOICES: PurchaseInvoiceRow,
}


def get_row_model(entity_type: ImportEntityType) -> Type[RowModel]:
    return ROW_MODELS[ImportEntityType(entity_type)]


# ==================== CHAMPS PAR ENTITÉ (wizard) ====================

# Champs obligatoires (noms d'API) par type d'entité
REQUIRED_FIELDS: Dict[ImportEntityType, List[str]] = {
    ImportEntityType.CLIENTS: ["name"],
    ImportEntityType.EMPLOYEES: ["firstName", "lastName", "professionalEmail"],
    ImportEntityType.SITES: ["name", "clientId", "address"],
    ImportEntityType.TASKS: ["title", "projectId"],
    ImportEntityType.PURCHASE_INVOICES: ["reference", "supplierId", "amount", "date"],
}

# Champs proposés au mapping, avec le libellé affiché et l'en-tête du modèle Excel
AVAILABLE_FIELDS: Dict[ImportEntityType, List[Dict[str, str]]] = {
    ImportEntityType.CLIENTS: [
        {"value": "name", "label": "Nom *", "header": "Nom"},
        {"value": "legalName", "label": "Raison sociale", "header": "Raison sociale"},
        {"value": "siret", "label": "SIRET", "header": "SIRET"},
        {"value": "vatNumber", "label": "N° TVA", "header": "N° TVA"},
        {"value": "email", "label": "Email", "header": "Email"},
        {"value": "phone", "label": "Téléphone", "header": "Téléphone"},
        {"value": "addressLine1", "label": "Adresse", "header": "Adresse"},
        {"value": "postalCode", "label": "Code postal", "header": "Code postal"},
        {"value": "city", "label": "Ville", "header": "Ville"},
        {"value": "country", "label": "Pays", "header": "Pays"},
        {"value": "paymentConditions", "label": "Conditions de paiement", "header": "Conditions de paiement"},
        {"value": "notes", "label": "Notes", "header": "Notes"},
    ],
    ImportEntityType.EMPLOYEES: [
        {"value": "firstName", "label": "Prénom *", "header": "Prénom"},
        {"value": "lastName", "label": "Nom *", "header": "Nom"},
        {"value": "professionalEmail", "label": "Email professionnel *", "header": "Email professionnel"},
        {"value": "personalEmail", "label": "Email personnel", "header": "Email personnel"},
        {"value": "phone", "label": "Téléphone", "header": "Téléphone"},
        {"value": "position", "label": "Poste", "header": "Poste"},
        {"value": "contractType", "label": "Type de contrat", "header": "Type de contrat"},
        {"value": "entryDate", "label": "Date d'entrée", "header": "Date d'entrée"},
        {"value": "weeklyHours", "label": "Heures hebdomadaires", "header": "Heures hebdomadaires"},
        {"value": "grossSalary", "label": "Salaire brut", "header": "Salaire brut"},
        {"value": "netSalary", "label": "Salaire net", "header": "Salaire net"},
        {"value": "addressLine1", "label": "Adresse", "header": "Adresse"},
        {"value": "postalCode", "label": "Code postal", "header": "Code postal"},
        {"value": "city", "label": "Ville", "header": "Ville"},
    ],
    ImportEntityType.SITES: [
        {"value": "name", "label": "Nom *", "header": "Nom"},
        {"value": "clientId", "label": "Client (ID) *", "header": "Client (ID)"},
        {"value": "address", "label": "Adresse *", "header": "Adresse"},
        {"value": "postalCode", "label": "Code postal", "header": "Code postal"},
        {"value": "commune", "label": "Commune", "header": "Commune"},
        {"value": "departement", "label": "Département", "header": "Département"},
        {"value": "country", "label": "Pays", "header": "Pays"},
        {"value": "latitude", "label": "Latitude", "header": "Latitude"},
        {"value": "longitude", "label": "Longitude", "header": "Longitude"},
    ],
    ImportEntityType.TASKS: [
        {"value": "title", "label": "Titre *", "header": "Titre"},
        {"value": "projectId", "label": "Projet (ID) *", "header": "Projet (ID)"},
        {"value": "description", "label": "Description", "header": "Description"},
        {"value": "status", "label": "Statut", "header": "Statut"},
        {"value": "priority", "label": "Priorité", "header": "Priorité"},
        {"value": "employeeId", "label": "Employé assigné (ID)", "header": "Employé assigné (ID)"},
        {"value": "plannedStartDate", "label": "Date début prévue", "header": "Date début prévue"},
        {"value": "plannedEndDate", "label": "Date fin prévue", "header": "Date fin prévue"},
        {"value": "estimatedHours", "label": "Heures estimées", "header": "Heures estimées"},
    ],
    ImportEntityType.PURCHASE_INVOICES: [
        {"value": "reference", "label": "Référence *", "header": "Référence"},
        {"value": "supplierId", "label": "Fournisseur (ID) *", "header": "Fournisseur (ID)"},
        {"value": "amount", "label": "Montant HT *", "header": "Montant HT"},
        {"value": "date", "label": "Date *", "header": "Date"},
        {"value": "vatRate", "label": "Taux TVA", "header": "Taux TVA"},
        {"value": "dueDate", "label": "Date d'échéance", "header": "Date d'échéance"},
        {"value": "notes", "label": "Notes", "header": "Notes"},
    ],
}


def template_headers(entity_type: ImportEntityType) -> List[str]:
    """En-têtes du modèle Excel téléchargeable"""
    return [f["header"] for f in AVAILABLE_FIELDS[ImportEntityType(entity_type)]]
