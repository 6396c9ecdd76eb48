"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  ExeTeam - Models Package                                                    ║
║                                                                              ║
║  Exports les DTOs pour import facile                                         ║
║  from models import Pagination, TimeEntryCreate, StartImportRequest, etc.    ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

# Communs
from .common import (
    UUID_PATTERN,
    UuidStr,
    ApiModel,
    Pagination,
    PaginatedResult,
    paginated,
    camelize,
)

# Auth
from .auth import (
    LoginRequest,
    ActivityLogQuery,
)

# Champs personnalisés
from .custom_fields import (
    CustomFieldType,
    CustomFieldScope,
    CustomFieldConfig,
    UpdateConfigRequest,
)

# Saisie des temps
from .time_entry import (
    MONTH_PATTERN,
    MAX_BULK_IDS,
    MAX_DAILY_HOURS,
    TimeEntryCreate,
    TimeEntryUpdate,
    TimeEntryListQuery,
    BulkValidateRequest,
    ExportTimesheetQuery,
    WeeklyTimesheetQuery,
    MonthlyTimesheetQuery,
    TeamTimesheetQuery,
)

# Import Excel
from .imports import (
    ImportEntityType,
    ImportJobStatus,
    OnDuplicateAction,
    StartImportRequest,
    SaveTemplateRequest,
    ListImportsQuery,
    REQUIRED_FIELDS,
    AVAILABLE_FIELDS,
    get_row_model,
    template_headers,
)

# Tableaux de bord
from .dashboard import (
    DashboardExportType,
    RESTRICTED_EXPORT_TYPES,
    ExportQuery,
    ProductionQuery,
    FinancierQuery,
)

# Comptabilité
from .accounting import (
    PurchaseInvoiceStatus,
    ExpenseReportStatus,
    SupplierSummary,
    PurchaseInvoiceSummary,
    ExpenseReportSummary,
    SupplierCreate,
    ListSuppliersQuery,
    ListPurchaseInvoicesQuery,
    ListExpenseReportsQuery,
)

# Messagerie
from .messaging import (
    RealtimeMessage,
    CreateConversationRequest,
    SendMessageRequest,
)

# Espace client
from .portal import (
    DemandStatus,
    DemandPriority,
    CreateDemandRequest,
    ListDemandsQuery,
)

__all__ = [
    # Communs
    "UUID_PATTERN",
    "UuidStr",
    "ApiModel",
    "Pagination",
    "PaginatedResult",
    "paginated",
    "camelize",
    # Auth
    "LoginRequest",
    "ActivityLogQuery",
    # Champs personnalisés
    "CustomFieldType",
    "CustomFieldScope",
    "CustomFieldConfig",
    "UpdateConfigRequest",
    # Saisie des temps
    "MONTH_PATTERN",
    "MAX_BULK_IDS",
    "MAX_DAILY_HOURS",
    "TimeEntryCreate",
    "TimeEntryUpdate",
    "TimeEntryListQuery",
    "BulkValidateRequest",
    "ExportTimesheetQuery",
    "WeeklyTimesheetQuery",
    "MonthlyTimesheetQuery",
    "TeamTimesheetQuery",
    # Import Excel
    "ImportEntityType",
    "ImportJobStatus",
    "OnDuplicateAction",
    "StartImportRequest",
    "SaveTemplateRequest",
    "ListImportsQuery",
    "REQUIRED_FIELDS",
    "AVAILABLE_FIELDS",
    "get_row_model",
    "template_headers",
    # Tableaux de bord
    "DashboardExportType",
    "RESTRICTED_EXPORT_TYPES",
    "ExportQuery",
    "ProductionQuery",
    "FinancierQuery",
    # Comptabilité
    "PurchaseInvoiceStatus",
    "ExpenseReportStatus",
    "SupplierSummary",
    "PurchaseInvoiceSummary",
    "ExpenseReportSummary",
    "SupplierCreate",
    "ListSuppliersQuery",
    "ListPurchaseInvoicesQuery",
    "ListExpenseReportsQuery",
    # Messagerie
    "RealtimeMessage",
    "CreateConversationRequest",
    "SendMessageRequest",
    # Espace client
    "DemandStatus",
    "DemandPriority",
    "CreateDemandRequest",
    "ListDemandsQuery",
]
