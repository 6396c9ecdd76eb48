"""
ExeTeam - DTOs tableaux de bord
"""

import datetime as dt
from enum import Enum
from typing import Literal, Optional

from pydantic import Field

from .common import ApiModel, UuidStr


class DashboardExportType(str, Enum):
    GENERAL = "general"
    PRODUCTION = "production"
    FINANCIER = "financier"
    RENTABILITE = "rentabilite"


# Exports et tableaux réservés au gérant et au comptable
RESTRICTED_EXPORT_TYPES = {DashboardExportType.FINANCIER, DashboardExportType.RENTABILITE}

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class ExportQuery(ApiModel):
    type: DashboardExportType
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    format: Literal["xlsx"] = "xlsx"


class ProductionQuery(ApiModel):
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    operator_id: Optional[UuidStr] = None
    client_id: Optional[UuidStr] = None


class FinancierQuery(ApiModel):
    year: Optional[int] = Field(None, ge=2020, le=2100)
    month: Optional[int] = Field(None, ge=1, le=12)
