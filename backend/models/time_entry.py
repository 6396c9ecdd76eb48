"""
ExeTeam - DTOs saisie des temps et feuilles de temps
"""

import datetime as dt
from typing import List, Literal, Optional

from pydantic import Field, StringConstraints, field_validator
from typing_extensions import Annotated

from .common import ApiModel, Pagination, UuidStr

MONTH_PATTERN = r'^\d{4}-(0[1-9]|1[0-2])$'

MAX_BULK_IDS = 500
MAX_DAILY_HOURS = 24


class TimeEntryCreate(ApiModel):
    task_id: UuidStr
    employee_id: UuidStr
    date: dt.date
    hours: float = Field(..., gt=0, le=MAX_DAILY_HOURS)
    comment: Optional[str] = None


class TimeEntryUpdate(ApiModel):
    """La tâche d'une saisie ne change jamais"""
    employee_id: Optional[UuidStr] = None
    date: Optional[dt.date] = None
    hours: Optional[float] = Field(None, gt=0, le=MAX_DAILY_HOURS)
    comment: Optional[str] = None


class TimeEntryListQuery(Pagination):
    limit: int = Field(50, ge=1, le=200)
    task_id: Optional[UuidStr] = None
    employee_id: Optional[UuidStr] = None
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None
    is_validated: Optional[bool] = None


class BulkValidateRequest(ApiModel):
    ids: List[UuidStr] = Field(..., min_length=1, max_length=MAX_BULK_IDS)

    @field_validator("ids")
    @classmethod
    def unique_ids(cls, v: List[str]):
        if len({i.lower() for i in v}) != len(v):
            raise ValueError("Identifiants dupliqués")
        return v


class ExportTimesheetQuery(ApiModel):
    # Pas de contrôle date_from <= date_to: une plage inversée exporte un fichier vide
    employee_id: Optional[UuidStr] = None
    date_from: dt.date
    date_to: dt.date
    format: Literal["csv"] = "csv"


class WeeklyTimesheetQuery(ApiModel):
    employee_id: UuidStr
    week_start: dt.date


class MonthlyTimesheetQuery(ApiModel):
    employee_id: UuidStr
    month: Annotated[str, StringConstraints(pattern=MONTH_PATTERN)]

    @property
    def year_month(self):
        year, month = self.month.split("-")
        return int(year), int(month)


class TeamTimesheetQuery(ApiModel):
    manager_id: Optional[UuidStr] = None
    week_start: dt.date
