"""
ExeTeam - Routes Saisie des temps
Saisies (CRUD), feuilles de temps hebdo / mensuelle / équipe, export CSV, validation.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from models.common import camelize
from models.time_entry import (
    BulkValidateRequest,
    ExportTimesheetQuery,
    MonthlyTimesheetQuery,
    TeamTimesheetQuery,
    TimeEntryCreate,
    TimeEntryListQuery,
    TimeEntryUpdate,
    WeeklyTimesheetQuery,
)
from routes.deps import client_ip, get_db, query_model
from services import timesheets
from services.activity_logger import log_activity
from services.permissions import require_permission

router = APIRouter(prefix="/time-entries", tags=["Saisie des temps"])


@router.get("")
async def list_entries(
    query: TimeEntryListQuery = Depends(query_model(TimeEntryListQuery)),
    user: dict = Depends(require_permission("tasks.read")),
    db=Depends(get_db),
):
    return camelize(await timesheets.list_entries(db, query))


# ==================== FEUILLES DE TEMPS ====================

@router.get("/weekly")
async def weekly(
    query: WeeklyTimesheetQuery = Depends(query_model(WeeklyTimesheetQuery)),
    user: dict = Depends(require_permission("timesheets.read")),
    db=Depends(get_db),
):
    return camelize(await timesheets.weekly_timesheet(db, query))


@router.get("/monthly")
async def monthly(
    query: MonthlyTimesheetQuery = Depends(query_model(MonthlyTimesheetQuery)),
    user: dict = Depends(require_permission("timesheets.read")),
    db=Depends(get_db),
):
    return camelize(await timesheets.monthly_timesheet(db, query))


@router.get("/team")
async def team(
    query: TeamTimesheetQuery = Depends(query_model(TeamTimesheetQuery)),
    user: dict = Depends(require_permission("timesheets.validate")),
    db=Depends(get_db),
):
    return camelize(await timesheets.team_timesheet(db, query, user))


@router.get("/export")
async def export(
    request: Request,
    query: ExportTimesheetQuery = Depends(query_model(ExportTimesheetQuery)),
    user: dict = Depends(require_permission("timesheets.export")),
    db=Depends(get_db),
):
    result = await timesheets.export_timesheet(db, query)
    await log_activity(
        db, user, "export", "time_entry",
        entity_name=result["filename"],
        ip_address=client_ip(request),
    )
    return Response(
        content=result["data"].encode("utf-8"),
        media_type=result["content_type"],
        headers={"Content-Disposition": f'attachment; filename="{result["filename"]}"'},
    )


@router.patch("/bulk-validate")
async def bulk_validate(
    data: BulkValidateRequest,
    request: Request,
    user: dict = Depends(require_permission("timesheets.validate")),
    db=Depends(get_db),
):
    result = await timesheets.bulk_validate(db, data, user)
    await log_activity(
        db, user, "validate", "time_entry",
        details={"count": result["validated"]},
        ip_address=client_ip(request),
    )
    return result


# ==================== SAISIES ====================

@router.get("/{entry_id}")
async def get_entry(
    entry_id: str,
    user: dict = Depends(require_permission("tasks.read")),
    db=Depends(get_db),
):
    return camelize(await timesheets.get_entry(db, entry_id))


@router.post("")
async def create_entry(
    data: TimeEntryCreate,
    user: dict = Depends(require_permission("tasks.update")),
    db=Depends(get_db),
):
    entry = await timesheets.create_entry(db, data, user["id"])
    await log_activity(db, user, "create", "time_entry", entity_id=entry["id"],
                       details={"hours": entry["hours"], "date": entry["date"]})
    return camelize(entry)


@router.patch("/{entry_id}")
async def update_entry(
    entry_id: str,
    data: TimeEntryUpdate,
    user: dict = Depends(require_permission("tasks.update")),
    db=Depends(get_db),
):
    return camelize(await timesheets.update_entry(db, entry_id, data))


@router.delete("/{entry_id}")
async def delete_entry(
    entry_id: str,
    user: dict = Depends(require_permission("tasks.update")),
    db=Depends(get_db),
):
    result = await timesheets.delete_entry(db, entry_id)
    await log_activity(db, user, "delete", "time_entry", entity_id=entry_id)
    return result


@router.patch("/{entry_id}/validate")
async def validate_entry(
    entry_id: str,
    user: dict = Depends(require_permission("tasks.update")),
    db=Depends(get_db),
):
    return camelize(await timesheets.validate_entry(db, entry_id))
