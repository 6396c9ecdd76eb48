"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  SAISIE DES TEMPS ET FEUILLES DE TEMPS                                       ║
║                                                                              ║
║  RÈGLES:                                                                     ║
║  - 24 h maximum par employé et par jour (toutes tâches confondues)           ║
║  - Une saisie validée ne peut plus être modifiée ni supprimée                ║
║  - Validation en masse: un manager ne valide que ses subordonnés             ║
║    (super_admin / gerant: tout le monde)                                     ║
║                                                                              ║
║  Dates stockées en "YYYY-MM-DD". Semaines du lundi au dimanche.              ║
║  Heures attendues: planning du type de contrat (défaut 8 h lun-ven).         ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import csv
import datetime as dt
import io
import logging
import uuid
from typing import Dict, List, Optional

from config import format_date, get_monday, month_bounds, now_iso
from models.common import paginated
from models.time_entry import (
    MAX_DAILY_HOURS,
    BulkValidateRequest,
    ExportTimesheetQuery,
    MonthlyTimesheetQuery,
    TeamTimesheetQuery,
    TimeEntryCreate,
    TimeEntryListQuery,
    TimeEntryUpdate,
    WeeklyTimesheetQuery,
)
from services.errors import ForbiddenError, NotFoundError, ServiceError
from services.permissions import is_admin

logger = logging.getLogger("timesheets")

DAY_KEYS = [
    "monday_hours", "tuesday_hours", "wednesday_hours", "thursday_hours",
    "friday_hours", "saturday_hours", "sunday_hours",
]

DEFAULT_SCHEDULE = {
    "monday_hours": 8, "tuesday_hours": 8, "wednesday_hours": 8,
    "thursday_hours": 8, "friday_hours": 8, "saturday_hours": 0, "sunday_hours": 0,
    "weekly_hours": 40,
}

CSV_COLUMNS = ["Date", "Employé", "Réf Tâche", "Projet", "Heures", "Commentaire", "Validé"]
CSV_BOM = "﻿"


def _day_of_week(day: dt.date) -> int:
    """0 = dimanche ... 6 = samedi"""
    return day.isoweekday() % 7


def _is_weekend(day: dt.date) -> bool:
    return day.weekday() >= 5


def _rate(total: float, expected: float) -> int:
    return round(total / expected * 100) if expected > 0 else 0


# ==================== DONNÉES DE RÉFÉRENCE ====================

async def get_work_schedule(db, employee_id: str) -> dict:
    employee = await db.employees.find_one({"id": employee_id}, {"_id": 0, "contract_type": 1})
    if employee and employee.get("contract_type"):
        schedule = await db.work_schedules.find_one(
            {"contract_type": employee["contract_type"]}, {"_id": 0}
        )
        if schedule:
            return schedule
    return dict(DEFAULT_SCHEDULE)


def day_hours(schedule: dict, day: dt.date) -> float:
    return float(schedule.get(DAY_KEYS[day.weekday()], 0) or 0)


async def _leave_days(db, employee_id: str, start: dt.date, end: dt.date) -> Dict[str, str]:
    """{date: type de congé} des congés approuvés sur la période"""
    leaves = await db.leave_requests.find({
        "employee_id": employee_id,
        "status": "approuve",
        "start_date": {"$lte": end.isoformat()},
        "end_date": {"$gte": start.isoformat()},
    }, {"_id": 0}).to_list(None)

    days = {}
    for leave in leaves:
        current = max(dt.date.fromisoformat(leave["start_date"][:10]), start)
        last = min(dt.date.fromisoformat(leave["end_date"][:10]), end)
        while current <= last:
            days[current.isoformat()] = leave.get("leave_type_name") or "Congé"
            current += dt.timedelta(days=1)
    return days


async def _holidays(db, start: dt.date, end: dt.date) -> Dict[str, str]:
    holidays = await db.public_holidays.find({
        "date": {"$gte": start.isoformat(), "$lte": end.isoformat()}
    }, {"_id": 0}).to_list(None)
    return {h["date"][:10]: h.get("label", "") for h in holidays}


async def _entries(db, employee_id: str, start: dt.date, end: dt.date) -> List[dict]:
    return await db.time_entries.find({
        "employee_id": employee_id,
        "date": {"$gte": start.isoformat(), "$lte": end.isoformat()},
    }, {"_id": 0}).sort("date", 1).to_list(None)


# ==================== SAISIES ====================

async def _day_total(db, employee_id: str, day: str, exclude_id: Optional[str] = None) -> float:
    where = {"employee_id": employee_id, "date": day}
    if exclude_id:
        where["id"] = {"$ne": exclude_id}
    entries = await db.time_entries.find(where, {"_id": 0, "hours": 1}).to_list(None)
    return sum(float(e.get("hours", 0)) for e in entries)


async def list_entries(db, query: TimeEntryListQuery) -> dict:
    where = {}
    if query.task_id:
        where["task_id"] = query.task_id
    if query.employee_id:
        where["employee_id"] = query.employee_id
    if query.is_validated is not None:
        where["is_validated"] = query.is_validated
    if query.date_from or query.date_to:
        where["date"] = {}
        if query.date_from:
            where["date"]["$gte"] = query.date_from.isoformat()
        if query.date_to:
            where["date"]["$lte"] = query.date_to.isoformat()

    entries = await db.time_entries.find(where, {"_id": 0}) \
        .sort("date", -1) \
        .skip(query.skip) \
        .limit(query.limit) \
        .to_list(query.limit)
    total = await db.time_entries.count_documents(where)
    return paginated(entries, total, query.page, query.limit)


async def get_entry(db, entry_id: str) -> dict:
    entry = await db.time_entries.find_one({"id": entry_id}, {"_id": 0})
    if not entry:
        raise NotFoundError(f"Saisie {entry_id} introuvable")
    return entry


async def create_entry(db, data: TimeEntryCreate, user_id: str) -> dict:
    day = data.date.isoformat()
    current = await _day_total(db, data.employee_id, day)
    if current + data.hours > MAX_DAILY_HOURS:
        raise ServiceError(
            f"Ajouter {data.hours:g}h dépasserait le plafond de 24h par jour. "
            f"Total actuel: {current:g}h."
        )

    entry = {
        "id": str(uuid.uuid4()),
        **data.to_doc(),
        "is_validated": False,
        "user_id": user_id,
        "created_at": now_iso(),
        "updated_at": now_iso(),
    }
    await db.time_entries.insert_one(dict(entry))
    return entry


async def update_entry(db, entry_id: str, data: TimeEntryUpdate) -> dict:
    current = await get_entry(db, entry_id)
    if current.get("is_validated"):
        raise ServiceError("Impossible de modifier une saisie validée")

    changes = data.to_doc(exclude_none=True)
    if {"hours", "date", "employee_id"} & changes.keys():
        employee_id = changes.get("employee_id", current["employee_id"])
        day = changes.get("date", current["date"])
        hours = float(changes.get("hours", current["hours"]))
        others = await _day_total(db, employee_id, day, exclude_id=entry_id)
        if others + hours > MAX_DAILY_HOURS:
            raise ServiceError(
                f"La modification dépasserait le plafond de 24h par jour. "
                f"Autres saisies: {others:g}h."
            )

    if changes:
        changes["updated_at"] = now_iso()
        await db.time_entries.update_one({"id": entry_id}, {"$set": changes})
    return {**current, **changes}


async def delete_entry(db, entry_id: str) -> dict:
    entry = await get_entry(db, entry_id)
    if entry.get("is_validated"):
        raise ServiceError("Impossible de supprimer une saisie validée")
    await db.time_entries.delete_one({"id": entry_id})
    return {"success": True}


async def validate_entry(db, entry_id: str) -> dict:
    entry = await get_entry(db, entry_id)
    await db.time_entries.update_one(
        {"id": entry_id}, {"$set": {"is_validated": True, "updated_at": now_iso()}}
    )
    return {**entry, "is_validated": True}


async def bulk_validate(db, data: BulkValidateRequest, user: dict) -> dict:
    if not is_admin(user):
        manager = await db.employees.find_one({"user_id": user["id"]}, {"_id": 0, "id": 1})
        if manager:
            entries = await db.time_entries.find(
                {"id": {"$in": data.ids}}, {"_id": 0, "employee_id": 1}
            ).to_list(None)
            employee_ids = list({e["employee_id"] for e in entries})
            team = await db.employees.find(
                {"id": {"$in": employee_ids}, "manager_id": manager["id"]}, {"_id": 0, "id": 1}
            ).to_list(None)
            if len(team) != len(employee_ids):
                logger.warning(
                    f"[TIMESHEETS] Validation refusée pour {user.get('email')}: saisies hors équipe"
                )
                raise ForbiddenError("Certaines saisies n'appartiennent pas à vos subordonnés")

    result = await db.time_entries.update_many(
        {"id": {"$in": data.ids}},
        {"$set": {"is_validated": True, "updated_at": now_iso()}},
    )
    logger.info(f"[TIMESHEETS] {result.modified_count} saisie(s) validée(s) par {user.get('email')}")
    return {"validated": result.modified_count}


# ==================== FEUILLES DE TEMPS ====================

async def weekly_timesheet(db, query: WeeklyTimesheetQuery) -> dict:
    week_start = get_monday(query.week_start)
    week_end = week_start + dt.timedelta(days=6)

    entries = await _entries(db, query.employee_id, week_start, week_end)
    leaves = await _leave_days(db, query.employee_id, week_start, week_end)
    holidays = await _holidays(db, week_start, week_end)
    schedule = await get_work_schedule(db, query.employee_id)

    tasks = {}
    task_ids = list({e["task_id"] for e in entries})
    if task_ids:
        for task in await db.tasks.find({"id": {"$in": task_ids}}, {"_id": 0}).to_list(None):
            tasks[task["id"]] = task
    project_ids = list({t["project_id"] for t in tasks.values() if t.get("project_id")})
    projects = {}
    if project_ids:
        for project in await db.projects.find(
            {"id": {"$in": project_ids}}, {"_id": 0, "id": 1, "title": 1}
        ).to_list(None):
            projects[project["id"]] = project

    days = []
    weekly_total = 0.0
    weekly_expected = 0.0
    leave_days = 0

    for i in range(7):
        day = week_start + dt.timedelta(days=i)
        key = day.isoformat()
        day_entries = [e for e in entries if e["date"][:10] == key]
        total = sum(float(e["hours"]) for e in day_entries)
        expected = day_hours(schedule, day)
        is_leave = key in leaves
        is_holiday = key in holidays
        is_weekend = _is_weekend(day)

        weekly_total += total
        if not (is_leave or is_holiday or is_weekend):
            weekly_expected += expected
        if is_leave:
            leave_days += 1

        days.append({
            "date": key,
            "day_of_week": _day_of_week(day),
            "entries": day_entries,
            "total": total,
            "expected": expected,
            "is_leave": is_leave,
            "leave_type": leaves.get(key),
            "is_holiday": is_holiday,
            "holiday_name": holidays.get(key),
            "is_weekend": is_weekend,
            "conflict": is_leave and total > 0,
        })

    # Pivot tâche x jour
    task_rows = {}
    for entry in entries:
        task = tasks.get(entry["task_id"], {})
        project = projects.get(task.get("project_id"), {})
        row = task_rows.setdefault(entry["task_id"], {
            "task_id": entry["task_id"],
            "task_reference": task.get("reference"),
            "task_title": task.get("title"),
            "project_id": project.get("id"),
            "project_name": project.get("title"),
            "days": [{"hours": 0.0, "entries": []} for _ in range(7)],
            "total": 0.0,
        })
        index = (dt.date.fromisoformat(entry["date"][:10]) - week_start).days
        if 0 <= index < 7:
            row["days"][index]["hours"] += float(entry["hours"])
            row["days"][index]["entries"].append(entry)
        row["total"] += float(entry["hours"])

    return {
        "week_start": week_start.isoformat(),
        "week_end": week_end.isoformat(),
        "days": days,
        "task_rows": list(task_rows.values()),
        "weekly_total": weekly_total,
        "weekly_expected": weekly_expected,
        "leave_days": leave_days,
        "occupation_rate": _rate(weekly_total, weekly_expected),
    }


def day_status(is_weekend: bool, is_holiday: bool, is_leave: bool,
               hours: float, expected: float) -> str:
    if is_weekend:
        return "weekend"
    if is_holiday:
        return "holiday"
    if is_leave:
        return "leave"
    if expected > 0 and hours >= expected:
        return "full"
    if hours > 0:
        return "partial"
    return "missing"


async def monthly_timesheet(db, query: MonthlyTimesheetQuery) -> dict:
    year, month = query.year_month
    month_start, month_end = month_bounds(year, month)

    entries = await _entries(db, query.employee_id, month_start, month_end)
    leaves = await _leave_days(db, query.employee_id, month_start, month_end)
    holidays = await _holidays(db, month_start, month_end)
    schedule = await get_work_schedule(db, query.employee_id)

    hours_by_day: Dict[str, float] = {}
    for entry in entries:
        key = entry["date"][:10]
        hours_by_day[key] = hours_by_day.get(key, 0.0) + float(entry["hours"])

    days = []
    monthly_total = 0.0
    monthly_expected = 0.0
    day = month_start
    while day <= month_end:
        key = day.isoformat()
        is_weekend = _is_weekend(day)
        is_holiday = key in holidays
        is_leave = key in leaves
        hours = hours_by_day.get(key, 0.0)
        expected = day_hours(schedule, day)

        monthly_total += hours
        if not (is_weekend or is_holiday or is_leave):
            monthly_expected += expected

        days.append({
            "date": key,
            "day_of_month": day.day,
            "day_of_week": _day_of_week(day),
            "hours": hours,
            "expected": expected,
            "status": day_status(is_weekend, is_holiday, is_leave, hours, expected),
            "is_weekend": is_weekend,
            "is_holiday": is_holiday,
            "is_leave": is_leave,
        })
        day += dt.timedelta(days=1)

    week_summaries = []
    week_start = get_monday(month_start)
    while week_start <= month_end:
        week_end = week_start + dt.timedelta(days=6)
        week_days = [d for d in days if week_start.isoformat() <= d["date"] <= week_end.isoformat()]
        week_summaries.append({
            "week_start": week_start.isoformat(),
            "total": sum(d["hours"] for d in week_days),
            "expected": sum(
                d["expected"] for d in week_days
                if not (d["is_weekend"] or d["is_holiday"] or d["is_leave"])
            ),
        })
        week_start += dt.timedelta(days=7)

    return {
        "month": query.month,
        "days": days,
        "week_summaries": week_summaries,
        "monthly_total": monthly_total,
        "monthly_expected": monthly_expected,
        "occupation_rate": _rate(monthly_total, monthly_expected),
    }


async def team_timesheet(db, query: TeamTimesheetQuery, user: dict) -> dict:
    week_start = get_monday(query.week_start)
    week_end = week_start + dt.timedelta(days=6)

    if query.manager_id:
        where = {"manager_id": query.manager_id}
    else:
        manager = await db.employees.find_one({"user_id": user["id"]}, {"_id": 0, "id": 1})
        # Sans fiche employé (super_admin / gerant): toute l'équipe
        where = {"manager_id": manager["id"]} if manager else {}

    subordinates = await db.employees.find(where, {"_id": 0}).to_list(None)

    results = []
    for emp in subordinates:
        schedule = await get_work_schedule(db, emp["id"])
        entries = await _entries(db, emp["id"], week_start, week_end)

        total_hours = sum(float(e["hours"]) for e in entries)
        pending = [e["id"] for e in entries if not e.get("is_validated")]
        expected_hours = sum(
            day_hours(schedule, week_start + dt.timedelta(days=i))
            for i in range(7)
            if not _is_weekend(week_start + dt.timedelta(days=i))
        )

        results.append({
            "employee_id": emp["id"],
            "first_name": emp.get("first_name"),
            "last_name": emp.get("last_name"),
            "total_hours": total_hours,
            "expected_hours": expected_hours,
            "occupation_rate": _rate(total_hours, expected_hours),
            "validated_count": len(entries) - len(pending),
            "pending_count": len(pending),
            "pending_entry_ids": pending,
        })

    return {
        "week_start": week_start.isoformat(),
        "week_end": week_end.isoformat(),
        "subordinates": results,
        "team_total": sum(r["total_hours"] for r in results),
        "team_expected": sum(r["expected_hours"] for r in results),
    }


# ==================== EXPORT CSV ====================

async def export_timesheet(db, query: ExportTimesheetQuery) -> dict:
    """CSV séparé par ';', BOM UTF-8 pour Excel"""
    where = {"date": {"$gte": query.date_from.isoformat(), "$lte": query.date_to.isoformat()}}
    if query.employee_id:
        where["employee_id"] = query.employee_id

    entries = await db.time_entries.find(where, {"_id": 0}) \
        .sort([("date", 1), ("employee_id", 1)]) \
        .to_list(None)

    employee_ids = list({e["employee_id"] for e in entries})
    task_ids = list({e["task_id"] for e in entries})
    employees = {
        e["id"]: e for e in await db.employees.find(
            {"id": {"$in": employee_ids}}, {"_id": 0}).to_list(None)
    } if employee_ids else {}
    tasks = {
        t["id"]: t for t in await db.tasks.find(
            {"id": {"$in": task_ids}}, {"_id": 0}).to_list(None)
    } if task_ids else {}
    project_ids = list({t.get("project_id") for t in tasks.values() if t.get("project_id")})
    projects = {
        p["id"]: p for p in await db.projects.find(
            {"id": {"$in": project_ids}}, {"_id": 0}).to_list(None)
    } if project_ids else {}

    output = io.StringIO()
    writer = csv.writer(output, delimiter=";", lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for entry in entries:
        emp = employees.get(entry["employee_id"], {})
        task = tasks.get(entry["task_id"], {})
        project = projects.get(task.get("project_id"), {})
        name = f"{emp.get('first_name', '')} {emp.get('last_name', '')}".strip()
        writer.writerow([
            format_date(entry["date"]),
            name,
            task.get("reference") or "",
            project.get("title") or "",
            f"{float(entry['hours']):.2f}",
            entry.get("comment") or "",
            "Oui" if entry.get("is_validated") else "Non",
        ])

    filename = f"pointage_{query.date_from.isoformat()}_{query.date_to.isoformat()}.csv"
    logger.info(f"[TIMESHEETS] Export {filename}: {len(entries)} saisie(s)")
    return {
        "filename": filename,
        "content_type": "text/csv; charset=utf-8",
        "data": CSV_BOM + output.getvalue(),
    }
