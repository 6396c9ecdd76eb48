"""
Saisie des temps: plafond 24 h, saisies validées immuables, validation en masse,
feuilles hebdo / mensuelle / équipe, export CSV.

Run: pytest backend/tests/test_time_entries.py -v
"""

import csv
import io

import pytest
from pydantic import ValidationError

from tests.conftest import headers_for, new_id

EMPLOYEE_ID = "2f1c7a52-6a0e-4c55-9d8e-111111111111"
TASK_ID = "5b7d2c10-9f3e-4a1b-8c2d-222222222222"
PROJECT_ID = "8e4f6a21-3b5c-4d7e-9f10-333333333333"


def seed_entry(db, hours, day="2024-03-04", validated=False, employee_id=EMPLOYEE_ID, **extra):
    entry = {
        "id": new_id(),
        "task_id": TASK_ID,
        "employee_id": employee_id,
        "date": day,
        "hours": hours,
        "comment": None,
        "is_validated": validated,
        **extra,
    }
    db.time_entries.seed(entry)
    return entry


# ════════════════════════════════════════════════════════════════════════
# DTOs
# ════════════════════════════════════════════════════════════════════════

class TestTimeEntryModels:

    def test_hours_must_be_positive_and_capped(self):
        from models.time_entry import TimeEntryCreate

        base = {"taskId": TASK_ID, "employeeId": EMPLOYEE_ID, "date": "2024-03-04"}
        assert TimeEntryCreate.model_validate({**base, "hours": 7.5}).hours == 7.5
        for hours in (0, -1, 24.5):
            with pytest.raises(ValidationError):
                TimeEntryCreate.model_validate({**base, "hours": hours})

    def test_bulk_validate_bounds(self):
        from models.time_entry import BulkValidateRequest

        with pytest.raises(ValidationError):
            BulkValidateRequest(ids=[])
        with pytest.raises(ValidationError):
            BulkValidateRequest(ids=[new_id() for _ in range(501)])
        with pytest.raises(ValidationError):
            BulkValidateRequest(ids=["pas-un-uuid"])
        assert len(BulkValidateRequest(ids=[new_id() for _ in range(500)]).ids) == 500

    def test_monthly_query_month_format(self):
        from models.time_entry import MonthlyTimesheetQuery

        query = MonthlyTimesheetQuery.model_validate({"employeeId": EMPLOYEE_ID, "month": "2024-02"})
        assert query.year_month == (2024, 2)
        for month in ("13-2024", "2024-13", "2024-2"):
            with pytest.raises(ValidationError):
                MonthlyTimesheetQuery.model_validate({"employeeId": EMPLOYEE_ID, "month": month})

    def test_export_query_only_csv(self):
        from models.time_entry import ExportTimesheetQuery

        query = ExportTimesheetQuery.model_validate({"dateFrom": "2024-03-01", "dateTo": "2024-03-31"})
        assert query.format == "csv"
        with pytest.raises(ValidationError):
            ExportTimesheetQuery.model_validate(
                {"dateFrom": "2024-03-01", "dateTo": "2024-03-31", "format": "xlsx"}
            )

    def test_list_query_pagination_defaults(self):
        from models.time_entry import TimeEntryListQuery

        query = TimeEntryListQuery()
        assert (query.page, query.limit, query.skip) == (1, 50, 0)
        assert TimeEntryListQuery(page=3, limit=20).skip == 40
        with pytest.raises(ValidationError):
            TimeEntryListQuery(limit=250)


# ════════════════════════════════════════════════════════════════════════
# SAISIES
# ════════════════════════════════════════════════════════════════════════

class TestDailyCap:

    @pytest.mark.asyncio
    async def test_create_over_24h_is_refused(self, db):
        """20 h déjà saisies + 5 h: refusé avec le total actuel"""
        from models.time_entry import TimeEntryCreate
        from services.errors import ServiceError
        from services.timesheets import create_entry

        seed_entry(db, 20)
        data = TimeEntryCreate(task_id=TASK_ID, employee_id=EMPLOYEE_ID, date="2024-03-04", hours=5)
        with pytest.raises(ServiceError) as exc:
            await create_entry(db, data, "user-1")
        assert exc.value.status_code == 400
        assert "plafond de 24h" in exc.value.message
        assert "Total actuel: 20h" in exc.value.message
        assert len(db.time_entries.docs) == 1

    @pytest.mark.asyncio
    async def test_create_up_to_24h_is_allowed(self, db):
        from models.time_entry import TimeEntryCreate
        from services.timesheets import create_entry

        seed_entry(db, 20)
        data = TimeEntryCreate(task_id=TASK_ID, employee_id=EMPLOYEE_ID, date="2024-03-04", hours=4)
        entry = await create_entry(db, data, "user-1")
        assert entry["is_validated"] is False
        assert entry["date"] == "2024-03-04"
        assert len(db.time_entries.docs) == 2

    @pytest.mark.asyncio
    async def test_other_days_do_not_count(self, db):
        from models.time_entry import TimeEntryCreate
        from services.timesheets import create_entry

        seed_entry(db, 20, day="2024-03-05")
        data = TimeEntryCreate(task_id=TASK_ID, employee_id=EMPLOYEE_ID, date="2024-03-04", hours=8)
        await create_entry(db, data, "user-1")

    @pytest.mark.asyncio
    async def test_update_excludes_itself_from_total(self, db):
        """10 h + saisie modifiée: 14 h passe, 15 h dépasse"""
        from models.time_entry import TimeEntryUpdate
        from services.errors import ServiceError
        from services.timesheets import update_entry

        seed_entry(db, 10)
        entry = seed_entry(db, 8)
        updated = await update_entry(db, entry["id"], TimeEntryUpdate(hours=14))
        assert updated["hours"] == 14

        with pytest.raises(ServiceError):
            await update_entry(db, entry["id"], TimeEntryUpdate(hours=15))


class TestValidatedEntries:

    @pytest.mark.asyncio
    async def test_validated_entry_cannot_be_updated(self, db):
        from models.time_entry import TimeEntryUpdate
        from services.errors import ServiceError
        from services.timesheets import update_entry

        entry = seed_entry(db, 4, validated=True)
        with pytest.raises(ServiceError) as exc:
            await update_entry(db, entry["id"], TimeEntryUpdate(hours=2))
        assert exc.value.message == "Impossible de modifier une saisie validée"

    @pytest.mark.asyncio
    async def test_validated_entry_cannot_be_deleted(self, db):
        from services.errors import ServiceError
        from services.timesheets import delete_entry

        entry = seed_entry(db, 4, validated=True)
        with pytest.raises(ServiceError):
            await delete_entry(db, entry["id"])
        assert len(db.time_entries.docs) == 1

    @pytest.mark.asyncio
    async def test_missing_entry_is_404(self, db):
        from services.errors import NotFoundError
        from services.timesheets import get_entry

        with pytest.raises(NotFoundError) as exc:
            await get_entry(db, "inconnue")
        assert exc.value.status_code == 404


class TestBulkValidate:

    def _team(self, db, users):
        manager_id, member_id, outsider_id = new_id(), new_id(), new_id()
        db.employees.seed(
            {"id": manager_id, "user_id": users["responsable_production"]["id"], "first_name": "Marc"},
            {"id": member_id, "manager_id": manager_id, "first_name": "Léa"},
            {"id": outsider_id, "manager_id": new_id(), "first_name": "Paul"},
        )
        return manager_id, member_id, outsider_id

    @pytest.mark.asyncio
    async def test_manager_validates_own_team(self, db, users):
        from models.time_entry import BulkValidateRequest
        from services.timesheets import bulk_validate

        _, member_id, _ = self._team(db, users)
        entries = [seed_entry(db, 2, employee_id=member_id) for _ in range(3)]
        result = await bulk_validate(
            db, BulkValidateRequest(ids=[e["id"] for e in entries]), users["responsable_production"]
        )
        assert result == {"validated": 3}
        assert all(d["is_validated"] for d in db.time_entries.docs)

    @pytest.mark.asyncio
    async def test_manager_cannot_validate_outsiders(self, db, users):
        """Une seule saisie hors équipe bloque tout le lot"""
        from models.time_entry import BulkValidateRequest
        from services.errors import ForbiddenError
        from services.timesheets import bulk_validate

        _, member_id, outsider_id = self._team(db, users)
        ids = [seed_entry(db, 2, employee_id=member_id)["id"],
               seed_entry(db, 2, employee_id=outsider_id)["id"]]
        with pytest.raises(ForbiddenError):
            await bulk_validate(db, BulkValidateRequest(ids=ids), users["responsable_production"])
        assert not any(d["is_validated"] for d in db.time_entries.docs)

    @pytest.mark.asyncio
    async def test_gerant_validates_everyone(self, db, users):
        from models.time_entry import BulkValidateRequest
        from services.timesheets import bulk_validate

        _, _, outsider_id = self._team(db, users)
        entry = seed_entry(db, 2, employee_id=outsider_id)
        result = await bulk_validate(db, BulkValidateRequest(ids=[entry["id"]]), users["gerant"])
        assert result["validated"] == 1


# ════════════════════════════════════════════════════════════════════════
# FEUILLES DE TEMPS
# ════════════════════════════════════════════════════════════════════════

class TestWeeklyTimesheet:

    @pytest.mark.asyncio
    async def test_week_with_leave_and_holiday(self, db):
        from models.time_entry import WeeklyTimesheetQuery
        from services.timesheets import weekly_timesheet

        db.tasks.seed({"id": TASK_ID, "reference": "TASK-1", "title": "Relevé", "project_id": PROJECT_ID})
        db.projects.seed({"id": PROJECT_ID, "title": "Fibre Lyon"})
        db.public_holidays.seed({"date": "2024-04-01", "label": "Lundi de Pâques"})
        db.leave_requests.seed({
            "employee_id": EMPLOYEE_ID, "status": "approuve",
            "start_date": "2024-04-05", "end_date": "2024-04-05", "leave_type_name": "CP",
        })
        seed_entry(db, 8, day="2024-04-02")
        seed_entry(db, 6, day="2024-04-03")
        seed_entry(db, 2, day="2024-04-05")

        # Mercredi: ramené au lundi
        sheet = await weekly_timesheet(db, WeeklyTimesheetQuery(employee_id=EMPLOYEE_ID, week_start="2024-04-03"))
        assert sheet["week_start"] == "2024-04-01"
        assert sheet["week_end"] == "2024-04-07"
        assert len(sheet["days"]) == 7

        monday, friday, sunday = sheet["days"][0], sheet["days"][4], sheet["days"][6]
        assert monday["is_holiday"] and monday["holiday_name"] == "Lundi de Pâques"
        assert monday["day_of_week"] == 1
        assert sunday["day_of_week"] == 0 and sunday["is_weekend"]
        assert friday["is_leave"] and friday["leave_type"] == "CP"
        assert friday["conflict"] is True

        assert sheet["weekly_total"] == 16
        # Mardi, mercredi, jeudi
        assert sheet["weekly_expected"] == 24
        assert sheet["leave_days"] == 1
        assert sheet["occupation_rate"] == 67

        [row] = sheet["task_rows"]
        assert row["task_reference"] == "TASK-1"
        assert row["project_name"] == "Fibre Lyon"
        assert [d["hours"] for d in row["days"]] == [0, 8, 6, 0, 2, 0, 0]
        assert row["total"] == 16

    @pytest.mark.asyncio
    async def test_contract_schedule_is_used(self, db):
        from models.time_entry import WeeklyTimesheetQuery
        from services.timesheets import weekly_timesheet

        db.employees.seed({"id": EMPLOYEE_ID, "contract_type": "temps_partiel"})
        db.work_schedules.seed({
            "contract_type": "temps_partiel",
            "monday_hours": 4, "tuesday_hours": 4, "wednesday_hours": 4,
            "thursday_hours": 4, "friday_hours": 4, "saturday_hours": 0, "sunday_hours": 0,
        })
        sheet = await weekly_timesheet(db, WeeklyTimesheetQuery(employee_id=EMPLOYEE_ID, week_start="2024-03-04"))
        assert sheet["weekly_expected"] == 20
        assert sheet["occupation_rate"] == 0


class TestMonthlyTimesheet:

    def test_day_status(self):
        from services.timesheets import day_status

        assert day_status(True, False, False, 8, 0) == "weekend"
        assert day_status(False, True, False, 0, 8) == "holiday"
        assert day_status(False, False, True, 0, 8) == "leave"
        assert day_status(False, False, False, 8, 8) == "full"
        assert day_status(False, False, False, 3, 8) == "partial"
        assert day_status(False, False, False, 0, 8) == "missing"

    @pytest.mark.asyncio
    async def test_february_leap_year(self, db):
        from models.time_entry import MonthlyTimesheetQuery
        from services.timesheets import monthly_timesheet

        seed_entry(db, 8, day="2024-02-01")
        seed_entry(db, 4, day="2024-02-02")
        sheet = await monthly_timesheet(db, MonthlyTimesheetQuery(employee_id=EMPLOYEE_ID, month="2024-02"))

        assert len(sheet["days"]) == 29
        assert sheet["days"][0]["status"] == "full"
        assert sheet["days"][1]["status"] == "partial"
        assert sheet["days"][2]["status"] == "weekend"
        assert sheet["days"][4]["status"] == "missing"
        assert sheet["monthly_total"] == 12
        # 21 jours ouvrés en février 2024
        assert sheet["monthly_expected"] == 168
        assert sheet["week_summaries"][0]["week_start"] == "2024-01-29"
        assert sheet["week_summaries"][0]["total"] == 12


class TestTeamTimesheet:

    @pytest.mark.asyncio
    async def test_manager_sees_subordinates(self, db, users):
        from models.time_entry import TeamTimesheetQuery
        from services.timesheets import team_timesheet

        manager_id, member_id = new_id(), new_id()
        db.employees.seed(
            {"id": manager_id, "user_id": users["responsable_production"]["id"]},
            {"id": member_id, "manager_id": manager_id, "first_name": "Léa", "last_name": "Martin"},
        )
        seed_entry(db, 8, day="2024-03-04", employee_id=member_id, validated=True)
        pending = seed_entry(db, 4, day="2024-03-05", employee_id=member_id)

        team = await team_timesheet(
            db, TeamTimesheetQuery(week_start="2024-03-06"), users["responsable_production"]
        )
        [member] = team["subordinates"]
        assert member["employee_id"] == member_id
        assert member["total_hours"] == 12
        assert member["expected_hours"] == 40
        assert member["validated_count"] == 1
        assert member["pending_entry_ids"] == [pending["id"]]
        assert team["team_total"] == 12


class TestCsvExport:

    @pytest.mark.asyncio
    async def test_csv_layout(self, db):
        """Séparateur ';', cellules contenant ';' ou un saut de ligne entre guillemets"""
        from models.time_entry import ExportTimesheetQuery
        from services.timesheets import CSV_BOM, CSV_COLUMNS, export_timesheet

        db.employees.seed({"id": EMPLOYEE_ID, "first_name": "Léa", "last_name": "Martin"})
        db.tasks.seed({"id": TASK_ID, "reference": "TASK-7", "project_id": PROJECT_ID})
        db.projects.seed({"id": PROJECT_ID, "title": "Fibre Lyon"})
        seed_entry(db, 7.5, day="2024-03-05", comment="Relevé; zone\nnord", validated=True)
        seed_entry(db, 1, day="2024-03-04")
        seed_entry(db, 3, day="2024-04-10")

        result = await export_timesheet(db, ExportTimesheetQuery(date_from="2024-03-01", date_to="2024-03-31"))
        assert result["filename"] == "pointage_2024-03-01_2024-03-31.csv"
        assert result["data"].startswith(CSV_BOM)

        body = result["data"][len(CSV_BOM):]
        assert body.startswith("Date;Employé;Réf Tâche;Projet;Heures;Commentaire;Validé\n")
        assert '"Relevé; zone\nnord"' in body

        rows = list(csv.reader(io.StringIO(body), delimiter=";"))
        assert rows[0] == CSV_COLUMNS
        assert len(rows) == 3
        assert rows[1] == ["2024-03-04", "Léa Martin", "TASK-7", "Fibre Lyon", "1.00", "", "Non"]
        assert rows[2] == ["2024-03-05", "Léa Martin", "TASK-7", "Fibre Lyon", "7.50", "Relevé; zone\nnord", "Oui"]

    @pytest.mark.asyncio
    async def test_reversed_range_is_empty(self, db):
        from models.time_entry import ExportTimesheetQuery
        from services.timesheets import CSV_BOM, export_timesheet

        seed_entry(db, 1, day="2024-03-04")
        result = await export_timesheet(db, ExportTimesheetQuery(date_from="2024-03-31", date_to="2024-03-01"))
        assert result["data"] == CSV_BOM + "Date;Employé;Réf Tâche;Projet;Heures;Commentaire;Validé\n"


# ════════════════════════════════════════════════════════════════════════
# API
# ════════════════════════════════════════════════════════════════════════

class TestTimeEntriesApi:

    def test_create_then_cap_error(self, client, db):
        body = {"taskId": TASK_ID, "employeeId": EMPLOYEE_ID, "date": "2024-03-04", "hours": 20}
        response = client.post("/api/time-entries", json=body, headers=headers_for("gerant"))
        assert response.status_code == 200, response.text
        assert response.json()["isValidated"] is False

        response = client.post("/api/time-entries", json={**body, "hours": 5}, headers=headers_for("gerant"))
        assert response.status_code == 400
        assert "plafond de 24h" in response.json()["detail"]

    def test_invalid_body_shape(self, client):
        response = client.post(
            "/api/time-entries",
            json={"taskId": "x", "employeeId": EMPLOYEE_ID, "date": "2024-03-04", "hours": 0},
            headers=headers_for("gerant"),
        )
        assert response.status_code == 422
        body = response.json()
        assert body["detail"] == "Données invalides"
        fields = {e["field"] for e in body["errors"]}
        assert {"taskId", "hours"} <= fields

    def test_list_limit_too_high(self, client):
        response = client.get("/api/time-entries?limit=250", headers=headers_for("gerant"))
        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "limit"

    def test_list_is_paginated(self, client, db):
        for day in ("2024-03-04", "2024-03-05", "2024-03-06"):
            seed_entry(db, 1, day=day)
        response = client.get("/api/time-entries?limit=2&page=1", headers=headers_for("employe"))
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 3
        assert body["totalPages"] == 2
        assert [e["date"] for e in body["data"]] == ["2024-03-06", "2024-03-05"]

    def test_employe_logs_own_time(self, client, db, users):
        body = {"taskId": TASK_ID, "employeeId": EMPLOYEE_ID, "date": "2024-03-04", "hours": 2}
        response = client.post("/api/time-entries", json=body, headers=headers_for("employe"))
        assert response.status_code == 200, response.text
        assert response.json()["hours"] == 2
        assert db.time_entries.docs[0]["user_id"] == users["employe"]["id"]

    def test_client_cannot_log_time(self, client):
        body = {"taskId": TASK_ID, "employeeId": EMPLOYEE_ID, "date": "2024-03-04", "hours": 2}
        response = client.post("/api/time-entries", json=body, headers=headers_for("client"))
        assert response.status_code == 403
        assert response.json()["detail"] == "Permission requise: tasks.update"

    def test_monthly_bad_month(self, client):
        response = client.get(
            f"/api/time-entries/monthly?employeeId={EMPLOYEE_ID}&month=13-2024",
            headers=headers_for("employe"),
        )
        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "month"

    def test_export_download(self, client, db):
        seed_entry(db, 2, day="2024-03-04")
        response = client.get(
            "/api/time-entries/export?dateFrom=2024-03-01&dateTo=2024-03-31",
            headers=headers_for("comptable"),
        )
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert 'filename="pointage_2024-03-01_2024-03-31.csv"' in response.headers["content-disposition"]
        assert response.content.decode("utf-8").lstrip("﻿").startswith("Date;Employé")
        assert db.activity_logs.docs[-1]["action"] == "export"

    def test_bulk_validate_route(self, client, db):
        entry = seed_entry(db, 2)
        response = client.patch(
            "/api/time-entries/bulk-validate", json={"ids": [entry["id"]]}, headers=headers_for("gerant")
        )
        assert response.status_code == 200
        assert response.json() == {"validated": 1}

        response = client.patch("/api/time-entries/bulk-validate", json={"ids": []}, headers=headers_for("gerant"))
        assert response.status_code == 422

    def test_delete_validated_entry(self, client, db):
        entry = seed_entry(db, 2, validated=True)
        response = client.delete(f"/api/time-entries/{entry['id']}", headers=headers_for("gerant"))
        assert response.status_code == 400
        assert response.json()["detail"] == "Impossible de supprimer une saisie validée"
