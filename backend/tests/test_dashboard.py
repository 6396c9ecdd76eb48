"""
Tableaux de bord: indicateurs général / production / financier / rentabilité,
accès réservé au gérant et au comptable, exports .xlsx.

Run: pytest backend/tests/test_dashboard.py -v
"""

import datetime as dt
import io

import openpyxl
import pytest

from tests.conftest import headers_for, new_id

TODAY = dt.date(2024, 3, 15)


def seed_activity(db):
    code_id, employee_id, task_id = new_id(), new_id(), new_id()
    db.codes_produits.seed({"id": code_id, "code": "PTO-01", "time_gamme": 4, "unit_price": 50})
    db.clients.seed(
        {"id": "c-1", "name": "Orange", "created_at": "2023-06-01T10:00:00+00:00"},
        {"id": "c-2", "name": "SFR", "created_at": "2024-03-02T10:00:00+00:00"},
    )
    db.projects.seed({"id": "p-1", "client_id": "c-1", "status": "en_cours", "operator_id": "op-1"})
    db.operators.seed({"id": "op-1", "name": "Orange Wholesale"})
    db.tasks.seed(
        {"id": task_id, "project_id": "p-1", "status": "terminee", "code_produit_id": code_id,
         "employee_id": employee_id, "facturable": True,
         "created_at": "2024-03-01T08:00:00+00:00", "updated_at": "2024-03-12T08:00:00+00:00",
         "date_reception": "2024-03-04", "actual_end_date": "2024-03-08", "planned_end_date": "2024-03-10"},
        {"id": new_id(), "project_id": "p-1", "status": "en_cours", "planned_end_date": "2024-03-01",
         "created_at": "2024-02-20T08:00:00+00:00"},
        {"id": new_id(), "project_id": "p-1", "status": "annulee", "planned_end_date": "2024-03-01",
         "created_at": "2024-02-20T08:00:00+00:00"},
    )
    db.employees.seed(
        {"id": employee_id, "first_name": "Léa", "last_name": "Martin", "is_active": True, "gross_salary": 2000},
        {"id": new_id(), "first_name": "Paul", "last_name": "Durand", "is_active": True},
        {"id": new_id(), "first_name": "Zoé", "last_name": "Roux", "is_active": False},
    )
    db.leave_requests.seed({
        "employee_id": employee_id, "status": "approuve", "start_date": "2024-03-14", "end_date": "2024-03-16",
    })
    db.time_entries.seed({
        "id": new_id(), "task_id": task_id, "employee_id": employee_id, "date": "2024-03-08", "hours": 5,
    })
    db.invoices.seed(
        {"id": "i-1", "client_id": "c-1", "status": "payee", "total_ht": 1000, "total_ttc": 1200,
         "created_at": "2024-03-05T09:00:00+00:00"},
        {"id": "i-2", "client_id": "c-2", "status": "envoyee", "total_ht": 500, "total_ttc": 600,
         "created_at": "2024-03-06T09:00:00+00:00", "due_date": "2024-03-10"},
        {"id": "i-3", "client_id": "c-1", "status": "payee", "total_ht": 300, "total_ttc": 360,
         "created_at": "2024-02-06T09:00:00+00:00"},
    )
    db.purchase_invoices.seed({"id": "a-1", "total_ht": 400, "created_at": "2024-03-07T09:00:00+00:00"})
    return employee_id


class TestHelpers:

    def test_week_label(self):
        from services.dashboard import week_label

        assert week_label(dt.date(2024, 3, 11)) == "S11/2024"
        assert week_label(dt.date(2024, 12, 30)) == "S01/2025"

    def test_last_weeks(self):
        from services.dashboard import last_weeks

        weeks = last_weeks(TODAY)
        assert len(weeks) == 8
        assert weeks[-1]["start"] == dt.date(2024, 3, 11)
        assert weeks[0]["start"] == dt.date(2024, 1, 22)

    def test_business_days_skip_weekends_and_holidays(self):
        from services.dashboard import count_business_days

        assert count_business_days(dt.date(2024, 3, 4), dt.date(2024, 3, 10), set()) == 5
        assert count_business_days(dt.date(2024, 4, 1), dt.date(2024, 4, 5), {"2024-04-01"}) == 4

    def test_month_label(self):
        from services.dashboard import month_label

        assert month_label(2024, 2) == "févr. 24"


class TestIndicators:

    @pytest.mark.asyncio
    async def test_general(self, db):
        from services.dashboard import general

        seed_activity(db)
        data = await general(db, today=TODAY)

        assert data["clients"] == {"total": 2, "nouveaux_ce_mois": 1}
        assert data["tasks"]["total"] == 3
        assert data["tasks"]["terminees"] == 1
        assert data["tasks"]["en_retard"] == 1
        assert data["employees"] == {"total": 2, "en_conge": 1, "actifs": 1}
        assert data["revenue"] == {"facture_emis_ht": 1500, "encaisse": 1000, "en_attente": 500}
        # 4 h de gamme pour 5 h passées
        assert data["rendement_moyen"] == 80.0
        assert data["tasks_completed_by_week"][-1] == {"week": "S11/2024", "completed": 1}

    @pytest.mark.asyncio
    async def test_production(self, db):
        from models.dashboard import ProductionQuery
        from services.dashboard import production

        seed_activity(db)
        data = await production(db, ProductionQuery(), today=TODAY)

        assert data["tasks_overdue"] == 1
        assert data["tasks_completed_on_time"] == 1
        assert data["delai_rl_moyen"] == 5
        assert data["rendement_par_operateur"] == [
            {"operator_id": "op-1", "operator_name": "Orange Wholesale", "rendement": 80.0}
        ]
        assert data["top_codes"][0]["code_produit"] == "PTO-01"

    @pytest.mark.asyncio
    async def test_financier(self, db):
        from models.dashboard import FinancierQuery
        from services.dashboard import financier

        seed_activity(db)
        data = await financier(db, FinancierQuery(), today=TODAY)

        assert data["chiffre_affaire_ht"] == 1500
        assert data["chiffre_affaire_ttc"] == 1800
        assert data["marge_grossiere"] == 1100
        assert len(data["revenue_by_month"]) == 12
        assert data["revenue_by_month"][0]["month"] == "avr. 23"
        assert data["revenue_by_month"][-1] == {"month": "mars 24", "ca": 1500, "achats": 400}
        assert data["revenue_by_month"][-2]["ca"] == 300
        assert data["top_clients"][0] == {"client_id": "c-1", "client_name": "Orange", "total_ht": 1000}
        assert data["pending_invoices"] == [
            {"id": "i-2", "client_name": "SFR", "amount": 500.0, "due_date": "2024-03-10"}
        ]

    @pytest.mark.asyncio
    async def test_rentabilite(self, db):
        from services.dashboard import rentabilite

        employee_id = seed_activity(db)
        data = await rentabilite(db, 2024, 3, today=TODAY)

        row = next(r for r in data["employees"] if r["employee_id"] == employee_id)
        assert row["salaire_charge"] == 2840.0
        assert row["revenue_genere"] == 250.0
        assert row["ratio"] == 0.09
        assert row["hours_logged"] == 5
        assert row["taux_occupation"] == 3.3
        assert data["totals"]["masse_salariale"] == 2840.0


class TestDashboardApi:

    def test_general_for_everyone(self, client):
        response = client.get("/api/dashboard/general", headers=headers_for("employe"))
        assert response.status_code == 200
        assert "tasksByStatus" in response.json()

    def test_financier_restricted(self, client):
        for role in ("employe", "responsable_production", "rh"):
            response = client.get("/api/dashboard/financier", headers=headers_for(role))
            assert response.status_code == 403
            assert response.json()["detail"] == "Accès réservé au gérant et au comptable."

        for role in ("comptable", "gerant", "super_admin"):
            assert client.get("/api/dashboard/rentabilite-salariale", headers=headers_for(role)).status_code == 200

    def test_financier_bad_month(self, client):
        response = client.get("/api/dashboard/financier?month=13", headers=headers_for("comptable"))
        assert response.status_code == 422

    def test_export_general(self, client, db):
        seed_activity(db)
        response = client.get("/api/dashboard/export?type=general", headers=headers_for("employe"))
        assert response.status_code == 200
        assert response.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        disposition = response.headers["content-disposition"]
        assert 'filename="dashboard-general-' in disposition and disposition.endswith('.xlsx"')

        book = openpyxl.load_workbook(io.BytesIO(response.content))
        assert book.sheetnames == ["Dashboard Général", "Tâches par statut"]
        assert book["Dashboard Général"]["A2"].value == "Clients total"

    def test_export_restricted_types(self, client):
        response = client.get("/api/dashboard/export?type=rentabilite", headers=headers_for("employe"))
        assert response.status_code == 403
        assert response.json()["detail"] == "Export réservé au gérant et au comptable."

        response = client.get("/api/dashboard/export?type=rentabilite", headers=headers_for("comptable"))
        assert response.status_code == 200
        book = openpyxl.load_workbook(io.BytesIO(response.content))
        assert book.sheetnames == ["Rentabilité salariale"]

    def test_export_unknown_type(self, client):
        response = client.get("/api/dashboard/export?type=rh", headers=headers_for("gerant"))
        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "type"


def test_export_filename():
    from services.dashboard import export_filename

    assert export_filename("financier", TODAY) == "dashboard-financier-2024-03-15.xlsx"
