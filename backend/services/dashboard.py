"""
Tableaux de bord: général, production, financier, rentabilité salariale

Agrégations faites en Python sur les documents (volumes d'une PME),
exports .xlsx construits avec openpyxl.
"""

import datetime as dt
import logging
from typing import Dict, Iterable, List, Optional, Set

from config import format_date, get_monday, month_bounds, today_utc
from models.dashboard import DashboardExportType, FinancierQuery, ProductionQuery
from services.excel_reader import build_workbook

logger = logging.getLogger("dashboard")

IN_PROGRESS = ["en_cours", "en_revision"]
FINISHED = ["terminee", "livree"]
CLOSED = FINISHED + ["annulee"]

WORKING_HOURS_PER_MONTH = 151.67
DEFAULT_CHARGES_RATE = 0.42

FRENCH_MONTHS = [
    "janv.", "févr.", "mars", "avr.", "mai", "juin",
    "juil.", "août", "sept.", "oct.", "nov.", "déc.",
]

NOT_DELETED = {"deleted_at": None}


# ==================== HELPERS ====================

def _within(value, start: dt.date, end: dt.date) -> bool:
    day = format_date(value)
    return bool(day) and start.isoformat() <= day <= end.isoformat()


def _money(value) -> float:
    return round(float(value or 0), 2)


def _sum(docs: Iterable[dict], field: str) -> float:
    return sum(float(d.get(field) or 0) for d in docs)


def _by_status(docs: Iterable[dict]) -> List[dict]:
    counts: Dict[str, int] = {}
    for doc in docs:
        counts[doc.get("status")] = counts.get(doc.get("status"), 0) + 1
    return [{"status": s, "count": c} for s, c in counts.items()]


def week_label(monday: dt.date) -> str:
    year, week, _ = monday.isocalendar()
    return f"S{week:02d}/{year}"


def last_weeks(today: dt.date, count: int = 8) -> List[dict]:
    """Les `count` dernières semaines (lundi-dimanche), la plus ancienne en premier"""
    current = get_monday(today)
    weeks = []
    for i in range(count - 1, -1, -1):
        start = current - dt.timedelta(weeks=i)
        weeks.append({"start": start, "end": start + dt.timedelta(days=6), "label": week_label(start)})
    return weeks


def count_business_days(start: dt.date, end: dt.date, holidays: Set[str]) -> int:
    count = 0
    current = start
    while current <= end:
        if current.weekday() < 5 and current.isoformat() not in holidays:
            count += 1
        current += dt.timedelta(days=1)
    return count


def month_label(year: int, month: int) -> str:
    return f"{FRENCH_MONTHS[month - 1]} {year % 100:02d}"


async def _hours_by_task(db, task_ids: List[str], employee_id: Optional[str] = None) -> Dict[str, float]:
    if not task_ids:
        return {}
    where = {"task_id": {"$in": task_ids}}
    if employee_id:
        where["employee_id"] = employee_id
    entries = await db.time_entries.find(where, {"_id": 0, "task_id": 1, "hours": 1}).to_list(None)
    hours: Dict[str, float] = {}
    for entry in entries:
        hours[entry["task_id"]] = hours.get(entry["task_id"], 0.0) + float(entry.get("hours") or 0)
    return hours


async def _codes(db, code_ids: Iterable[str]) -> Dict[str, dict]:
    ids = [c for c in set(code_ids) if c]
    if not ids:
        return {}
    codes = await db.codes_produits.find({"id": {"$in": ids}}, {"_id": 0}).to_list(None)
    return {c["id"]: c for c in codes}


def average_rendement(tasks: List[dict], hours: Dict[str, float], codes: Dict[str, dict]) -> float:
    """Moyenne de (temps gamme / heures passées) en %, sur les tâches pointées"""
    total = 0.0
    count = 0
    for task in tasks:
        spent = hours.get(task["id"], 0.0)
        gamme = float((codes.get(task.get("code_produit_id")) or {}).get("time_gamme") or 0)
        if spent > 0 and gamme:
            total += gamme / spent * 100
            count += 1
    return round(total / count, 1) if count else 0


# ==================== GÉNÉRAL ====================

async def general(db, today: Optional[dt.date] = None) -> dict:
    today = today or today_utc()
    month_start, month_end = month_bounds(today.year, today.month)
    day = today.isoformat()

    clients = await db.clients.find({}, {"_id": 0}).to_list(None)
    projects = await db.projects.find(NOT_DELETED, {"_id": 0}).to_list(None)
    tasks = await db.tasks.find(NOT_DELETED, {"_id": 0}).to_list(None)
    employees_total = await db.employees.count_documents({"is_active": True})
    on_leave = await db.leave_requests.count_documents({
        "status": "approuve", "start_date": {"$lte": day}, "end_date": {"$gte": day},
    })
    invoices = [
        i for i in await db.invoices.find({}, {"_id": 0}).to_list(None)
        if _within(i.get("created_at"), month_start, month_end)
    ]

    hours = await _hours_by_task(db, [t["id"] for t in tasks])
    tracked = [t for t in tasks if t["id"] in hours]
    codes = await _codes(db, (t.get("code_produit_id") for t in tracked))

    completed_by_week = []
    for week in last_weeks(today):
        completed_by_week.append({
            "week": week["label"],
            "completed": sum(
                1 for t in tasks
                if t.get("status") in FINISHED and _within(t.get("updated_at"), week["start"], week["end"])
            ),
        })

    issued = _sum(invoices, "total_ht")
    cashed = _sum((i for i in invoices if i.get("status") == "payee"), "total_ht")

    return {
        "clients": {
            "total": sum(1 for c in clients if c.get("is_active", True)),
            "nouveaux_ce_mois": sum(1 for c in clients if _within(c.get("created_at"), month_start, month_end)),
        },
        "projects": {
            "total": len(projects),
            "en_cours": sum(1 for p in projects if p.get("status") in IN_PROGRESS),
            "termines": sum(1 for p in projects if p.get("status") in FINISHED),
        },
        "tasks": {
            "total": len(tasks),
            "en_cours": sum(1 for t in tasks if t.get("status") in IN_PROGRESS),
            "terminees": sum(1 for t in tasks if t.get("status") in FINISHED),
            "en_retard": sum(
                1 for t in tasks
                if t.get("status") not in CLOSED
                and t.get("planned_end_date") and format_date(t["planned_end_date"]) < day
            ),
        },
        "employees": {"total": employees_total, "en_conge": on_leave, "actifs": employees_total - on_leave},
        "revenue": {"facture_emis_ht": issued, "encaisse": cashed, "en_attente": issued - cashed},
        "rendement_moyen": average_rendement(tracked, hours, codes),
        "tasks_by_status": _by_status(tasks),
        "projects_by_status": _by_status(projects),
        "tasks_completed_by_week": completed_by_week,
    }


# ==================== PRODUCTION ====================

async def production(db, query: ProductionQuery, today: Optional[dt.date] = None) -> dict:
    today = today or today_utc()
    start = query.start_date or today - dt.timedelta(days=90)
    end = query.end_date or today
    day = today.isoformat()

    project_where = dict(NOT_DELETED)
    if query.operator_id:
        project_where["operator_id"] = query.operator_id
    if query.client_id:
        project_where["client_id"] = query.client_id
    projects = await db.projects.find(project_where, {"_id": 0}).to_list(None)
    project_operator = {p["id"]: p.get("operator_id") for p in projects}

    tasks = [
        t for t in await db.tasks.find(
            {**NOT_DELETED, "project_id": {"$in": list(project_operator)}}, {"_id": 0}
        ).to_list(None)
        if _within(t.get("created_at"), start, end)
    ]
    finished = [t for t in tasks if t.get("status") in FINISHED]

    overdue = sum(
        1 for t in tasks
        if t.get("status") not in CLOSED
        and t.get("planned_end_date") and format_date(t["planned_end_date"]) < day
    )
    on_time = sum(
        1 for t in finished
        if t.get("actual_end_date") and t.get("planned_end_date")
        and format_date(t["actual_end_date"]) <= format_date(t["planned_end_date"])
    )

    hours = await _hours_by_task(db, [t["id"] for t in tasks])
    codes = await _codes(db, (t.get("code_produit_id") for t in tasks))

    operator_where = {"id": query.operator_id} if query.operator_id else {}
    operators = await db.operators.find(operator_where, {"_id": 0, "id": 1, "name": 1}).to_list(None)
    by_operator = []
    for operator in operators:
        op_tasks = [
            t for t in tasks
            if project_operator.get(t.get("project_id")) == operator["id"] and t["id"] in hours
        ]
        by_operator.append({
            "operator_id": operator["id"],
            "operator_name": operator.get("name"),
            "rendement": average_rendement(op_tasks, hours, codes),
        })
    by_operator.sort(key=lambda o: o["rendement"], reverse=True)

    holidays = {
        format_date(h["date"]) for h in await db.public_holidays.find(
            {"date": {"$gte": start.isoformat(), "$lte": end.isoformat()}}, {"_id": 0, "date": 1}
        ).to_list(None)
    }
    delays = [
        count_business_days(
            dt.date.fromisoformat(format_date(t["date_reception"])),
            dt.date.fromisoformat(format_date(t["actual_end_date"])),
            holidays,
        )
        for t in finished if t.get("date_reception") and t.get("actual_end_date")
    ]
    delai_rl = round(sum(delays) / len(delays), 1) if delays else 0

    by_week = []
    for week in last_weeks(today):
        by_week.append({
            "week": week["label"],
            "completed": sum(1 for t in finished if _within(t.get("updated_at"), week["start"], week["end"])),
            "started": sum(1 for t in tasks if _within(t.get("created_at"), week["start"], week["end"])),
        })

    per_code: Dict[str, List[dict]] = {}
    for task in tasks:
        if task.get("code_produit_id"):
            per_code.setdefault(task["code_produit_id"], []).append(task)
    top_codes = [
        {
            "code_produit": (codes.get(code_id) or {}).get("code", code_id),
            "count": len(code_tasks),
            "rendement_moyen": average_rendement(code_tasks, hours, codes),
        }
        for code_id, code_tasks in sorted(per_code.items(), key=lambda kv: len(kv[1]), reverse=True)[:10]
    ]

    return {
        "tasks_by_status": _by_status(tasks),
        "rendement_par_operateur": by_operator,
        "delai_rl_moyen": delai_rl,
        "tasks_overdue": overdue,
        "tasks_completed_on_time": on_time,
        "production_by_week": by_week,
        "top_codes": top_codes,
    }


# ==================== FINANCIER ====================

async def financier(db, query: FinancierQuery, today: Optional[dt.date] = None) -> dict:
    today = today or today_utc()
    year = query.year or today.year
    month = query.month or today.month
    start, end = month_bounds(year, month)

    invoices = await db.invoices.find({}, {"_id": 0}).to_list(None)
    purchases = await db.purchase_invoices.find({}, {"_id": 0}).to_list(None)
    month_invoices = [i for i in invoices if _within(i.get("created_at"), start, end)]
    month_purchases = [p for p in purchases if _within(p.get("created_at"), start, end)]

    statuses: Dict[str, dict] = {}
    for invoice in month_invoices:
        row = statuses.setdefault(invoice.get("status"), {"status": invoice.get("status"), "count": 0, "total": 0.0})
        row["count"] += 1
        row["total"] += float(invoice.get("total_ht") or 0)

    revenue_by_month = []
    for i in range(11, -1, -1):
        index = year * 12 + (month - 1) - i
        m_year, m_month = divmod(index, 12)
        m_start, m_end = month_bounds(m_year, m_month + 1)
        revenue_by_month.append({
            "month": month_label(m_year, m_month + 1),
            "ca": _sum((x for x in invoices if _within(x.get("created_at"), m_start, m_end)), "total_ht"),
            "achats": _sum((x for x in purchases if _within(x.get("created_at"), m_start, m_end)), "total_ht"),
        })

    per_client: Dict[str, float] = {}
    for invoice in month_invoices:
        per_client[invoice.get("client_id")] = per_client.get(invoice.get("client_id"), 0.0) + float(invoice.get("total_ht") or 0)
    top = sorted(per_client.items(), key=lambda kv: kv[1], reverse=True)[:5]
    clients = {
        c["id"]: c for c in await db.clients.find(
            {"id": {"$in": [cid for cid, _ in top] + [i.get("client_id") for i in invoices]}},
            {"_id": 0, "id": 1, "name": 1},
        ).to_list(None)
    }

    overdue = sorted(
        (
            i for i in invoices
            if i.get("status") not in ("payee", "annulee")
            and i.get("due_date") and format_date(i["due_date"]) < today.isoformat()
        ),
        key=lambda i: format_date(i["due_date"]),
    )[:20]

    revenue_ht = _sum(month_invoices, "total_ht")
    purchases_ht = _sum(month_purchases, "total_ht")

    return {
        "chiffre_affaire_ht": revenue_ht,
        "chiffre_affaire_ttc": _sum(month_invoices, "total_ttc"),
        "total_achats_ht": purchases_ht,
        "marge_grossiere": revenue_ht - purchases_ht,
        "invoices_by_status": list(statuses.values()),
        "revenue_by_month": revenue_by_month,
        "top_clients": [
            {"client_id": cid, "client_name": (clients.get(cid) or {}).get("name", cid), "total_ht": total}
            for cid, total in top
        ],
        "pending_invoices": [
            {
                "id": i["id"],
                "client_name": (clients.get(i.get("client_id")) or {}).get("name", "N/A"),
                "amount": float(i.get("total_ht") or 0),
                "due_date": format_date(i["due_date"]),
            }
            for i in overdue
        ],
    }


# ==================== RENTABILITÉ ====================

async def rentabilite(db, year: Optional[int] = None, month: Optional[int] = None,
                      today: Optional[dt.date] = None) -> dict:
    today = today or today_utc()
    start, end = month_bounds(year or today.year, month or today.month)

    employees = await db.employees.find({"is_active": True, **NOT_DELETED}, {"_id": 0}).to_list(None)
    entries = await db.time_entries.find(
        {"date": {"$gte": start.isoformat(), "$lte": end.isoformat()}}, {"_id": 0}
    ).to_list(None)

    task_ids = list({e["task_id"] for e in entries})
    tasks = {
        t["id"]: t for t in await db.tasks.find(
            {"id": {"$in": task_ids}, **NOT_DELETED}, {"_id": 0}
        ).to_list(None)
    } if task_ids else {}
    codes = await _codes(db, (t.get("code_produit_id") for t in tasks.values()))

    rows = []
    for emp in employees:
        salary = float(emp.get("gross_salary") or 0) * (1 + DEFAULT_CHARGES_RATE)
        own = [e for e in entries if e["employee_id"] == emp["id"]]
        hours_logged = _sum(own, "hours")

        # CA approché: heures sur tâches facturables x prix unitaire du code produit
        revenue = 0.0
        for entry in own:
            task = tasks.get(entry["task_id"])
            if not task or not task.get("facturable") or task.get("employee_id") != emp["id"]:
                continue
            price = float((codes.get(task.get("code_produit_id")) or {}).get("unit_price") or 0)
            revenue += float(entry.get("hours") or 0) * price

        rows.append({
            "employee_id": emp["id"],
            "employee_name": f"{emp.get('first_name', '')} {emp.get('last_name', '')}".strip(),
            "salaire_charge": _money(salary),
            "revenue_genere": _money(revenue),
            "ratio": round(revenue / salary, 2) if salary > 0 else 0,
            "hours_logged": hours_logged,
            "taux_occupation": round(hours_logged / WORKING_HOURS_PER_MONTH * 100, 1),
        })

    payroll = sum(r["salaire_charge"] for r in rows)
    revenue_total = sum(r["revenue_genere"] for r in rows)
    return {
        "employees": rows,
        "totals": {
            "masse_salariale": _money(payroll),
            "revenue_total": _money(revenue_total),
            "ratio_global": round(revenue_total / payroll, 2) if payroll > 0 else 0,
        },
    }


# ==================== EXPORT ====================

async def build_export(db, export_type: DashboardExportType,
                       start_date: Optional[dt.date] = None,
                       end_date: Optional[dt.date] = None,
                       today: Optional[dt.date] = None) -> bytes:
    """Classeur .xlsx du tableau demandé"""
    today = today or today_utc()
    export_type = DashboardExportType(export_type)
    sheets = []

    if export_type == DashboardExportType.GENERAL:
        data = await general(db, today=today)
        sheets.append(("Dashboard Général", ["Indicateur", "Valeur"], [
            ["Clients total", data["clients"]["total"]],
            ["Clients nouveaux ce mois", data["clients"]["nouveaux_ce_mois"]],
            ["Projets total", data["projects"]["total"]],
            ["Projets en cours", data["projects"]["en_cours"]],
            ["Projets terminés", data["projects"]["termines"]],
            ["Tâches total", data["tasks"]["total"]],
            ["Tâches en cours", data["tasks"]["en_cours"]],
            ["Tâches terminées", data["tasks"]["terminees"]],
            ["Tâches en retard", data["tasks"]["en_retard"]],
            ["Employés actifs", data["employees"]["actifs"]],
            ["Employés en congé", data["employees"]["en_conge"]],
            ["CA HT émis (mois)", data["revenue"]["facture_emis_ht"]],
            ["CA encaissé (mois)", data["revenue"]["encaisse"]],
            ["CA en attente (mois)", data["revenue"]["en_attente"]],
            ["Rendement moyen (%)", data["rendement_moyen"]],
        ]))
        sheets.append(("Tâches par statut", ["Statut", "Nombre"],
                       [[r["status"], r["count"]] for r in data["tasks_by_status"]]))

    elif export_type == DashboardExportType.PRODUCTION:
        data = await production(db, ProductionQuery(start_date=start_date, end_date=end_date), today=today)
        sheets.append(("Production", ["Indicateur", "Valeur"], [
            ["Tâches en retard", data["tasks_overdue"]],
            ["Tâches terminées dans les délais", data["tasks_completed_on_time"]],
            ["Délai R→L moyen (jours ouvrés)", data["delai_rl_moyen"]],
        ]))
        sheets.append(("Rendement opérateurs", ["Opérateur", "Rendement (%)"],
                       [[r["operator_name"], r["rendement"]] for r in data["rendement_par_operateur"]]))
        sheets.append(("Top codes produits", ["Code produit", "Nb tâches", "Rendement moyen (%)"],
                       [[r["code_produit"], r["count"], r["rendement_moyen"]] for r in data["top_codes"]]))

    elif export_type == DashboardExportType.FINANCIER:
        data = await financier(db, FinancierQuery(year=today.year, month=today.month), today=today)
        sheets.append(("Financier", ["Indicateur", "Valeur (€)"], [
            ["CA HT", data["chiffre_affaire_ht"]],
            ["CA TTC", data["chiffre_affaire_ttc"]],
            ["Achats HT", data["total_achats_ht"]],
            ["Marge brute", data["marge_grossiere"]],
        ]))
        sheets.append(("Factures en retard", ["Client", "Montant (€)", "Échéance"],
                       [[r["client_name"], r["amount"], r["due_date"]] for r in data["pending_invoices"]]))

    else:
        data = await rentabilite(db, today.year, today.month, today=today)
        rows = [
            [r["employee_name"], r["salaire_charge"], r["revenue_genere"], r["ratio"],
             r["hours_logged"], r["taux_occupation"]]
            for r in data["employees"]
        ]
        rows.append([])
        rows.append(["TOTAL", data["totals"]["masse_salariale"], data["totals"]["revenue_total"],
                     data["totals"]["ratio_global"]])
        sheets.append(("Rentabilité salariale", [
            "Employé", "Salaire chargé (€)", "Revenu généré (€)", "Ratio", "Heures", "Taux d'occupation (%)",
        ], rows))

    logger.info(f"[DASHBOARD] Export {export_type.value} généré")
    return build_workbook(sheets)


def export_filename(export_type, day: Optional[dt.date] = None) -> str:
    export_type = DashboardExportType(export_type)
    return f"dashboard-{export_type.value}-{(day or today_utc()).isoformat()}.xlsx"
