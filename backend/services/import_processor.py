"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  TRAITEMENT DES JOBS D'IMPORT EXCEL                                          ║
║                                                                              ║
║  1. Télécharge le fichier depuis le bucket privé                             ║
║  2. Lit la première feuille (ligne 1 = en-têtes)                             ║
║  3. Applique le mapping {colonne Excel: champ}                               ║
║  4. Valide chaque ligne (modèle de ligne de l'entité)                        ║
║  5. Crée ou met à jour selon la politique de doublon (skip / update)         ║
║                                                                              ║
║  Une ligne invalide n'arrête pas le job: erreur {row, field, message}.       ║
║  Un fichier illisible => job "failed" avec une erreur en ligne 0.            ║
║  Progression enregistrée toutes les 50 lignes.                               ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import uuid
from typing import Dict, List, Optional

from pydantic import ValidationError

from config import now_iso
from models.imports import ImportEntityType, OnDuplicateAction, RowModel, get_row_model
from services.excel_reader import ExcelFileError, read_rows
from services.fuzzy_match import is_fuzzy_match
from services.storage import ObjectStore, StorageError

logger = logging.getLogger("import_processor")

PROGRESS_EVERY = 50

# Messages des erreurs de type (les règles métier ont leur propre message)
TYPE_ERROR_MESSAGES = {
    "float_parsing": "Nombre invalide",
    "float_type": "Nombre invalide",
    "greater_than_equal": "La valeur doit être positive",
    "date_parsing": "Date invalide",
    "date_from_datetime_parsing": "Date invalide",
    "date_type": "Date invalide",
    "string_type": "Texte invalide",
}


class DuplicateRowError(Exception):
    """Ligne refusée comme doublon potentiel"""


def format_row_error(model: type, error: dict) -> Dict[str, str]:
    """Convertit une erreur pydantic en {field, message}"""
    loc = [str(p) for p in error.get("loc", ())]
    field = ".".join(loc)

    name = loc[0] if loc else ""
    for field_name, info in model.model_fields.items():
        if info.alias == name:
            name = field_name
            break

    value = error.get("input")
    is_blank = value is None or (isinstance(value, str) and not value.strip())
    if name in model.required_messages and (error["type"] == "missing" or is_blank):
        message = model.required_messages[name]
    elif error["type"] == "value_error":
        message = str(error.get("ctx", {}).get("error") or error["msg"])
    else:
        message = TYPE_ERROR_MESSAGES.get(error["type"], error["msg"])
    return {"field": field, "message": message}


class ImportProcessor:

    def __init__(self, db, store: ObjectStore, bucket: str):
        self.db = db
        self.store = store
        self.bucket = bucket

    async def handle(self, job_id: str) -> None:
        job = await self.db.import_jobs.find_one({"id": job_id}, {"_id": 0})
        if not job:
            logger.error(f"[IMPORT] Job {job_id} introuvable")
            return

        logger.info(f"[IMPORT] Traitement du job {job_id} ({job['entity_type']})")
        await self._update(job_id, {"status": "processing"})

        try:
            content = await self.store.download(self.bucket, job["file_path"])
            rows = read_rows(content)
        except (StorageError, ExcelFileError) as e:
            logger.error(f"[IMPORT] Job {job_id} en échec: {e}")
            await self.mark_failed(job_id, e)
            return

        await self._update(job_id, {"total_rows": len(rows)})

        entity_type = ImportEntityType(job["entity_type"])
        on_duplicate = OnDuplicateAction(job.get("on_duplicate", "skip"))
        mappings: Dict[str, str] = job.get("mappings") or {}
        model = get_row_model(entity_type)

        known_employees = []
        if entity_type == ImportEntityType.EMPLOYEES:
            known_employees = await self.db.employees.find(
                {}, {"_id": 0, "id": 1, "first_name": 1, "last_name": 1}
            ).to_list(None)

        errors: List[dict] = []
        summary = {"created": 0, "updated": 0, "skipped": 0}
        processed_rows = 0
        error_rows = 0

        for row_number, excel_row in rows:
            mapped = {db_field: excel_row.get(col) for col, db_field in mappings.items()}

            try:
                row = model.model_validate(mapped)
            except ValidationError as e:
                for err in e.errors():
                    errors.append({"row": row_number, **format_row_error(model, err)})
                error_rows += 1
            else:
                try:
                    outcome = await self.upsert_row(entity_type, row, on_duplicate, known_employees)
                    summary[outcome] += 1
                except DuplicateRowError as e:
                    errors.append({"row": row_number, "field": "", "message": str(e)})
                    error_rows += 1
                except Exception as e:
                    # Échec d'écriture: la ligne est en erreur, le job continue
                    logger.warning(f"[IMPORT] Job {job_id} ligne {row_number}: {e}")
                    errors.append({"row": row_number, "field": "", "message": str(e)})
                    error_rows += 1

            processed_rows += 1
            if processed_rows % PROGRESS_EVERY == 0:
                await self._update(job_id, {
                    "processed_rows": processed_rows,
                    "error_rows": error_rows,
                    "errors": errors,
                })

        await self._update(job_id, {
            "status": "done",
            "total_rows": len(rows),
            "processed_rows": processed_rows,
            "error_rows": error_rows,
            "errors": errors,
            "summary": summary,
            "completed_at": now_iso(),
        })
        logger.info(
            f"[IMPORT] Job {job_id} terminé: {processed_rows} lignes, {error_rows} erreurs, "
            f"{summary['created']} créées, {summary['updated']} mises à jour"
        )

    async def mark_failed(self, job_id: str, error: Exception) -> None:
        await self._update(job_id, {
            "status": "failed",
            "errors": [{"row": 0, "field": "", "message": str(error)}],
            "completed_at": now_iso(),
        })

    async def _update(self, job_id: str, fields: dict) -> None:
        fields["updated_at"] = now_iso()
        await self.db.import_jobs.update_one({"id": job_id}, {"$set": fields})

    # ==================== UPSERT PAR ENTITÉ ====================

    async def upsert_row(self, entity_type: ImportEntityType, row: RowModel,
                         on_duplicate: OnDuplicateAction, known_employees: list) -> str:
        """Retourne "created", "updated" ou "skipped" """
        data = row.to_doc(exclude_none=True)

        if entity_type == ImportEntityType.CLIENTS:
            key = {"siret": data["siret"]} if data.get("siret") else None
            return await self._upsert("clients", key, data, on_duplicate)

        if entity_type == ImportEntityType.EMPLOYEES:
            return await self._upsert_employee(data, on_duplicate, known_employees)

        if entity_type == ImportEntityType.SITES:
            key = {"address": data["address"], "client_id": data["client_id"]}
            return await self._upsert("sites", key, data, on_duplicate,
                                      reference=self._site_reference)

        if entity_type == ImportEntityType.TASKS:
            key = {"title": data["title"], "project_id": data["project_id"]}
            return await self._upsert("tasks", key, data, on_duplicate,
                                      reference=self._task_reference)

        return await self._upsert("purchase_invoices", {"reference": data["reference"]},
                                  self._purchase_invoice_doc(data), on_duplicate,
                                  defaults={"amount_paid": 0, "status": "en_attente"})

    async def _upsert(self, collection: str, key: Optional[dict], data: dict,
                      on_duplicate: OnDuplicateAction, reference=None,
                      defaults: Optional[dict] = None) -> str:
        coll = self.db[collection]
        existing = await coll.find_one(key, {"_id": 0, "id": 1}) if key else None

        if existing:
            if on_duplicate == OnDuplicateAction.UPDATE:
                await coll.update_one(
                    {"id": existing["id"]}, {"$set": {**data, "updated_at": now_iso()}}
                )
                return "updated"
            return "skipped"

        doc = {
            "id": str(uuid.uuid4()),
            **(defaults or {}),
            **data,
            "created_at": now_iso(),
            "updated_at": now_iso(),
        }
        if reference is not None:
            doc["reference"] = await reference()
        await coll.insert_one(doc)
        return "created"

    async def _upsert_employee(self, data: dict, on_duplicate: OnDuplicateAction,
                               known_employees: list) -> str:
        existing = await self.db.employees.find_one(
            {"professional_email": data["professional_email"]}, {"_id": 0, "id": 1}
        )
        if not existing:
            full_name = f"{data.get('first_name', '')} {data.get('last_name', '')}".strip()
            for emp in known_employees:
                other = f"{emp.get('first_name', '')} {emp.get('last_name', '')}".strip()
                if is_fuzzy_match(other, full_name) and on_duplicate == OnDuplicateAction.SKIP:
                    raise DuplicateRowError(f'Doublon potentiel (nom similaire): "{other}"')

        key = {"professional_email": data["professional_email"]}
        outcome = await self._upsert("employees", key, data, on_duplicate,
                                     defaults={"is_active": True})
        if outcome == "created":
            known_employees.append({
                "first_name": data.get("first_name"), "last_name": data.get("last_name"),
            })
        return outcome

    @staticmethod
    def _purchase_invoice_doc(data: dict) -> dict:
        """Ligne importée => facture d'achat (montants HT / TVA / TTC)"""
        total_ht = round(float(data["amount"]), 2)
        vat_rate = float(data.get("vat_rate", 20))
        vat_amount = round(total_ht * vat_rate / 100, 2)
        doc = {
            "reference": data["reference"],
            "supplier_id": data["supplier_id"],
            "invoice_date": data["date"],
            "total_ht": total_ht,
            "vat_rate": vat_rate,
            "vat_amount": vat_amount,
            "total_ttc": round(total_ht + vat_amount, 2),
        }
        if data.get("due_date"):
            doc["due_date"] = data["due_date"]
        if data.get("notes"):
            doc["notes"] = data["notes"]
        return doc

    async def _site_reference(self) -> str:
        count = await self.db.sites.count_documents({})
        return f"SITE-{count + 1:05d}"

    async def _task_reference(self) -> str:
        count = await self.db.tasks.count_documents({})
        return f"TASK-{now_iso()[:7].replace('-', '')}-{count + 1:05d}"
