"""
Service d'import Excel: fichiers, jobs et modèles de mapping
"""

import logging
import secrets
import time
import uuid
from typing import Optional

from config import MAX_IMPORT_FILE_SIZE, now_iso
from models.common import paginated
from models.imports import (
    ListImportsQuery,
    SaveTemplateRequest,
    StartImportRequest,
)
from services.errors import NotFoundError, ServiceError
from services.excel_reader import ExcelFileError, read_headers
from services.storage import ObjectStore, StorageError

logger = logging.getLogger("imports")

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

ALLOWED_EXTENSIONS = (".xlsx",)


def build_file_path() -> str:
    """imports/<timestamp ms>-<aléatoire>.xlsx"""
    return f"imports/{int(time.time() * 1000)}-{secrets.token_hex(6)}.xlsx"


class ImportService:

    def __init__(self, db, store: ObjectStore, queue, bucket: str):
        self.db = db
        self.store = store
        self.queue = queue
        self.bucket = bucket

    # ==================== FICHIERS ====================

    async def upload_file(self, file_name: str, content: bytes) -> dict:
        if len(content) > MAX_IMPORT_FILE_SIZE:
            raise ServiceError("Fichier trop volumineux (max 10 MB)")
        if not (file_name or "").lower().endswith(ALLOWED_EXTENSIONS):
            raise ServiceError("Seuls les fichiers .xlsx sont acceptés")

        try:
            headers = read_headers(content)
        except ExcelFileError as e:
            raise ServiceError(str(e))

        path = build_file_path()
        try:
            await self.store.upload(self.bucket, path, content, XLSX_MIME)
        except StorageError as e:
            raise ServiceError(f"Erreur upload: {e}")

        logger.info(f"[IMPORT] Fichier {file_name} chargé ({len(content)} octets) -> {path}")
        return {"filePath": path, "fileName": file_name, "headers": headers}

    async def parse_headers(self, file_path: str) -> list:
        try:
            content = await self.store.download(self.bucket, file_path)
        except StorageError:
            raise ServiceError("Impossible de télécharger le fichier")
        try:
            return read_headers(content)
        except ExcelFileError as e:
            raise ServiceError(str(e))

    # ==================== JOBS ====================

    async def start_import(self, data: StartImportRequest, user_id: str) -> dict:
        if data.template_id:
            template = await self.db.import_templates.find_one({"id": data.template_id}, {"_id": 0})
            if not template:
                raise NotFoundError("Modèle d'import introuvable")

        job = {
            "id": str(uuid.uuid4()),
            **data.to_doc(),
            "status": "pending",
            "total_rows": 0,
            "processed_rows": 0,
            "error_rows": 0,
            "errors": [],
            "created_by_id": user_id,
            "created_at": now_iso(),
            "updated_at": now_iso(),
            "completed_at": None,
        }
        await self.db.import_jobs.insert_one(dict(job))
        self.queue.enqueue(job["id"])

        logger.info(f"[IMPORT] Job {job['id']} créé ({data.entity_type.value}, {data.file_name})")
        return {"jobId": job["id"]}

    async def get_job(self, job_id: str) -> dict:
        job = await self.db.import_jobs.find_one({"id": job_id}, {"_id": 0})
        if not job:
            raise NotFoundError(f"Import {job_id} introuvable")
        return await self._with_template(job)

    async def list_jobs(self, query: ListImportsQuery) -> dict:
        where = {}
        if query.entity_type:
            where["entity_type"] = query.entity_type.value
        if query.status:
            where["status"] = query.status.value

        jobs = await self.db.import_jobs.find(where, {"_id": 0}) \
            .sort("created_at", -1) \
            .skip(query.skip) \
            .limit(query.limit) \
            .to_list(query.limit)
        total = await self.db.import_jobs.count_documents(where)

        data = [await self._with_template(j) for j in jobs]
        return paginated(data, total, query.page, query.limit)

    async def _with_template(self, job: dict) -> dict:
        job["template"] = None
        if job.get("template_id"):
            tpl = await self.db.import_templates.find_one(
                {"id": job["template_id"]}, {"_id": 0, "id": 1, "name": 1}
            )
            job["template"] = tpl
        return job

    # ==================== TEMPLATES ====================

    async def save_template(self, data: SaveTemplateRequest, user_id: str) -> dict:
        template = {
            "id": str(uuid.uuid4()),
            **data.to_doc(),
            "created_by_id": user_id,
            "created_at": now_iso(),
            "updated_at": now_iso(),
        }
        await self.db.import_templates.insert_one(dict(template))
        return template

    async def list_templates(self, entity_type: Optional[str] = None) -> list:
        where = {"entity_type": entity_type} if entity_type else {}
        return await self.db.import_templates.find(where, {"_id": 0}) \
            .sort("created_at", -1) \
            .to_list(500)

    async def delete_template(self, template_id: str) -> dict:
        result = await self.db.import_templates.delete_one({"id": template_id})
        if result.deleted_count == 0:
            raise NotFoundError(f"Modèle {template_id} introuvable")
        return {"success": True}
