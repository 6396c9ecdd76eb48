"""
Assistant d'import Excel (client de l'API /api/import)

Étapes: choix de l'entité → chargement du fichier → mapping des colonnes
→ confirmation → progression du job.
"""

import asyncio
import logging
from enum import IntEnum
from typing import Dict, List, Optional

import httpx

from models.imports import AVAILABLE_FIELDS, REQUIRED_FIELDS, ImportEntityType

logger = logging.getLogger("import_wizard")

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

FINAL_STATUSES = ("done", "failed")


class WizardStep(IntEnum):
    CHOOSE_ENTITY = 0
    UPLOAD_FILE = 1
    MAP_COLUMNS = 2
    CONFIRM = 3
    PROGRESS = 4


STEP_LABELS = [
    "Choisir l'entité",
    "Charger le fichier",
    "Mapper les colonnes",
    "Confirmation",
    "Progression",
]


class WizardError(Exception):
    pass


class ImportWizard:

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 poll_interval: float = 2.0):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.transport = transport
        self.poll_interval = poll_interval
        self.reset()

    def reset(self) -> None:
        self.step = WizardStep.CHOOSE_ENTITY
        self.entity_type: Optional[ImportEntityType] = None
        self.file_path: Optional[str] = None
        self.file_name: Optional[str] = None
        self.excel_headers: List[str] = []
        self.mappings: Dict[str, str] = {}
        self.on_duplicate = "skip"
        self.template_id: Optional[str] = None
        self.job_id: Optional[str] = None
        self.job: Optional[dict] = None
        self.is_starting = False

    def _client(self) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout,
                                 transport=self.transport, headers=headers)

    # ==================== NAVIGATION ====================

    def choose_entity(self, entity_type: str) -> None:
        self.entity_type = ImportEntityType(entity_type)
        self.step = WizardStep.UPLOAD_FILE

    def next(self) -> WizardStep:
        if self.step == WizardStep.UPLOAD_FILE and not self.file_path:
            raise WizardError("Chargez un fichier avant de continuer")
        if self.step == WizardStep.MAP_COLUMNS and not self.can_proceed:
            raise WizardError("Champs obligatoires non mappés : " + ", ".join(self.missing_required_labels()))
        if self.step >= WizardStep.CONFIRM:
            raise WizardError("Utilisez start() pour lancer l'import")
        self.step = WizardStep(self.step + 1)
        return self.step

    def back(self) -> WizardStep:
        if WizardStep.CHOOSE_ENTITY < self.step < WizardStep.PROGRESS:
            self.step = WizardStep(self.step - 1)
        return self.step

    # ==================== FICHIER ====================

    async def upload(self, file_name: str, content: bytes) -> List[str]:
        """Envoie le fichier, récupère les en-têtes et propose un mapping automatique"""
        async with self._client() as client:
            resp = await client.post(
                "/api/import/upload",
                files={"file": (file_name, content, XLSX_MIME)},
            )
            resp.raise_for_status()
        data = resp.json()

        self.file_path = data["filePath"]
        self.file_name = data["fileName"]
        self.excel_headers = data.get("headers", [])
        self.mappings = {}
        self.auto_map()
        return self.excel_headers

    # ==================== MAPPING ====================

    def set_mapping(self, excel_column: str, db_field: Optional[str]) -> None:
        """Un champ cible n'est mappé qu'à une seule colonne"""
        if not db_field or db_field == "__ignore__":
            self.mappings.pop(excel_column, None)
            return
        for col, field in list(self.mappings.items()):
            if field == db_field and col != excel_column:
                del self.mappings[col]
        self.mappings[excel_column] = db_field

    def auto_map(self) -> Dict[str, str]:
        """Associe les colonnes dont l'en-tête correspond au modèle Excel"""
        if not self.entity_type:
            return self.mappings
        by_header = {}
        for f in AVAILABLE_FIELDS[self.entity_type]:
            for name in (f["header"], f["value"], f["label"].rstrip(" *")):
                by_header[name.strip().lower()] = f["value"]
        for header in self.excel_headers:
            field = by_header.get(header.strip().lower())
            if field and field not in self.mappings.values():
                self.mappings[header] = field
        return self.mappings

    def missing_required(self) -> List[str]:
        if not self.entity_type:
            return []
        mapped = set(self.mappings.values())
        return [f for f in REQUIRED_FIELDS[self.entity_type] if f not in mapped]

    def missing_required_labels(self) -> List[str]:
        labels = {f["value"]: f["label"] for f in AVAILABLE_FIELDS.get(self.entity_type, [])}
        return [labels.get(f, f) for f in self.missing_required()]

    @property
    def can_proceed(self) -> bool:
        return not self.missing_required()

    # ==================== TEMPLATES ====================

    async def list_templates(self) -> List[dict]:
        params = {"entityType": self.entity_type.value} if self.entity_type else {}
        async with self._client() as client:
            resp = await client.get("/api/import/templates", params=params)
            resp.raise_for_status()
        return resp.json()

    def apply_template(self, template: dict) -> None:
        self.mappings = dict(template.get("mappings") or {})
        self.template_id = template.get("id")

    async def save_template(self, name: str) -> dict:
        if not name.strip():
            raise WizardError("Nom du modèle requis")
        async with self._client() as client:
            resp = await client.post("/api/import/templates", json={
                "name": name.strip(),
                "entityType": self.entity_type.value,
                "mappings": self.mappings,
            })
            resp.raise_for_status()
        return resp.json()

    # ==================== LANCEMENT / PROGRESSION ====================

    async def start(self) -> Optional[str]:
        """Lance le job. En cas d'échec l'erreur est journalisée et l'étape ne change pas."""
        if not (self.entity_type and self.file_path and self.file_name):
            return None
        payload = {
            "entityType": self.entity_type.value,
            "filePath": self.file_path,
            "fileName": self.file_name,
            "mappings": self.mappings,
            "onDuplicate": self.on_duplicate,
        }
        if self.template_id:
            payload["templateId"] = self.template_id

        self.is_starting = True
        try:
            async with self._client() as client:
                resp = await client.post("/api/import/start", json=payload)
                resp.raise_for_status()
            self.job_id = resp.json()["jobId"]
            self.step = WizardStep.PROGRESS
            return self.job_id
        except httpx.HTTPError as e:
            logger.error(f"[IMPORT] Lancement impossible: {e}")
            return None
        finally:
            self.is_starting = False

    async def refresh(self) -> dict:
        async with self._client() as client:
            resp = await client.get(f"/api/import/jobs/{self.job_id}")
            resp.raise_for_status()
        self.job = resp.json()
        return self.job

    async def wait(self, max_polls: int = 300) -> dict:
        """Interroge le job tant qu'il est en attente ou en cours"""
        if not self.job_id:
            raise WizardError("Aucun import lancé")
        for _ in range(max_polls):
            job = await self.refresh()
            if job.get("status") in FINAL_STATUSES:
                return job
            await asyncio.sleep(self.poll_interval)
        return self.job
