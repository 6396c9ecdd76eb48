"""
Stockage objet (Supabase Storage REST)

- ObjectStore: interface utilisée par l'import (buckets + upload/download)
- SupabaseStorage: implémentation httpx avec la clé service_role
- ensure_bucket: provisioning idempotent du bucket privé au démarrage

Endpoints:
- GET  /storage/v1/bucket                      liste des buckets
- POST /storage/v1/bucket                      {id, name, public}
- POST /storage/v1/object/{bucket}/{path}      upload (x-upsert: false)
- GET  /storage/v1/object/{bucket}/{path}      download authentifié
"""

import logging
from typing import List, Optional

import httpx

logger = logging.getLogger("storage")


class StorageError(Exception):
    """Échec d'un appel au stockage objet"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ObjectStore:
    """Interface minimale du stockage objet"""

    async def list_buckets(self) -> List[dict]:
        raise NotImplementedError

    async def create_bucket(self, name: str, public: bool = False) -> None:
        raise NotImplementedError

    async def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        raise NotImplementedError

    async def download(self, bucket: str, path: str) -> bytes:
        raise NotImplementedError


class SupabaseStorage(ObjectStore):

    def __init__(self, url: str, service_key: str, timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = url.rstrip("/") + "/storage/v1"
        self.service_key = service_key
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
            headers={
                "Authorization": f"Bearer {self.service_key}",
                "apikey": self.service_key,
            },
        )

    @staticmethod
    def _check(resp: httpx.Response, action: str) -> None:
        if resp.status_code >= 400:
            try:
                message = resp.json().get("message") or resp.text
            except ValueError:
                message = resp.text
            logger.error(f"[STORAGE] {action} a échoué ({resp.status_code}): {message}")
            raise StorageError(f"{action}: {message}", resp.status_code)

    async def list_buckets(self) -> List[dict]:
        try:
            async with self._client() as client:
                resp = await client.get("/bucket")
        except httpx.HTTPError as e:
            raise StorageError(f"list_buckets: {e}") from e
        self._check(resp, "list_buckets")
        return resp.json()

    async def create_bucket(self, name: str, public: bool = False) -> None:
        try:
            async with self._client() as client:
                resp = await client.post(
                    "/bucket", json={"id": name, "name": name, "public": public}
                )
        except httpx.HTTPError as e:
            raise StorageError(f"create_bucket: {e}") from e
        self._check(resp, "create_bucket")

    async def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        try:
            async with self._client() as client:
                resp = await client.post(
                    f"/object/{bucket}/{path}",
                    content=content,
                    headers={"Content-Type": content_type, "x-upsert": "false"},
                )
        except httpx.HTTPError as e:
            raise StorageError(f"upload: {e}") from e
        self._check(resp, "upload")
        return path

    async def download(self, bucket: str, path: str) -> bytes:
        try:
            async with self._client() as client:
                resp = await client.get(f"/object/{bucket}/{path}")
        except httpx.HTTPError as e:
            raise StorageError(f"download: {e}") from e
        self._check(resp, "download")
        return resp.content


async def ensure_bucket(store: ObjectStore, name: str) -> bool:
    """
    Crée le bucket `name` (privé) s'il n'existe pas.
    Retourne True si le bucket a été créé. Les erreurs remontent (StorageError).
    """
    buckets = await store.list_buckets()
    if any(b.get("name") == name for b in buckets or []):
        logger.info(f"[STORAGE] Bucket '{name}' déjà présent")
        return False

    await store.create_bucket(name, public=False)
    logger.info(f"[STORAGE] Bucket '{name}' créé (privé)")
    return True
