"""
Client de téléchargement des exports du tableau de bord

Appelle GET /api/dashboard/export, écrit le classeur reçu sous
`dashboard-<type>-<YYYY-MM-DD>.<ext>`. Une erreur réseau ou fichier est
journalisée, jamais relancée; pas de nouvelle tentative.
"""

import datetime as dt
import logging
from pathlib import Path
from typing import Callable, Optional

import httpx

logger = logging.getLogger("export_client")


def build_filename(export_type: str, fmt: str = "xlsx", day: Optional[dt.date] = None) -> str:
    day = day or dt.datetime.now(dt.timezone.utc).date()
    return f"dashboard-{export_type}-{day.isoformat()}.{fmt}"


class DashboardExportClient:

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        output_dir: Path = Path("."),
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        today: Optional[Callable[[], dt.date]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.output_dir = Path(output_dir)
        self.timeout = timeout
        self.transport = transport
        self.today = today
        self.loading = False

    def _headers(self) -> dict:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def export(
        self,
        export_type: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        fmt: str = "xlsx",
    ) -> Optional[Path]:
        """Retourne le chemin du fichier écrit, ou None en cas d'échec"""
        params = {"type": export_type, "format": fmt}
        if start_date:
            params["startDate"] = start_date
        if end_date:
            params["endDate"] = end_date

        self.loading = True
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self.transport
            ) as client:
                resp = await client.get(
                    "/api/dashboard/export", params=params, headers=self._headers()
                )
                resp.raise_for_status()

            day = self.today() if self.today else None
            target = self.output_dir / build_filename(export_type, fmt, day)
            target.write_bytes(resp.content)
            logger.info(f"[EXPORT] {target.name} téléchargé ({len(resp.content)} octets)")
            return target
        except (httpx.HTTPError, OSError) as e:
            logger.error(f"Export error: {e}")
            return None
        finally:
            self.loading = False
