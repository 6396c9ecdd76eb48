"""
File d'attente des imports (APScheduler)

Chaque job d'import est exécuté en tâche de fond sur la boucle asyncio.
Une exception non gérée par le traitement (base indisponible...) déclenche
une nouvelle tentative, avec un délai exponentiel: 3 s puis 6 s...
Les erreurs de fichier sont gérées par le traitement lui-même (job failed).
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

logger = logging.getLogger("import_queue")

MAX_ATTEMPTS = 2
BACKOFF_DELAY = 3.0  # secondes


def compute_backoff(attempt: int, base_delay: float = BACKOFF_DELAY) -> float:
    """Délai avant la tentative suivant la tentative `attempt` (1-indexée)"""
    return base_delay * (2 ** (attempt - 1))


class ImportQueue:
    """Gestionnaire des traitements d'import en arrière-plan"""

    def __init__(
        self,
        handler: Callable[[str], Awaitable[None]],
        attempts: int = MAX_ATTEMPTS,
        backoff_delay: float = BACKOFF_DELAY,
        scheduler: Optional[AsyncIOScheduler] = None,
        on_give_up: Optional[Callable[[str, Exception], Awaitable[None]]] = None,
    ):
        self.handler = handler
        self.attempts = attempts
        self.backoff_delay = backoff_delay
        self.scheduler = scheduler or AsyncIOScheduler(timezone="Europe/Paris")
        self.on_give_up = on_give_up

    def start(self):
        """Démarre le scheduler (dans la boucle asyncio courante)"""
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("File d'import démarrée")

    def stop(self):
        """Arrête le scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("File d'import arrêtée")

    def enqueue(self, job_id: str, attempt: int = 1, delay: float = 0) -> None:
        run_date = datetime.now(timezone.utc) + timedelta(seconds=delay)
        self.scheduler.add_job(
            self._run,
            DateTrigger(run_date=run_date),
            args=[job_id, attempt],
            id=f"import-{job_id}-{attempt}",
            name=f"Import {job_id} (tentative {attempt})",
            replace_existing=True,
            misfire_grace_time=None,
        )
        logger.info(f"[IMPORT_QUEUE] Job {job_id} planifié (tentative {attempt}, délai {delay:.0f}s)")

    async def _run(self, job_id: str, attempt: int) -> None:
        try:
            await self.handler(job_id)
        except Exception as e:
            if attempt < self.attempts:
                delay = compute_backoff(attempt, self.backoff_delay)
                logger.warning(
                    f"[IMPORT_QUEUE] Job {job_id} en échec (tentative {attempt}/{self.attempts}): {e}. "
                    f"Nouvel essai dans {delay:.0f}s"
                )
                self.enqueue(job_id, attempt + 1, delay)
            else:
                logger.error(
                    f"[IMPORT_QUEUE] Job {job_id} abandonné après {attempt} tentative(s): {e}"
                )
                if self.on_give_up is not None:
                    await self.on_give_up(job_id, e)
