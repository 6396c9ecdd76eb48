"""
ExeTeam - API Backend
Saisie des temps, comptabilité, espace client, import Excel, tableaux de bord, messagerie.

Démarre avec:
    uvicorn server:app --host 0.0.0.0 --port 8001 --reload
"""

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from config import (
    CORS_ORIGINS,
    IMPORT_BUCKET,
    SUPABASE_ANON_KEY,
    SUPABASE_SERVICE_ROLE_KEY,
    SUPABASE_URL,
    create_db,
)
from routes import accounting, auth, custom_fields, dashboard, imports, messaging, portal, time_entries
from services.auth_provider import SupabaseAuth
from services.change_feed import MongoChangeFeed
from services.errors import ServiceError
from services.import_processor import ImportProcessor
from services.import_queue import ImportQueue
from services.storage import StorageError, SupabaseStorage, ensure_bucket

# Configuration logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("exeteam")

ROUTERS = [auth, custom_fields, time_entries, imports, dashboard, accounting, messaging, portal]


# ==================== ERREURS ====================

def _field_path(loc) -> str:
    parts = [str(p) for p in loc]
    if parts and parts[0] in ("body", "query", "path"):
        parts = parts[1:]
    return ".".join(parts)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": _field_path(err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    logger.info(f"[VALIDATION] {request.method} {request.url.path}: {len(errors)} erreur(s)")
    return JSONResponse(status_code=422, content={"detail": "Données invalides", "errors": errors})


async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"[STORAGE] {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"detail": str(exc)})


async def unauthenticated_handler(request: Request, exc: HTTPException):
    """Pages HTML non authentifiées -> /login, API -> 401 JSON"""
    if exc.status_code == 401 and "text/html" in request.headers.get("accept", ""):
        return RedirectResponse(url="/login", status_code=303)
    return await http_exception_handler(request, exc)


# ==================== APPLICATION ====================

def create_app(
    db=None,
    storage=None,
    auth_provider=None,
    change_feed=None,
    import_queue=None,
    provision_bucket: bool = True,
) -> FastAPI:
    """
    Construit l'application. Les collaborateurs non fournis sont créés
    depuis l'environnement au démarrage.
    """
    app = FastAPI(
        title="ExeTeam",
        description="Gestion d'activité: temps, comptabilité, import, tableaux de bord",
        version="1.0.0",
    )

    app.state.db = db
    app.state.storage = storage
    app.state.auth_provider = auth_provider
    app.state.change_feed = change_feed
    app.state.import_queue = import_queue
    app.state.mongo_client = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(StorageError, storage_error_handler)
    app.add_exception_handler(HTTPException, unauthenticated_handler)

    # Routes avec préfixe /api
    for module in ROUTERS:
        app.include_router(module.router, prefix="/api")

    @app.get("/")
    async def root():
        return {
            "name": "ExeTeam API",
            "version": "1.0.0",
            "status": "running",
            "docs": "/docs",
        }

    @app.on_event("startup")
    async def startup():
        state = app.state
        if state.db is None:
            state.mongo_client, state.db = create_db()
        if state.storage is None:
            state.storage = SupabaseStorage(SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY)
        if state.auth_provider is None:
            state.auth_provider = SupabaseAuth(SUPABASE_URL, SUPABASE_ANON_KEY)
        if state.change_feed is None:
            state.change_feed = MongoChangeFeed(state.db)
        if state.import_queue is None:
            processor = ImportProcessor(state.db, state.storage, IMPORT_BUCKET)
            state.import_queue = ImportQueue(processor.handle, on_give_up=processor.mark_failed)

        if provision_bucket:
            # Échec de provisioning: le démarrage est interrompu
            await ensure_bucket(state.storage, IMPORT_BUCKET)

        await create_indexes(state.db)

        if hasattr(state.import_queue, "start"):
            state.import_queue.start()
        logger.info("ExeTeam API démarrée")

    @app.on_event("shutdown")
    async def shutdown():
        state = app.state
        if state.import_queue is not None and hasattr(state.import_queue, "stop"):
            state.import_queue.stop()
        if state.mongo_client is not None:
            state.mongo_client.close()
        logger.info("ExeTeam API arrêtée")

    return app


async def create_indexes(db):
    await db.users.create_index("id", unique=True)
    await db.time_entries.create_index("id", unique=True)
    await db.time_entries.create_index([("employee_id", 1), ("date", 1)])
    await db.import_jobs.create_index("id", unique=True)
    await db.import_jobs.create_index("created_at")
    await db.import_templates.create_index("entity_type")
    await db.clients.create_index("siret")
    await db.employees.create_index("professional_email")
    await db.purchase_invoices.create_index("reference")
    await db.messages.create_index([("conversation_id", 1), ("created_at", -1)])
    await db.conversations.create_index("member_employee_ids")
    await db.activity_logs.create_index("created_at")
    logger.info("Index MongoDB créés")


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
