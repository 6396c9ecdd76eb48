"""
ExeTeam - Routes Auth
Login / Logout / Session via le fournisseur d'identité, profil et permissions.

Le token d'accès est lu dans l'en-tête Authorization (Bearer) ou dans le
cookie `access_token` posé à la connexion.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError

from config import COOKIE_SECURE, SESSION_MAX_AGE
from models.auth import ActivityLogQuery, LoginRequest
from models.common import camelize
from models.imports import is_valid_email_format
from routes.deps import client_ip, get_auth_provider, get_db, query_model
from services.activity_logger import get_activity_logs, log_activity
from services.auth_provider import AuthError
from services.permissions import (
    ALL_PERMISSION_KEYS,
    ROLE_PRESETS,
    VALID_ROLES,
    get_preset_permissions,
    require_permission,
)

logger = logging.getLogger("auth")

router = APIRouter(prefix="/auth", tags=["Auth"])
security = HTTPBearer(auto_error=False)

COOKIE_NAME = "access_token"


# ==================== HELPERS ====================

def read_token(request: Request, credentials: HTTPAuthorizationCredentials = None):
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(COOKIE_NAME)


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db=Depends(get_db),
    provider=Depends(get_auth_provider),
):
    """Récupère l'utilisateur connecté depuis le token."""
    token = read_token(request, credentials)
    if not token:
        raise HTTPException(status_code=401, detail="Non authentifié")

    try:
        identity = await provider.get_user(token)
    except AuthError:
        raise HTTPException(status_code=401, detail="Session expirée")

    user = await db.users.find_one({"id": identity["id"]}, {"_id": 0})
    if not user:
        raise HTTPException(status_code=401, detail="Utilisateur non trouvé")

    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Compte désactivé")

    # Profil sans permissions: preset du rôle
    if not user.get("permissions"):
        user["permissions"] = get_preset_permissions(user.get("role", "employe"))

    request.state.access_token = token
    return user


# ==================== LOGIN / LOGOUT ====================

@router.post("/login")
async def login(request: Request, db=Depends(get_db), provider=Depends(get_auth_provider)):
    """Connexion utilisateur."""
    try:
        body = await request.json()
        data = LoginRequest.model_validate(body)
    except (ValueError, ValidationError):
        raise HTTPException(status_code=400, detail="Email ou mot de passe invalide")

    email = data.email.lower().strip()
    if not is_valid_email_format(email) or not data.password:
        raise HTTPException(status_code=400, detail="Email ou mot de passe invalide")

    try:
        session = await provider.sign_in_with_password(email, data.password)
    except AuthError as e:
        if e.status_code is None or e.status_code >= 500:
            logger.error(f"[AUTH] Connexion impossible pour {email}: {e}")
            raise HTTPException(status_code=502, detail=str(e))
        raise HTTPException(status_code=401, detail="Email ou mot de passe incorrect")

    user = await db.users.find_one({"id": session["user"]["id"]}, {"_id": 0})
    if not user:
        raise HTTPException(status_code=401, detail="Email ou mot de passe incorrect")
    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Compte désactivé")

    await log_activity(
        db,
        user=user,
        action="login",
        entity_type="user",
        entity_id=user["id"],
        ip_address=client_ip(request),
    )

    permissions = user.get("permissions") or get_preset_permissions(user.get("role", "employe"))
    response = JSONResponse(content={
        "token": session["access_token"],
        "user": camelize({
            "id": user["id"],
            "email": user["email"],
            "first_name": user.get("first_name"),
            "last_name": user.get("last_name"),
            "role": user.get("role", "employe"),
            "permissions": permissions,
        }),
    })
    response.set_cookie(
        key=COOKIE_NAME,
        value=session["access_token"],
        max_age=SESSION_MAX_AGE,
        httponly=True,
        samesite="lax",
        secure=COOKIE_SECURE,
    )
    return response


@router.post("/logout")
async def logout(
    request: Request,
    user: dict = Depends(get_current_user),
    provider=Depends(get_auth_provider),
):
    try:
        await provider.sign_out(request.state.access_token)
    except AuthError as e:
        logger.warning(f"[AUTH] Révocation échouée pour {user.get('email')}: {e}")

    response = RedirectResponse(url="/login", status_code=303)
    response.delete_cookie(COOKIE_NAME)
    return response


@router.get("/me")
async def get_me(user: dict = Depends(get_current_user)):
    """Retourne user + permissions."""
    return camelize(user)


# ==================== PERMISSION INTROSPECTION ====================

@router.get("/permission-keys")
async def list_permission_keys(user: dict = Depends(get_current_user)):
    """Clés de permission et presets de rôles (écran de gestion des utilisateurs)."""
    return {
        "keys": ALL_PERMISSION_KEYS,
        "presets": ROLE_PRESETS,
        "roles": VALID_ROLES,
    }


# ==================== ACTIVITY LOG ====================

@router.get("/activity-logs")
async def list_activity_logs(
    query: ActivityLogQuery = Depends(query_model(ActivityLogQuery)),
    user: dict = Depends(require_permission("activity.view")),
    db=Depends(get_db),
):
    return camelize(await get_activity_logs(db, query))
