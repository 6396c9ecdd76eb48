"""
Fournisseur d'identité (Supabase Auth REST)

- POST /auth/v1/token?grant_type=password   connexion email / mot de passe
- GET  /auth/v1/user                        utilisateur d'un access token
- POST /auth/v1/logout                      révocation de la session
"""

import logging
from typing import Optional

import httpx

logger = logging.getLogger("auth_provider")


class AuthError(Exception):
    """Identifiants refusés, token invalide ou fournisseur injoignable"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthProvider:

    async def sign_in_with_password(self, email: str, password: str) -> dict:
        """Retourne {access_token, user: {id, email, user_metadata}}"""
        raise NotImplementedError

    async def get_user(self, access_token: str) -> dict:
        raise NotImplementedError

    async def sign_out(self, access_token: str) -> None:
        raise NotImplementedError


class SupabaseAuth(AuthProvider):

    def __init__(self, url: str, anon_key: str, timeout: float = 15.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = url.rstrip("/") + "/auth/v1"
        self.anon_key = anon_key
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
            headers={"apikey": self.anon_key},
        )

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            async with self._client() as client:
                return await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"[AUTH] Fournisseur injoignable: {e}")
            raise AuthError("Service d'authentification indisponible") from e

    async def sign_in_with_password(self, email: str, password: str) -> dict:
        resp = await self._send(
            "POST", "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if resp.status_code >= 500:
            raise AuthError("Service d'authentification indisponible", resp.status_code)
        if resp.status_code != 200:
            logger.info(f"[AUTH] Connexion refusée pour {email} ({resp.status_code})")
            raise AuthError("Email ou mot de passe incorrect", resp.status_code)
        return resp.json()

    async def get_user(self, access_token: str) -> dict:
        resp = await self._send(
            "GET", "/user", headers={"Authorization": f"Bearer {access_token}"}
        )
        if resp.status_code != 200:
            raise AuthError("Session expirée", resp.status_code)
        return resp.json()

    async def sign_out(self, access_token: str) -> None:
        resp = await self._send(
            "POST", "/logout", headers={"Authorization": f"Bearer {access_token}"}
        )
        # Session déjà révoquée: rien à faire
        if resp.status_code >= 400 and resp.status_code != 401:
            raise AuthError("Déconnexion impossible", resp.status_code)
