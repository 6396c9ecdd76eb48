"""
Authentification: connexion via le fournisseur d'identité, session par cookie
ou Bearer, redirection des pages HTML non authentifiées, réponses d'erreur.

Run: pytest backend/tests/test_auth.py -v
"""

import httpx
import pytest

from tests.conftest import headers_for


class TestLogin:

    def test_login_sets_cookie(self, client, db, users):
        response = client.post("/api/auth/login", json={"email": "Gerant@ExeTeam.fr", "password": "MotDePasse!1"})
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["token"]
        assert body["user"]["role"] == "gerant"
        assert body["user"]["firstName"] == "Gerant"
        # Clés de permission non transformées
        assert body["user"]["permissions"]["custom_fields.read"] is True

        cookie = response.headers["set-cookie"]
        assert "access_token=" in cookie
        assert "HttpOnly" in cookie
        assert db.activity_logs.docs[-1]["action"] == "login"

    def test_bad_shape_is_400(self, client):
        for body in ({"email": "gerant@exeteam.fr"}, {"email": "pas-un-email", "password": "x"}, ["liste"]):
            response = client.post("/api/auth/login", json=body)
            assert response.status_code == 400
            assert response.json()["detail"] == "Email ou mot de passe invalide"

    def test_wrong_password_is_401(self, client, users):
        response = client.post("/api/auth/login", json={"email": "gerant@exeteam.fr", "password": "faux"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Email ou mot de passe incorrect"

    def test_provider_down_is_502(self, client, auth_provider):
        from services.auth_provider import AuthError

        async def unavailable(email, password):
            raise AuthError("Service d'authentification indisponible")

        auth_provider.sign_in_with_password = unavailable
        response = client.post("/api/auth/login", json={"email": "gerant@exeteam.fr", "password": "x"})
        assert response.status_code == 502

    def test_inactive_account(self, client, db, users):
        next(u for u in db.users.docs if u["role"] == "gerant")["is_active"] = False
        response = client.post("/api/auth/login", json={"email": "gerant@exeteam.fr", "password": "MotDePasse!1"})
        assert response.status_code == 403
        assert response.json()["detail"] == "Compte désactivé"


class TestSession:

    def test_me_with_bearer(self, client, users):
        response = client.get("/api/auth/me", headers=headers_for("comptable"))
        assert response.status_code == 200
        assert response.json()["email"] == "comptable@exeteam.fr"
        assert response.json()["permissions"]["accounting.write"] is True

    def test_me_with_cookie(self, client, users):
        client.cookies.set("access_token", "token-rh")
        response = client.get("/api/auth/me")
        assert response.status_code == 200
        assert response.json()["role"] == "rh"

    def test_missing_token_is_401_json(self, client):
        response = client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.json()["detail"] == "Non authentifié"

    def test_expired_token(self, client):
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer jeton-expire"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Session expirée"

    def test_html_request_redirects_to_login(self, client):
        response = client.get("/api/auth/me", headers={"Accept": "text/html"}, follow_redirects=False)
        assert response.status_code == 303
        assert response.headers["location"] == "/login"

    def test_logout_revokes_and_redirects(self, client, auth_provider):
        response = client.post("/api/auth/logout", headers=headers_for("employe"), follow_redirects=False)
        assert response.status_code == 303
        assert response.headers["location"] == "/login"
        assert auth_provider.signed_out == ["token-employe"]
        assert client.get("/api/auth/me", headers=headers_for("employe")).status_code == 401

    def test_permission_denied(self, client):
        response = client.get("/api/auth/activity-logs", headers=headers_for("employe"))
        assert response.status_code == 403
        assert response.json()["detail"] == "Permission requise: activity.view"

    def test_activity_logs(self, client):
        client.post("/api/auth/login", json={"email": "rh@exeteam.fr", "password": "MotDePasse!1"})
        response = client.get("/api/auth/activity-logs?action=login", headers=headers_for("rh"))
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["limit"] == 50
        assert body["data"][0]["userEmail"] == "rh@exeteam.fr"
        assert body["data"][0]["userName"] == "Rh Test"

    @pytest.mark.asyncio
    async def test_activity_logs_date_range(self, db, users):
        """dateTo inclut toute la journée"""
        from models.auth import ActivityLogQuery
        from services.activity_logger import get_activity_logs, log_activity

        await log_activity(db, users["gerant"], "export", "dashboard")
        db.activity_logs.docs[0]["created_at"] = "2024-03-15T18:30:00+00:00"
        await log_activity(db, users["gerant"], "export", "dashboard")
        db.activity_logs.docs[1]["created_at"] = "2024-03-16T08:00:00+00:00"

        result = await get_activity_logs(db, ActivityLogQuery(date_from="2024-03-15", date_to="2024-03-15"))
        assert result["total"] == 1
        assert result["data"][0]["user_name"] == "Gerant Test"

    def test_activity_logs_limit_too_high(self, client):
        response = client.get("/api/auth/activity-logs?limit=500", headers=headers_for("rh"))
        assert response.status_code == 422


class TestPermissions:

    def test_super_admin_has_everything(self):
        from services.permissions import user_has_permission

        assert user_has_permission({"role": "super_admin", "permissions": {}}, "accounting.write")

    def test_explicit_permissions_override_role(self):
        from services.permissions import user_has_permission

        user = {"role": "employe", "permissions": {"accounting.read": True}}
        assert user_has_permission(user, "accounting.read")
        assert not user_has_permission(user, "tasks.read")

    def test_presets_only_use_known_keys(self):
        from services.permissions import ALL_PERMISSION_KEYS, ROLE_PRESETS

        for role, preset in ROLE_PRESETS.items():
            assert set(preset) == set(ALL_PERMISSION_KEYS), role

    def test_employe_and_client_presets(self):
        from services.permissions import user_has_permission

        employe = {"role": "employe"}
        assert user_has_permission(employe, "tasks.update")
        assert user_has_permission(employe, "messaging.use")
        assert not user_has_permission(employe, "accounting.read")

        client = {"role": "client"}
        assert not user_has_permission(client, "messaging.use")
        assert not user_has_permission(client, "tasks.update")
        assert user_has_permission(client, "demands.create")
        assert not user_has_permission({"role": "rh"}, "timesheets.validate")

    def test_finance_roles(self):
        from services.permissions import has_finance_access

        assert has_finance_access({"role": "comptable"})
        assert not has_finance_access({"role": "responsable_production"})


class TestSupabaseAuth:

    def _provider(self, handler):
        from services.auth_provider import SupabaseAuth
        return SupabaseAuth("https://projet.supabase.co", "anon-key", transport=httpx.MockTransport(handler))

    @pytest.mark.asyncio
    async def test_password_grant(self):
        def handler(request: httpx.Request):
            assert request.url.path == "/auth/v1/token"
            assert request.url.params["grant_type"] == "password"
            assert request.headers["apikey"] == "anon-key"
            return httpx.Response(200, json={"access_token": "jwt", "user": {"id": "u-1"}})

        session = await self._provider(handler).sign_in_with_password("a@b.fr", "x")
        assert session["access_token"] == "jwt"

    @pytest.mark.asyncio
    async def test_rejected_and_unavailable(self):
        from services.auth_provider import AuthError

        with pytest.raises(AuthError) as exc:
            await self._provider(lambda r: httpx.Response(400, json={})).sign_in_with_password("a@b.fr", "x")
        assert exc.value.status_code == 400

        with pytest.raises(AuthError) as exc:
            await self._provider(lambda r: httpx.Response(503)).sign_in_with_password("a@b.fr", "x")
        assert exc.value.status_code == 503

    @pytest.mark.asyncio
    async def test_connection_error(self):
        from services.auth_provider import AuthError

        def handler(request):
            raise httpx.ConnectError("refusé", request=request)

        with pytest.raises(AuthError) as exc:
            await self._provider(handler).get_user("jwt")
        assert exc.value.status_code is None

    @pytest.mark.asyncio
    async def test_logout_already_revoked(self):
        """401 au logout: jeton déjà révoqué, pas d'erreur"""
        await self._provider(lambda r: httpx.Response(401)).sign_out("jwt")


class TestApplication:

    def test_root(self, client):
        assert client.get("/").json()["status"] == "running"

    def test_startup_creates_indexes_and_skips_bucket(self, app, db, store):
        from fastapi.testclient import TestClient

        with TestClient(app):
            pass
        assert db.time_entries.indexes
        assert store.created == []

    def test_storage_error_is_502(self, app, client):
        from services.storage import StorageError

        @app.get("/api/storage-indisponible")
        async def storage_down():
            raise StorageError("download: indisponible", 503)

        response = client.get("/api/storage-indisponible")
        assert response.status_code == 502
        assert response.json()["detail"] == "download: indisponible"

    def test_download_failure_during_parse_headers(self, client, store):
        from services.storage import StorageError

        async def broken(bucket, path):
            raise StorageError("download: indisponible", 503)

        store.download = broken
        response = client.post(
            "/api/import/parse-headers", json={"filePath": "imports/a.xlsx"}, headers=headers_for("gerant")
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Impossible de télécharger le fichier"
