"""
Dépendances partagées des routes

Les collaborateurs (db, stockage, fournisseur d'identité, flux de changements,
file d'import) sont posés sur app.state par server.create_app.
"""

from typing import Type

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError

from config import IMPORT_BUCKET
from services.import_service import ImportService


def get_db(request: Request):
    return request.app.state.db


def get_storage(request: Request):
    return request.app.state.storage


def get_auth_provider(request: Request):
    return request.app.state.auth_provider


def get_change_feed(request: Request):
    return request.app.state.change_feed


def get_import_service(request: Request) -> ImportService:
    state = request.app.state
    return ImportService(state.db, state.storage, state.import_queue, IMPORT_BUCKET)


def query_model(model: Type[BaseModel]):
    """
    Valide les paramètres de requête avec un modèle pydantic.
    Accepte les noms camelCase (alias) et snake_case.
    Une erreur produit la même réponse 422 que le corps de requête.
    """

    def _dependency(request: Request):
        try:
            return model.model_validate(dict(request.query_params))
        except ValidationError as e:
            raise RequestValidationError(e.errors())

    return _dependency


def client_ip(request: Request):
    return request.client.host if request.client else None
