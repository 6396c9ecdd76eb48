"""
ExeTeam - Types communs des DTOs

Base des modèles d'API (JSON en camelCase, stockage en snake_case),
pagination et identifiants.
"""

import math
from typing import Any, Dict, Generic, List, TypeVar

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel
from typing_extensions import Annotated

UUID_PATTERN = r'^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$'

UuidStr = Annotated[str, StringConstraints(pattern=UUID_PATTERN)]

T = TypeVar("T")


class ApiModel(BaseModel):
    """
    Base de tous les DTOs.
    Accepte `employeeId` comme `employee_id`, sérialise en camelCase.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_api(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    def to_doc(self, exclude_none: bool = False) -> Dict[str, Any]:
        """Document MongoDB (snake_case)"""
        return self.model_dump(mode="json", exclude_none=exclude_none)


class Pagination(ApiModel):
    page: int = Field(1, ge=1)
    limit: int = Field(25, ge=1, le=100)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


class PaginatedResult(ApiModel, Generic[T]):
    data: List[T]
    total: int
    page: int
    limit: int
    total_pages: int


def paginated(data: list, total: int, page: int, limit: int) -> Dict[str, Any]:
    """Enveloppe de réponse paginée"""
    return {
        "data": data,
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }


# Clés dont le contenu est une donnée libre (colonnes Excel, champs personnalisés, permissions)
OPAQUE_KEYS = ("mappings", "custom_fields_data", "permissions", "details")


def camelize(value: Any, opaque: tuple = OPAQUE_KEYS) -> Any:
    """Document MongoDB (snake_case) => réponse d'API (camelCase)"""
    if isinstance(value, list):
        return [camelize(v, opaque) for v in value]
    if isinstance(value, dict):
        out = {}
        for key, v in value.items():
            if key == "_id":
                continue
            out[to_camel(key)] = v if key in opaque else camelize(v, opaque)
        return out
    return value
