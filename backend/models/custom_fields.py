"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  ExeTeam - Champs personnalisés                                              ║
║                                                                              ║
║  Configuration stockée sur le Client et le Projet.                           ║
║  RÈGLES:                                                                     ║
║  - key en snake_case, unique dans une configuration                          ║
║  - select / multiselect => options non vides                                 ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from enum import Enum
from typing import Any, List, Optional

from pydantic import Field, StringConstraints, field_validator, model_validator
from typing_extensions import Annotated

from .common import ApiModel, UuidStr

KEY_PATTERN = r'^[a-z_][a-z0-9_]*$'

OPTION_TYPES = ("select", "multiselect")


class CustomFieldType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    SELECT = "select"
    MULTISELECT = "multiselect"
    URL = "url"
    GPS = "gps"


class CustomFieldScope(str, Enum):
    TASK = "task"
    SITE = "site"


class CustomFieldConfig(ApiModel):
    key: Annotated[str, StringConstraints(min_length=1, pattern=KEY_PATTERN)]
    label: Annotated[str, StringConstraints(min_length=1)]
    type: CustomFieldType
    required: bool = False
    scope: CustomFieldScope = CustomFieldScope.TASK
    show_in_list: bool = False
    show_in_export: bool = False
    order: int = 0
    options: Optional[List[str]] = None
    default_value: Optional[Any] = None
    description: Optional[str] = None

    @model_validator(mode="after")
    def check_options(self):
        if self.type.value in OPTION_TYPES and not self.options:
            raise ValueError(
                f'Le champ "{self.key}" de type {self.type.value} requiert des options'
            )
        return self


class UpdateConfigRequest(ApiModel):
    """PUT /custom-fields/{clients|projects}/{id}/config"""
    config: List[CustomFieldConfig] = Field(default_factory=list)

    @field_validator("config")
    @classmethod
    def unique_keys(cls, v: List[CustomFieldConfig]):
        seen = set()
        for field in v:
            if field.key in seen:
                raise ValueError(f'Clé dupliquée dans la configuration: "{field.key}"')
            seen.add(field.key)
        return v


class GetConfigQuery(ApiModel):
    """GET /custom-fields/config?clientId=...&projectId=..."""
    client_id: UuidStr
    project_id: Optional[UuidStr] = None
