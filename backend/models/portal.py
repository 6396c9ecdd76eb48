"""
ExeTeam - Espace client (demandes)
"""

import datetime as dt
from enum import Enum
from typing import Optional

from pydantic import Field, StringConstraints, field_validator
from typing_extensions import Annotated

from .common import ApiModel, Pagination, UuidStr


class DemandStatus(str, Enum):
    NOUVELLE = "nouvelle"
    EN_COURS = "en_cours"
    TERMINEE = "terminee"
    ANNULEE = "annulee"


class DemandPriority(str, Enum):
    BASSE = "basse"
    NORMALE = "normale"
    HAUTE = "haute"
    URGENTE = "urgente"


class CreateDemandRequest(ApiModel):
    """Client et projet viennent du compte connecté, jamais du corps"""
    title: Annotated[str, StringConstraints(min_length=1, max_length=200)]
    description: Optional[str] = None
    site_id: Optional[UuidStr] = None
    data_link: Optional[str] = None
    priority: DemandPriority = DemandPriority.NORMALE
    desired_delivery: Optional[dt.date] = None

    @field_validator("data_link")
    @classmethod
    def check_link(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL invalide")
        return v


class ListDemandsQuery(Pagination):
    limit: int = Field(20, ge=1, le=100)
    search: Optional[str] = None
    status: Optional[DemandStatus] = None
