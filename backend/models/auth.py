"""
ExeTeam - Authentification et journal d'activité
"""

import datetime as dt
from typing import Optional

from pydantic import BaseModel, Field

from .common import Pagination


class LoginRequest(BaseModel):
    # Contrôles de forme faits dans la route (400 "Email ou mot de passe invalide")
    email: str
    password: str


class ActivityLogQuery(Pagination):
    limit: int = Field(50, ge=1, le=100)
    user_id: Optional[str] = None
    entity_type: Optional[str] = None
    action: Optional[str] = None
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None
