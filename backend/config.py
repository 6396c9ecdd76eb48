"""
Configuration et utilitaires partagés
"""

import os
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

# Charger .env
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'exeteam')

# Backend managé (auth + storage)
SUPABASE_URL = os.environ.get('SUPABASE_URL', '')
SUPABASE_ANON_KEY = os.environ.get('SUPABASE_ANON_KEY', '')
SUPABASE_SERVICE_ROLE_KEY = os.environ.get('SUPABASE_SERVICE_ROLE_KEY', '')

# Import Excel
IMPORT_BUCKET = os.environ.get('IMPORT_BUCKET', 'imports')
MAX_IMPORT_FILE_SIZE = 10 * 1024 * 1024  # 10 MB

# API publique (clients HTTP: export, wizard d'import)
API_URL = os.environ.get('API_URL', 'http://localhost:8001')

CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')

# Cookie de session (access_token)
COOKIE_SECURE = os.environ.get('COOKIE_SECURE', 'true').lower() == 'true'
SESSION_MAX_AGE = 7 * 24 * 60 * 60  # 7 jours


def require_env(name: str) -> str:
    """Retourne une variable d'environnement obligatoire ou lève ValueError"""
    value = os.environ.get(name)
    if not value:
        raise ValueError(f"{name} environment variable is required")
    return value


def create_db(
    mongo_url: str = MONGO_URL, db_name: str = DB_NAME
) -> Tuple[AsyncIOMotorClient, AsyncIOMotorDatabase]:
    """Crée le client MongoDB et retourne (client, db)"""
    client = AsyncIOMotorClient(mongo_url)
    return client, client[db_name]


# ==================== HELPERS ====================

def now_iso() -> str:
    """Retourne la date/heure actuelle en ISO"""
    return datetime.now(timezone.utc).isoformat()


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def format_date(value) -> str:
    """YYYY-MM-DD pour une date, un datetime ou une chaîne ISO"""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]


def parse_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def get_monday(day: date) -> date:
    """Lundi de la semaine contenant `day`"""
    return day - timedelta(days=day.weekday())


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    """Premier et dernier jour du mois"""
    start = date(year, month, 1)
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return start, next_month - timedelta(days=1)
