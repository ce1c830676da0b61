"""
Configuración del backend de desayunos (room grid + PMS)
"""
import os
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()

# Seguridad / JWT
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-change-me-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "720"))

# CORS (lista separada por comas)
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:8081,http://localhost:19006").split(",")
    if origin.strip()
]

# Propiedad / desayuno
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "America/Toronto")
BREAKFAST_DEFAULT_PRICE = Decimal(os.getenv("BREAKFAST_DEFAULT_PRICE", "25.00"))
BREAKFAST_CHARGE_CODE = os.getenv("BREAKFAST_CHARGE_CODE", "BKFST")
BREAKFAST_DEPARTMENT_CODE = os.getenv("BREAKFAST_DEPARTMENT_CODE", "FB")

# PMS Integration
PMS_BASE_URL = os.getenv("PMS_BASE_URL", "")
PMS_API_KEY = os.getenv("PMS_API_KEY", "")
PMS_TIMEOUT_SECONDS = float(os.getenv("PMS_TIMEOUT_SECONDS", "30"))
PMS_PAGE_SIZE = int(os.getenv("PMS_PAGE_SIZE", "100"))

# Retry / sync
PMS_SYNC_MAX_ATTEMPTS = int(os.getenv("PMS_SYNC_MAX_ATTEMPTS", "3"))
PMS_SYNC_BACKOFF_SECONDS = float(os.getenv("PMS_SYNC_BACKOFF_SECONDS", "0.5"))
PMS_SYNC_MIN_INTERVAL_SECONDS = int(os.getenv("PMS_SYNC_MIN_INTERVAL_SECONDS", "60"))

# Un posteo reclamado y no confirmado se puede reintentar pasado este tiempo
PMS_POSTING_LEASE_SECONDS = int(os.getenv("PMS_POSTING_LEASE_SECONDS", "120"))

# Historial
HISTORY_MAX_DAYS = int(os.getenv("HISTORY_MAX_DAYS", "366"))

# Logging
LOG_FILE = os.getenv("LOG_FILE", "breakfast_logs.txt")


def is_pms_configured() -> bool:
    """Verifica si hay un PMS real configurado"""
    return bool(PMS_BASE_URL)
