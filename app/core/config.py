import os
from dotenv import load_dotenv

load_dotenv()  # Carga las variables de entorno


def _parse_bool(value, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_csv(value):
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./gastos_compartidos.db")
SQL_ECHO = _parse_bool(os.getenv("SQL_ECHO"), False)

# Seguridad
SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

CORS_ORIGINS = _parse_csv(os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Tolerancias monetarias
MONEY_EPSILON = 0.01
PERCENT_EPSILON = 0.1

# Reconciliación en tiempo real
REALTIME_DEBOUNCE_MS = int(os.getenv("REALTIME_DEBOUNCE_MS", "500"))
REALTIME_MAX_RETRIES = int(os.getenv("REALTIME_MAX_RETRIES", "5"))
REALTIME_BASE_DELAY_MS = int(os.getenv("REALTIME_BASE_DELAY_MS", "1000"))
REALTIME_MAX_DELAY_MS = int(os.getenv("REALTIME_MAX_DELAY_MS", "30000"))
SYNC_STALE_AFTER_SECONDS = int(os.getenv("SYNC_STALE_AFTER_SECONDS", "60"))
