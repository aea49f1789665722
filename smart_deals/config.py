import os
from typing import Dict, List
from urllib.parse import quote_plus

from dotenv import load_dotenv

load_dotenv()

DEFAULT_DB_NAME = "SmartDeals"
DEFAULT_MONGO_URI = f"mongodb://localhost:27017/{DEFAULT_DB_NAME}"
DEFAULT_JWT_SECRET_KEY = "change-me-in-production"


def _int_from_env(name: str, default: int) -> int:
    raw_value = os.getenv(name, "")
    try:
        return int(raw_value)
    except (TypeError, ValueError):
        return default


def build_mongo_uri() -> str:
    explicit_uri = (os.getenv("MONGO_URI") or "").strip()
    if explicit_uri:
        return explicit_uri

    db_user = (os.getenv("DB_USER") or "").strip()
    db_pass = (os.getenv("DB_PASS") or "").strip()
    db_host = (os.getenv("DB_HOST") or "").strip()
    if not (db_user and db_pass and db_host):
        return DEFAULT_MONGO_URI

    db_name = (os.getenv("MONGO_DBNAME") or DEFAULT_DB_NAME).strip()
    return (
        f"mongodb+srv://{quote_plus(db_user)}:{quote_plus(db_pass)}@{db_host}/"
        f"{db_name}?retryWrites=true&w=majority"
    )


def parse_allowed_origins(raw_value: str) -> List[str]:
    origins = [origin.strip() for origin in (raw_value or "").split(",")]
    return [origin for origin in origins if origin] or ["*"]


def load_config() -> Dict[str, object]:
    """Collect the environment driven settings into Flask config keys."""
    return {
        "MONGO_URI": build_mongo_uri(),
        "MONGO_DBNAME": (os.getenv("MONGO_DBNAME") or DEFAULT_DB_NAME).strip(),
        "MONGO_SERVER_SELECTION_TIMEOUT_MS": _int_from_env(
            "MONGO_SERVER_SELECTION_TIMEOUT_MS", 15000
        ),
        "IDENTITY_PROVIDER": (os.getenv("IDENTITY_PROVIDER") or "firebase")
        .strip()
        .lower(),
        "FIREBASE_SERVICE_KEY": (os.getenv("FIREBASE_SERVICE_KEY") or "").strip(),
        "JWT_SECRET_KEY": os.getenv("JWT_SECRET_KEY", DEFAULT_JWT_SECRET_KEY),
        "CORS_ALLOWED_ORIGINS": parse_allowed_origins(
            os.getenv("CORS_ALLOWED_ORIGINS", "")
        ),
        "TRUSTED_PROXY_HOPS": max(0, _int_from_env("TRUSTED_PROXY_HOPS", 1)),
        "LATEST_PRODUCTS_LIMIT": _int_from_env("LATEST_PRODUCTS_LIMIT", 6),
        "ALL_PRODUCTS_LIMIT": _int_from_env("ALL_PRODUCTS_LIMIT", 21),
        "PORT": _int_from_env("PORT", 5000),
        "LOG_LEVEL": (os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
        "VERIFY_STORE_ON_STARTUP": True,
    }
