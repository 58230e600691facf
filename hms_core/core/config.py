# hms_core/core/config.py
import os
from typing import List
from pydantic import BaseModel
from dotenv import load_dotenv
from urllib.parse import quote_plus

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


def _mysql_uri() -> str:
    driver = os.getenv("DB_DRIVER", "pymysql")
    user = os.getenv("MYSQL_USER", "hms_user")
    password = os.getenv("MYSQL_PASSWORD", "")
    host = os.getenv("MYSQL_HOST", "localhost")
    port = os.getenv("MYSQL_PORT", "3306")
    db_name = os.getenv("MYSQL_DB", "hms_admissions")
    return (f"mysql+{driver}://{quote_plus(user)}:{quote_plus(password)}"
            f"@{host}:{port}/{db_name}?charset=utf8mb4")


class Settings(BaseModel):
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "HMS Admissions")
    API_V1_STR: str = os.getenv("API_V1_STR", "/api")

    # CORS (env takes priority)
    BACKEND_CORS_ORIGINS: List[str] = _split_csv(
        os.getenv(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ))

    # ---------- Database ----------
    # DATABASE_URL wins; otherwise MySQL from MYSQL_* parts.
    # sqlite:/// URLs are accepted for local runs.
    SQLALCHEMY_DATABASE_URI: str = os.getenv("DATABASE_URL") or _mysql_uri()
    TIMEZONE: str = os.getenv("TIMEZONE", "UTC")

    # Upper bound for one atomic unit (seconds)
    STORE_TIMEOUT_SECONDS: float = float(
        os.getenv("STORE_TIMEOUT_SECONDS", "5") or 5)

    # ---------- Billing ----------
    TAX_RATE: float = float(os.getenv("TAX_RATE", "0.085") or 0.085)
    DEFAULT_WARD_RATE: int = int(os.getenv("DEFAULT_WARD_RATE", "180") or 180)

    # ---------- Notifications ----------
    NOTIFICATION_FEED_SIZE: int = int(
        os.getenv("NOTIFICATION_FEED_SIZE", "200") or 200)

    # ---------- Logging ----------
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
