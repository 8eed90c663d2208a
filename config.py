import json
from pathlib import Path
from typing import Annotated, List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parent
ENV_FILE = BASE_DIR / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "DueNow Assignment Manager API"
    APP_VERSION: str = "1.0.0"
    # "development" exposes raw error messages on 500 responses
    ENV: str = "development"
    API_PREFIX: str = "/api"
    # One origin or several, comma separated: "http://localhost:5173,https://example.com"
    BACKEND_CORS_ORIGINS: Annotated[List[str], NoDecode] = ["*"]
    LOG_LEVEL: str = "INFO"
    PORT: int = 8000

    # ===== Document store =====
    DATABASE_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "duenow"
    # Upper bound on documents pulled into memory for sorting and paging
    MAX_FETCH_DOCUMENTS: int = 1000
    # Largest value list allowed in a single "in" filter
    IN_QUERY_CHUNK_SIZE: int = 10

    # ===== Identity provider =====
    JWT_SECRET_KEY: str = "dev-secret-key-change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: Optional[str] = None
    JWT_AUDIENCE: Optional[str] = None
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # ===== Object storage =====
    STORAGE_BACKEND: str = "local"
    UPLOAD_DIR: str = "uploads"
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024
    ALLOWED_UPLOAD_TYPES: Annotated[List[str], NoDecode] = [
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "text/plain",
        "text/csv",
        "image/jpeg",
        "image/png",
        "image/gif",
        "application/zip",
        "application/x-zip-compressed",
        "application/x-rar-compressed",
    ]
    SIGNED_URL_EXPIRE_MINUTES: int = 60
    PUBLIC_BASE_URL: str = "http://localhost:8000"

    # ===== Assignments =====
    DEFAULT_MAX_ATTEMPTS: int = 3

    @field_validator("BACKEND_CORS_ORIGINS", "ALLOWED_UPLOAD_TYPES", mode="before")
    @classmethod
    def _split_csv(cls, v):
        if v is None or v == "":
            return []
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("["):
                return json.loads(s)
            return [item.strip() for item in s.split(",") if item.strip()]
        return v

    @property
    def is_development(self) -> bool:
        return self.ENV.strip().lower() in {"dev", "development"}


settings = Settings()
