import os

from minio import Minio


class Settings:
    SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME_PLEASE")
    ALGORITHM = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24
    DATABASE_URL = os.getenv(
        "DATABASE_URL",
        "postgresql+asyncpg://postgres:postgres@db:5432/imagemax"
    )

    MINIO_ENDPOINT = os.getenv("MINIO_ENDPOINT", "localhost:9000")
    MINIO_ACCESS_KEY = os.getenv("MINIO_ACCESS_KEY", "admin")
    MINIO_SECRET_KEY = os.getenv("MINIO_SECRET_KEY", "admin123456")
    MINIO_SECURE = os.getenv("MINIO_SECURE", "false").lower() == "true"
    MINIO_BUCKET = os.getenv("MINIO_BUCKET", "images")
    STORAGE_PUBLIC_URL = os.getenv("STORAGE_PUBLIC_URL", "http://localhost:9000")

    REMOVE_BG_API_KEY = os.getenv("REMOVE_BG_API_KEY", "")
    REMOVE_BG_URL = "https://api.remove.bg/v1.0/removebg"
    REMOVE_BG_TIMEOUT = int(os.getenv("REMOVE_BG_TIMEOUT", "60"))

    CRON_SECRET = os.getenv("CRON_SECRET")

    MAX_FILE_SIZE = 10 * 1024 * 1024
    MAX_FILE_AGE_DAYS = 7
    RATE_LIMIT_WINDOW_SECONDS = 60
    RATE_LIMIT_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "10"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()

MINIO_BUCKET = settings.MINIO_BUCKET


minio_client = Minio(
    settings.MINIO_ENDPOINT,
    access_key=settings.MINIO_ACCESS_KEY,
    secret_key=settings.MINIO_SECRET_KEY,
    secure=settings.MINIO_SECURE
)
