from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./dev.db"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    FRONTEND_ORIGINS: List[str] = ["http://localhost:5173"]
    LOG_LEVEL: str = "INFO"

    CATALOG_QUERY_TIMEOUT_SECONDS: float = 10.0
    CATALOG_PAGE_SIZE: int = 20

    IMAGE_QUALITY: float = 0.8
    IMAGE_FETCH_TIMEOUT_SECONDS: float = 30.0

    # "local" writes under STORAGE_ROOT and serves it from /storage,
    # "azure" uses a blob container named after STORAGE_BUCKET
    STORAGE_BACKEND: str = "local"
    STORAGE_BUCKET: str = "products"
    STORAGE_ROOT: str = "./storage"
    STORAGE_PUBLIC_URL: str = "http://127.0.0.1:8000/storage"
    AZURE_STORAGE_CONNECTION_STRING: Optional[str] = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
