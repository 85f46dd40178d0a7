"""Configuration for FastAPI application."""

from typing import List, Optional, Union
import json

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # API Configuration
    api_prefix: str = "/api/v1"
    api_title: str = "crm-backup API"
    api_version: str = "1.0.0"
    allowed_origins: Union[str, List[str]] = ["*"]

    @field_validator('allowed_origins', mode='before')
    @classmethod
    def parse_allowed_origins(cls, v):
        """Parse allowed_origins from string or list."""
        if isinstance(v, str):
            if v.startswith('['):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    return [v]
            return [v]
        return v

    # Database and storage
    database_url: str = "sqlite+aiosqlite:///./crm.db"
    backup_dir: str = "./backups"
    uploads_dir: str = "./uploads"
    copy_retries: int = 3
    sqlite_foreign_keys: bool = True
    create_schema: bool = True

    # Job tracking
    redis_url: Optional[str] = None
    job_ttl: int = 604800  # 7 days

    # Snapshots returned by the history endpoint
    history_limit: int = 50

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
