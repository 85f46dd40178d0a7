"""Configuration management for crm-backup."""

import os
from dataclasses import dataclass
from typing import Dict


# Snapshot folders kept per retention class when no settings are stored
DEFAULT_RETENTION: Dict[str, int] = {
    "daily": 30,
    "monthly": 12,
    "yearly": 5,
}

FORMAT_VERSION = "3.0.0"


@dataclass(frozen=True)
class BackupConfig:
    """Backup engine configuration."""
    database_url: str = "sqlite+aiosqlite:///./crm.db"
    backup_dir: str = "./backups"
    uploads_dir: str = "./uploads"
    copy_retries: int = 3
    format_version: str = FORMAT_VERSION
    sqlite_foreign_keys: bool = True

    @classmethod
    def from_env(cls) -> 'BackupConfig':
        """Create config from environment variables."""
        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./crm.db"),
            backup_dir=os.getenv("BACKUP_DIR", "./backups"),
            uploads_dir=os.getenv("UPLOADS_DIR", "./uploads"),
            copy_retries=int(os.getenv("BACKUP_COPY_RETRIES", "3")),
            sqlite_foreign_keys=os.getenv("SQLITE_FOREIGN_KEYS", "true").lower() == "true",
        )

    def __post_init__(self):
        """Validate configuration."""
        if not self.database_url:
            raise ValueError("database_url must not be empty")
        if not self.backup_dir:
            raise ValueError("backup_dir must not be empty")
        if self.copy_retries <= 0:
            raise ValueError(f"copy_retries must be positive, got {self.copy_retries}")
