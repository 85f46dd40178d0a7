from .backup import BackupManager
from .config import BackupConfig

__version__ = "0.1.0"
__author__ = "CRM Platform Team"
__url__ = "https://github.com/crm-platform/crm-backup"

__all__ = ["BackupManager", "BackupConfig"]
