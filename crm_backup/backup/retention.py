"""Keep-N-most-recent pruning of snapshot folders."""

import shutil
from typing import Dict, List

from .._utils import logger
from .models import STORED_CLASSES, BackupSettings, RetentionClass
from .store import SnapshotStore


class RetentionManager:
    """Delete the oldest snapshot folders beyond each class's keep count.

    Pruning is purely folder-age based (modification time); manifests are not
    consulted. Manual snapshots live under ``daily/`` and count towards it.
    """

    def __init__(self, store: SnapshotStore):
        self.store = store

    def prune(self, retention_class: RetentionClass, keep: int) -> List[str]:
        """Keep the ``keep`` newest folders of a class and delete the rest.

        Args:
            retention_class: Class to prune
            keep: Number of folders to keep; ``0`` deletes every folder of the class

        Returns:
            Names of the deleted folders
        """
        class_dir = self.store.class_dir(retention_class)
        if not class_dir.is_dir():
            return []
        keep = max(keep, 0)

        folders = [
            folder for folder in class_dir.iterdir()
            if folder.is_dir() and not folder.name.startswith(".")
        ]
        folders.sort(key=lambda f: (f.stat().st_mtime, f.name), reverse=True)

        deleted = []
        for folder in folders[keep:]:
            shutil.rmtree(folder)
            deleted.append(folder.name)
            logger.info(f"Deleted old {RetentionClass(retention_class).folder} snapshot: {folder.name}")

        return deleted

    def prune_all(self, settings: BackupSettings) -> Dict[str, List[str]]:
        """Apply the configured keep counts to every stored class.

        A yearly count of 0 keeps every yearly snapshot; daily and monthly
        counts of 0 delete every snapshot of their class.
        """
        deleted = {}
        for retention_class in STORED_CLASSES:
            keep = settings.keep_count(retention_class)
            if retention_class is RetentionClass.YEARLY and keep <= 0:
                deleted[retention_class.value] = []
                continue
            deleted[retention_class.value] = self.prune(retention_class, keep)

        total = sum(len(names) for names in deleted.values())
        logger.info(f"Retention cleanup completed: {total} snapshots deleted")
        return deleted
