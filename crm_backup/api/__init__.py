"""HTTP admin surface for CRM backups."""
