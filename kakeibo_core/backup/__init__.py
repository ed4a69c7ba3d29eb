"""Backup export / import package."""

from kakeibo_core.backup.service import (
    BackupService,
    clean_export_data,
    detect_backup_owner_id,
    generate_migration_report,
    migrate_budget_category_ids,
    normalize_category_id,
    normalize_category_ids_in_record,
    prepare_import,
    remap_owner_id,
)

__all__ = [
    "BackupService",
    "clean_export_data",
    "detect_backup_owner_id",
    "generate_migration_report",
    "migrate_budget_category_ids",
    "normalize_category_id",
    "normalize_category_ids_in_record",
    "prepare_import",
    "remap_owner_id",
]
