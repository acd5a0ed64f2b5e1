"""Backup service for snapshot export and restore.

Architecture Note:
    Export reads every table into one versioned JSON snapshot. Restore runs
    four strictly sequential phases with fixed table orderings:

    1. clear the secondary tables (best-effort)
    2. clear the critical tables, children first (fail-fast)
    3. insert the critical tables, parents first (fail-fast)
    4. insert the secondary tables (best-effort, empty tables skipped)

    Critical tables (companies and everything referencing them) land
    consistently or the restore aborts. Secondary tables (catalogs, logs,
    trash, notifications) may be protected by access rules the restoring
    user cannot bypass, so their failures are logged and reported instead.

    There is no cross-table transaction: an aborted restore can leave the
    store partially cleared. Re-running the restore is the recovery path.

Security Note: snapshots are plain JSON; documents read back from users are
structurally validated by validate_backup() before any write happens.
"""

import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from controle_api.constants.tables import (
    BACKUP_TABLES,
    BACKUP_VERSION,
    CRITICAL_DELETE_ORDER,
    CRITICAL_INSERT_ORDER,
    SECONDARY_DELETE_ORDER,
    SECONDARY_INSERT_ORDER,
)
from controle_api.exceptions import BackupReadError, BackupRestoreError, BackupWriteError
from controle_api.models.dto.backup import BackupSnapshot, BackupValidation, RestoreReport
from controle_api.repositories.table_repository import TableRepository

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]

BACKUP_FILE_PREFIX = "backup-triar"


def _now_iso() -> str:
    """Current UTC time as ISO-8601 with milliseconds and a Z suffix."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def backup_file_name(automatic: bool = False, now: datetime | None = None) -> str:
    """Build a backup file name like 'backup-triar-2026-01-31T10-15-00.json'."""
    stamp = (now or datetime.now(UTC)).strftime("%Y-%m-%dT%H-%M-%S")
    prefix = f"{BACKUP_FILE_PREFIX}-auto" if automatic else BACKUP_FILE_PREFIX
    return f"{prefix}-{stamp}.json"


def _reject(reason: str) -> BackupValidation:
    return BackupValidation(ok=False, erro=reason)


def validate_backup(data: Any) -> BackupValidation:
    """Structurally validate an untrusted snapshot document.

    Checks run in order and stop at the first failure: the value is an
    object, its version is supported, it has a 'tabelas' object, and every
    known table maps to a list (empty lists are fine).

    Args:
        data: Parsed JSON of unknown shape

    Returns:
        Validation result with the typed snapshot when accepted
    """
    if not isinstance(data, dict):
        return _reject("Invalid file: not a JSON object.")

    version = data.get("versao")
    if isinstance(version, bool) or version != BACKUP_VERSION:
        return _reject(f"Incompatible version: expected {BACKUP_VERSION}, got {version}")

    tables = data.get("tabelas")
    if not isinstance(tables, dict):
        return _reject('Invalid file: "tabelas" field missing.')

    for name in BACKUP_TABLES:
        if not isinstance(tables.get(name), list):
            return _reject(f'Table "{name}" missing or invalid in file.')

    # Counts are informational only; recompute them when unusable
    counts = data.get("contagem")
    if not isinstance(counts, dict) or not all(
        isinstance(value, int) and not isinstance(value, bool) for value in counts.values()
    ):
        counts = {name: len(tables[name]) for name in BACKUP_TABLES}

    created_at = data.get("criadoEm")
    try:
        backup = BackupSnapshot(
            versao=BACKUP_VERSION,
            criado_em=created_at if isinstance(created_at, str) else None,
            tabelas={name: tables[name] for name in BACKUP_TABLES},
            contagem=counts,
        )
    except PydanticValidationError:
        return _reject("Invalid file: table rows must be JSON objects.")

    return BackupValidation(ok=True, backup=backup)


def parse_backup_file(content: bytes | str) -> BackupValidation:
    """Decode a backup file and validate it."""
    try:
        data = json.loads(content)
    except (ValueError, UnicodeDecodeError):
        return _reject("Error reading file: invalid JSON.")
    return validate_backup(data)


class BackupService:
    """Service for exporting and restoring table snapshots."""

    def __init__(self, repository: TableRepository) -> None:
        """Initialize backup service with a table repository."""
        self.repository = repository

    @staticmethod
    def _report(on_progress: ProgressCallback | None, message: str) -> None:
        if on_progress:
            on_progress(message)

    # =========================================================================
    # Export functionality
    # =========================================================================

    async def export_backup(self, on_progress: ProgressCallback | None = None) -> BackupSnapshot:
        """Read every table into a new snapshot.

        A table that cannot be read is exported empty with a count of zero,
        so export always completes, even against a degraded store.

        Args:
            on_progress: Optional callback receiving one message per table

        Returns:
            The snapshot
        """
        tables: dict[str, list[dict[str, Any]]] = {}
        counts: dict[str, int] = {}

        for table in BACKUP_TABLES:
            self._report(on_progress, f"Exporting {table}...")
            try:
                rows = await self.repository.fetch_all(table)
            except BackupReadError as e:
                logger.warning(f"Exporting {table} as empty: {e.message}")
                rows = []
            except Exception as e:
                logger.warning(f"Exporting {table} as empty after unexpected error: {e}", exc_info=True)
                rows = []
            tables[table] = rows
            counts[table] = len(rows)

        logger.info(f"Backup exported: {sum(counts.values())} rows in {len(counts)} tables")
        return BackupSnapshot(
            versao=BACKUP_VERSION,
            criado_em=_now_iso(),
            tabelas=tables,
            contagem=counts,
        )

    # =========================================================================
    # Restore functionality
    # =========================================================================

    async def restore_backup(
        self,
        backup: BackupSnapshot,
        on_progress: ProgressCallback | None = None,
    ) -> RestoreReport:
        """Replace the store's contents with a validated snapshot.

        WARNING: This deletes ALL existing data in the backed-up tables!

        Args:
            backup: Snapshot accepted by validate_backup()
            on_progress: Optional callback receiving progress messages

        Returns:
            Restored row counts per table and secondary-tier warnings

        Raises:
            BackupRestoreError: If any critical-tier delete or insert fails
        """
        report = RestoreReport()

        for table in SECONDARY_DELETE_ORDER:
            self._report(on_progress, f"Cleaning {table}...")
            result = await self.repository.delete_all_safe(table)
            report.warnings.extend(f"{table}: {error}" for error in result.errors)

        try:
            for table in CRITICAL_DELETE_ORDER:
                self._report(on_progress, f"Cleaning {table}...")
                await self.repository.delete_all(table)

            for table in CRITICAL_INSERT_ORDER:
                rows = backup.rows(table)
                self._report(on_progress, f"Restoring {table} ({len(rows)} rows)...")
                result = await self.repository.insert_batch(table, rows)
                report.restored[table] = result.rows_written
        except BackupWriteError as e:
            logger.error(f"Restore aborted: {e.message}")
            raise BackupRestoreError(e.message, e.details) from e

        for table in SECONDARY_INSERT_ORDER:
            rows = backup.rows(table)
            if not rows:
                continue
            self._report(on_progress, f"Restoring {table} ({len(rows)} rows)...")
            result = await self.repository.insert_batch_safe(table, rows)
            report.restored[table] = result.rows_written
            report.warnings.extend(f"{table}: {error}" for error in result.errors)

        self._report(on_progress, "Backup restored successfully!")
        logger.info(
            f"Backup restored: {sum(report.restored.values())} rows, "
            f"{len(report.warnings)} warnings"
        )
        return report
