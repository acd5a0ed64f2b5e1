"""Automatic backup settings, history and scheduling decisions."""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any, Literal

from pydantic import ValidationError as PydanticValidationError

from controle_api.models.dto.backup import AutoBackupSettings, BackupHistoryItem
from controle_api.services.backup_service import BackupService, backup_file_name
from controle_api.services.folder_persistence import BackupFolderPersistence
from controle_api.services.local_state import LocalStateStore

logger = logging.getLogger(__name__)

SETTINGS_KEY = "auto-backup"
HISTORY_KEY = "backup-historico"
HISTORY_LIMIT = 20


def _parse_date(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


class AutoBackupService:
    """Service for automatic backup settings, history and runs."""

    def __init__(
        self,
        state: LocalStateStore,
        backup_service: BackupService | None = None,
        folder: BackupFolderPersistence | None = None,
    ) -> None:
        """Initialize service.

        Args:
            state: Local state store for settings and history
            backup_service: Needed only by run_auto_backup()
            folder: Needed only by run_auto_backup()
        """
        self.state = state
        self.backup_service = backup_service
        self.folder = folder

    # =========================================================================
    # Settings
    # =========================================================================

    def get_settings(self) -> AutoBackupSettings:
        """Get settings, merging stored values over the defaults."""
        defaults = AutoBackupSettings()
        raw = self.state.get(SETTINGS_KEY)
        if not isinstance(raw, dict):
            return defaults
        try:
            return AutoBackupSettings.model_validate({**defaults.model_dump(by_alias=True), **raw})
        except PydanticValidationError:
            logger.warning("Stored auto-backup settings are invalid, using defaults")
            return defaults

    def update_settings(self, settings: AutoBackupSettings) -> AutoBackupSettings:
        """Store new settings."""
        self.state.set(SETTINGS_KEY, settings.model_dump(by_alias=True))
        return settings

    # =========================================================================
    # History
    # =========================================================================

    def get_history(self) -> list[BackupHistoryItem]:
        """Get history entries, newest first (invalid entries are skipped)."""
        raw = self.state.get(HISTORY_KEY)
        if not isinstance(raw, list):
            return []
        items = []
        for entry in raw:
            try:
                items.append(BackupHistoryItem.model_validate(entry))
            except PydanticValidationError:
                continue
        return items

    def record(
        self,
        tipo: Literal["export", "restore"],
        contagem: dict[str, int],
        data: str | None = None,
    ) -> BackupHistoryItem:
        """Prepend an entry to the history, keeping the newest entries only."""
        item = BackupHistoryItem(
            data=data or datetime.now(UTC).isoformat(),
            tipo=tipo,
            contagem=contagem,
        )
        history: list[dict[str, Any]] = [item.model_dump()]
        history.extend(entry.model_dump() for entry in self.get_history())
        self.state.set(HISTORY_KEY, history[:HISTORY_LIMIT])
        return item

    def last_backup_date(self) -> str | None:
        """Get the date of the newest export, if any."""
        for item in self.get_history():
            if item.tipo == "export":
                return item.data
        return None

    # =========================================================================
    # Scheduling decisions
    # =========================================================================

    def is_backup_due(self, now: datetime | None = None) -> bool:
        """Check whether an automatic backup should run now."""
        settings = self.get_settings()
        if not settings.ativo:
            return False
        last = self.last_backup_date()
        last_at = _parse_date(last) if last else None
        if last_at is None:
            return True  # never backed up
        now = now or datetime.now(UTC)
        return now - last_at >= timedelta(days=settings.frequencia_dias)

    def next_backup_at(self, now: datetime | None = None) -> datetime | None:
        """Get when the next automatic backup is due, or None when disabled."""
        settings = self.get_settings()
        if not settings.ativo:
            return None
        now = now or datetime.now(UTC)
        last = self.last_backup_date()
        last_at = _parse_date(last) if last else None
        if last_at is None:
            return now
        return last_at + timedelta(days=settings.frequencia_dias)

    async def run_auto_backup(self, now: datetime | None = None) -> bool:
        """Export and save a backup when one is due.

        Failures are logged, not raised. A service built without a backup
        service or folder never produces a backup.

        Returns:
            True if a backup was produced
        """
        if not self.is_backup_due(now):
            return False
        if self.backup_service is None or self.folder is None:
            logger.error("Automatic backup skipped: no backup service or folder configured")
            return False

        try:
            backup = await self.backup_service.export_backup()
            file_name = backup_file_name(automatic=True)
            saved = self.folder.save_backup_file(backup.to_json(), file_name)
            self.record("export", backup.contagem, data=backup.criado_em)
        except Exception as e:
            logger.error(f"Automatic backup failed: {e}", exc_info=True)
            return False

        folder_name = self.folder.get_saved_folder_name()
        if saved and folder_name:
            logger.info(f'Automatic backup saved to folder "{folder_name}" as {file_name}')
        else:
            logger.info(f"Automatic backup downloaded as {file_name}")
        return True
