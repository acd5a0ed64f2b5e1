"""Tests for automatic backup settings, history and runs."""

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from conftest import FakeDataStore
from controle_api.models.dto.backup import AutoBackupSettings
from controle_api.repositories.table_repository import TableRepository
from controle_api.services.auto_backup_service import (
    HISTORY_KEY,
    HISTORY_LIMIT,
    SETTINGS_KEY,
    AutoBackupService,
)
from controle_api.services.backup_service import BackupService
from controle_api.services.folder_persistence import BackupFolderPersistence
from controle_api.services.local_state import LocalStateStore

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


@pytest.fixture
def auto_backup(state: LocalStateStore) -> AutoBackupService:
    return AutoBackupService(state)


class TestSettings:
    def test_defaults(self, auto_backup: AutoBackupService) -> None:
        settings = auto_backup.get_settings()

        assert settings.ativo is False
        assert settings.frequencia_dias == 7

    def test_stored_values_merge_over_defaults(self, auto_backup: AutoBackupService) -> None:
        auto_backup.state.set(SETTINGS_KEY, {"ativo": True})

        settings = auto_backup.get_settings()

        assert settings.ativo is True
        assert settings.frequencia_dias == 7

    def test_invalid_stored_values_fall_back_to_defaults(self, auto_backup: AutoBackupService) -> None:
        auto_backup.state.set(SETTINGS_KEY, {"ativo": True, "frequenciaDias": 3})

        assert auto_backup.get_settings() == AutoBackupSettings()

    def test_update_persists_wire_format(self, auto_backup: AutoBackupService) -> None:
        auto_backup.update_settings(AutoBackupSettings(ativo=True, frequenciaDias=15))

        assert auto_backup.state.get(SETTINGS_KEY) == {"ativo": True, "frequenciaDias": 15}


class TestHistory:
    def test_newest_first_and_capped(self, auto_backup: AutoBackupService) -> None:
        for day in range(HISTORY_LIMIT + 5):
            auto_backup.record("export", {"empresas": day}, data=f"2026-01-{day + 1:02d}T00:00:00+00:00")

        history = auto_backup.get_history()

        assert len(history) == HISTORY_LIMIT
        assert history[0].contagem == {"empresas": HISTORY_LIMIT + 4}

    def test_invalid_entries_are_skipped(self, auto_backup: AutoBackupService) -> None:
        auto_backup.state.set(HISTORY_KEY, [{"tipo": "unknown"}, {"data": "2026-01-01", "tipo": "restore"}])

        history = auto_backup.get_history()

        assert [item.tipo for item in history] == ["restore"]

    def test_last_backup_date_ignores_restores(self, auto_backup: AutoBackupService) -> None:
        auto_backup.record("export", {}, data="2026-01-01T00:00:00+00:00")
        auto_backup.record("restore", {}, data="2026-01-05T00:00:00+00:00")

        assert auto_backup.last_backup_date() == "2026-01-01T00:00:00+00:00"


class TestIsBackupDue:
    def test_disabled_is_never_due(self, auto_backup: AutoBackupService) -> None:
        assert auto_backup.is_backup_due(NOW) is False
        assert auto_backup.next_backup_at(NOW) is None

    def test_enabled_without_history_is_due(self, auto_backup: AutoBackupService) -> None:
        auto_backup.update_settings(AutoBackupSettings(ativo=True))

        assert auto_backup.is_backup_due(NOW) is True
        assert auto_backup.next_backup_at(NOW) == NOW

    @pytest.mark.parametrize(
        "days_ago,frequency,due",
        [
            (3, 4, False),
            (4, 4, True),
            (6, 7, False),
            (7, 7, True),
            (14, 15, False),
            (20, 15, True),
        ],
    )
    def test_due_after_frequency_days(
        self,
        auto_backup: AutoBackupService,
        days_ago: int,
        frequency: int,
        due: bool,
    ) -> None:
        auto_backup.update_settings(AutoBackupSettings(ativo=True, frequenciaDias=frequency))
        auto_backup.record("export", {}, data=(NOW - timedelta(days=days_ago)).isoformat())

        assert auto_backup.is_backup_due(NOW) is due

    def test_accepts_z_suffixed_dates(self, auto_backup: AutoBackupService) -> None:
        auto_backup.update_settings(AutoBackupSettings(ativo=True, frequenciaDias=7))
        auto_backup.record("export", {}, data="2026-03-09T12:00:00.000Z")

        assert auto_backup.is_backup_due(NOW) is False
        assert auto_backup.next_backup_at(NOW) == datetime(2026, 3, 16, 12, 0, tzinfo=UTC)


class TestRunAutoBackup:
    @pytest.fixture
    def full_service(self, state: LocalStateStore, tmp_path: Path) -> AutoBackupService:
        store = FakeDataStore({"empresas": [{"id": "e-1"}]})
        folder = BackupFolderPersistence(state, tmp_path / "downloads")
        folder.choose_folder(tmp_path / "backups")
        return AutoBackupService(
            state,
            backup_service=BackupService(TableRepository(store)),
            folder=folder,
        )

    async def test_writes_automatic_backup_and_records_history(
        self,
        full_service: AutoBackupService,
        tmp_path: Path,
    ) -> None:
        full_service.update_settings(AutoBackupSettings(ativo=True))

        assert await full_service.run_auto_backup() is True

        files = list((tmp_path / "backups").iterdir())
        assert len(files) == 1
        assert files[0].name.startswith("backup-triar-auto-")
        history = full_service.get_history()
        assert history[0].tipo == "export"
        assert history[0].contagem["empresas"] == 1
        # A fresh backup is not due again
        assert full_service.is_backup_due() is False

    async def test_skips_when_disabled(self, full_service: AutoBackupService, tmp_path: Path) -> None:
        assert await full_service.run_auto_backup() is False
        assert list((tmp_path / "backups").iterdir()) == []

    async def test_without_collaborators_skips_without_raising(self, auto_backup: AutoBackupService) -> None:
        auto_backup.update_settings(AutoBackupSettings(ativo=True))

        assert await auto_backup.run_auto_backup() is False
        assert auto_backup.get_history() == []

    async def test_export_failure_is_logged_not_raised(self, state: LocalStateStore, tmp_path: Path) -> None:
        class BrokenBackupService:
            async def export_backup(self):
                raise OSError("disk unavailable")

        service = AutoBackupService(
            state,
            backup_service=BrokenBackupService(),
            folder=BackupFolderPersistence(state, tmp_path / "downloads"),
        )
        service.update_settings(AutoBackupSettings(ativo=True))

        assert await service.run_auto_backup() is False
        assert service.get_history() == []
