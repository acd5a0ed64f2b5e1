"""Tests for snapshot export, validation and the four-phase restore."""

import json
from datetime import UTC, datetime

import pytest

from conftest import FakeDataStore
from controle_api.constants.tables import (
    BACKUP_TABLES,
    CRITICAL_DELETE_ORDER,
    CRITICAL_INSERT_ORDER,
    SECONDARY_DELETE_ORDER,
)
from controle_api.exceptions import BackupRestoreError
from controle_api.models.dto.backup import BackupSnapshot
from controle_api.repositories.table_repository import TableRepository
from controle_api.services.backup_service import (
    BackupService,
    backup_file_name,
    parse_backup_file,
    validate_backup,
)


def empty_document() -> dict:
    return {
        "versao": 1,
        "criadoEm": "2026-01-31T10:15:00.000Z",
        "tabelas": {name: [] for name in BACKUP_TABLES},
        "contagem": {name: 0 for name in BACKUP_TABLES},
    }


def make_service(store: FakeDataStore) -> BackupService:
    return BackupService(TableRepository(store, page_size=1000, batch_size=500))


class TestValidateBackup:
    """Structural validation of untrusted documents."""

    def test_accepts_document_with_all_tables_empty(self) -> None:
        result = validate_backup(empty_document())

        assert result.ok
        assert result.erro is None
        assert result.backup is not None
        assert set(result.backup.tabelas) == set(BACKUP_TABLES)

    def test_rejects_other_version_naming_both_values(self) -> None:
        document = empty_document()
        document["versao"] = 2

        result = validate_backup(document)

        assert not result.ok
        assert result.erro == "Incompatible version: expected 1, got 2"

    def test_rejects_missing_tables_field(self) -> None:
        document = empty_document()
        del document["tabelas"]

        result = validate_backup(document)

        assert not result.ok
        assert "tabelas" in result.erro

    @pytest.mark.parametrize("table", BACKUP_TABLES)
    def test_rejects_document_missing_any_table(self, table: str) -> None:
        document = empty_document()
        del document["tabelas"][table]

        result = validate_backup(document)

        assert not result.ok
        assert f'"{table}"' in result.erro

    @pytest.mark.parametrize("value", [None, [], "text", 42])
    def test_rejects_non_object_values(self, value: object) -> None:
        assert not validate_backup(value).ok

    def test_rejects_table_that_is_not_a_list(self) -> None:
        document = empty_document()
        document["tabelas"]["empresas"] = {"id": "e-1"}

        result = validate_backup(document)

        assert result.erro == 'Table "empresas" missing or invalid in file.'

    def test_checks_stop_at_first_failure(self) -> None:
        # Wrong version and missing tables: only the version is reported
        result = validate_backup({"versao": 3})

        assert result.erro.startswith("Incompatible version")

    def test_recomputes_unusable_counts(self) -> None:
        document = empty_document()
        document["tabelas"]["empresas"] = [{"id": "e-1"}, {"id": "e-2"}]
        document["contagem"] = "not a dict"

        result = validate_backup(document)

        assert result.backup.contagem["empresas"] == 2

    def test_parse_rejects_invalid_json(self) -> None:
        result = parse_backup_file(b"{not json")

        assert not result.ok
        assert result.erro == "Error reading file: invalid JSON."

    def test_snapshot_json_round_trips(self) -> None:
        document = empty_document()
        document["tabelas"]["empresas"] = [{"id": "e-1", "razao_social": "Açaí & Cia", "ativo": True}]
        document["contagem"]["empresas"] = 1

        backup = parse_backup_file(json.dumps(document)).backup

        assert json.loads(backup.to_json()) == document


class TestBackupFileName:
    def test_manual_and_automatic_names(self) -> None:
        now = datetime(2026, 1, 31, 10, 15, 0, tzinfo=UTC)

        assert backup_file_name(now=now) == "backup-triar-2026-01-31T10-15-00.json"
        assert backup_file_name(automatic=True, now=now) == "backup-triar-auto-2026-01-31T10-15-00.json"


class TestExportBackup:
    """Snapshot export."""

    async def test_exports_every_table_with_counts(self) -> None:
        store = FakeDataStore(
            {
                "empresas": [{"id": "e-1"}, {"id": "e-2"}],
                "servicos": [{"id": "s-1"}],
            }
        )
        progress: list[str] = []

        backup = await make_service(store).export_backup(on_progress=progress.append)

        assert backup.versao == 1
        assert backup.criado_em.endswith("Z")
        assert list(backup.tabelas) == list(BACKUP_TABLES)
        assert backup.contagem["empresas"] == 2
        assert backup.contagem["servicos"] == 1
        assert backup.contagem["logs"] == 0
        assert progress == [f"Exporting {table}..." for table in BACKUP_TABLES]

    async def test_failing_table_is_exported_empty(self) -> None:
        store = FakeDataStore(
            {
                "empresas": [{"id": "e-1"}],
                "documentos": [{"id": "d-1"}],
            }
        )
        store.fail("select", "documentos", "permission denied")

        backup = await make_service(store).export_backup()

        assert backup.tabelas["documentos"] == []
        assert backup.contagem["documentos"] == 0
        assert backup.tabelas["empresas"] == [{"id": "e-1"}]
        assert backup.contagem["empresas"] == 1

    async def test_unexpected_read_error_is_exported_empty(self) -> None:
        class BrokenStore(FakeDataStore):
            async def select_range(self, table: str, start: int, end: int) -> list[dict]:
                if table == "rets":
                    raise TypeError("unexpected payload")
                return await super().select_range(table, start, end)

        store = BrokenStore({"rets": [{"id": "r-1"}], "empresas": [{"id": "e-1"}]})

        backup = await make_service(store).export_backup()

        assert backup.contagem["rets"] == 0
        assert backup.contagem["empresas"] == 1


class TestRestoreBackup:
    """Four-phase restore."""

    def snapshot(self, **tables: list[dict]) -> BackupSnapshot:
        document = empty_document()
        document["tabelas"].update(tables)
        return validate_backup(document).backup

    async def test_phases_run_in_fixed_order(self) -> None:
        store = FakeDataStore()
        backup = self.snapshot(
            servicos=[{"id": "s-1"}],
            empresas=[{"id": "e-1"}],
            departamentos=[{"id": "dep-1"}],
        )

        await make_service(store).restore_backup(backup)

        deletes = [call[1] for call in store.calls_for("delete")]
        upserts = [call[1] for call in store.calls_for("upsert")]
        assert deletes == list(SECONDARY_DELETE_ORDER) + list(CRITICAL_DELETE_ORDER)
        assert upserts == ["servicos", "empresas", "departamentos"]

    async def test_critical_inserts_ignore_snapshot_key_order(self) -> None:
        store = FakeDataStore()
        rows = {table: [{"id": f"{table}-1"}] for table in reversed(CRITICAL_INSERT_ORDER)}
        backup = BackupSnapshot(
            versao=1,
            tabelas={**{name: [] for name in BACKUP_TABLES if name not in rows}, **rows},
        )

        await make_service(store).restore_backup(backup)

        upserts = [call[1] for call in store.calls_for("upsert")]
        assert upserts == list(CRITICAL_INSERT_ORDER)

    async def test_critical_delete_failure_aborts_before_any_insert(self) -> None:
        store = FakeDataStore()
        store.fail("delete", "observacoes", "permission denied")
        backup = self.snapshot(empresas=[{"id": "e-1"}], logs=[{"id": "l-1"}])

        with pytest.raises(BackupRestoreError) as exc_info:
            await make_service(store).restore_backup(backup)

        assert "observacoes" in exc_info.value.message
        assert store.calls_for("upsert") == []
        assert store.calls_for("insert") == []
        # Secondary deletes already ran
        deletes = [call[1] for call in store.calls_for("delete")]
        assert deletes == list(SECONDARY_DELETE_ORDER) + ["observacoes"]

    async def test_critical_insert_failure_names_table_and_chunk(self) -> None:
        store = FakeDataStore()
        store.fail("upsert", "rets", "violates foreign key constraint")
        backup = self.snapshot(rets=[{"id": "r-1"}], usuarios=[{"id": "u-1"}])

        with pytest.raises(BackupRestoreError) as exc_info:
            await make_service(store).restore_backup(backup)

        assert exc_info.value.message == (
            'Error inserting into table "rets" (batch 1): violates foreign key constraint'
        )
        # Secondary inserts never ran
        assert "usuarios" not in [call[1] for call in store.calls_for("upsert")]

    async def test_secondary_failures_become_warnings(self) -> None:
        store = FakeDataStore()
        store.fail("delete", "logs", "permission denied")
        store.fail("upsert", "logs", "permission denied")
        store.fail("insert", "logs", "permission denied")
        backup = self.snapshot(empresas=[{"id": "e-1"}], logs=[{"id": "l-1"}])

        report = await make_service(store).restore_backup(backup)

        assert report.success
        assert report.restored["empresas"] == 1
        assert report.restored["logs"] == 0
        assert report.warnings == ["logs: permission denied", "logs: batch 1: permission denied"]

    async def test_empty_secondary_tables_are_skipped(self) -> None:
        store = FakeDataStore()
        backup = self.snapshot(usuarios=[{"id": "u-1"}])

        report = await make_service(store).restore_backup(backup)

        upserts = [call[1] for call in store.calls_for("upsert")]
        assert upserts == ["usuarios"]
        assert "logs" not in report.restored

    async def test_restore_replaces_existing_rows(self) -> None:
        store = FakeDataStore({"empresas": [{"id": "old"}], "notificacoes": [{"id": "n-old"}]})
        backup = self.snapshot(empresas=[{"id": "new"}])

        await make_service(store).restore_backup(backup)

        assert store.tables["empresas"] == [{"id": "new"}]
        assert store.tables["notificacoes"] == []

    async def test_reports_progress_and_success_message(self) -> None:
        store = FakeDataStore()
        progress: list[str] = []
        backup = self.snapshot(empresas=[{"id": "e-1"}, {"id": "e-2"}])

        await make_service(store).restore_backup(backup, on_progress=progress.append)

        assert "Cleaning observacoes..." in progress
        assert "Restoring empresas (2 rows)..." in progress
        assert progress[-1] == "Backup restored successfully!"
