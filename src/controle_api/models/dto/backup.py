"""Backup DTOs for export/restore functionality.

Field aliases keep the persisted file format (``versao``, ``criadoEm``,
``tabelas``, ``contagem``) and the settings format used by the web client.
"""

import json
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from controle_api.constants.tables import BACKUP_VERSION


class BackupSnapshot(BaseModel):
    """Versioned snapshot of every backed-up table."""

    model_config = ConfigDict(populate_by_name=True)

    versao: int = BACKUP_VERSION
    criado_em: str | None = Field(default=None, alias="criadoEm")
    tabelas: dict[str, list[dict[str, Any]]]
    contagem: dict[str, int] = Field(default_factory=dict)

    def to_json(self) -> str:
        """Serialize in the persisted file format."""
        return json.dumps(self.model_dump(by_alias=True), indent=2, ensure_ascii=False)

    def rows(self, table: str) -> list[dict[str, Any]]:
        """Get the rows of a table (empty when absent)."""
        return self.tabelas.get(table, [])


class BackupValidation(BaseModel):
    """Result of validating an untrusted snapshot document."""

    ok: bool
    backup: BackupSnapshot | None = None
    erro: str | None = None


class BackupValidateResponse(BaseModel):
    """Response for the validate endpoint (rows are not echoed back)."""

    ok: bool
    erro: str | None = None
    criado_em: str | None = Field(default=None, serialization_alias="criadoEm")
    contagem: dict[str, int] = Field(default_factory=dict)


class RestoreReport(BaseModel):
    """Outcome of a completed restore."""

    success: bool = True
    restored: dict[str, int] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)


class ExportToFolderResponse(BaseModel):
    """Response after exporting a backup to the configured folder."""

    saved_to_folder: bool
    file_name: str
    folder: str | None = None
    contagem: dict[str, int] = Field(default_factory=dict)


class AutoBackupSettings(BaseModel):
    """Automatic backup settings."""

    model_config = ConfigDict(populate_by_name=True)

    ativo: bool = False
    frequencia_dias: Literal[4, 7, 15] = Field(default=7, alias="frequenciaDias")


class BackupHistoryItem(BaseModel):
    """One export or restore in the backup history."""

    data: str
    tipo: Literal["export", "restore"]
    contagem: dict[str, int] = Field(default_factory=dict)


class BackupStatusResponse(BaseModel):
    """Automatic backup status."""

    model_config = ConfigDict(populate_by_name=True)

    ultimo_backup: str | None = Field(default=None, alias="ultimoBackup")
    proximo_backup: datetime | None = Field(default=None, alias="proximoBackup")
    vencido: bool = False


class BackupFolderUpdate(BaseModel):
    """Request to configure the backup folder."""

    path: str = Field(min_length=1, max_length=4096)


class BackupFolderResponse(BaseModel):
    """Currently configured backup folder."""

    folder: str | None = None
    writable: bool = False
