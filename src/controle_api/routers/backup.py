"""Backup router for snapshot export, restore and auto-backup settings."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import Response

from controle_api.dependencies import (
    get_auto_backup_service,
    get_backup_service,
    get_folder_persistence,
)
from controle_api.exceptions import BackupValidationError, ValidationError
from controle_api.models.domain.identity import Manager
from controle_api.models.dto.backup import (
    AutoBackupSettings,
    BackupFolderResponse,
    BackupFolderUpdate,
    BackupHistoryItem,
    BackupStatusResponse,
    BackupValidateResponse,
    ExportToFolderResponse,
    RestoreReport,
)
from controle_api.security.auth import require_manager
from controle_api.security.rate_limit import (
    BACKUP_EXPORT_LIMIT,
    BACKUP_RESTORE_LIMIT,
    limiter,
)
from controle_api.services.auto_backup_service import AutoBackupService
from controle_api.services.backup_service import BackupService, backup_file_name, parse_backup_file
from controle_api.services.folder_persistence import BackupFolderPersistence

logger = logging.getLogger(__name__)

router = APIRouter()

RESTORE_CONFIRMATION = "RESTAURAR"

# Maximum backup file size: 100MB
MAX_BACKUP_SIZE = 100 * 1024 * 1024

READ_CHUNK_SIZE = 64 * 1024


async def read_upload_with_limit(file: UploadFile, max_size: int) -> bytes:
    """Read an uploaded file, stopping early once max_size is exceeded.

    Raises:
        HTTPException: If the file is empty or exceeds max_size
    """
    chunks = []
    total_size = 0

    while True:
        chunk = await file.read(READ_CHUNK_SIZE)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > max_size:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"File too large. Maximum size: {max_size // 1024 // 1024}MB",
            )
        chunks.append(chunk)

    if total_size == 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file")
    return b"".join(chunks)


# =============================================================================
# Export / Restore
# =============================================================================


@router.get("/export")
@limiter.limit(BACKUP_EXPORT_LIMIT)
async def export_backup(
    request: Request,
    current_user: Annotated[Manager, Depends(require_manager)],
    service: Annotated[BackupService, Depends(get_backup_service)],
    auto_backup: Annotated[AutoBackupService, Depends(get_auto_backup_service)],
) -> Response:
    """Export every table as a snapshot file download."""
    logger.info(f"Backup export started by {current_user.email}")
    backup = await service.export_backup(on_progress=logger.debug)
    auto_backup.record("export", backup.contagem, data=backup.criado_em)

    content = backup.to_json().encode("utf-8")
    return Response(
        content=content,
        media_type="application/json",
        headers={
            "Content-Disposition": f'attachment; filename="{backup_file_name()}"',
            "Content-Length": str(len(content)),
        },
    )


@router.post("/export-to-folder", response_model=ExportToFolderResponse)
@limiter.limit(BACKUP_EXPORT_LIMIT)
async def export_backup_to_folder(
    request: Request,
    current_user: Annotated[Manager, Depends(require_manager)],
    service: Annotated[BackupService, Depends(get_backup_service)],
    folder: Annotated[BackupFolderPersistence, Depends(get_folder_persistence)],
    auto_backup: Annotated[AutoBackupService, Depends(get_auto_backup_service)],
) -> ExportToFolderResponse:
    """Export a snapshot into the configured folder, or the downloads fallback."""
    # Permission is checked before the export starts
    target = folder.prepare_folder()

    backup = await service.export_backup(on_progress=logger.debug)
    file_name = backup_file_name()
    saved = folder.save_backup_file(backup.to_json(), file_name, folder=target)
    auto_backup.record("export", backup.contagem, data=backup.criado_em)

    logger.info(f"Backup exported by {current_user.email} as {file_name} (folder: {saved})")
    return ExportToFolderResponse(
        saved_to_folder=saved,
        file_name=file_name,
        folder=target.name if saved and target else None,
        contagem=backup.contagem,
    )


@router.post("/validate", response_model=BackupValidateResponse)
async def validate_backup_file(
    current_user: Annotated[Manager, Depends(require_manager)],
    file: UploadFile = File(...),
) -> BackupValidateResponse:
    """Check a snapshot file without restoring it."""
    content = await read_upload_with_limit(file, MAX_BACKUP_SIZE)
    result = parse_backup_file(content)
    if not result.ok or result.backup is None:
        return BackupValidateResponse(ok=False, erro=result.erro)
    return BackupValidateResponse(
        ok=True,
        criado_em=result.backup.criado_em,
        contagem=result.backup.contagem,
    )


@router.post("/restore", response_model=RestoreReport)
@limiter.limit(BACKUP_RESTORE_LIMIT)
async def restore_backup(
    request: Request,
    current_user: Annotated[Manager, Depends(require_manager)],
    service: Annotated[BackupService, Depends(get_backup_service)],
    auto_backup: Annotated[AutoBackupService, Depends(get_auto_backup_service)],
    file: UploadFile = File(...),
    confirmacao: str = Form(...),
) -> RestoreReport:
    """Replace all data with the contents of a snapshot file.

    WARNING: This deletes ALL existing data in the backed-up tables!
    The form field ``confirmacao`` must be exactly ``RESTAURAR``.
    """
    if confirmacao.strip() != RESTORE_CONFIRMATION:
        raise ValidationError(f"Confirmation text must be {RESTORE_CONFIRMATION}")

    content = await read_upload_with_limit(file, MAX_BACKUP_SIZE)
    result = parse_backup_file(content)
    if not result.ok or result.backup is None:
        raise BackupValidationError(result.erro or "Invalid file")

    logger.warning(f"Backup restore started by {current_user.email}")
    report = await service.restore_backup(result.backup, on_progress=logger.info)
    auto_backup.record("restore", result.backup.contagem)
    return report


# =============================================================================
# Automatic Backup Settings
# =============================================================================


@router.get("/settings", response_model=AutoBackupSettings)
async def get_auto_backup_settings(
    current_user: Annotated[Manager, Depends(require_manager)],
    auto_backup: Annotated[AutoBackupService, Depends(get_auto_backup_service)],
) -> AutoBackupSettings:
    """Get automatic backup settings."""
    return auto_backup.get_settings()


@router.put("/settings", response_model=AutoBackupSettings)
async def update_auto_backup_settings(
    body: AutoBackupSettings,
    current_user: Annotated[Manager, Depends(require_manager)],
    auto_backup: Annotated[AutoBackupService, Depends(get_auto_backup_service)],
) -> AutoBackupSettings:
    """Update automatic backup settings."""
    logger.info(
        f"Auto-backup settings changed by {current_user.email}: "
        f"ativo={body.ativo}, frequenciaDias={body.frequencia_dias}"
    )
    return auto_backup.update_settings(body)


@router.get("/history", response_model=list[BackupHistoryItem])
async def get_backup_history(
    current_user: Annotated[Manager, Depends(require_manager)],
    auto_backup: Annotated[AutoBackupService, Depends(get_auto_backup_service)],
) -> list[BackupHistoryItem]:
    """Get recent exports and restores, newest first."""
    return auto_backup.get_history()


@router.get("/status", response_model=BackupStatusResponse)
async def get_backup_status(
    current_user: Annotated[Manager, Depends(require_manager)],
    auto_backup: Annotated[AutoBackupService, Depends(get_auto_backup_service)],
) -> BackupStatusResponse:
    """Get the last backup date and when the next automatic one is due."""
    return BackupStatusResponse(
        ultimo_backup=auto_backup.last_backup_date(),
        proximo_backup=auto_backup.next_backup_at(),
        vencido=auto_backup.is_backup_due(),
    )


# =============================================================================
# Backup Folder
# =============================================================================


def _folder_response(folder: BackupFolderPersistence) -> BackupFolderResponse:
    return BackupFolderResponse(
        folder=folder.get_saved_folder_name(),
        writable=folder.prepare_folder() is not None,
    )


@router.get("/folder", response_model=BackupFolderResponse)
async def get_backup_folder(
    current_user: Annotated[Manager, Depends(require_manager)],
    folder: Annotated[BackupFolderPersistence, Depends(get_folder_persistence)],
) -> BackupFolderResponse:
    """Get the configured backup folder."""
    return _folder_response(folder)


@router.put("/folder", response_model=BackupFolderResponse)
async def set_backup_folder(
    body: BackupFolderUpdate,
    current_user: Annotated[Manager, Depends(require_manager)],
    folder: Annotated[BackupFolderPersistence, Depends(get_folder_persistence)],
) -> BackupFolderResponse:
    """Choose the folder future backups are written to."""
    try:
        folder.choose_folder(body.path)
    except (OSError, ValueError) as e:
        logger.warning(f"Backup folder rejected: {e}")
        raise ValidationError("Invalid backup folder") from e
    return _folder_response(folder)


@router.delete("/folder", status_code=status.HTTP_204_NO_CONTENT)
async def clear_backup_folder(
    current_user: Annotated[Manager, Depends(require_manager)],
    folder: Annotated[BackupFolderPersistence, Depends(get_folder_persistence)],
) -> None:
    """Forget the configured folder; backups fall back to downloads."""
    folder.clear_folder()
