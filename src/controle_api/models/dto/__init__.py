"""Data Transfer Objects package."""

from controle_api.models.dto.backup import (
    AutoBackupSettings,
    BackupHistoryItem,
    BackupSnapshot,
    BackupValidation,
    RestoreReport,
)
from controle_api.models.dto.users import (
    BatchSummary,
    BatchUserRequest,
    BatchUserResponse,
    BatchUserResult,
    ProvisioningStatus,
    UserCreateRequest,
)

__all__ = [
    "AutoBackupSettings",
    "BackupHistoryItem",
    "BackupSnapshot",
    "BackupValidation",
    "RestoreReport",
    "BatchSummary",
    "BatchUserRequest",
    "BatchUserResponse",
    "BatchUserResult",
    "ProvisioningStatus",
    "UserCreateRequest",
]
