"""Services package."""

from controle_api.services.auto_backup_service import AutoBackupService
from controle_api.services.backup_service import BackupService
from controle_api.services.folder_persistence import BackupFolderPersistence
from controle_api.services.local_state import LocalStateStore
from controle_api.services.user_provisioning_service import UserProvisioningService

__all__ = [
    "AutoBackupService",
    "BackupFolderPersistence",
    "BackupService",
    "LocalStateStore",
    "UserProvisioningService",
]
