"""Centralized dependency injection factories for FastAPI.

The factories are plain functions, so the scheduler can build the same
object graph outside a request by passing the arguments explicitly.
"""

from fastapi import Depends

from controle_api.clients.base import DataStoreClient, IdentityProviderClient
from controle_api.clients.supabase import SupabaseDataStore, SupabaseIdentityProvider
from controle_api.config import get_settings
from controle_api.repositories.table_repository import TableRepository
from controle_api.services.auto_backup_service import AutoBackupService
from controle_api.services.backup_service import BackupService
from controle_api.services.folder_persistence import BackupFolderPersistence
from controle_api.services.local_state import LocalStateStore
from controle_api.services.user_provisioning_service import UserProvisioningService

# =============================================================================
# Backend Client Factories
# =============================================================================


def get_data_store() -> DataStoreClient:
    """Get data store client authenticated with the service role key."""
    settings = get_settings()
    return SupabaseDataStore(settings.supabase_url, settings.supabase_service_role_key)


def get_identity_provider() -> IdentityProviderClient:
    """Get identity provider client."""
    settings = get_settings()
    return SupabaseIdentityProvider(
        settings.supabase_url,
        settings.supabase_service_role_key,
        anon_key=settings.supabase_anon_key,
    )


# =============================================================================
# Backup Factories
# =============================================================================


def get_table_repository(store: DataStoreClient = Depends(get_data_store)) -> TableRepository:
    """Get TableRepository instance."""
    settings = get_settings()
    return TableRepository(
        store,
        page_size=settings.backup_page_size,
        batch_size=settings.backup_batch_size,
    )


def get_backup_service(repository: TableRepository = Depends(get_table_repository)) -> BackupService:
    """Get BackupService instance."""
    return BackupService(repository)


def get_local_state() -> LocalStateStore:
    """Get LocalStateStore instance."""
    return LocalStateStore(get_settings().state_file)


def get_folder_persistence(state: LocalStateStore = Depends(get_local_state)) -> BackupFolderPersistence:
    """Get BackupFolderPersistence instance."""
    return BackupFolderPersistence(state, get_settings().downloads_dir)


def get_auto_backup_service(
    state: LocalStateStore = Depends(get_local_state),
    backup_service: BackupService = Depends(get_backup_service),
    folder: BackupFolderPersistence = Depends(get_folder_persistence),
) -> AutoBackupService:
    """Get AutoBackupService instance."""
    return AutoBackupService(state, backup_service=backup_service, folder=folder)


# =============================================================================
# User Provisioning Factories
# =============================================================================


def get_user_provisioning_service(
    identity: IdentityProviderClient = Depends(get_identity_provider),
    store: DataStoreClient = Depends(get_data_store),
) -> UserProvisioningService:
    """Get UserProvisioningService instance."""
    settings = get_settings()
    return UserProvisioningService(
        identity,
        store,
        request_delay=settings.provisioning_request_delay_seconds,
        backoff=settings.provisioning_backoff_seconds,
        max_attempts=settings.provisioning_max_attempts,
        list_page_size=settings.identity_list_page_size,
        list_max_pages=settings.identity_list_max_pages,
    )
