"""Backup folder persistence with download fallback.

A single user-chosen folder is cached in the local state store. Saving a
backup writes into that folder when it is still writable; otherwise the
content is handed to a download handler instead. Saving never raises:
callers only learn whether the folder write happened.
"""

import logging
import os
from collections.abc import Callable
from pathlib import Path

from controle_api.services.local_state import LocalStateStore

logger = logging.getLogger(__name__)

# (content, file_name) -> None
DownloadHandler = Callable[[str, str], None]

FOLDER_KEY = "backup-dir"


class BackupFolderPersistence:
    """Cached backup folder and file writer."""

    def __init__(
        self,
        state: LocalStateStore,
        downloads_dir: Path,
        download: DownloadHandler | None = None,
    ) -> None:
        """Initialize folder persistence.

        Args:
            state: Local state store holding the cached folder
            downloads_dir: Directory used by the default download handler
            download: Optional fallback handler replacing the default
        """
        self.state = state
        self.downloads_dir = downloads_dir
        self._download = download or self._download_to_dir

    def _download_to_dir(self, content: str, file_name: str) -> None:
        """Default fallback: drop the file into the downloads directory."""
        self.downloads_dir.mkdir(parents=True, exist_ok=True)
        (self.downloads_dir / file_name).write_text(content, encoding="utf-8")
        logger.info(f"Backup downloaded to {self.downloads_dir / file_name}")

    @staticmethod
    def _is_writable(folder: Path) -> bool:
        return folder.is_dir() and os.access(folder, os.W_OK)

    def choose_folder(self, path: str | Path) -> str:
        """Cache a folder for future backups, creating it if needed.

        Args:
            path: Folder path chosen by the user

        Returns:
            The folder name

        Raises:
            OSError: If the folder cannot be created
            ValueError: If the path exists but is not a directory
        """
        folder = Path(path).expanduser().resolve()
        folder.mkdir(parents=True, exist_ok=True)
        if not folder.is_dir():
            raise ValueError(f"Not a directory: {folder}")
        self.state.set(FOLDER_KEY, str(folder))
        return folder.name

    def get_folder(self) -> Path | None:
        """Get the cached folder, if any."""
        value = self.state.get(FOLDER_KEY)
        return Path(value) if isinstance(value, str) and value else None

    def get_saved_folder_name(self) -> str | None:
        """Get the cached folder's name, if any."""
        folder = self.get_folder()
        return folder.name if folder else None

    def clear_folder(self) -> None:
        """Forget the cached folder."""
        self.state.delete(FOLDER_KEY)

    def prepare_folder(self) -> Path | None:
        """Check write permission on the cached folder before long work starts.

        Returns:
            The folder ready for writing, or None
        """
        folder = self.get_folder()
        if folder is None:
            return None
        if self._is_writable(folder):
            return folder
        logger.warning(f"Permission denied for backup folder {folder}")
        return None

    def save_backup_file(
        self,
        content: str,
        file_name: str,
        folder: Path | None = None,
        on_fallback: DownloadHandler | None = None,
    ) -> bool:
        """Write a backup into the folder, falling back to a download.

        Args:
            content: Serialized backup
            file_name: Target file name (directory parts are stripped)
            folder: Folder already checked by prepare_folder(); when omitted
                the cached folder is checked now
            on_fallback: Handler overriding the default download for this call

        Returns:
            True if written to the folder, False if the fallback was used
        """
        file_name = Path(file_name).name
        target = folder or self.get_folder()
        if target is not None:
            try:
                if folder is None and not self._is_writable(target):
                    raise PermissionError(f"Permission denied: {target}")
                (target / file_name).write_text(content, encoding="utf-8")
                return True
            except OSError as e:
                logger.warning(f"Could not write backup to folder, using download: {e}")

        handler = on_fallback or self._download
        try:
            handler(content, file_name)
        except OSError as e:
            logger.error(f"Backup download fallback failed for {file_name}: {e}")
        return False
