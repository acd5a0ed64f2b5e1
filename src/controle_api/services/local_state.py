"""Local key-value state kept outside the data store.

Holds small per-installation values (backup folder, auto-backup settings,
backup history) that must survive restarts but are not application data,
so a restore never touches them.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class LocalStateStore:
    """JSON-file backed key-value store.

    Every operation reads or rewrites the whole file; values must be JSON
    serializable. An unreadable or corrupt file reads as empty.
    """

    def __init__(self, path: Path) -> None:
        """Initialize store with the file path (created on first write)."""
        self.path = path

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable state file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp_path, self.path)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value, or default when absent."""
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Store a value."""
        data = self._load()
        data[key] = value
        self._save(data)

    def delete(self, key: str) -> None:
        """Remove a value if present."""
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)
