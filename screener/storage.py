from __future__ import annotations

import logging
import re
import uuid
from pathlib import Path

log = logging.getLogger(__name__)

_SAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


class DocumentStore:
    """Document binaries on the local filesystem, keyed by a relative storage path."""

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, storage_path: str) -> Path:
        path = (self.root / storage_path).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise ValueError(f"Storage path escapes store root: {storage_path!r}")
        return path

    def save(self, submission_id: int, file_name: str, content: bytes) -> str:
        safe = _SAFE_NAME_RE.sub("_", Path(file_name).name).strip("._") or "document"
        storage_path = f"{submission_id}/{uuid.uuid4().hex[:12]}-{safe}"
        path = self._resolve(storage_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return storage_path

    def read(self, storage_path: str) -> bytes:
        return self._resolve(storage_path).read_bytes()

    def remove(self, storage_paths: list[str]) -> list[str]:
        """Delete files, returning the paths that could not be removed."""
        failed: list[str] = []
        for storage_path in storage_paths:
            try:
                self._resolve(storage_path).unlink(missing_ok=True)
            except (OSError, ValueError) as exc:
                log.warning("Storage cleanup failed for %s: %s", storage_path, exc)
                failed.append(storage_path)
        return failed
