"""
File storage collaborator for audit exports.

``FileStorage`` is the seam the audit exporter writes through; production
deployments plug in their object store, the scheduled job ships with
``LocalFileStorage`` which writes into a directory and returns ``file://``
URLs.  Implementations signal failure by raising ``OSError`` or
``ExportError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from settlement_kernel.logging_config import get_logger

logger = get_logger("services.file_storage")


@dataclass(frozen=True)
class StoredFile:
    url: str
    file_name: str
    content_type: str
    size: int


class FileStorage(Protocol):
    """Stores a blob and returns a retrievable reference."""

    def store(self, file_name: str, content: bytes, content_type: str) -> StoredFile:
        ...


class LocalFileStorage:
    """Writes files under ``base_dir``; the directory is created on demand."""

    def __init__(self, base_dir: Path | str):
        self._base_dir = Path(base_dir)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def store(self, file_name: str, content: bytes, content_type: str) -> StoredFile:
        if Path(file_name).name != file_name:
            raise ValueError(f"file_name must not contain a path: {file_name!r}")

        self._base_dir.mkdir(parents=True, exist_ok=True)
        path = self._base_dir / file_name
        path.write_bytes(content)

        stored = StoredFile(
            url=path.resolve().as_uri(),
            file_name=file_name,
            content_type=content_type,
            size=len(content),
        )
        logger.debug("file_stored", extra={"url": stored.url, "size": stored.size})
        return stored
