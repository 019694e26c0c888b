from __future__ import annotations

import re
import time
from abc import ABC, abstractmethod
from functools import lru_cache
from pathlib import Path, PurePosixPath

from app.core.settings import settings
from app.services.workflow_errors import CollaboratorUnavailable, ValidationFailed


def _safe_filename(filename: str | None, fallback: str = "upload.bin") -> str:
    if not filename:
        return fallback
    name = Path(filename).name
    return re.sub(r"[^a-zA-Z0-9_.-]", "_", name) or fallback


class DocumentStore(ABC):
    provider: str = "local"

    @abstractmethod
    def store(self, content: bytes, filename: str) -> str:
        """Persist ``content`` and return the path token identifying it."""

    @abstractmethod
    def url_for(self, path: str) -> str:
        pass

    @abstractmethod
    def delete(self, path: str) -> None:
        pass


class LocalDocumentStore(DocumentStore):
    def __init__(self, base_path: str, base_url: str):
        self.base_path = Path(base_path)
        self.base_url = base_url.rstrip("/")
        self.provider = "local"
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _resolve_safe_path(self, path: str) -> Path:
        if "\\" in path:
            raise ValueError("Invalid document path")
        key_path = PurePosixPath(path)
        if key_path.is_absolute() or ".." in key_path.parts:
            raise ValueError("Invalid document path")
        base = self.base_path.resolve()
        resolved = (base / Path(path)).resolve()
        if resolved != base and base not in resolved.parents:
            raise ValueError("Invalid document path")
        return resolved

    def store(self, content: bytes, filename: str) -> str:
        if not content:
            raise ValidationFailed(
                "Uploaded document is empty", details={"filename": filename or ""}
            )
        path = f"{int(time.time())}_{_safe_filename(filename)}"
        # Two uploads of the same name within one second must not overwrite each other.
        counter = 1
        while self._resolve_safe_path(path).exists():
            path = f"{int(time.time())}_{counter}_{_safe_filename(filename)}"
            counter += 1
        try:
            target = self._resolve_safe_path(path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as exc:
            raise CollaboratorUnavailable("document_store", "Failed to store document") from exc
        return path

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def delete(self, path: str) -> None:
        try:
            target = self._resolve_safe_path(path)
            target.unlink(missing_ok=True)
        except OSError as exc:
            raise CollaboratorUnavailable("document_store", "Failed to delete document") from exc


@lru_cache(maxsize=1)
def get_document_store() -> DocumentStore:
    return LocalDocumentStore(
        base_path=settings.document_storage_path,
        base_url=settings.document_base_url,
    )
