"""Storage collaborators: object storage for bytes, a repository for rows."""

from __future__ import annotations

import threading
import uuid
from typing import Protocol

from .models import FileRecord, ModelVersion, PrintProfile


class ProfileNotFound(Exception):
    """Raised when a print profile expected to exist is gone."""


class FileNotFound(Exception):
    """Raised when a file record expected to exist is gone."""


class ObjectStorage(Protocol):
    """Protocol for the byte store (S3-compatible buckets in production)."""

    def upload(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str: ...
    def delete(self, key: str) -> None: ...


class ProfileRepository(Protocol):
    """
    Protocol for the relational store.

    ``delete_print_profile`` must be a compare-and-delete: it raises
    ``ProfileNotFound`` when the row is already gone, so two concurrent
    resolutions of one conflict cannot both succeed.
    """

    def get_version(self, version_id: str) -> ModelVersion | None: ...
    def insert_print_profile(self, profile: PrintProfile) -> str: ...
    def get_print_profile(self, profile_id: str) -> PrintProfile | None: ...
    def delete_print_profile(self, profile_id: str) -> None: ...
    def list_profiles_for_version(self, version_id: str) -> list[PrintProfile]: ...
    def insert_file(self, record: FileRecord) -> str: ...
    def get_file(self, file_id: str) -> FileRecord | None: ...
    def delete_file(self, file_id: str) -> None: ...
    def list_files_for_version(self, version_id: str) -> list[FileRecord]: ...


def storage_key(model_id: str, version: str, kind: str, filename: str) -> str:
    """Build an object key: ``models/{model}/{version}/{kind}/{filename}``."""
    return f"models/{model_id}/{version}/{kind}/{filename}"


class InMemoryObjectStorage:
    """Dict-backed object storage for tests and the CLI."""

    def __init__(self, base_url: str = "memory://bucket") -> None:
        self.base_url = base_url.rstrip("/")
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}

    def upload(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        self.objects[key] = data
        self.content_types[key] = content_type
        return f"{self.base_url}/{key}"

    def delete(self, key: str) -> None:
        self.objects.pop(key, None)
        self.content_types.pop(key, None)


class InMemoryRepository:
    """Lock-guarded, dict-backed repository for tests and the CLI."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.versions: dict[str, ModelVersion] = {}
        self.profiles: dict[str, PrintProfile] = {}
        self.files: dict[str, FileRecord] = {}

    def add_version(self, version: ModelVersion) -> ModelVersion:
        with self._lock:
            self.versions[version.id] = version
        return version

    def get_version(self, version_id: str) -> ModelVersion | None:
        return self.versions.get(version_id)

    def insert_print_profile(self, profile: PrintProfile) -> str:
        with self._lock:
            if not profile.id:
                profile = profile.model_copy(update={"id": str(uuid.uuid4())})
            self.profiles[profile.id] = profile
            return profile.id

    def get_print_profile(self, profile_id: str) -> PrintProfile | None:
        return self.profiles.get(profile_id)

    def delete_print_profile(self, profile_id: str) -> None:
        with self._lock:
            if self.profiles.pop(profile_id, None) is None:
                raise ProfileNotFound(profile_id)

    def list_profiles_for_version(self, version_id: str) -> list[PrintProfile]:
        with self._lock:
            rows = [p for p in self.profiles.values() if p.version_id == version_id]
        return sorted(rows, key=lambda p: (p.created_at, p.id))

    def insert_file(self, record: FileRecord) -> str:
        with self._lock:
            self.files[record.id] = record
            return record.id

    def get_file(self, file_id: str) -> FileRecord | None:
        return self.files.get(file_id)

    def delete_file(self, file_id: str) -> None:
        with self._lock:
            if self.files.pop(file_id, None) is None:
                raise FileNotFound(file_id)

    def list_files_for_version(self, version_id: str) -> list[FileRecord]:
        with self._lock:
            rows = [f for f in self.files.values() if f.version_id == version_id]
        return sorted(rows, key=lambda f: (f.created_at, f.id))
