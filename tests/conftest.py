"""Shared fixtures: a fresh in-memory service with one model version."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from print_profile_engine import (
    EngineConfig,
    InMemoryObjectStorage,
    InMemoryRepository,
    ModelVersion,
    PrintProfileService,
    UploadedFile,
)

from tests.archives import bambu_3mf, orca_3mf, prusa_3mf

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
VERSION_ID = "ver-1"


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def repository() -> InMemoryRepository:
    repo = InMemoryRepository()
    repo.add_version(ModelVersion(id=VERSION_ID, model_id="model-1", version="v1"))
    return repo


@pytest.fixture
def storage() -> InMemoryObjectStorage:
    return InMemoryObjectStorage()


@pytest.fixture
def service(repository: InMemoryRepository, storage: InMemoryObjectStorage) -> PrintProfileService:
    return PrintProfileService(repository, storage, config=EngineConfig(pending_decision_ttl_seconds=600))


@pytest.fixture
def bambu_upload() -> UploadedFile:
    return UploadedFile(filename="Benchy X1C.3mf", content=bambu_3mf())


@pytest.fixture
def orca_upload() -> UploadedFile:
    return UploadedFile(filename="benchy-voron.3mf", content=orca_3mf())


@pytest.fixture
def prusa_upload() -> UploadedFile:
    return UploadedFile(filename="benchy_mk4.3mf", content=prusa_3mf())
