"""
Print profile service tests — upload, conflicts, and version file management.

Groups:
  1. Upload → persisted profile
  2. Upload rejections (non-3MF, unknown slicer, unreadable archive)
  3. Conflict detection and resolution (keep both, replace, cancel)
  4. Resolution races and expiry
  5. Profile deletion and batch upload
  6. Version files: completeness limits, auto-parse, grace period
"""
from __future__ import annotations

from datetime import timedelta

import pytest

from print_profile_engine import (
    CompletenessCategory,
    EngineConfig,
    ConflictAction,
    ConflictResolutionError,
    FileKind,
    InMemoryObjectStorage,
    InMemoryRepository,
    ModelVersion,
    PendingDecisionNotFound,
    PrintProfileService,
    ProfileNotFound,
    SlicerType,
    UploadedFile,
    UploadStatus,
    VersionNotFound,
)

from tests.archives import ALT_PNG_BYTES, PNG_BYTES, bambu_3mf, plain_3mf
from tests.conftest import VERSION_ID


def _second_bambu(printer: str = "Bambu Lab X1 Carbon") -> UploadedFile:
    # Same printer, different slice: different bytes.
    return UploadedFile(
        filename="Benchy X1C fine.3mf",
        content=bambu_3mf(printer_model=printer, prediction=7200, weight=30.0, thumbnail=ALT_PNG_BYTES),
    )


# ---------------------------------------------------------------------------
# Group 1: Persisted uploads
# ---------------------------------------------------------------------------

def test_bambu_upload_end_to_end(service, repository, storage, bambu_upload, now) -> None:
    outcome = service.upload_profile(VERSION_ID, bambu_upload, now=now)

    assert outcome.status == UploadStatus.PERSISTED
    profile = outcome.profile
    assert profile.printer_name == "Bambu Lab X1 Carbon"
    assert profile.printer_name_normalized == "bambulabx1carbon"
    assert profile.slicer_type == SlicerType.BAMBU
    assert profile.metadata.print_time_seconds == 3600
    assert profile.metadata.filament_weight_grams == pytest.approx(25.4)
    assert profile.metadata.filament_summary == "PLA (#FF0000)"
    assert profile.created_at == now

    assert repository.get_print_profile(profile.id) == profile
    record = repository.get_file(profile.source_file_id)
    assert record.kind == FileKind.PROFILE
    assert record.original_name == "Benchy X1C.3mf"
    assert record.storage_key.startswith("models/model-1/v1/slicer/benchy-x1c-")
    assert storage.objects[record.storage_key] == bambu_upload.content
    assert storage.objects[profile.thumbnail_path] == PNG_BYTES
    assert profile.thumbnail_path.startswith("models/model-1/v1/artifact/")


def test_different_printers_coexist(service, bambu_upload, orca_upload, prusa_upload, now) -> None:
    for upload in (bambu_upload, orca_upload, prusa_upload):
        assert service.upload_profile(VERSION_ID, upload, now=now).persisted

    names = [p.printer_name for p in service.list_profiles(VERSION_ID)]
    assert names == [
        "Bambu Lab X1 Carbon",
        "Original Prusa MK4 Input Shaper 0.4 nozzle",
        "Voron 2.4 350",
    ]


def test_upload_to_missing_version(service, bambu_upload) -> None:
    with pytest.raises(VersionNotFound):
        service.upload_profile("nope", bambu_upload)


# ---------------------------------------------------------------------------
# Group 2: Rejections
# ---------------------------------------------------------------------------

def test_non_3mf_rejected(service, repository) -> None:
    outcome = service.upload_profile(VERSION_ID, UploadedFile(filename="benchy.stl", content=b"solid"))
    assert outcome.status == UploadStatus.NOT_3MF
    assert repository.files == {}


def test_unknown_slicer_rejected(service, repository, storage) -> None:
    outcome = service.upload_profile(VERSION_ID, UploadedFile(filename="mesh.3mf", content=plain_3mf()))
    assert outcome.status == UploadStatus.UNKNOWN_FORMAT
    assert repository.profiles == {}
    assert storage.objects == {}


def test_unreadable_archive_rejected(service, repository) -> None:
    outcome = service.upload_profile(VERSION_ID, UploadedFile(filename="bad.3mf", content=b"nope"))
    assert outcome.status == UploadStatus.PARSE_ERROR
    assert outcome.error
    assert repository.profiles == {}


# ---------------------------------------------------------------------------
# Group 3: Conflicts
# ---------------------------------------------------------------------------

def test_conflicting_upload_is_held_not_persisted(service, repository, storage, bambu_upload, now) -> None:
    first = service.upload_profile(VERSION_ID, bambu_upload, now=now).profile
    objects_before = dict(storage.objects)

    second = _second_bambu()
    outcome = service.upload_profile(VERSION_ID, second, now=now)

    assert outcome.status == UploadStatus.CONFLICT
    conflict = outcome.conflict
    assert conflict.existing_profile_id == first.id
    assert conflict.existing_printer_name == "Bambu Lab X1 Carbon"
    assert conflict.new_printer_name == "Bambu Lab X1 Carbon"
    assert conflict.similarity == 1.0
    assert conflict.new_metadata.print_time_seconds == 7200
    assert conflict.expires_at == now + timedelta(seconds=600)

    assert list(repository.profiles) == [first.id]
    assert storage.objects == objects_before
    assert service.resolver.get(VERSION_ID, second.content) is not None


def test_keep_both_yields_two_profiles(service, bambu_upload, now) -> None:
    first = service.upload_profile(VERSION_ID, bambu_upload, now=now).profile
    second = _second_bambu()
    service.upload_profile(VERSION_ID, second, now=now)

    kept = service.resolve_conflict(VERSION_ID, first.id, ConflictAction.KEEP_BOTH, second, now=now)

    assert kept.printer_name == "Bambu Lab X1 Carbon (2)"
    assert kept.metadata.print_time_seconds == 7200
    profiles = service.list_profiles(VERSION_ID)
    assert [p.id for p in profiles] == [first.id, kept.id]


def test_replace_swaps_profile_and_cleans_up(service, repository, storage, bambu_upload, now) -> None:
    first = service.upload_profile(VERSION_ID, bambu_upload, now=now).profile
    old_file = repository.get_file(first.source_file_id)
    second = _second_bambu()
    service.upload_profile(VERSION_ID, second, now=now)

    replaced = service.resolve_conflict(VERSION_ID, first.id, "replace", second, now=now)

    assert replaced.printer_name == "Bambu Lab X1 Carbon"
    assert [p.id for p in service.list_profiles(VERSION_ID)] == [replaced.id]
    assert repository.get_print_profile(first.id) is None
    assert first.thumbnail_path not in storage.objects
    assert repository.get_file(old_file.id) is None
    assert old_file.storage_key not in storage.objects
    assert storage.objects[replaced.thumbnail_path] == ALT_PNG_BYTES


def test_cancel_discards_pending_decision(service, repository, bambu_upload, now) -> None:
    first = service.upload_profile(VERSION_ID, bambu_upload, now=now).profile
    second = _second_bambu()
    service.upload_profile(VERSION_ID, second, now=now)

    assert service.cancel_conflict(VERSION_ID, second)
    assert not service.cancel_conflict(VERSION_ID, second)
    with pytest.raises(PendingDecisionNotFound):
        service.resolve_conflict(VERSION_ID, first.id, ConflictAction.KEEP_BOTH, second, now=now)
    assert list(repository.profiles) == [first.id]


def test_near_identical_name_conflicts(service, bambu_upload, now) -> None:
    service.upload_profile(VERSION_ID, bambu_upload, now=now)
    outcome = service.upload_profile(VERSION_ID, _second_bambu("Bambu Lab X1-Carbon"), now=now)
    assert outcome.status == UploadStatus.CONFLICT


def test_abbreviated_name_does_not_conflict(service, bambu_upload, now) -> None:
    service.upload_profile(VERSION_ID, bambu_upload, now=now)
    outcome = service.upload_profile(VERSION_ID, _second_bambu("Bambu Lab X1C"), now=now)
    assert outcome.persisted


def test_similar_but_distinct_name_keep_both(service, bambu_upload, now) -> None:
    first = service.upload_profile(VERSION_ID, bambu_upload, now=now).profile
    second = _second_bambu("Bambu Lab X1 Carbo")

    outcome = service.upload_profile(VERSION_ID, second, now=now)

    assert outcome.status == UploadStatus.CONFLICT
    assert 0.8 < outcome.conflict.similarity < 1.0
    assert outcome.conflict.similarity == pytest.approx(0.9375)

    kept = service.resolve_conflict(VERSION_ID, first.id, ConflictAction.KEEP_BOTH, second, now=now)

    profiles = service.list_profiles(VERSION_ID)
    assert {p.id for p in profiles} == {first.id, kept.id}
    assert [p.printer_name for p in profiles] == ["Bambu Lab X1 Carbo (2)", "Bambu Lab X1 Carbon"]


# ---------------------------------------------------------------------------
# Group 4: Races & expiry
# ---------------------------------------------------------------------------

def test_double_resolution_succeeds_once(service, bambu_upload, now) -> None:
    first = service.upload_profile(VERSION_ID, bambu_upload, now=now).profile
    second = _second_bambu()
    service.upload_profile(VERSION_ID, second, now=now)

    service.resolve_conflict(VERSION_ID, first.id, ConflictAction.REPLACE, second, now=now)
    with pytest.raises(PendingDecisionNotFound):
        service.resolve_conflict(VERSION_ID, first.id, ConflictAction.REPLACE, second, now=now)
    assert len(service.list_profiles(VERSION_ID)) == 1


def test_replace_of_vanished_profile_restores_decision(service, repository, bambu_upload, now) -> None:
    first = service.upload_profile(VERSION_ID, bambu_upload, now=now).profile
    second = _second_bambu()
    service.upload_profile(VERSION_ID, second, now=now)
    repository.delete_print_profile(first.id)

    with pytest.raises(ConflictResolutionError):
        service.resolve_conflict(VERSION_ID, first.id, ConflictAction.REPLACE, second, now=now)
    assert service.resolver.get(VERSION_ID, second.content) is not None
    assert repository.profiles == {}


def test_replace_losing_delete_race_rolls_back(service, repository, storage, bambu_upload, now, monkeypatch) -> None:
    first = service.upload_profile(VERSION_ID, bambu_upload, now=now).profile
    second = _second_bambu()
    service.upload_profile(VERSION_ID, second, now=now)
    objects_before = dict(storage.objects)
    delete = repository.delete_print_profile

    def delete_raced(profile_id: str) -> None:
        # Another request removes the old profile first.
        if profile_id == first.id:
            raise ProfileNotFound(profile_id)
        delete(profile_id)

    monkeypatch.setattr(repository, "delete_print_profile", delete_raced)

    with pytest.raises(ConflictResolutionError):
        service.resolve_conflict(VERSION_ID, first.id, ConflictAction.REPLACE, second, now=now)

    assert list(repository.profiles) == [first.id]
    assert storage.objects == objects_before
    assert service.resolver.get(VERSION_ID, second.content) is not None


class _FlakyStorage(InMemoryObjectStorage):
    """Object storage whose uploads can be switched to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.fail = False

    def upload(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        if self.fail:
            raise OSError("storage unavailable")
        return super().upload(key, data, content_type)


def test_replace_failing_upload_keeps_old_profile(repository, bambu_upload, now) -> None:
    storage = _FlakyStorage()
    service = PrintProfileService(repository, storage, config=EngineConfig(pending_decision_ttl_seconds=600))
    first = service.upload_profile(VERSION_ID, bambu_upload, now=now).profile
    second = _second_bambu()
    service.upload_profile(VERSION_ID, second, now=now)
    objects_before = dict(storage.objects)

    storage.fail = True
    with pytest.raises(OSError):
        service.resolve_conflict(VERSION_ID, first.id, ConflictAction.REPLACE, second, now=now)

    assert repository.get_print_profile(first.id) == first
    assert list(repository.profiles) == [first.id]
    assert storage.objects == objects_before
    assert service.resolver.get(VERSION_ID, second.content) is not None

    storage.fail = False
    replaced = service.resolve_conflict(VERSION_ID, first.id, ConflictAction.REPLACE, second, now=now)
    assert [p.id for p in service.list_profiles(VERSION_ID)] == [replaced.id]


def test_expired_conflict_cannot_be_resolved(service, repository, bambu_upload, now) -> None:
    first = service.upload_profile(VERSION_ID, bambu_upload, now=now).profile
    second = _second_bambu()
    service.upload_profile(VERSION_ID, second, now=now)

    later = now + timedelta(seconds=601)
    with pytest.raises(PendingDecisionNotFound):
        service.resolve_conflict(VERSION_ID, first.id, ConflictAction.KEEP_BOTH, second, now=later)
    assert list(repository.profiles) == [first.id]


def test_purge_expired_conflicts(service, bambu_upload, now) -> None:
    service.upload_profile(VERSION_ID, bambu_upload, now=now)
    service.upload_profile(VERSION_ID, _second_bambu(), now=now)

    assert service.purge_expired_conflicts(now + timedelta(minutes=5)) == []
    assert len(service.purge_expired_conflicts(now + timedelta(minutes=11))) == 1


# ---------------------------------------------------------------------------
# Group 5: Deletion & batch
# ---------------------------------------------------------------------------

def test_delete_profile_removes_profile_file(service, repository, storage, bambu_upload, now) -> None:
    profile = service.upload_profile(VERSION_ID, bambu_upload, now=now).profile
    record = repository.get_file(profile.source_file_id)

    service.delete_profile(profile.id)

    assert repository.profiles == {}
    assert repository.files == {}
    assert record.storage_key not in storage.objects
    assert profile.thumbnail_path not in storage.objects
    with pytest.raises(ProfileNotFound):
        service.delete_profile(profile.id)


def test_batch_upload_reports_each_file(service, bambu_upload, prusa_upload, now) -> None:
    report = service.batch_upload(
        VERSION_ID,
        [
            bambu_upload,
            prusa_upload,
            _second_bambu(),
            UploadedFile(filename="mesh.3mf", content=plain_3mf()),
            UploadedFile(filename="notes.txt", content=b"hi"),
        ],
        now=now,
    )

    assert [p.printer_name for p in report.successful] == [
        "Bambu Lab X1 Carbon",
        "Original Prusa MK4 Input Shaper 0.4 nozzle",
    ]
    assert len(report.conflicts) == 1
    assert report.failed == [("mesh.3mf", "unknown_format"), ("notes.txt", "not_3mf")]


# ---------------------------------------------------------------------------
# Group 6: Version files
# ---------------------------------------------------------------------------

def test_add_3mf_auto_parses_into_profile(service, repository, bambu_upload, now) -> None:
    outcome = service.add_file(VERSION_ID, bambu_upload, now=now)

    assert outcome.decision.allowed
    assert outcome.file.kind == FileKind.SOURCE
    assert outcome.profile_report.success
    profile = repository.get_print_profile(outcome.profile_report.profile_id)
    assert profile.source_file_id == outcome.file.id
    assert service.completeness_status(VERSION_ID).counts[CompletenessCategory.SLICER] == 1


def test_add_unparseable_3mf_still_stores_file(service, repository, now) -> None:
    outcome = service.add_file(VERSION_ID, UploadedFile(filename="mesh.3mf", content=plain_3mf()), now=now)

    assert outcome.decision.allowed
    assert outcome.file is not None
    assert not outcome.profile_report.success
    assert repository.profiles == {}


def test_second_slicer_file_denied(service, repository, bambu_upload, prusa_upload, now) -> None:
    service.add_file(VERSION_ID, bambu_upload, now=now)
    outcome = service.add_file(VERSION_ID, prusa_upload, now=now)

    assert not outcome.decision.allowed
    assert "new version" in outcome.decision.reason
    assert outcome.file is None
    assert len(repository.files) == 1


def test_profile_uploads_do_not_count_toward_completeness(service, bambu_upload, prusa_upload, now) -> None:
    service.upload_profile(VERSION_ID, bambu_upload, now=now)
    assert service.add_file(VERSION_ID, prusa_upload, now=now).decision.allowed


def test_models_unbounded_and_image_limited_by_thumbnail(now) -> None:
    repo = InMemoryRepository()
    repo.add_version(ModelVersion(id="v2", model_id="m", version="v1", has_thumbnail=True))
    service = PrintProfileService(repo, InMemoryObjectStorage())

    for i in range(3):
        stl = UploadedFile(filename=f"part{i}.stl", content=b"solid part")
        assert service.add_file("v2", stl, now=now).decision.allowed

    png = UploadedFile(filename="cover.png", content=PNG_BYTES, content_type="image/png")
    assert not service.add_file("v2", png, now=now).decision.allowed


def test_remove_file_within_grace_period_keeps_profile(service, repository, storage, bambu_upload, now) -> None:
    added = service.add_file(VERSION_ID, bambu_upload, now=now)

    decision = service.remove_file(added.file.id, now=now + timedelta(hours=23, minutes=59))

    assert decision.allowed
    assert repository.get_file(added.file.id) is None
    assert added.file.storage_key not in storage.objects
    assert repository.get_print_profile(added.profile_report.profile_id) is not None


def test_remove_file_after_grace_period_denied(service, repository, bambu_upload, now) -> None:
    added = service.add_file(VERSION_ID, bambu_upload, now=now)

    decision = service.remove_file(added.file.id, now=now + timedelta(hours=24, minutes=1))

    assert not decision.allowed
    assert repository.get_file(added.file.id) is not None


def test_delete_auto_parsed_profile_keeps_source_file(service, repository, bambu_upload, now) -> None:
    added = service.add_file(VERSION_ID, bambu_upload, now=now)
    service.delete_profile(added.profile_report.profile_id)
    assert repository.get_file(added.file.id) is not None
