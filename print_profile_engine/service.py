"""
Print profile service: upload → parse → match → persist or hold.

High-level interface that chains the archive sandbox, the parser chain, the
printer-identity matcher, the pending-decision registry, and the
completeness engine over the two storage collaborators.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from .completeness import CompletenessEngine
from .config import EngineConfig
from .conflicts import ConflictResolver, ConflictState, PendingDecision, PendingDecisionNotFound
from .dispatcher import PARSERS, ParseStatus, parse_container
from .matching import rank_conflicts
from .models import (
    BatchUploadReport,
    CompletenessStatus,
    ConflictAction,
    ConflictInfo,
    Decision,
    FileAddOutcome,
    FileKind,
    FileRecord,
    ModelVersion,
    ParsedProfile,
    PrintProfile,
    SourceFileParseReport,
    UploadedFile,
    UploadOutcome,
    UploadStatus,
    utcnow,
)
from .parsers.base import BaseParser
from .storage import (
    FileNotFound,
    ObjectStorage,
    ProfileNotFound,
    ProfileRepository,
    storage_key,
)
from .utils import create_stored_filename, extract_extension

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
KEEP_BOTH_SUFFIX = " (2)"


class VersionNotFound(Exception):
    """Raised when a model version does not exist."""


class ConflictResolutionError(Exception):
    """Raised when a held conflict can no longer be resolved as requested."""


class PrintProfileService:
    """
    Orchestrates print-profile uploads and version file management.

    Usage:
        service = PrintProfileService(repository, storage)

        outcome = service.upload_profile(version_id, uploaded)
        if outcome.status == UploadStatus.CONFLICT:
            # ask the user, then:
            profile = service.resolve_conflict(
                version_id,
                outcome.conflict.existing_profile_id,
                ConflictAction.KEEP_BOTH,
                uploaded,
            )
    """

    def __init__(
        self,
        repository: ProfileRepository,
        storage: ObjectStorage,
        config: EngineConfig | None = None,
        resolver: ConflictResolver | None = None,
        completeness: CompletenessEngine | None = None,
        parsers: tuple[BaseParser, ...] = PARSERS,
    ):
        self.repository = repository
        self.storage = storage
        self.config = config or EngineConfig()
        self.resolver = resolver or ConflictResolver(self.config.pending_decision_ttl_seconds)
        self.completeness = completeness or CompletenessEngine(self.config.completeness)
        self.parsers = parsers

    # ------------------------------------------------------------------
    # Print profiles
    # ------------------------------------------------------------------

    def upload_profile(
        self,
        version_id: str,
        file: UploadedFile,
        now: datetime | None = None,
    ) -> UploadOutcome:
        """
        Parse a 3MF and persist it as a profile, unless its printer collides
        with an existing profile of the version.

        On a collision nothing is written; the outcome carries the conflict
        and a pending decision is held until ``resolve_conflict``.
        """
        version = self._get_version(version_id)

        if extract_extension(file.filename) != "3mf":
            return UploadOutcome(status=UploadStatus.NOT_3MF)

        result = parse_container(file.content, self.parsers, self.config.extraction_workers)
        if result.status == ParseStatus.UNKNOWN_FORMAT:
            return UploadOutcome(status=UploadStatus.UNKNOWN_FORMAT)
        if result.status == ParseStatus.PARSE_ERROR:
            return UploadOutcome(status=UploadStatus.PARSE_ERROR, error=result.error)
        parsed = result.profile

        existing = self.repository.list_profiles_for_version(version_id)
        matches = rank_conflicts(parsed, existing, self.config.similarity_threshold)
        if matches:
            conflicting, score = matches[0]
            pending = self.resolver.hold(
                version_id,
                file.content,
                file.filename,
                conflicting.id,
                parsed,
                score,
                now=now,
            )
            logger.info(
                "Profile upload for version %s conflicts with %s (%r ~ %r, %.2f)",
                version_id,
                conflicting.id,
                parsed.printer_name,
                conflicting.printer_name,
                score,
            )
            return UploadOutcome(
                status=UploadStatus.CONFLICT,
                conflict=ConflictInfo(
                    existing_profile_id=conflicting.id,
                    existing_printer_name=conflicting.printer_name,
                    existing_created_at=conflicting.created_at,
                    new_printer_name=parsed.printer_name,
                    new_metadata=parsed.metadata,
                    similarity=score,
                    expires_at=pending.expires_at,
                ),
            )

        profile = self._create_profile(version, file, parsed, now)
        logger.info(
            "print_profile_uploaded: profile=%s version=%s printer=%r slicer=%s",
            profile.id,
            version_id,
            profile.printer_name,
            profile.slicer_type.value if profile.slicer_type else None,
        )
        return UploadOutcome(status=UploadStatus.PERSISTED, profile=profile)

    def resolve_conflict(
        self,
        version_id: str,
        existing_profile_id: str,
        action: ConflictAction | str,
        file: UploadedFile,
        now: datetime | None = None,
    ) -> PrintProfile:
        """
        Complete a held upload by replacing the conflicting profile or by
        keeping both.

        Raises:
            PendingDecisionNotFound: No live pending decision for this file.
            ConflictResolutionError: The file no longer parses, or the profile
                to replace is already gone.
        """
        action = ConflictAction(action)
        version = self._get_version(version_id)
        decision = self.resolver.take(version_id, file.content, existing_profile_id, now=now)

        # The old profile is only removed once its replacement is persisted.
        try:
            parsed = self._reparse(file)
            if action == ConflictAction.REPLACE:
                if self.repository.get_print_profile(existing_profile_id) is None:
                    raise ConflictResolutionError(f"Profile {existing_profile_id} no longer exists")
            else:
                parsed = parsed.model_copy(
                    update={"printer_name": f"{parsed.printer_name}{KEEP_BOTH_SUFFIX}"}
                )

            profile = self._create_profile(version, file, parsed, now)
            if action == ConflictAction.REPLACE:
                try:
                    self._delete_profile_record(existing_profile_id)
                except ConflictResolutionError:
                    # Lost a race for the old record; undo our insert.
                    self._delete_profile_record(profile.id)
                    raise
        except Exception:
            self.resolver.restore(decision)
            raise

        if action == ConflictAction.REPLACE:
            decision.state = ConflictState.RESOLVED_REPLACE
        else:
            decision.state = ConflictState.RESOLVED_KEEP_BOTH
        logger.info(
            "print_profile_conflict_resolved: profile=%s version=%s action=%s existing=%s",
            profile.id,
            version_id,
            action.value,
            existing_profile_id,
        )
        return profile

    def cancel_conflict(self, version_id: str, file: UploadedFile) -> bool:
        """Drop a held conflict without persisting anything."""
        return self.resolver.discard(version_id, file.content) is not None

    def purge_expired_conflicts(self, now: datetime | None = None) -> list[PendingDecision]:
        return self.resolver.purge_expired(now)

    def batch_upload(
        self,
        version_id: str,
        files: list[UploadedFile],
        now: datetime | None = None,
    ) -> BatchUploadReport:
        report = BatchUploadReport()
        for file in files:
            outcome = self.upload_profile(version_id, file, now=now)
            if outcome.status == UploadStatus.PERSISTED:
                report.successful.append(outcome.profile)
            elif outcome.status == UploadStatus.CONFLICT:
                report.conflicts.append(outcome.conflict)
            else:
                report.failed.append((file.filename, outcome.error or outcome.status.value))
        return report

    def list_profiles(self, version_id: str) -> list[PrintProfile]:
        self._get_version(version_id)
        profiles = self.repository.list_profiles_for_version(version_id)
        return sorted(profiles, key=lambda p: p.printer_name.lower())

    def delete_profile(self, profile_id: str) -> None:
        """
        Delete a profile and its thumbnail.

        The profile's file is deleted too when it was uploaded through the
        profile flow; a version source file is left in place.
        """
        self._delete_profile_record(profile_id, raise_as=ProfileNotFound)
        logger.info("print_profile_deleted: profile=%s", profile_id)

    def create_profile_from_source_file(
        self,
        version: ModelVersion,
        record: FileRecord,
        content: bytes,
        now: datetime | None = None,
    ) -> SourceFileParseReport:
        """
        Auto-parse a 3MF that was added as a version source file.

        Reuses the existing file record.  Failures are reported, not raised,
        so a bad 3MF never blocks the file upload itself.
        """
        result = parse_container(content, self.parsers, self.config.extraction_workers)
        if result.status == ParseStatus.UNKNOWN_FORMAT:
            return SourceFileParseReport(success=False, error="Unsupported slicer format")
        if result.status == ParseStatus.PARSE_ERROR:
            return SourceFileParseReport(success=False, error=result.error or "Failed to parse 3MF")

        parsed = result.profile
        thumbnail_path = None
        try:
            thumbnail_path = self._upload_thumbnail(version, record.filename, parsed, "-profile-thumb")
            profile = self._insert_profile(version.id, record.id, parsed, thumbnail_path, now)
        except Exception as e:
            logger.error("Auto-parse of %s failed: %s", record.original_name, e)
            if thumbnail_path:
                self._delete_object(thumbnail_path)
            return SourceFileParseReport(success=False, error=str(e))

        return SourceFileParseReport(success=True, profile_id=profile.id)

    # ------------------------------------------------------------------
    # Version files
    # ------------------------------------------------------------------

    def source_files(self, version_id: str) -> list[FileRecord]:
        return [
            f
            for f in self.repository.list_files_for_version(version_id)
            if f.kind == FileKind.SOURCE
        ]

    def completeness_status(self, version_id: str) -> CompletenessStatus:
        version = self._get_version(version_id)
        return self.completeness.status(
            self.source_files(version_id), has_thumbnail=version.has_thumbnail
        )

    def add_file(
        self,
        version_id: str,
        file: UploadedFile,
        now: datetime | None = None,
    ) -> FileAddOutcome:
        """
        Store a file on a version if its completeness category has room.

        A 3MF is also auto-parsed into a print profile.
        """
        version = self._get_version(version_id)
        extension = extract_extension(file.filename)

        decision = self.completeness.can_add_file(
            self.source_files(version_id), extension, has_thumbnail=version.has_thumbnail
        )
        if not decision.allowed:
            logger.info("Rejected %s on version %s: %s", file.filename, version_id, decision.reason)
            return FileAddOutcome(decision=decision)

        record = self._store_file(version, file, FileKind.SOURCE, "source", now)

        report = None
        if extension == "3mf":
            report = self.create_profile_from_source_file(version, record, file.content, now)
        return FileAddOutcome(decision=decision, file=record, profile_report=report)

    def remove_file(self, file_id: str, now: datetime | None = None) -> Decision:
        """
        Remove a file while it is inside the grace period.

        Print profiles produced from the file are kept.
        """
        record = self.repository.get_file(file_id)
        if record is None:
            raise FileNotFound(file_id)

        decision = self.completeness.can_remove(record, now)
        if not decision.allowed:
            return decision

        self._delete_object(record.storage_key)
        self.repository.delete_file(file_id)
        return decision

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_version(self, version_id: str) -> ModelVersion:
        version = self.repository.get_version(version_id)
        if version is None:
            raise VersionNotFound(f"Version {version_id} not found")
        return version

    def _reparse(self, file: UploadedFile) -> ParsedProfile:
        result = parse_container(file.content, self.parsers, self.config.extraction_workers)
        if not result.success:
            raise ConflictResolutionError(
                f"Failed to parse 3MF: {result.error or result.status.value}"
            )
        return result.profile

    def _delete_profile_record(
        self,
        profile_id: str,
        raise_as: type[Exception] = ConflictResolutionError,
    ) -> None:
        profile = self.repository.get_print_profile(profile_id)
        try:
            self.repository.delete_print_profile(profile_id)
        except ProfileNotFound as e:
            raise raise_as(f"Profile {profile_id} no longer exists") from e
        if profile is None:
            return

        if profile.thumbnail_path:
            self._delete_object(profile.thumbnail_path)

        # Version source files outlive the profiles parsed from them.
        source = self.repository.get_file(profile.source_file_id)
        if source is not None and source.kind == FileKind.PROFILE:
            self._delete_object(source.storage_key)
            try:
                self.repository.delete_file(source.id)
            except FileNotFound:
                logger.warning("Profile file %s was already deleted", source.id)

    def _delete_object(self, key: str) -> None:
        try:
            self.storage.delete(key)
        except Exception as e:
            logger.warning("Failed to delete %s from storage: %s", key, e)

    def _store_file(
        self,
        version: ModelVersion,
        file: UploadedFile,
        kind: FileKind,
        storage_kind: str,
        now: datetime | None,
    ) -> FileRecord:
        stored_name = create_stored_filename(file.filename)
        key = storage_key(version.model_id, version.version, storage_kind, stored_name)
        content_type = file.content_type or DEFAULT_CONTENT_TYPE
        self.storage.upload(key, file.content, content_type)

        record = FileRecord(
            id=str(uuid.uuid4()),
            version_id=version.id,
            filename=stored_name,
            original_name=file.filename,
            extension=extract_extension(file.filename),
            size=file.size,
            storage_key=key,
            kind=kind,
            mime_type=content_type,
            created_at=now or utcnow(),
        )
        try:
            self.repository.insert_file(record)
        except Exception:
            self._delete_object(key)
            raise
        return record

    def _upload_thumbnail(
        self,
        version: ModelVersion,
        stored_name: str,
        parsed: ParsedProfile,
        suffix: str = "-thumb",
    ) -> str | None:
        if not parsed.thumbnail:
            return None
        base = stored_name[: -len(".3mf")] if stored_name.endswith(".3mf") else stored_name
        key = storage_key(version.model_id, version.version, "artifact", f"{base}{suffix}.png")
        self.storage.upload(key, parsed.thumbnail, "image/png")
        return key

    def _insert_profile(
        self,
        version_id: str,
        file_id: str,
        parsed: ParsedProfile,
        thumbnail_path: str | None,
        now: datetime | None,
    ) -> PrintProfile:
        timestamp = now or utcnow()
        profile = PrintProfile(
            id=str(uuid.uuid4()),
            version_id=version_id,
            source_file_id=file_id,
            printer_name=parsed.printer_name,
            slicer_type=parsed.slicer_type,
            thumbnail_path=thumbnail_path,
            metadata=parsed.metadata,
            created_at=timestamp,
            updated_at=timestamp,
        )
        profile_id = self.repository.insert_print_profile(profile)
        if profile_id != profile.id:
            profile = profile.model_copy(update={"id": profile_id})
        return profile

    def _create_profile(
        self,
        version: ModelVersion,
        file: UploadedFile,
        parsed: ParsedProfile,
        now: datetime | None,
    ) -> PrintProfile:
        record = self._store_file(version, file, FileKind.PROFILE, "slicer", now)
        thumbnail_path = None
        try:
            thumbnail_path = self._upload_thumbnail(version, record.filename, parsed)
            return self._insert_profile(version.id, record.id, parsed, thumbnail_path, now)
        except Exception:
            self._delete_object(record.storage_key)
            if thumbnail_path:
                self._delete_object(thumbnail_path)
            try:
                self.repository.delete_file(record.id)
            except FileNotFound:
                pass
            raise


__all__ = [
    "PrintProfileService",
    "VersionNotFound",
    "ConflictResolutionError",
    "PendingDecisionNotFound",
]
