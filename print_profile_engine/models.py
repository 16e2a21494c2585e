from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, computed_field


class SlicerType(str, Enum):
    BAMBU = "bambu"
    ORCA = "orca"
    PRUSA = "prusa"


class CompletenessCategory(str, Enum):
    MODEL = "model"
    SLICER = "slicer"
    IMAGE = "image"


class FileKind(str, Enum):
    """Role of a stored file within a model version."""

    SOURCE = "source"  # added through the version's file list
    PROFILE = "profile"  # uploaded through the print-profile flow


def normalize_printer_name(name: str) -> str:
    """Lowercase a printer name and strip everything but ``[a-z0-9]``.

    "Bambu Lab X1 Carbon" → "bambulabx1carbon"
    """
    lowered = name.lower()
    return "".join(ch for ch in lowered if ch.isascii() and ch.isalnum())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PrintSettings(BaseModel):
    layer_height: float | None = None  # mm
    infill: int | None = None  # percent, 0-100
    nozzle_temp: int | None = None  # celsius
    bed_temp: int | None = None  # celsius


class PlateInfo(BaseModel):
    count: int
    copies_per_plate: int


class ProfileMetadata(BaseModel):
    print_time_seconds: float | None = None
    filament_summary: str | None = None  # "PLA (#FF0000)" or "2x PLA (#FF0000, #0000FF) + PETG"
    settings: PrintSettings = Field(default_factory=PrintSettings)
    plate_info: PlateInfo | None = None
    filament_weight_grams: float | None = None


class ParsedProfile(BaseModel):
    """
    Output of a vendor parser, not yet persisted.

    ``printer_name_normalized`` is derived from ``printer_name`` on every
    access and is never stored on its own.
    """

    printer_name: str
    slicer_type: SlicerType
    thumbnail: bytes | None = Field(default=None, repr=False)
    metadata: ProfileMetadata = Field(default_factory=ProfileMetadata)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def printer_name_normalized(self) -> str:
        return normalize_printer_name(self.printer_name)


class PrintProfile(BaseModel):
    """A persisted print profile, owned by exactly one model version."""

    id: str
    version_id: str
    source_file_id: str
    printer_name: str
    slicer_type: SlicerType | None = None
    thumbnail_path: str | None = None
    metadata: ProfileMetadata | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def printer_name_normalized(self) -> str:
        return normalize_printer_name(self.printer_name)


class FileRecord(BaseModel):
    """Row describing one stored file of a model version."""

    id: str
    version_id: str
    filename: str
    original_name: str
    extension: str
    size: int
    storage_key: str
    kind: FileKind = FileKind.SOURCE
    mime_type: str = "application/octet-stream"
    created_at: datetime = Field(default_factory=utcnow)


class ModelVersion(BaseModel):
    id: str
    model_id: str
    version: str  # "v1", "v2", ...
    has_thumbnail: bool = False


class UploadedFile(BaseModel):
    """Bytes handed to the engine by the transport layer."""

    filename: str
    content: bytes = Field(repr=False)
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)


class CompletenessStatus(BaseModel):
    counts: dict[CompletenessCategory, int]
    has_model: bool
    has_slicer: bool
    has_image: bool
    is_complete: bool
    missing_categories: list[CompletenessCategory] = Field(default_factory=list)


class DenialCode(str, Enum):
    CATEGORY_LIMIT_EXCEEDED = "category_limit_exceeded"
    REMOVAL_WINDOW_EXPIRED = "removal_window_expired"


class Decision(BaseModel):
    """Outcome of a completeness or removal check. Denials are values, not errors."""

    allowed: bool
    reason: str | None = None
    denial: DenialCode | None = None
    hours_remaining: int | None = None

    @classmethod
    def allow(cls, hours_remaining: int | None = None) -> Decision:
        return cls(allowed=True, hours_remaining=hours_remaining)

    @classmethod
    def deny(cls, denial: DenialCode, reason: str) -> Decision:
        return cls(allowed=False, denial=denial, reason=reason)


class ConflictInfo(BaseModel):
    """Details surfaced to the caller when an upload collides with an existing profile."""

    existing_profile_id: str
    existing_printer_name: str
    existing_created_at: datetime
    new_printer_name: str
    new_metadata: ProfileMetadata | None = None
    similarity: float
    expires_at: datetime | None = None


class ConflictAction(str, Enum):
    REPLACE = "replace"
    KEEP_BOTH = "keep_both"


class UploadStatus(str, Enum):
    PERSISTED = "persisted"
    CONFLICT = "conflict_detected"
    NOT_3MF = "not_3mf"
    UNKNOWN_FORMAT = "unknown_format"
    PARSE_ERROR = "parse_error"


class UploadOutcome(BaseModel):
    status: UploadStatus
    profile: PrintProfile | None = None
    conflict: ConflictInfo | None = None
    error: str | None = None

    @property
    def persisted(self) -> bool:
        return self.status == UploadStatus.PERSISTED


class BatchUploadReport(BaseModel):
    """Result of uploading several 3MF files to one version."""

    successful: list[PrintProfile] = Field(default_factory=list)
    conflicts: list[ConflictInfo] = Field(default_factory=list)
    failed: list[tuple[str, str]] = Field(default_factory=list)  # (filename, error)


class SourceFileParseReport(BaseModel):
    success: bool
    profile_id: str | None = None
    error: str | None = None


class FileAddOutcome(BaseModel):
    """Result of adding a file to a version's file list."""

    decision: Decision
    file: FileRecord | None = None
    profile_report: SourceFileParseReport | None = None


def to_jsonable(model: BaseModel) -> dict[str, Any]:
    """Dump a model for JSON output, dropping raw thumbnail bytes."""
    return model.model_dump(mode="json", exclude={"thumbnail"})
