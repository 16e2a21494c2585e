"""
print_profile_engine — 3MF Print Profile Engine

Parses sliced 3MF containers from several slicers into one print-profile
representation, detects printer-identity conflicts between profiles of a
model version, and enforces per-version file completeness rules.
"""

from .models import (
    SlicerType,
    CompletenessCategory,
    FileKind,
    ConflictAction,
    UploadStatus,
    DenialCode,
    PrintSettings,
    PlateInfo,
    ProfileMetadata,
    ParsedProfile,
    PrintProfile,
    FileRecord,
    ModelVersion,
    UploadedFile,
    CompletenessStatus,
    Decision,
    ConflictInfo,
    UploadOutcome,
    BatchUploadReport,
    SourceFileParseReport,
    FileAddOutcome,
    normalize_printer_name,
)
from .config import CompletenessConfig, EngineConfig
from .archive import ArchiveUnreadable, extract_allowed, extract_thumbnail
from .parsers.base import ParseFailed
from .dispatcher import PARSERS, ParseOutcome, ParseStatus, parse_container
from .matching import find_conflict, is_conflict, levenshtein, rank_conflicts, similarity
from .completeness import CATEGORY_INFO, CompletenessEngine, format_grace_period_remaining
from .conflicts import ConflictResolver, PendingDecision, PendingDecisionNotFound
from .storage import (
    FileNotFound,
    InMemoryObjectStorage,
    InMemoryRepository,
    ProfileNotFound,
)
from .service import ConflictResolutionError, PrintProfileService, VersionNotFound
from .utils import create_stored_filename, extract_extension, format_duration, is_3mf_file

__all__ = [
    # Enums
    "SlicerType",
    "CompletenessCategory",
    "FileKind",
    "ConflictAction",
    "UploadStatus",
    "DenialCode",
    "ParseStatus",
    # Models
    "PrintSettings",
    "PlateInfo",
    "ProfileMetadata",
    "ParsedProfile",
    "PrintProfile",
    "FileRecord",
    "ModelVersion",
    "UploadedFile",
    "CompletenessStatus",
    "Decision",
    "ConflictInfo",
    "UploadOutcome",
    "BatchUploadReport",
    "SourceFileParseReport",
    "FileAddOutcome",
    "ParseOutcome",
    "PendingDecision",
    # Config
    "CompletenessConfig",
    "EngineConfig",
    # Parsing
    "PARSERS",
    "parse_container",
    "extract_allowed",
    "extract_thumbnail",
    # Matching
    "normalize_printer_name",
    "levenshtein",
    "similarity",
    "is_conflict",
    "rank_conflicts",
    "find_conflict",
    # Completeness
    "CATEGORY_INFO",
    "CompletenessEngine",
    "format_grace_period_remaining",
    # Service & Storage
    "PrintProfileService",
    "ConflictResolver",
    "InMemoryObjectStorage",
    "InMemoryRepository",
    # Helpers
    "format_duration",
    "extract_extension",
    "is_3mf_file",
    "create_stored_filename",
    # Exceptions
    "ArchiveUnreadable",
    "ParseFailed",
    "PendingDecisionNotFound",
    "ConflictResolutionError",
    "VersionNotFound",
    "ProfileNotFound",
    "FileNotFound",
]
