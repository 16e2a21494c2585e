"""
Version completeness and file category limits.

A complete version has:
- Model file(s): the 3D geometry (STL, OBJ, PLY), unbounded
- Slicer file: one 3MF with print settings
- Image file: one preview image (a stored thumbnail counts)

Files whose extension maps to no category (gcode, pdf, ...) sit outside
this system and are never limited.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Iterable, Protocol

from .config import CompletenessConfig
from .models import (
    CompletenessCategory,
    CompletenessStatus,
    Decision,
    DenialCode,
    utcnow,
)

CATEGORY_INFO: dict[CompletenessCategory, dict[str, str]] = {
    CompletenessCategory.MODEL: {
        "label": "Model Files",
        "singular_label": "Model",
        "description": "3D printable mesh files",
        "add_label": "Add Model",
    },
    CompletenessCategory.SLICER: {
        "label": "Slicer File",
        "singular_label": "Slicer",
        "description": "Container with print settings",
        "add_label": "Add 3MF",
    },
    CompletenessCategory.IMAGE: {
        "label": "Preview Image",
        "singular_label": "Image",
        "description": "Preview image for the model",
        "add_label": "Add Image",
    },
}

_LIMIT_LABELS: dict[CompletenessCategory, str] = {
    CompletenessCategory.MODEL: "model files",
    CompletenessCategory.SLICER: "slicer file",
    CompletenessCategory.IMAGE: "preview image",
}


class CompletenessFile(Protocol):
    """Anything with an extension and a creation time, e.g. ``FileRecord``."""

    extension: str
    created_at: datetime


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def format_grace_period_remaining(hours_remaining: float) -> str:
    """"45m remaining" for an hour or less, otherwise "5h remaining"."""
    if hours_remaining <= 1:
        return f"{math.ceil(hours_remaining * 60)}m remaining"
    return f"{math.ceil(hours_remaining)}h remaining"


class CompletenessEngine:
    """
    Classifies files and gates additions and removals for one model version.

    Usage:
        engine = CompletenessEngine()
        engine.classify("STL")                       # CompletenessCategory.MODEL
        engine.status(files, has_thumbnail=True)
        engine.can_add(files, CompletenessCategory.SLICER)
        engine.can_remove(file)
    """

    def __init__(self, config: CompletenessConfig | None = None):
        self.config = config or CompletenessConfig()
        self._by_extension: dict[str, CompletenessCategory] = {}
        for category, extensions in self.config.category_extensions.items():
            for ext in extensions:
                self._by_extension[ext.lower().lstrip(".")] = category

    def classify(self, extension: str) -> CompletenessCategory | None:
        """Map an extension ("stl", ".STL") to its category, or None."""
        return self._by_extension.get(extension.lower().strip().lstrip("."))

    def limit(self, category: CompletenessCategory) -> int | None:
        """Maximum files allowed in *category*; None means unbounded."""
        return self.config.category_limits.get(category)

    def accepted_types(self, category: CompletenessCategory) -> str:
        """File input accept string, e.g. ".stl,.obj,.ply"."""
        return ",".join(f".{ext}" for ext in self.config.category_extensions.get(category, []))

    def status(
        self,
        files: Iterable[CompletenessFile],
        has_thumbnail: bool = False,
    ) -> CompletenessStatus:
        counts = {category: 0 for category in CompletenessCategory}
        for f in files:
            category = self.classify(f.extension)
            if category is not None:
                counts[category] += 1

        if has_thumbnail:
            counts[CompletenessCategory.IMAGE] += 1

        has_model = counts[CompletenessCategory.MODEL] > 0
        has_slicer = counts[CompletenessCategory.SLICER] > 0
        has_image = counts[CompletenessCategory.IMAGE] > 0

        return CompletenessStatus(
            counts=counts,
            has_model=has_model,
            has_slicer=has_slicer,
            has_image=has_image,
            is_complete=has_model and has_slicer and has_image,
            missing_categories=[c for c in CompletenessCategory if counts[c] == 0],
        )

    def can_add(
        self,
        files: Iterable[CompletenessFile],
        category: CompletenessCategory | None,
        has_thumbnail: bool = False,
    ) -> Decision:
        """Check whether one more file of *category* fits the version."""
        if category is None:
            return Decision.allow()

        limit = self.limit(category)
        if limit is None:
            return Decision.allow()

        current = self.status(files, has_thumbnail=has_thumbnail).counts[category]
        if current < limit:
            return Decision.allow()

        if category == CompletenessCategory.SLICER:
            reason = (
                "This version already has a slicer file. "
                "Create a new version to use different settings."
            )
        elif category == CompletenessCategory.IMAGE:
            reason = "This version already has a preview image."
        else:
            reason = f"Maximum {_LIMIT_LABELS[category]} limit reached."
        return Decision.deny(DenialCode.CATEGORY_LIMIT_EXCEEDED, reason)

    def can_add_file(
        self,
        files: Iterable[CompletenessFile],
        extension: str,
        has_thumbnail: bool = False,
    ) -> Decision:
        return self.can_add(files, self.classify(extension), has_thumbnail=has_thumbnail)

    def can_remove(self, file: CompletenessFile, now: datetime | None = None) -> Decision:
        """
        Check the removal grace period for *file*.

        Within the window the decision carries ``hours_remaining`` rounded up.
        """
        now = _as_utc(now or utcnow())
        grace = self.config.grace_period_hours
        hours_since = (now - _as_utc(file.created_at)).total_seconds() / 3600

        if hours_since > grace:
            return Decision.deny(
                DenialCode.REMOVAL_WINDOW_EXPIRED,
                f"This file was added more than {grace:g} hours ago and cannot be removed.",
            )

        return Decision.allow(hours_remaining=math.ceil(grace - hours_since))

    def hours_remaining(self, file: CompletenessFile, now: datetime | None = None) -> float | None:
        """Exact hours left in the grace period, or None once it has passed."""
        now = _as_utc(now or utcnow())
        left = self.config.grace_period_hours - (now - _as_utc(file.created_at)).total_seconds() / 3600
        return left if left >= 0 else None
