"""
Engine configuration.

Defaults live on the models; ``EngineConfig.from_env`` applies overrides
from ``PRINT_PROFILE_*`` environment variables.
"""

from __future__ import annotations

import os
from typing import Mapping

from pydantic import BaseModel, Field

from .models import CompletenessCategory

# Default extension table.  Extensions are lowercase and without the dot.
DEFAULT_CATEGORY_EXTENSIONS: dict[CompletenessCategory, list[str]] = {
    CompletenessCategory.MODEL: ["stl", "obj", "ply"],
    CompletenessCategory.SLICER: ["3mf"],
    CompletenessCategory.IMAGE: ["jpg", "jpeg", "png", "webp", "gif"],
}

# None means unbounded.
DEFAULT_CATEGORY_LIMITS: dict[CompletenessCategory, int | None] = {
    CompletenessCategory.MODEL: None,
    CompletenessCategory.SLICER: 1,
    CompletenessCategory.IMAGE: 1,
}

DEFAULT_GRACE_PERIOD_HOURS = 24.0
DEFAULT_SIMILARITY_THRESHOLD = 0.80
DEFAULT_PENDING_TTL_SECONDS = 3600


class CompletenessConfig(BaseModel):
    """Category table and limits for one ``CompletenessEngine``."""

    category_extensions: dict[CompletenessCategory, list[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_CATEGORY_EXTENSIONS.items()}
    )
    category_limits: dict[CompletenessCategory, int | None] = Field(
        default_factory=lambda: dict(DEFAULT_CATEGORY_LIMITS)
    )
    grace_period_hours: float = Field(default=DEFAULT_GRACE_PERIOD_HOURS, gt=0)


class EngineConfig(BaseModel):
    similarity_threshold: float = Field(default=DEFAULT_SIMILARITY_THRESHOLD, ge=0, le=1)
    pending_decision_ttl_seconds: int = Field(default=DEFAULT_PENDING_TTL_SECONDS, gt=0)
    extraction_workers: int = Field(default=4, ge=1)
    completeness: CompletenessConfig = Field(default_factory=CompletenessConfig)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> EngineConfig:
        """Build a config from defaults plus environment overrides.

        Recognised variables:
            PRINT_PROFILE_SIMILARITY_THRESHOLD  float in [0, 1]
            PRINT_PROFILE_PENDING_TTL           seconds a conflict waits for a decision
            PRINT_PROFILE_EXTRACTION_WORKERS    threads used to unpack an archive
            PRINT_PROFILE_GRACE_PERIOD_HOURS    file removal window
        """
        env = os.environ if environ is None else environ
        data: dict = {}
        if env.get("PRINT_PROFILE_SIMILARITY_THRESHOLD"):
            data["similarity_threshold"] = env["PRINT_PROFILE_SIMILARITY_THRESHOLD"]
        if env.get("PRINT_PROFILE_PENDING_TTL"):
            data["pending_decision_ttl_seconds"] = env["PRINT_PROFILE_PENDING_TTL"]
        if env.get("PRINT_PROFILE_EXTRACTION_WORKERS"):
            data["extraction_workers"] = env["PRINT_PROFILE_EXTRACTION_WORKERS"]
        if env.get("PRINT_PROFILE_GRACE_PERIOD_HOURS"):
            data["completeness"] = CompletenessConfig(
                grace_period_hours=env["PRINT_PROFILE_GRACE_PERIOD_HOURS"]
            )
        return cls.model_validate(data)
