"""
Pending decisions for printer-identity conflicts.

An upload that collides with an existing profile is not persisted.  A
``PendingDecision`` keyed by ``(version_id, file_digest)`` records what
the caller must decide about, until it is taken by a resolution, discarded,
or expires.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, Field

from .models import ParsedProfile, utcnow

logger = logging.getLogger(__name__)


class ConflictState(str, Enum):
    UPLOADING = "uploading"
    PERSISTED = "persisted"
    AWAITING_DECISION = "awaiting_decision"
    RESOLVED_REPLACE = "resolved_replace"
    RESOLVED_KEEP_BOTH = "resolved_keep_both"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class PendingDecisionNotFound(Exception):
    """Raised when a conflict is resolved without a live pending decision."""


def file_digest(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


class PendingDecision(BaseModel):
    version_id: str
    file_digest: str
    filename: str
    existing_profile_id: str
    candidate: ParsedProfile
    similarity: float
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime
    state: ConflictState = ConflictState.AWAITING_DECISION

    @property
    def key(self) -> tuple[str, str]:
        return (self.version_id, self.file_digest)

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at


class ConflictResolver:
    """
    In-memory registry of conflicts awaiting a caller decision.

    ``take`` pops the record under a lock, so of two concurrent resolutions
    of the same conflict only one gets it.
    """

    def __init__(self, ttl_seconds: int = 3600) -> None:
        self.ttl = timedelta(seconds=ttl_seconds)
        self._lock = threading.Lock()
        self._pending: dict[tuple[str, str], PendingDecision] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def hold(
        self,
        version_id: str,
        content: bytes,
        filename: str,
        existing_profile_id: str,
        candidate: ParsedProfile,
        similarity: float,
        now: datetime | None = None,
    ) -> PendingDecision:
        """Record a conflict; re-uploading the same bytes refreshes the record."""
        now = now or utcnow()
        decision = PendingDecision(
            version_id=version_id,
            file_digest=file_digest(content),
            filename=filename,
            existing_profile_id=existing_profile_id,
            candidate=candidate,
            similarity=similarity,
            created_at=now,
            expires_at=now + self.ttl,
        )
        with self._lock:
            self._pending[decision.key] = decision
        logger.debug(
            "Holding conflict for version %s (existing profile %s) until %s",
            version_id,
            existing_profile_id,
            decision.expires_at.isoformat(),
        )
        return decision

    def get(self, version_id: str, content: bytes) -> PendingDecision | None:
        return self._pending.get((version_id, file_digest(content)))

    def take(
        self,
        version_id: str,
        content: bytes,
        existing_profile_id: str,
        now: datetime | None = None,
    ) -> PendingDecision:
        """
        Remove and return the live pending decision for this upload.

        Raises:
            PendingDecisionNotFound: If none is held, it has expired, or it
                concerns a different existing profile.
        """
        key = (version_id, file_digest(content))
        with self._lock:
            decision = self._pending.get(key)
            if decision is None:
                raise PendingDecisionNotFound(
                    f"No pending conflict for this file on version {version_id}"
                )
            if decision.existing_profile_id != existing_profile_id:
                raise PendingDecisionNotFound(
                    f"Pending conflict concerns profile {decision.existing_profile_id}, "
                    f"not {existing_profile_id}"
                )
            del self._pending[key]

        if decision.is_expired(now):
            decision.state = ConflictState.EXPIRED
            raise PendingDecisionNotFound(
                f"Pending conflict for version {version_id} expired at "
                f"{decision.expires_at.isoformat()}"
            )
        return decision

    def restore(self, decision: PendingDecision) -> None:
        """Put a taken decision back, e.g. when persisting the resolution failed."""
        with self._lock:
            self._pending.setdefault(decision.key, decision)

    def discard(self, version_id: str, content: bytes) -> PendingDecision | None:
        with self._lock:
            decision = self._pending.pop((version_id, file_digest(content)), None)
        if decision is not None:
            decision.state = ConflictState.CANCELLED
        return decision

    def purge_expired(self, now: datetime | None = None) -> list[PendingDecision]:
        """Drop expired decisions and return them so held bytes can be cleaned up."""
        now = now or utcnow()
        with self._lock:
            expired = [d for d in self._pending.values() if d.is_expired(now)]
            for decision in expired:
                del self._pending[decision.key]
        for decision in expired:
            decision.state = ConflictState.EXPIRED
        if expired:
            logger.info("Purged %d expired pending conflict(s)", len(expired))
        return expired
