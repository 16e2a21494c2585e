"""
Parser dispatch: raw 3MF bytes → ParsedProfile.

Parsers are tried in a fixed order.  Bambu comes before Orca and refuses
archives that carry Orca markers; the order is part of the contract and is
not meant to be extended by plugin discovery.
"""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import BaseModel

from .archive import ArchiveUnreadable, ZipContents, extract_allowed
from .models import ParsedProfile
from .parsers import BambuStudioParser, OrcaSlicerParser, PrusaSlicerParser
from .parsers.base import BaseParser

logger = logging.getLogger(__name__)

# Registered parsers in priority order.
PARSERS: tuple[BaseParser, ...] = (
    BambuStudioParser(),
    OrcaSlicerParser(),  # must come after Bambu (shared format)
    PrusaSlicerParser(),
)


class ParseStatus(str, Enum):
    SUCCESS = "success"
    UNKNOWN_FORMAT = "unknown_format"
    PARSE_ERROR = "parse_error"


class ParseOutcome(BaseModel):
    """Tri-state result of ``parse_container``."""

    status: ParseStatus
    profile: ParsedProfile | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status == ParseStatus.SUCCESS


def parse_contents(
    contents: ZipContents,
    parsers: tuple[BaseParser, ...] = PARSERS,
) -> ParseOutcome:
    """Run the parser chain over already-extracted archive contents."""
    for parser in parsers:
        if not parser.can_parse(contents):
            continue
        logger.debug("Archive matched %s parser", parser.slicer_type.value)
        try:
            profile = parser.parse(contents)
        except Exception as e:  # a broken parser must not abort the chain
            logger.warning(
                "%s parser matched but failed (%s), trying next parser",
                parser.slicer_type.value,
                e,
            )
            continue
        return ParseOutcome(status=ParseStatus.SUCCESS, profile=profile)

    return ParseOutcome(status=ParseStatus.UNKNOWN_FORMAT)


def parse_container(
    buffer: bytes,
    parsers: tuple[BaseParser, ...] = PARSERS,
    max_workers: int = 4,
) -> ParseOutcome:
    """
    Parse a 3MF container.

    Returns:
        ParseOutcome with status SUCCESS and the profile, UNKNOWN_FORMAT when
        the archive opened but no parser produced a profile, or PARSE_ERROR
        with a message when the archive itself is unreadable.
    """
    try:
        contents = extract_allowed(buffer, max_workers=max_workers)
    except ArchiveUnreadable as e:
        return ParseOutcome(status=ParseStatus.PARSE_ERROR, error=str(e))

    return parse_contents(contents, parsers)


def matching_parsers(
    contents: ZipContents,
    parsers: tuple[BaseParser, ...] = PARSERS,
) -> list[BaseParser]:
    """Every registered parser whose detection accepts *contents*."""
    return [p for p in parsers if p.can_parse(contents)]
