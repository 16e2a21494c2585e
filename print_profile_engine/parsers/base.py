import math
import re
from abc import ABC, abstractmethod
from typing import Any, Iterable

from ..archive import ZipContents
from ..models import SlicerType, ParsedProfile

UNKNOWN_PRINTER = "Unknown Printer"

_FLOAT_PREFIX_RE = re.compile(r"^\s*[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?")
_INT_PREFIX_RE = re.compile(r"^\s*[-+]?\d+")


class ParseFailed(Exception):
    """Raised when a parser recognised an archive but could not extract a profile."""


def parse_number(value: Any) -> float | None:
    """Parse the leading number of a config value ("0.2", "0.2mm"), or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None
    match = _FLOAT_PREFIX_RE.match(value)
    if not match:
        return None
    number = float(match.group(0))
    return number if math.isfinite(number) else None


def parse_int(value: Any) -> int | None:
    """Parse the leading integer of a config value ("15%", "220"), or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None
    match = _INT_PREFIX_RE.match(value)
    return int(match.group(0)) if match else None


def first(value: Any) -> Any:
    """Return the first element if value is a list, otherwise value as-is."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


def format_color(color: Any) -> str | None:
    if not color or not isinstance(color, str):
        return None
    return color.strip().upper() or None


def build_filament_summary(filaments: Iterable[tuple[str, str | None]]) -> str | None:
    """
    Render a list of ``(type, color)`` pairs as a short summary.

    One filament: ``"PLA (#FF0000)"``.  Several filaments are grouped by type
    in first-seen order: ``"2x PLA (#FF0000, #0000FF) + PETG (#000000)"``.
    Missing colors are left out of the string.
    """
    items = [(ftype, format_color(color)) for ftype, color in filaments if ftype]
    if not items:
        return None

    if len(items) == 1:
        ftype, color = items[0]
        return f"{ftype} ({color})" if color else ftype

    by_type: dict[str, list[str]] = {}
    for ftype, color in items:
        colors = by_type.setdefault(ftype, [])
        if color:
            colors.append(color)

    parts: list[str] = []
    for ftype, colors in by_type.items():
        if len(colors) > 1:
            parts.append(f"{len(colors)}x {ftype} ({', '.join(colors)})")
        elif len(colors) == 1:
            parts.append(f"{ftype} ({colors[0]})")
        else:
            parts.append(ftype)
    return " + ".join(parts)


def decode(contents: ZipContents, path: str) -> str | None:
    """Return an archive entry as text, or None if it is absent."""
    raw = contents.get(path)
    if raw is None:
        return None
    return raw.decode("utf-8", errors="replace")


class BaseParser(ABC):
    """A vendor-specific 3MF metadata extractor."""

    @property
    @abstractmethod
    def slicer_type(self) -> SlicerType: ...

    @abstractmethod
    def can_parse(self, contents: ZipContents) -> bool:
        """Return True if the archive carries this vendor's signature markers."""
        ...

    @abstractmethod
    def parse(self, contents: ZipContents) -> ParsedProfile:
        """Extract a profile.

        Raises:
            ParseFailed: If required vendor files are missing or unusable.
        """
        ...

    def _thumbnail(self, contents: ZipContents, *paths: str) -> bytes | None:
        for path in paths:
            data = contents.get(path)
            if data:
                return data
        return None
