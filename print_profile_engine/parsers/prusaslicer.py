import re

import iniconfig
from iniconfig import IniConfig, ParseError

from .base import (
    UNKNOWN_PRINTER,
    BaseParser,
    ParseFailed,
    build_filament_summary,
    decode,
    parse_int,
    parse_number,
)
from ..archive import ZipContents
from ..models import SlicerType, ParsedProfile, PrintSettings, ProfileMetadata

CONFIG_PATHS = ("slic3r_pe.config", "Metadata/Slic3r_PE.config")

# Disable comment handling in iniconfig
iniconfig.COMMENTCHARS = ""

_SECTION = "slic3r"
_LIST_SPLIT_RE = re.compile(r"[;,]")

_DURATION_UNITS = (
    (re.compile(r"(\d+)\s*d", re.IGNORECASE), 86400),
    (re.compile(r"(\d+)\s*h", re.IGNORECASE), 3600),
    (re.compile(r"(\d+)\s*m(?!s)", re.IGNORECASE), 60),
    (re.compile(r"(\d+)\s*s", re.IGNORECASE), 1),
)


def parse_duration(text: str) -> int | None:
    """Parse "1h 30m 45s" style durations into seconds; None if nothing matched."""
    total = 0
    matched = False
    for pattern, factor in _DURATION_UNITS:
        match = pattern.search(text)
        if match:
            total += int(match.group(1)) * factor
            matched = True
    return total if matched else None


def load_slic3r_config(text: str, path: str = "slic3r_pe.config") -> dict[str, str]:
    """
    Read a Slic3r/PrusaSlicer config into a flat dict.

    PrusaSlicer writes every setting as a comment line ("; layer_height = 0.2").
    The leading "; " is removed and lines without a setting (the generator
    header, blank lines) are dropped; iniconfig parses the rest.

    Raises:
        ParseFailed: If iniconfig rejects the text, e.g. a repeated setting.
    """
    lines = [f"[{_SECTION}]"]
    for raw in text.splitlines():
        # Stripped so no line reads as a value continuation.
        line = raw.strip().lstrip(";").strip()
        if "=" in line and line.split("=", 1)[0].strip():
            lines.append(line)

    try:
        ini = IniConfig(path, data="\n".join(lines))
    except ParseError as e:
        raise ParseFailed(f"Malformed {path}: {e}") from e
    return dict(ini.sections.get(_SECTION, {}))


class PrusaSlicerParser(BaseParser):
    """
    Parser for PrusaSlicer project archives.

    PrusaSlicer stores its full configuration as an INI-style text file,
    either at the archive root (slic3r_pe.config) or under Metadata/.
    """

    slicer_type = SlicerType.PRUSA

    def _config_text(self, contents: ZipContents) -> tuple[str, str] | None:
        for path in CONFIG_PATHS:
            text = decode(contents, path)
            if text is not None:
                return path, text
        return None

    def can_parse(self, contents: ZipContents) -> bool:
        found = self._config_text(contents)
        if found is None:
            return False
        _, text = found
        return "PrusaSlicer" in text or "slic3r_pe" in text or "printer_model" in text

    def parse(self, contents: ZipContents) -> ParsedProfile:
        found = self._config_text(contents)
        if found is None:
            raise ParseFailed("Missing slic3r_pe.config")
        path, text = found
        config = load_slic3r_config(text, path)

        metadata = ProfileMetadata(
            print_time_seconds=self._extract_print_time(config),
            filament_summary=self._extract_filament_summary(config),
            settings=self._extract_settings(config),
            plate_info=None,
            filament_weight_grams=self._extract_filament_weight(config),
        )

        return ParsedProfile(
            printer_name=self._extract_printer_name(config),
            slicer_type=self.slicer_type,
            thumbnail=self._thumbnail(contents, "Thumbnails/thumbnail.png", "Metadata/thumbnail.png"),
            metadata=metadata,
        )

    def _extract_printer_name(self, config: dict[str, str]) -> str:
        for key in ("printer_settings_id", "printer_model"):
            value = config.get(key, "").strip().strip('"')
            if value:
                return value

        notes = config.get("printer_notes", "")
        head = notes.split(";", 1)[0].strip()
        if head:
            return head

        return UNKNOWN_PRINTER

    def _extract_settings(self, config: dict[str, str]) -> PrintSettings:
        def first_of(key: str) -> str | None:
            value = config.get(key)
            if value is None:
                return None
            return _LIST_SPLIT_RE.split(value)[0]

        return PrintSettings(
            layer_height=parse_number(config.get("layer_height")),
            infill=parse_int(config.get("fill_density")),
            nozzle_temp=parse_int(first_of("temperature")),
            bed_temp=parse_int(first_of("bed_temperature")),
        )

    def _extract_filament_summary(self, config: dict[str, str]) -> str | None:
        types = [t.strip().strip('"') for t in config.get("filament_type", "").split(";")]
        colors = [c.strip().strip('"') for c in config.get("filament_colour", "").split(";")]
        pairs = [
            (ftype, colors[i] if i < len(colors) else None)
            for i, ftype in enumerate(types)
            if ftype
        ]
        return build_filament_summary(pairs)

    def _extract_filament_weight(self, config: dict[str, str]) -> float | None:
        raw = config.get("filament_used_g")
        if not raw:
            return None
        weights = [parse_number(part) for part in _LIST_SPLIT_RE.split(raw)]
        weights = [w for w in weights if w is not None]
        if not weights:
            return None
        return round(sum(weights), 2)

    def _extract_print_time(self, config: dict[str, str]) -> int | None:
        for key in ("estimated_print_time", "print_time"):
            value = config.get(key)
            if value:
                return parse_duration(value)
        return None
