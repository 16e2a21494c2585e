from typing import Any

from .base import UNKNOWN_PRINTER, decode, first, parse_number
from .slic3r_3mf import (
    MODEL_SETTINGS,
    SLICE_INFO,
    Slic3r3mfParser,
    config_value,
    has_orca_marker,
)
from ..archive import ZipContents
from ..models import SlicerType, ParsedProfile


def format_nozzle_diameter(diameter: float) -> str:
    """0.4000000059604645 -> "0.4"."""
    return f"{round(diameter, 2):g}"


class BambuStudioParser(Slic3r3mfParser):
    slicer_type = SlicerType.BAMBU

    def can_parse(self, contents: ZipContents) -> bool:
        # OrcaSlicer keeps Bambu's header keys, so its markers veto a Bambu match.
        if has_orca_marker(contents):
            return False

        slice_info = decode(contents, SLICE_INFO)
        if slice_info and "X-BBL-Client" in slice_info:
            return True

        settings = decode(contents, MODEL_SETTINGS)
        if settings and ("BambuStudio" in settings or "printer_preset_name" in settings):
            return True

        return False

    def parse(self, contents: ZipContents) -> ParsedProfile:
        plate = self._plate_info(contents)
        project = self._project_config(contents)
        model_settings = decode(contents, MODEL_SETTINGS) or ""

        printer_name = self._extract_printer_name(project, model_settings)
        if printer_name == UNKNOWN_PRINTER and plate and plate.get("bed_type"):
            printer_name = self._derive_printer_name(plate)

        settings = self._extract_settings(project, model_settings, plate)

        return ParsedProfile(
            printer_name=printer_name,
            slicer_type=self.slicer_type,
            thumbnail=self._thumbnail(contents, *self.thumbnail_paths),
            metadata=self._metadata(plate, settings),
        )

    def _extract_printer_name(self, project: dict[str, Any] | None, model_settings: str) -> str:
        project = project or {}

        # "Bambu Lab X1 Carbon"
        name = first(project.get("printer_model"))
        if isinstance(name, str) and name.strip():
            return name.strip()

        # "Bambu Lab X1 Carbon 0.4 nozzle"
        name = first(project.get("printer_settings_id"))
        if isinstance(name, str) and name.strip():
            return name.strip()

        for key in ("printer_preset_name", "machine_type"):
            name = config_value(model_settings, key)
            if name:
                return name

        return UNKNOWN_PRINTER

    def _derive_printer_name(self, plate: dict[str, Any]) -> str:
        # Every Bambu bed type maps to the same generic name; only the nozzle differs.
        nozzle = parse_number(plate.get("nozzle_diameter"))
        if nozzle:
            return f"Bambu Lab Printer ({format_nozzle_diameter(nozzle)}mm)"
        return "Bambu Lab Printer"
