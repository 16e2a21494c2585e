import json
import re
from typing import Any

from .base import (
    BaseParser,
    build_filament_summary,
    decode,
    first,
    parse_int,
    parse_number,
)
from ..archive import ZipContents
from ..models import PlateInfo, PrintSettings, ProfileMetadata

MODEL_SETTINGS = "Metadata/model_settings.config"
PROJECT_SETTINGS = "Metadata/project_settings.config"
PLATE_JSON = "Metadata/plate_1.json"
SLICE_INFO = "Metadata/slice_info.config"
MODEL_FILE = "3D/3dmodel.model"

_ORCA_MARKERS = ("OrcaSlicer", "orca_slicer")
_ORCA_APPLICATION_RE = re.compile(
    r'<metadata\s+name="Application"\s*>\s*OrcaSlicer', re.IGNORECASE
)


def has_orca_marker(contents: ZipContents) -> bool:
    """True if the archive was written by OrcaSlicer rather than Bambu Studio."""
    settings = decode(contents, MODEL_SETTINGS)
    if settings and any(marker in settings for marker in _ORCA_MARKERS):
        return True
    model = decode(contents, MODEL_FILE)
    return bool(model and _ORCA_APPLICATION_RE.search(model))


def config_value(text: str, key: str) -> str | None:
    """
    Look up *key* in a Bambu/Orca config text.

    The XML ``key="..." value="..."`` attribute form is preferred; a loose
    ``key = value`` scan is the fallback.
    """
    if not text:
        return None
    escaped = re.escape(key)
    match = re.search(rf'key="{escaped}"\s+value="([^"]*)"', text)
    if match and match.group(1).strip():
        return match.group(1).strip()
    match = re.search(rf'\b{escaped}\s*=\s*"?([^"\n]+)"?', text)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return None


def config_number(text: str, *keys: str) -> str | None:
    """Return the first numeric-looking value among *keys* in a config text."""
    if not text:
        return None
    for key in keys:
        escaped = re.escape(key)
        match = re.search(rf'key="{escaped}"\s+value="([0-9.]+)', text)
        if match:
            return match.group(1)
        match = re.search(rf'\b{escaped}\s*=\s*"?([0-9.]+)"?', text)
        if match:
            return match.group(1)
    return None


def load_json_object(text: str | None) -> dict[str, Any] | None:
    """Parse *text* as a JSON object; anything else yields None."""
    if not text:
        return None
    try:
        data = json.loads(text)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


class Slic3r3mfParser(BaseParser):
    """
    Shared extraction for Bambu Studio and OrcaSlicer project archives.

    Both slicers write the same files:
      Metadata/project_settings.config  JSON with the full preset
      Metadata/model_settings.config    XML (older builds: key = value lines)
      Metadata/plate_1.json             print time, weight, filaments
      Metadata/plate_1.png              rendered plate preview

    Every field is resolved on its own: project JSON first, then a regex
    scan of model_settings, then plate JSON where it carries the value.
    """

    thumbnail_paths: tuple[str, ...] = ("Metadata/plate_1.png", "Metadata/thumbnail.png")

    def _plate_info(self, contents: ZipContents) -> dict[str, Any] | None:
        return load_json_object(decode(contents, PLATE_JSON))

    def _project_config(self, contents: ZipContents) -> dict[str, Any] | None:
        return load_json_object(decode(contents, PROJECT_SETTINGS))

    def _extract_settings(
        self,
        project: dict[str, Any] | None,
        model_settings: str,
        plate: dict[str, Any] | None,
    ) -> PrintSettings:
        project = project or {}

        layer_height = parse_number(first(project.get("layer_height")))
        if layer_height is None:
            layer_height = parse_number(config_number(model_settings, "layer_height"))
        if layer_height is None and plate:
            bbox = plate.get("bbox_objects")
            if isinstance(bbox, list) and bbox and isinstance(bbox[0], dict):
                layer_height = parse_number(bbox[0].get("layer_height"))

        infill = parse_int(first(project.get("sparse_infill_density")))
        if infill is None:
            infill = parse_int(
                config_number(model_settings, "sparse_infill_density", "infill_density")
            )

        nozzle_temp = parse_int(first(project.get("nozzle_temperature")))
        if nozzle_temp is None:
            nozzle_temp = parse_int(
                config_number(model_settings, "nozzle_temperature", "temperature")
            )

        bed_temp = parse_int(first(project.get("hot_plate_temp")))
        if bed_temp is None:
            bed_temp = parse_int(
                config_number(model_settings, "bed_temperature", "hot_plate_temp")
            )

        return PrintSettings(
            layer_height=layer_height,
            infill=infill,
            nozzle_temp=nozzle_temp,
            bed_temp=bed_temp,
        )

    def _filament_summary(self, plate: dict[str, Any] | None) -> str | None:
        filaments = (plate or {}).get("filaments")
        if not isinstance(filaments, list):
            return None
        pairs = [
            (str(f.get("type") or ""), f.get("color"))
            for f in filaments
            if isinstance(f, dict)
        ]
        return build_filament_summary(pairs)

    def _plate_summary(self, plate: dict[str, Any] | None) -> PlateInfo | None:
        copies = parse_int((plate or {}).get("objects_cnt"))
        if not copies:
            return None
        return PlateInfo(count=1, copies_per_plate=copies)

    def _metadata(self, plate: dict[str, Any] | None, settings: PrintSettings) -> ProfileMetadata:
        plate = plate or {}
        return ProfileMetadata(
            print_time_seconds=parse_number(plate.get("prediction")),
            filament_summary=self._filament_summary(plate),
            settings=settings,
            plate_info=self._plate_summary(plate),
            filament_weight_grams=parse_number(plate.get("weight")),
        )
