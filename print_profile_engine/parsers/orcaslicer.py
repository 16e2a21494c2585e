from .base import UNKNOWN_PRINTER, ParseFailed, decode
from .slic3r_3mf import MODEL_SETTINGS, Slic3r3mfParser, config_value, has_orca_marker
from ..archive import ZipContents
from ..models import SlicerType, ParsedProfile


class OrcaSlicerParser(Slic3r3mfParser):
    """
    OrcaSlicer is a Bambu Studio fork and writes the same archive layout.

    Unlike Bambu archives, an Orca archive always carries model_settings,
    and its printer identity is read from there.
    """

    slicer_type = SlicerType.ORCA

    def can_parse(self, contents: ZipContents) -> bool:
        return has_orca_marker(contents)

    def parse(self, contents: ZipContents) -> ParsedProfile:
        model_settings = decode(contents, MODEL_SETTINGS)
        if model_settings is None:
            raise ParseFailed("Missing model_settings.config")

        plate = self._plate_info(contents)
        project = self._project_config(contents)

        printer_name = UNKNOWN_PRINTER
        for key in ("printer_preset_name", "printer_model"):
            value = config_value(model_settings, key)
            if value:
                printer_name = value
                break

        settings = self._extract_settings(project, model_settings, plate)

        return ParsedProfile(
            printer_name=printer_name,
            slicer_type=self.slicer_type,
            thumbnail=self._thumbnail(contents, *self.thumbnail_paths),
            metadata=self._metadata(plate, settings),
        )
