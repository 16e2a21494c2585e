from .bambustudio import BambuStudioParser
from .orcaslicer import OrcaSlicerParser
from .prusaslicer import PrusaSlicerParser

__all__ = [
    "BambuStudioParser",
    "OrcaSlicerParser",
    "PrusaSlicerParser",
]
