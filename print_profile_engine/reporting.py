"""Console reporting for CLI commands."""

from __future__ import annotations

import json
from typing import Any, Protocol

from .completeness import CATEGORY_INFO
from .models import CompletenessStatus, ParsedProfile, to_jsonable
from .utils import format_duration


def profile_summary(profile: ParsedProfile) -> dict[str, Any]:
    data = to_jsonable(profile)
    data["has_thumbnail"] = profile.thumbnail is not None
    return data


class Reporter(Protocol):
    """Protocol for rendering command results."""

    def profile(self, filename: str, profile: ParsedProfile) -> None: ...
    def similarity(self, name_a: str, name_b: str, score: float, conflict: bool) -> None: ...
    def completeness(self, status: CompletenessStatus) -> None: ...


class RichReporter:
    """Rich tables for interactive use."""

    def __init__(self) -> None:
        from rich.console import Console

        self.console = Console()

    def profile(self, filename: str, profile: ParsedProfile) -> None:
        from rich.table import Table

        meta = profile.metadata
        table = Table(title=filename, show_header=False)
        table.add_column("field", style="bold")
        table.add_column("value")
        table.add_row("Slicer", profile.slicer_type.value)
        table.add_row("Printer", profile.printer_name)
        if meta.print_time_seconds is not None:
            table.add_row("Print time", format_duration(meta.print_time_seconds))
        if meta.filament_summary:
            table.add_row("Filament", meta.filament_summary)
        if meta.filament_weight_grams is not None:
            table.add_row("Weight", f"{meta.filament_weight_grams:g} g")
        settings = meta.settings
        if settings.layer_height is not None:
            table.add_row("Layer height", f"{settings.layer_height:g} mm")
        if settings.infill is not None:
            table.add_row("Infill", f"{settings.infill}%")
        if settings.nozzle_temp is not None:
            table.add_row("Nozzle", f"{settings.nozzle_temp} °C")
        if settings.bed_temp is not None:
            table.add_row("Bed", f"{settings.bed_temp} °C")
        if meta.plate_info is not None:
            table.add_row(
                "Plates",
                f"{meta.plate_info.count} × {meta.plate_info.copies_per_plate}",
            )
        table.add_row("Thumbnail", "yes" if profile.thumbnail else "no")
        self.console.print(table)

    def similarity(self, name_a: str, name_b: str, score: float, conflict: bool) -> None:
        verdict = "[bold red]conflict[/]" if conflict else "[green]distinct[/]"
        self.console.print(f"{name_a!r} vs {name_b!r}: {score:.4f} ({verdict})")

    def completeness(self, status: CompletenessStatus) -> None:
        from rich.table import Table

        table = Table(title="Completeness")
        table.add_column("Category")
        table.add_column("Files", justify="right")
        table.add_column("Status")
        for category, count in status.counts.items():
            mark = "[green]ok[/]" if count else "[yellow]missing[/]"
            table.add_row(CATEGORY_INFO[category]["label"], str(count), mark)
        self.console.print(table)
        if status.is_complete:
            self.console.print("[bold green]Version is complete[/]")


class JsonReporter:
    """Machine-readable output for --json mode or testing."""

    def _emit(self, data: Any) -> None:
        print(json.dumps(data, indent=2))

    def profile(self, filename: str, profile: ParsedProfile) -> None:
        self._emit({"file": filename, **profile_summary(profile)})

    def similarity(self, name_a: str, name_b: str, score: float, conflict: bool) -> None:
        self._emit({"a": name_a, "b": name_b, "similarity": score, "conflict": conflict})

    def completeness(self, status: CompletenessStatus) -> None:
        self._emit(to_jsonable(status))
