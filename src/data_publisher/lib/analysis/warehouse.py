"""Warehouse records describing instrument runs, cells, and their samples.

The warehouse is an external system; publishers only depend on the
``WarehouseLookup`` Protocol.  ``JsonWarehouse`` serves records from a
JSON export and is what the CLI and tests use.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field, TypeAdapter, ValidationError


class SampleRecord(BaseModel):
    """A sample loaded on a cell, identified by its barcode label."""

    barcode: str | None = Field(default=None, description="Barcode label, e.g. 'bc1017_BAK8B_OA--bc1017_BAK8B_OA'")
    sample_name: str = Field(description="Sample name")
    study_id: str = Field(description="Study identifier")
    study_name: str | None = Field(default=None, description="Study name")
    study_accession_number: str | None = Field(default=None, description="Study accession number")
    tag_index: int | None = Field(default=None, description="Tag index within the barcode set")
    tag_sequence: str | None = Field(default=None, description="Tag sequence")


class CellRecord(BaseModel):
    """One instrument cell (well) of a run."""

    run_name: str = Field(description="Run name")
    well: str = Field(description="Well label, e.g. 'A01'")
    cell_index: int = Field(ge=1, description="1-based cell index within the run")
    instrument_name: str = Field(description="Instrument name")
    qc_passed: bool | None = Field(default=None, description="Upstream QC outcome; None when not yet assessed")
    samples: list[SampleRecord] = Field(default_factory=list, description="Samples loaded on the cell")

    @property
    def collection_name(self) -> str:
        """Sub-collection name for the cell, e.g. ``1_A01``."""
        return f"{self.cell_index}_{self.well}"

    @property
    def barcodes(self) -> set[str]:
        return {s.barcode for s in self.samples if s.barcode}

    @property
    def is_multiplexed(self) -> bool:
        return len(self.samples) > 1

    def sample_for_barcode(self, barcode: str) -> SampleRecord | None:
        for sample in self.samples:
            if sample.barcode == barcode:
                return sample
        return None


class WarehouseLookup(Protocol):
    """Source of cell records for a run."""

    def find_cell(self, run_name: str, well: str) -> CellRecord | None:
        """Return the record for ``well`` of ``run_name``, or None if unknown."""
        ...


_CELLS_ADAPTER = TypeAdapter(list[CellRecord])


class JsonWarehouse:
    """Warehouse lookup over an in-memory list of cell records.

    Args:
        cells: Cell records to serve.
    """

    def __init__(self, cells: list[CellRecord]) -> None:
        self._cells = {(c.run_name, c.well): c for c in cells}

    @classmethod
    def from_file(cls, path: Path) -> JsonWarehouse:
        """Load cell records from a JSON array file.

        Raises:
            ValueError: If the file is not valid JSON or fails validation.
        """
        try:
            cells = _CELLS_ADAPTER.validate_json(Path(path).read_bytes())
        except ValidationError as exc:
            msg = f"Invalid warehouse export '{path}': {exc}"
            raise ValueError(msg) from exc
        return cls(cells)

    def find_cell(self, run_name: str, well: str) -> CellRecord | None:
        return self._cells.get((run_name, well))
