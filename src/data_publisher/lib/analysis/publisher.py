"""Analysis publisher for instrument secondary-analysis output.

Lists a cell's analysis files, runs pre-flight gates that abort the whole
run on a failed QC outcome or an unregistered barcode, and publishes the
files through ``TreePublisher`` with warehouse-derived metadata.
"""

from __future__ import annotations

import getpass
import re
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from data_publisher.lib.publisher.errors import PreflightError, QCFailedError, UnexpectedBarcodeError
from data_publisher.lib.publisher.lister import list_directory
from data_publisher.lib.publisher.manifest import ManifestWriter
from data_publisher.lib.publisher.state import PublishState
from data_publisher.lib.publisher.tree import TreePublisher
from data_publisher.lib.publisher.types import PublishCounts
from data_publisher.lib.store.base import AVU, normalize_remote_path

if TYPE_CHECKING:
    from data_publisher.lib.analysis.warehouse import CellRecord, WarehouseLookup
    from data_publisher.lib.publisher.types import MetadataProvider
    from data_publisher.lib.store.base import DataObject, RemoteStore

DEFAULT_FILE_PATTERN = r"(\.bam|\.bam\.pbi|set\.xml|\.fasta\.gz|\.fastq\.gz|report\.json)$"
SEQUENCE_FILE_PATTERN = r"(\.bam|\.fasta\.gz|\.fastq\.gz)$"
INDEX_FILE_PATTERN = r"\.pbi$"
NON_SEQUENCE_FILE_PATTERN = r"(set\.xml|report\.json)$"

# Barcode labels look like "bc1017_BAK8B_OA--bc1017_BAK8B_OA" or "lbc5--lbc5"
_BARCODE_RE = re.compile(r"\.((?:l?bc\d+[^.\-]*)--(?:l?bc\d+[^.\-]*))\.")
UNASSIGNED_LABEL = "removed"
_UNASSIGNED_RE = re.compile(rf"\.{UNASSIGNED_LABEL}\.")

MANIFEST_FILE_NAME = "publish_manifest.json"

_MULTI_SUFFIXES = ("fasta.gz", "fastq.gz", "bam.pbi")
_SEQUENCE_TYPES = frozenset({"bam", "fasta.gz", "fastq.gz"})

DEFAULT_CREATOR = "data-publisher"


def parse_barcode(file_name: str) -> str | None:
    """Return the barcode label embedded in ``file_name``.

    Returns:
        The label, ``"removed"`` for reads not assigned to any barcode,
        or None when the name carries no label.
    """
    match = _BARCODE_RE.search(file_name)
    if match:
        return match.group(1)
    if _UNASSIGNED_RE.search(file_name):
        return UNASSIGNED_LABEL
    return None


def file_type(file_name: str) -> str:
    """Return the file type recorded in metadata, e.g. ``bam`` or ``fasta.gz``."""
    for suffix in _MULTI_SUFFIXES:
        if file_name.endswith(f".{suffix}"):
            return suffix
    return Path(file_name).suffix.lstrip(".")


def is_sequence_file(file_name: str) -> bool:
    """True for read data (BAM, FASTA, FASTQ); index, XML and report files are not."""
    return file_type(file_name) in _SEQUENCE_TYPES


class AnalysisPublisher:
    """Publish the analysis output of one instrument cell.

    Files are published beneath ``dest_collection/<cell collection>``,
    e.g. ``/archive/run1/1_A01``, keeping their layout relative to
    ``runfolder_path``.

    Args:
        store: Remote store to publish into.
        runfolder_path: Directory holding the cell's analysis output.
        dest_collection: Remote collection for the run.
        warehouse: Lookup for the cell's run, QC and sample records.
        run_name: Run name in the warehouse.
        well: Well label of the cell.
        restart_file: Restart file for idempotent reruns.
        manifest_path: Product manifest to append published files to.
            Defaults to ``publish_manifest.json`` beside the restart file.
        force: Republish files already recorded as published.
        max_errors: Error budget for the run.
        require_checksum_cache: File suffixes whose .md5 cache must already
            exist.  Instrument output ships without caches, so none by default.
        creator: Value of the ``dcterms:creator`` AVU.
        publisher: Value of the ``dcterms:publisher`` AVU; defaults to the
            current user.
    """

    def __init__(
        self,
        store: RemoteStore,
        runfolder_path: Path | str,
        dest_collection: str,
        warehouse: WarehouseLookup,
        *,
        run_name: str,
        well: str,
        restart_file: Path | None = None,
        manifest_path: Path | None = None,
        force: bool = False,
        max_errors: int | None = None,
        require_checksum_cache: Iterable[str] = (),
        creator: str = DEFAULT_CREATOR,
        publisher: str | None = None,
    ) -> None:
        self.store = store
        self.runfolder_path = Path(runfolder_path)
        self.dest_collection = normalize_remote_path(dest_collection)
        self.warehouse = warehouse
        self.run_name = run_name
        self.well = well
        self.restart_file = restart_file
        self.manifest_path = manifest_path
        self.force = force
        self.max_errors = max_errors
        self.require_checksum_cache = tuple(require_checksum_cache)
        self.creator = creator
        self.publisher = publisher or getpass.getuser()
        self._cell: CellRecord | None = None
        self._publish_state: PublishState | None = None
        self._manifest: ManifestWriter | None = None

    @property
    def cell(self) -> CellRecord:
        """The warehouse record for this cell.

        Raises:
            PreflightError: If the warehouse has no record of the cell.
        """
        if self._cell is None:
            cell = self.warehouse.find_cell(self.run_name, self.well)
            if cell is None:
                msg = f"No warehouse record for run '{self.run_name}' well '{self.well}'"
                raise PreflightError(msg)
            self._cell = cell
        return self._cell

    @property
    def cell_collection(self) -> str:
        return f"{self.dest_collection.rstrip('/')}/{self.cell.collection_name}"

    def list_files(self, pattern: str = DEFAULT_FILE_PATTERN) -> list[Path]:
        """List analysis files whose names match ``pattern``, in sorted order."""
        return list_directory(self.runfolder_path, recurse=True, pattern=pattern)

    def check_preflight(self, files: list[Path]) -> None:
        """Refuse to publish a cell that failed QC or carries unexpected barcodes.

        Raises:
            QCFailedError: If the warehouse QC outcome is a failure.
            UnexpectedBarcodeError: If a file's barcode is not registered for the cell.
        """
        cell = self.cell
        if cell.qc_passed is False:
            msg = f"QC check failed for run '{cell.run_name}' well '{cell.well}'"
            raise QCFailedError(msg)

        registered = cell.barcodes
        for path in files:
            barcode = parse_barcode(path.name)
            if barcode is None or barcode == UNASSIGNED_LABEL:
                continue
            if barcode not in registered:
                raise UnexpectedBarcodeError(barcode, path)

    def publish_files(self, pattern: str = DEFAULT_FILE_PATTERN) -> PublishCounts:
        """Publish all of the cell's files matching ``pattern``.

        Sequence files are published first, then index and other
        non-sequence files, sharing one error budget.

        Returns:
            Counts of files found, published, and failed.

        Raises:
            PreflightError: If a pre-flight gate fails; nothing is published.
        """
        files = self.list_files(pattern)
        self.check_preflight(files)

        sequence_files = [f for f in files if is_sequence_file(f.name)]
        other_files = [f for f in files if not is_sequence_file(f.name)]

        counts = self._publish(sequence_files, primary_cb=self.primary_avus, secondary_cb=self.secondary_avus)
        remaining = None if self.max_errors is None else self.max_errors - counts.errors
        if remaining is not None and remaining <= 0:
            logger.error("Error budget of {} spent on sequence files; skipping the rest", self.max_errors)
            return counts
        return counts + self._publish(other_files, max_errors=remaining, primary_cb=self.common_avus)

    def publish_sequence_files(self, pattern: str = SEQUENCE_FILE_PATTERN) -> PublishCounts:
        """Publish sequence files with run, sample and study metadata."""
        files = self.list_files(pattern)
        self.check_preflight(files)
        return self._publish(files, primary_cb=self.primary_avus, secondary_cb=self.secondary_avus)

    def publish_non_sequence_files(self, pattern: str = NON_SEQUENCE_FILE_PATTERN) -> PublishCounts:
        """Publish metadata XML, reports and other files with common metadata only."""
        files = self.list_files(pattern)
        self.check_preflight(files)
        return self._publish(files, primary_cb=self.common_avus)

    def publish_index_files(self, pattern: str = INDEX_FILE_PATTERN) -> PublishCounts:
        return self.publish_non_sequence_files(pattern)

    def _publish(
        self,
        files: list[Path],
        *,
        max_errors: int | None = None,
        primary_cb: MetadataProvider | None = None,
        secondary_cb: MetadataProvider | None = None,
    ) -> PublishCounts:
        if not files:
            return PublishCounts()

        logger.info(
            "Publishing {} files for run '{}' well '{}' to '{}'",
            len(files),
            self.run_name,
            self.well,
            self.cell_collection,
        )
        tree_publisher = TreePublisher(
            self.store,
            self.runfolder_path,
            self.cell_collection,
            force=self.force,
            max_errors=max_errors if max_errors is not None else self.max_errors,
            publish_state=self.publish_state,
            require_checksum_cache=self.require_checksum_cache,
        )
        return tree_publisher.publish_tree(
            files,
            primary_cb=primary_cb,
            secondary_cb=secondary_cb,
            manifest=self.manifest,
        )

    @property
    def publish_state(self) -> PublishState:
        """Registry shared by every publish call of this publisher."""
        if self._publish_state is None:
            self._publish_state = PublishState(self.restart_file)
        return self._publish_state

    @property
    def manifest(self) -> ManifestWriter | None:
        """Product manifest, or None when neither a manifest nor restart file is set."""
        if self._manifest is None:
            path = self.manifest_path
            if path is None and self.restart_file is not None:
                path = Path(self.restart_file).parent / MANIFEST_FILE_NAME
            if path is not None:
                self._manifest = ManifestWriter(path, self.cell_collection)
        return self._manifest

    def common_avus(self, obj: DataObject) -> list[AVU]:
        """Provenance metadata attached to every file."""
        avus = [
            AVU("dcterms:created", datetime.now(tz=UTC).isoformat(timespec="seconds")),
            AVU("dcterms:creator", self.creator),
            AVU("dcterms:publisher", self.publisher),
            AVU("type", file_type(obj.name)),
        ]
        if obj.checksum:
            avus.append(AVU("md5", obj.checksum))
        return avus

    def primary_avus(self, obj: DataObject) -> list[AVU]:
        """Run-level metadata for sequence files, on top of the common metadata."""
        cell = self.cell
        return [
            *self.common_avus(obj),
            AVU("run", cell.run_name),
            AVU("well", cell.well),
            AVU("cell_index", str(cell.cell_index)),
            AVU("instrument_name", cell.instrument_name),
            AVU("data_level", "secondary"),
        ]

    def secondary_avus(self, obj: DataObject) -> list[AVU]:
        """Sample and study metadata for the samples a file holds data for."""
        cell = self.cell
        barcode = parse_barcode(obj.name)
        if barcode is not None and barcode != UNASSIGNED_LABEL:
            sample = cell.sample_for_barcode(barcode)
            samples = [sample] if sample else []
        else:
            samples = cell.samples

        avus: list[AVU] = []
        for sample in samples:
            avus.append(AVU("sample", sample.sample_name))
            avus.append(AVU("study_id", sample.study_id))
            if sample.study_name:
                avus.append(AVU("study_name", sample.study_name))
            if sample.study_accession_number:
                avus.append(AVU("study_accession_number", sample.study_accession_number))
            if sample.tag_index is not None:
                avus.append(AVU("tag_index", str(sample.tag_index)))
            if sample.tag_sequence:
                avus.append(AVU("tag_sequence", sample.tag_sequence))
        if cell.is_multiplexed and (barcode is None or barcode == UNASSIGNED_LABEL):
            avus.append(AVU("multiplex", "1"))
        return avus
