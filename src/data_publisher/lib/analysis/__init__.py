"""Analysis library — publishes instrument secondary-analysis output per cell.

Public API:
    - ``AnalysisPublisher``: Pre-flight checked, warehouse-annotated cell publisher
    - ``CellRecord`` / ``SampleRecord``: Warehouse records
    - ``WarehouseLookup``: Protocol for warehouse backends
    - ``JsonWarehouse``: Warehouse backed by a JSON export
"""

from data_publisher.lib.analysis.publisher import AnalysisPublisher, file_type, is_sequence_file, parse_barcode
from data_publisher.lib.analysis.warehouse import CellRecord, JsonWarehouse, SampleRecord, WarehouseLookup

__all__ = [
    "AnalysisPublisher",
    "CellRecord",
    "JsonWarehouse",
    "SampleRecord",
    "WarehouseLookup",
    "file_type",
    "is_sequence_file",
    "parse_barcode",
]
