"""
Feature reading

Turns the rows of one layer into Feature objects. A row that cannot be
decoded is logged and skipped, the rest of the layer carries on.
"""

import sqlite3
from typing import Iterator, Optional
from loguru import logger

from ..errors import GeometryDecodeError, MalformedTagDataError
from ..models import LayerReport
from .geometry import GeometryDecoder
from .models import Feature, LayerDescriptor
from .tags import TagResolver


class FeatureReader:
    """Reads features of a layer with geometry and merged tags"""

    def __init__(
        self,
        conn: sqlite3.Connection,
        resolver: Optional[TagResolver] = None,
        decoder: Optional[GeometryDecoder] = None
    ):
        self.conn = conn
        self.resolver = resolver or TagResolver()
        self.decoder = decoder or GeometryDecoder()

    def read(self, layer: LayerDescriptor, report: Optional[LayerReport] = None) -> Iterator[Feature]:
        """
        Yield features of a layer

        Source errors (sqlite3.Error) propagate, per-row errors are recorded
        in the report and the row is skipped.
        """
        query = self.resolver.query(layer)
        logger.debug(f"Layer '{layer.name}' query: {query}")

        cursor = self.conn.execute(query)
        try:
            for row_number, row in enumerate(cursor, 1):
                if report is not None:
                    report.features_read += 1
                blob = row[0]
                if not blob:
                    self._skip(layer, row_number, "missing_geometry", "no geometry data", report)
                    continue
                try:
                    tags = self.resolver.resolve(layer, row[1:])
                    geometry = self.decoder.decode(blob)
                except (MalformedTagDataError, GeometryDecodeError) as e:
                    self._skip(layer, row_number, e.reason, str(e), report)
                    continue
                yield Feature(layer=layer, tags=tags, geometry=geometry, row_number=row_number)
        finally:
            cursor.close()

    @staticmethod
    def _skip(layer: LayerDescriptor, row_number: int, reason: str, detail: str,
              report: Optional[LayerReport]):
        logger.warning(f"Bad row {row_number} in layer '{layer.name}': {reason} ({detail})")
        if report is not None:
            report.record_skip(reason)
