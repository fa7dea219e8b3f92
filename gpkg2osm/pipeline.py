"""
Main Pipeline Orchestrator for GeoPackage to OSM conversion

  1. Open the GeoPackage read-only
  2. Discover exportable layers (gpkg_geometry_columns + gpkg_data_columns)
  3. Read every layer row by row: decode geometry, merge tags
  4. Synthesize nodes, ways and relations with shared node deduplication
  5. Check referential completeness of the entity graph
  6. Hand the graph to the output writer

Per-row problems skip the row, invalid layers are dropped. Source errors and
coordinate overflow abort the run after whatever was already synthesized has
been written.
"""

import sqlite3
from contextlib import closing
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from loguru import logger

from .config import ConverterConfig, get_config, validate_config
from .errors import CoordinateOverflowError, LayerValidationError
from .models import ConversionReport, DroppedLayer, LayerReport
from .geopackage import FeatureReader, GeometryDecoder, LayerDescriptor, TagResolver, discover_layers
from .osm import EntitySynthesizer


def open_geopackage(path: str) -> sqlite3.Connection:
    """Open a GeoPackage read-only"""
    gpkg_path = Path(path)
    if not gpkg_path.is_file():
        raise FileNotFoundError(f"GeoPackage not found: {path}")
    uri = gpkg_path.resolve().as_uri() + "?mode=ro"
    return sqlite3.connect(uri, uri=True)


class ConversionPipeline:
    """
    Convert a GeoPackage into an OSM file

    Usage:
        pipeline = ConversionPipeline()
        report = pipeline.run("roads.gpkg", open_writer("roads.osm.pbf"))
    """

    def __init__(self, config: Optional[ConverterConfig] = None):
        self.config = config or get_config()
        validate_config(self.config)
        self.resolver = TagResolver(self.config)
        self.decoder = GeometryDecoder()
        self.synthesizer: Optional[EntitySynthesizer] = None
        self.report: Optional[ConversionReport] = None

    def inspect(self, input_path: str) -> Tuple[List[LayerDescriptor], Dict[str, LayerValidationError]]:
        """Discover layers without converting anything"""
        with closing(open_geopackage(input_path)) as conn:
            layers, dropped = discover_layers(conn, self.config)

        for layer in layers:
            logger.info(
                f"Found layer for export: {layer.name} "
                f"(geometry: {layer.geometry_type_name}, "
                f"cols: {','.join(self.resolver.selected_columns(layer)[1:])})"
            )
        return layers, dropped

    def run(self, input_path: str, writer, output_path: Optional[str] = None) -> ConversionReport:
        """
        Run the complete conversion

        Args:
            input_path: GeoPackage to read
            writer: Object with a write(graph) method
            output_path: Output location, recorded in the report

        Returns:
            ConversionReport with per-layer counts
        """
        report = ConversionReport(input_path=str(input_path), output_path=output_path)
        # Kept on the pipeline so an aborted run can still be inspected
        self.report = report
        # Fresh state for every run
        self.synthesizer = EntitySynthesizer()

        logger.info(f"Starting conversion of {input_path}")

        try:
            with closing(open_geopackage(input_path)) as conn:
                # ============================================================
                # STAGE 1: Layer discovery
                # ============================================================
                layers, dropped = discover_layers(conn, self.config)
                for name, error in dropped.items():
                    report.dropped_layers.append(
                        DroppedLayer(name=name, reason=error.reason, detail=error.detail)
                    )
                logger.info(f"Stage 1: {len(layers)} layers to export, {len(dropped)} dropped")

                # ============================================================
                # STAGE 2: Feature synthesis, one layer at a time
                # ============================================================
                reader = FeatureReader(conn, self.resolver, self.decoder)
                for layer in layers:
                    layer_report = LayerReport(
                        name=layer.name,
                        geometry_type=layer.geometry_type_name,
                        tag_columns=list(layer.tag_columns),
                        has_json_field=layer.has_json_field,
                    )
                    report.layers.append(layer_report)
                    self._convert_layer(reader, layer, layer_report)
        except (sqlite3.Error, CoordinateOverflowError) as e:
            logger.error(f"Conversion aborted: {e}")
            self._finish(report, writer)
            raise

        self._finish(report, writer)
        report.completed = True
        logger.info(
            f"✓ Converted {report.features_converted} features: "
            f"{report.nodes} nodes, {report.ways} ways, {report.relations} relations "
            f"({report.rows_skipped} rows skipped, {report.layers_dropped} layers dropped)"
        )
        return report

    def _convert_layer(self, reader: FeatureReader, layer: LayerDescriptor, layer_report: LayerReport):
        logger.info(f"Converting layer '{layer.name}' ({layer.geometry_type_name})")
        synthesizer = self.synthesizer
        converted_before = synthesizer.features_converted

        try:
            for feature in reader.read(layer, layer_report):
                synthesizer.synthesize(feature)
        finally:
            # Counted even when the run is aborted inside this layer
            layer_report.features_converted = synthesizer.features_converted - converted_before
            for (layer_name, reason), count in synthesizer.skipped.items():
                if layer_name == layer.name:
                    layer_report.record_skip(reason, count)

        logger.info(
            f"  {layer.name}: {layer_report.features_converted}/{layer_report.features_read} "
            f"features converted, {layer_report.rows_skipped} skipped"
        )

    def _finish(self, report: ConversionReport, writer) -> None:
        """Write out what has been synthesized so far"""
        graph = self.synthesizer.graph

        # ============================================================
        # STAGE 3: Referential completeness and output
        # ============================================================
        missing = graph.missing_references()
        if missing:
            raise RuntimeError(f"Entity graph references {len(missing)} missing members, e.g. {missing[0]}")

        counts = graph.counts()
        report.nodes = counts["nodes"]
        report.ways = counts["ways"]
        report.relations = counts["relations"]

        writer.write(graph)
        report.finished_at = datetime.now()
