"""
GeoPackage layer discovery

Reads gpkg_geometry_columns and gpkg_data_columns to find the feature
tables and which of their columns carry OSM tags.
"""

import sqlite3
from typing import Dict, List, Optional, Tuple
from loguru import logger

from ..config import ConverterConfig, get_config
from ..errors import LayerValidationError
from .models import LayerDescriptor

GEOMETRY_COLUMNS_QUERY = (
    "SELECT table_name, column_name, geometry_type_name, srs_id, z, m "
    "FROM gpkg_geometry_columns"
)
DATA_COLUMNS_QUERY = (
    "SELECT table_name, column_name, description, mime_type "
    "FROM gpkg_data_columns"
)


def table_exists(conn: sqlite3.Connection, name: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type IN ('table', 'view') AND name = ?",
        (name,)
    ).fetchone()
    return row is not None


def discover_layers(
    conn: sqlite3.Connection,
    config: Optional[ConverterConfig] = None
) -> Tuple[List[LayerDescriptor], Dict[str, LayerValidationError]]:
    """
    Find exportable layers in a GeoPackage

    Args:
        conn: Open connection to the GeoPackage
        config: Converter configuration

    Returns:
        Tuple of (valid layers sorted by name, dropped layer name -> validation error)
    """
    config = config or get_config()
    geometry_rows = conn.execute(GEOMETRY_COLUMNS_QUERY).fetchall()

    tag_columns: Dict[str, List[str]] = {}
    json_field = set()

    # gpkg_data_columns is an optional extension
    if table_exists(conn, "gpkg_data_columns"):
        layer_names = {row[0] for row in geometry_rows}
        marker = config.tag_column_marker.lower()
        for table, column, description, mime_type in conn.execute(DATA_COLUMNS_QUERY):
            if table not in layer_names:
                logger.warning(f"Not a geometry layer: {table}")
                continue
            if column == config.json_tags_column and mime_type == config.json_tags_mime_type:
                # valid OSM tags field
                json_field.add(table)
                continue
            if description and marker in description.lower():
                cols = tag_columns.setdefault(table, [])
                if column not in cols:
                    cols.append(column)
    else:
        logger.debug("No gpkg_data_columns table, no tag columns declared")

    layers = []
    dropped: Dict[str, LayerValidationError] = {}
    for table, column, geometry_type_name, srs_id, z, m in geometry_rows:
        layer = LayerDescriptor(
            name=table,
            geometry_column=column,
            geometry_type_name=geometry_type_name or "",
            srs_id=srs_id,
            tag_columns=tuple(tag_columns.get(table, [])),
            has_json_field=table in json_field,
            z=z,
            m=m,
        )
        try:
            layer.validate(config.accepted_srs_id)
        except LayerValidationError as e:
            logger.warning(f"Bad layer '{table}': {e.reason} ({e.detail})")
            dropped[table] = e
            continue
        layers.append(layer)

    layers.sort(key=lambda l: l.name)
    return layers, dropped
