"""
Shared fixtures: GeoPackage geometry blobs and small GeoPackage files
"""

import sys
import sqlite3
import struct
from pathlib import Path

import pytest
from loguru import logger
from shapely import wkb

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from gpkg2osm.geopackage.models import Feature, LayerDescriptor


ENVELOPE_DOUBLES = {0: 0, 1: 4, 2: 6, 3: 6, 4: 8}


def make_blob(geometry, envelope: int = 1, srs_id: int = 4326, little_endian: bool = True,
              envelope_fill=None) -> bytes:
    """GeoPackage binary geometry for a shapely geometry"""
    flags = (envelope << 1) | (1 if little_endian else 0)
    order = "<" if little_endian else ">"
    header = b"GP" + bytes([0, flags]) + struct.pack(order + "i", srs_id)

    count = ENVELOPE_DOUBLES.get(envelope, 0)
    if envelope_fill is not None:
        values = [envelope_fill] * count
    else:
        minx, miny, maxx, maxy = geometry.bounds
        values = ([minx, maxx, miny, maxy] + [0.0] * 4)[:count]
    env = struct.pack(order + "d" * count, *values)
    return header + env + wkb.dumps(geometry)


def build_geopackage(path: Path, layers: list) -> Path:
    """
    Create a minimal GeoPackage

    Each layer is a dict with: name, geometry_type, srs_id (default 4326),
    tag_columns (list), json_field (bool), extra_columns (list, untagged),
    rows (list of dicts; "geom" is a shapely geometry, raw bytes or None).
    """
    conn = sqlite3.connect(str(path))
    conn.execute(
        "CREATE TABLE gpkg_geometry_columns (table_name TEXT, column_name TEXT, "
        "geometry_type_name TEXT, srs_id INTEGER, z TINYINT, m TINYINT)"
    )
    conn.execute(
        "CREATE TABLE gpkg_data_columns (table_name TEXT, column_name TEXT, name TEXT, "
        "title TEXT, description TEXT, mime_type TEXT, constraint_name TEXT)"
    )
    for layer in layers:
        name = layer["name"]
        tag_columns = layer.get("tag_columns", [])
        extra_columns = layer.get("extra_columns", [])
        json_field = layer.get("json_field", False)

        columns = list(tag_columns) + list(extra_columns) + (["osm_tags"] if json_field else [])
        column_sql = "".join(f', "{c}"' for c in columns)
        conn.execute(f'CREATE TABLE "{name}" (fid INTEGER PRIMARY KEY AUTOINCREMENT, geom BLOB{column_sql})')
        conn.execute(
            "INSERT INTO gpkg_geometry_columns VALUES (?, 'geom', ?, ?, 0, 0)",
            (name, layer["geometry_type"], layer.get("srs_id", 4326))
        )
        for column in tag_columns:
            conn.execute(
                "INSERT INTO gpkg_data_columns (table_name, column_name, description) VALUES (?, ?, ?)",
                (name, column, "OSM tag")
            )
        for column in extra_columns:
            conn.execute(
                "INSERT INTO gpkg_data_columns (table_name, column_name, description) VALUES (?, ?, ?)",
                (name, column, "internal reference")
            )
        if json_field:
            conn.execute(
                "INSERT INTO gpkg_data_columns (table_name, column_name, description, mime_type) "
                "VALUES (?, 'osm_tags', 'free-form tags', 'application/json')",
                (name,)
            )

        for row in layer.get("rows", []):
            geom = row.get("geom")
            if geom is not None and not isinstance(geom, (bytes, bytearray)):
                geom = make_blob(geom)
            values = [geom] + [row.get(c) for c in columns]
            placeholders = ", ".join("?" for _ in values)
            conn.execute(
                f'INSERT INTO "{name}" (geom{column_sql}) VALUES ({placeholders})', values
            )
    conn.commit()
    conn.close()
    return path


class CollectingWriter:
    """Output writer that keeps the graph in memory"""

    def __init__(self):
        self.graph = None
        self.calls = 0

    def write(self, graph):
        self.graph = graph
        self.calls += 1


@pytest.fixture
def blob():
    return make_blob


@pytest.fixture
def geopackage(tmp_path):
    def _build(layers, name="test.gpkg"):
        return build_geopackage(tmp_path / name, layers)
    return _build


@pytest.fixture
def line_layer():
    return LayerDescriptor(
        name="roads",
        geometry_column="geom",
        geometry_type_name="LINESTRING",
        srs_id=4326,
        tag_columns=("highway",),
    )


@pytest.fixture
def make_feature(line_layer):
    def _make(geometry, tags=None, layer=None, row_number=1):
        return Feature(layer=layer or line_layer, tags=tags or {}, geometry=geometry, row_number=row_number)
    return _make


@pytest.fixture
def collecting_writer():
    return CollectingWriter()


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    # cli.setup_logging binds handlers to the captured stderr of one test
    logger.remove()
