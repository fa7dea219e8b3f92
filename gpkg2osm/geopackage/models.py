"""
GeoPackage layer models

Static layer metadata and the per-row feature aggregate
"""

from typing import Any, Dict, Optional, Tuple
from dataclasses import dataclass, field
from enum import Enum

from ..errors import LayerValidationError


class GeometryType(Enum):
    """Geometry kinds that can be exported to OSM"""
    POINT = "POINT"
    LINESTRING = "LINESTRING"
    POLYGON = "POLYGON"
    MULTIPOINT = "MULTIPOINT"
    MULTILINESTRING = "MULTILINESTRING"
    MULTIPOLYGON = "MULTIPOLYGON"

    @classmethod
    def from_name(cls, name: Optional[str]) -> Optional["GeometryType"]:
        """Match a gpkg geometry_type_name, None if it is not exportable"""
        if not name:
            return None
        try:
            return cls(name.strip().upper())
        except ValueError:
            return None


@dataclass(frozen=True)
class LayerDescriptor:
    """Which columns of one feature table get exported to the OSM file"""
    name: str  # Also the table name
    geometry_column: str
    geometry_type_name: str  # As declared in gpkg_geometry_columns
    srs_id: int
    tag_columns: Tuple[str, ...] = ()
    has_json_field: bool = False
    z: Optional[int] = None
    m: Optional[int] = None

    @property
    def geometry_type(self) -> Optional[GeometryType]:
        return GeometryType.from_name(self.geometry_type_name)

    @property
    def tag_sources(self) -> Tuple[str, ...]:
        """Named tag columns followed by the JSON field marker, for display"""
        if self.has_json_field:
            return self.tag_columns + ("<json>",)
        return self.tag_columns

    def validate(self, accepted_srs_id: int = 4326) -> None:
        """Raise LayerValidationError if the layer is not exportable"""
        if not self.has_json_field and not self.tag_columns:
            raise LayerValidationError(self.name, "no_tag_source", "no OSM tags")
        if self.srs_id != accepted_srs_id:
            raise LayerValidationError(
                self.name, "invalid_srs",
                f"invalid SRS {self.srs_id}, must be EPSG:{accepted_srs_id}"
            )
        if self.geometry_type is None:
            raise LayerValidationError(
                self.name, "unsupported_geometry_type",
                f"invalid geometry type {self.geometry_type_name!r}"
            )


@dataclass
class Feature:
    """One row of a layer: tags plus decoded geometry"""
    layer: LayerDescriptor
    tags: Dict[str, Any] = field(default_factory=dict)
    geometry: Any = None  # shapely geometry
    row_number: Optional[int] = None
