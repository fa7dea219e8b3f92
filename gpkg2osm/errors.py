"""
Conversion errors

Every error carries a short ``reason`` code that is used in log diagnostics
and in the run report. Geometry and tag errors only affect one row, layer
validation errors only affect one layer, coordinate overflow aborts the run.
"""


class ConversionError(Exception):
    """Base class for all gpkg2osm errors"""
    reason = "conversion_error"


class GeometryDecodeError(ConversionError, ValueError):
    """A GeoPackage geometry blob could not be decoded"""
    reason = "invalid_geometry"


class InvalidHeaderError(GeometryDecodeError):
    """Blob does not start with the 'GP' magic bytes"""
    reason = "invalid_header"


class UnsupportedEnvelopeError(GeometryDecodeError):
    """Envelope indicator outside of the defined envelope kinds"""
    reason = "unsupported_envelope"

    def __init__(self, indicator: int):
        super().__init__(f"invalid envelope type: {indicator}")
        self.indicator = indicator


class TruncatedBlobError(GeometryDecodeError):
    """Blob is shorter than its header plus envelope"""
    reason = "truncated_blob"


class InvalidGeometryError(GeometryDecodeError):
    """WKB payload rejected by the geometry parser"""
    reason = "invalid_geometry"


class MalformedTagDataError(ConversionError, ValueError):
    """JSON tag field is not a flat key/value object"""
    reason = "malformed_tag_data"


class LayerValidationError(ConversionError, ValueError):
    """Layer cannot be exported"""

    def __init__(self, layer_name: str, reason: str, detail: str):
        super().__init__(f"{layer_name}: {detail}")
        self.layer_name = layer_name
        self.reason = reason
        self.detail = detail


class CoordinateOverflowError(ConversionError):
    """Coordinate cannot be represented as an OSM fixed-point value"""
    reason = "coordinate_overflow"
