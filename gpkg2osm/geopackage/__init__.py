"""
GeoPackage input module

Components for reading feature layers out of a GeoPackage:
- Models: Layer descriptors and features
- Layers: Layer discovery and validation
- Tags: Tag column selection and merging
- Geometry: GeoPackage binary geometry decoding
- Reader: Row-by-row feature reading
"""

from .models import GeometryType, LayerDescriptor, Feature
from .layers import discover_layers
from .tags import TagResolver
from .geometry import GeometryDecoder, decode, parse_header
from .reader import FeatureReader

__all__ = [
    "GeometryType",
    "LayerDescriptor",
    "Feature",
    "discover_layers",
    "TagResolver",
    "GeometryDecoder",
    "decode",
    "parse_header",
    "FeatureReader",
]
