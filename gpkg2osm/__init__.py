"""
gpkg2osm

Converts GeoPackage feature layers into OpenStreetMap nodes, ways and relations.
"""

from .config import ConverterConfig, OutputConfig, get_config
from .pipeline import ConversionPipeline

__version__ = "0.1.0"

__all__ = [
    "ConverterConfig",
    "OutputConfig",
    "get_config",
    "ConversionPipeline",
]
