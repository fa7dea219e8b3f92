"""
Configuration settings for gpkg2osm
"""

from dataclasses import dataclass, field
from typing import Optional


TAG_MERGE_MODES = ("python", "sqlite")


@dataclass
class OutputConfig:
    """OSM output file settings"""
    generator: str = "gpkg2osm"
    osm_version: str = "0.6"

    # Value of the <osm upload="..."> attribute (None leaves it out)
    upload: Optional[str] = "false"

    # Per-element attributes
    add_version: bool = False
    add_timestamp: bool = False


@dataclass
class ConverterConfig:
    """Converter configuration"""
    # Only layers in this reference system are exported (WGS84 lat/lon)
    accepted_srs_id: int = 4326

    # JSON column holding free-form OSM tags, registered in gpkg_data_columns
    json_tags_column: str = "osm_tags"
    json_tags_mime_type: str = "application/json"

    # gpkg_data_columns.description marker for columns that map to an OSM tag
    tag_column_marker: str = "osm tag"

    # Where named columns and the JSON column are merged: "python" or "sqlite"
    tag_merge: str = "python"

    # Overwrite existing output files
    force_overwrite: bool = False

    output: OutputConfig = field(default_factory=OutputConfig)


# Global config instance
config = ConverterConfig()


def get_config() -> ConverterConfig:
    """Get global configuration"""
    return config


def validate_config(config: ConverterConfig) -> None:
    """
    Validate that all required configuration values are set.
    Raises ValueError if any required value is missing or invalid.
    """
    errors = []

    if not isinstance(config.accepted_srs_id, int) or config.accepted_srs_id <= 0:
        errors.append(f"accepted_srs_id must be a positive integer, got {config.accepted_srs_id!r}")

    if not config.json_tags_column:
        errors.append("json_tags_column is required in config but not set")

    if not config.tag_column_marker:
        errors.append("tag_column_marker is required in config but not set")

    if config.tag_merge not in TAG_MERGE_MODES:
        errors.append(f"tag_merge must be one of {', '.join(TAG_MERGE_MODES)}, got {config.tag_merge!r}")

    if config.output is None:
        errors.append("output configuration is required but not set")
    elif not config.output.generator:
        errors.append("output.generator is required but not set")

    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ValueError(error_msg)
