"""
Tag resolution

Decides which columns of a layer become OSM tags and merges them into one
flat mapping per row. Named tag columns come first, the JSON tag field is
applied on top of them as a merge patch: JSON values replace column values
and a JSON null removes the key. Null values never reach the output.
"""

import json
import re
from typing import Any, Dict, List, Optional, Sequence

from ..config import ConverterConfig, get_config
from ..errors import MalformedTagDataError
from .models import LayerDescriptor

SCALAR_TYPES = (str, int, float, bool)

# Characters outside the XML 1.0 Char production
XML_INVALID_CHARS = re.compile("[^\u0009\u000a\u000d\u0020-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")


def quote_identifier(name: str) -> str:
    """Quote a SQLite identifier"""
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    """Quote a SQLite string literal"""
    return "'" + value.replace("'", "''") + "'"


def merge_patch(base: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    """Apply a flat merge patch, values are replaced wholesale"""
    merged = dict(base)
    for key, value in patch.items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = value
    return merged


def parse_json_tags(text: Any) -> Dict[str, Any]:
    """Parse a JSON tag field into a flat dict, nulls are kept"""
    if isinstance(text, (bytes, bytearray)):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedTagDataError(f"tag field is not UTF-8: {e}") from e
    if not isinstance(text, str):
        raise MalformedTagDataError(f"tag field is not JSON text: {type(text).__name__}")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedTagDataError(f"bad JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedTagDataError(f"tag field is not a JSON object: {type(data).__name__}")
    for key, value in data.items():
        if value is not None and not isinstance(value, SCALAR_TYPES):
            raise MalformedTagDataError(f"tag {key!r} is not a scalar value")
    return data


class TagResolver:
    """
    Builds the per-layer query and resolves each row's tags

    With tag_merge="python" the query returns the raw tag columns and the merge
    happens here. With tag_merge="sqlite" the query returns one merged JSON
    object per row and only null filtering happens here.
    """

    def __init__(self, config: Optional[ConverterConfig] = None):
        self.config = config or get_config()
        self.json_column = self.config.json_tags_column
        self.merge_in_database = self.config.tag_merge == "sqlite"

    def query(self, layer: LayerDescriptor) -> str:
        """Query returning (geometry blob, tag values...) for every feature"""
        geom = quote_identifier(layer.geometry_column)
        table = quote_identifier(layer.name)
        json_col = quote_identifier(self.json_column)

        # Only the JSON field, nothing to merge
        if layer.has_json_field and not layer.tag_columns:
            return f"SELECT {geom}, {json_col} FROM {table}"

        if not self.merge_in_database:
            cols = [quote_identifier(c) for c in layer.tag_columns]
            if layer.has_json_field:
                cols.append(json_col)
            return f"SELECT {geom}, {', '.join(cols)} FROM {table}"

        pairs = []
        for col in layer.tag_columns:
            pairs.append(quote_literal(col))
            pairs.append(quote_identifier(col))
        json_tags = f"json_object({', '.join(pairs)})"
        # Binary cells and malformed JSON give NULL for the row instead of failing the query
        has_blob = " OR ".join(f"typeof({quote_identifier(c)}) = 'blob'" for c in layer.tag_columns)
        if layer.has_json_field:
            patch = f"COALESCE({json_col}, '{{}}')"
            json_tags = (
                f"CASE WHEN {has_blob} THEN NULL "
                f"WHEN json_valid({patch}) THEN json_patch({json_tags}, {patch}) END"
            )
        else:
            json_tags = f"CASE WHEN {has_blob} THEN NULL ELSE {json_tags} END"
        return f"SELECT {geom}, {json_tags} AS {json_col} FROM {table}"

    def column_mapping(self, layer: LayerDescriptor, values: Sequence[Any]) -> Dict[str, Any]:
        """Named tag columns as key -> cell value"""
        tags = {}
        for name, value in zip(layer.tag_columns, values):
            if isinstance(value, (bytes, bytearray, memoryview)):
                raise MalformedTagDataError(f"column {name!r} holds binary data")
            tags[name] = value
        return tags

    def resolve(self, layer: LayerDescriptor, values: Sequence[Any]) -> Dict[str, Any]:
        """
        Merge the non-geometry values of one query row into a tag mapping

        Args:
            layer: Layer the row belongs to
            values: Row values after the geometry column, in query order

        Returns:
            Flat dict without null values
        """
        values = list(values)
        if layer.has_json_field and (self.merge_in_database or not layer.tag_columns):
            if len(values) != 1:
                raise MalformedTagDataError(f"expected one tag field, got {len(values)}")
            text = values[0]
            if text is None:
                if self.merge_in_database and layer.tag_columns:
                    raise MalformedTagDataError(f"{self.json_column} is not valid JSON")
                return {}
            return self._clean_tags(parse_json_tags(text))

        if self.merge_in_database:
            # Columns only: json_object() already merged them
            if len(values) != 1 or values[0] is None:
                raise MalformedTagDataError("missing merged tag object")
            return self._clean_tags(parse_json_tags(values[0]))

        expected = len(layer.tag_columns) + (1 if layer.has_json_field else 0)
        if len(values) != expected:
            raise MalformedTagDataError(f"expected {expected} tag values, got {len(values)}")

        tags = self.column_mapping(layer, values[:len(layer.tag_columns)])
        if layer.has_json_field:
            text = values[-1]
            if text is not None:
                tags = merge_patch(tags, parse_json_tags(text))
        return self._clean_tags(tags)

    @staticmethod
    def _clean_tags(tags: Dict[str, Any]) -> Dict[str, Any]:
        """Drop nulls, reject text that cannot be written as XML"""
        tags = {k: v for k, v in tags.items() if v is not None}
        for key, value in tags.items():
            if XML_INVALID_CHARS.search(key) or (isinstance(value, str) and XML_INVALID_CHARS.search(value)):
                raise MalformedTagDataError(f"tag {key!r} contains characters not allowed in OSM XML")
        return tags

    def selected_columns(self, layer: LayerDescriptor) -> List[str]:
        """Source columns read for a layer, for display"""
        cols = [layer.geometry_column, *layer.tag_columns]
        if layer.has_json_field:
            cols.append(self.json_column)
        return cols
