"""
OSM entity synthesis

Turns decoded features into OSM nodes, ways and relations. Vertices are
deduplicated on a 1e-7 degree grid so features sharing a coordinate share
the node. Polygons with holes become multipolygon relations, multi
geometries with several members are wrapped in one relation carrying the
feature tags.
"""

from collections import Counter
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
import shapely
from loguru import logger

from ..errors import CoordinateOverflowError
from ..geopackage.models import Feature
from .models import (
    EntityGraph, MemberType, OSMEntity, OSMNode, OSMRelation, OSMWay,
    RelationMember, to_osm_tags,
)

# Fixed: 7 decimal digits is ~1.1 cm at the equator and matches OSM storage
COORDINATE_PRECISION = 7
COORDINATE_SCALE = 10 ** COORDINATE_PRECISION
# OSM stores coordinates as signed 32-bit fixed-point integers
MAX_COORDINATE_KEY = 2 ** 31 - 1

CoordinateKey = Tuple[int, int]
Emitted = Dict[Tuple[MemberType, int], OSMEntity]


class IdentifierAllocator:
    """Strictly increasing identifiers per primitive kind, starting at 1"""

    def __init__(self):
        self._last = {kind: 0 for kind in MemberType}

    def next_id(self, kind: MemberType) -> int:
        self._last[kind] += 1
        return self._last[kind]

    def last_id(self, kind: MemberType) -> int:
        return self._last[kind]


class NodeTable:
    """Coordinate key -> node id, first writer wins"""

    def __init__(self):
        self._ids: Dict[CoordinateKey, int] = {}

    @staticmethod
    def keys_for(coords: np.ndarray) -> np.ndarray:
        """
        Fixed-point keys for an (N, 2) array of lon/lat coordinates

        Raises:
            CoordinateOverflowError: if a coordinate is not finite or does not
                fit OSM's 32-bit fixed-point range
        """
        coords = np.asarray(coords, dtype=np.float64)[:, :2]
        if not np.all(np.isfinite(coords)):
            raise CoordinateOverflowError("non-finite coordinate")
        scaled = np.rint(coords * COORDINATE_SCALE)
        if np.any(np.abs(scaled) > MAX_COORDINATE_KEY):
            bad = coords[np.any(np.abs(scaled) > MAX_COORDINATE_KEY, axis=1)][0]
            raise CoordinateOverflowError(
                f"coordinate ({bad[0]}, {bad[1]}) out of fixed-point range"
            )
        return scaled.astype(np.int64)

    def get(self, key: CoordinateKey) -> Optional[int]:
        return self._ids.get(key)

    def add(self, key: CoordinateKey, node_id: int) -> None:
        self._ids[key] = node_id

    def __contains__(self, key: CoordinateKey) -> bool:
        return key in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def clear(self) -> None:
        self._ids.clear()


class EntitySynthesizer:
    """
    Builds the OSM entity graph of one conversion run

    Owns the node table, the identifier allocator and the graph, so separate
    instances never share state.

    Usage:
        synthesizer = EntitySynthesizer()
        for feature in features:
            synthesizer.synthesize(feature)
        writer.write(synthesizer.graph)
    """

    def __init__(self):
        self.allocator = IdentifierAllocator()
        self.node_table = NodeTable()
        self.graph = EntityGraph()
        self.skipped: Counter = Counter()  # (layer name, reason) -> features
        self.features_converted = 0

        self._handlers: Dict[str, Callable] = {
            "Point": self._synthesize_point,
            "LineString": self._synthesize_line,
            "Polygon": self._synthesize_polygon,
            "MultiPoint": self._collection_handler(self._synthesize_point),
            "MultiLineString": self._collection_handler(self._synthesize_line),
            "MultiPolygon": self._collection_handler(self._synthesize_polygon),
        }

    def reset(self) -> None:
        """Forget everything produced so far"""
        self.allocator = IdentifierAllocator()
        self.node_table.clear()
        self.graph = EntityGraph()
        self.skipped.clear()
        self.features_converted = 0

    def synthesize(self, feature: Feature) -> List[OSMEntity]:
        """
        Create the primitives representing one feature

        Args:
            feature: Feature with shapely geometry and tag mapping

        Returns:
            Nodes, ways and relations making up the feature, each once.
            Empty if the feature was skipped.
        """
        geometry = feature.geometry
        if geometry is None or geometry.is_empty:
            self._skip(feature, "empty_geometry")
            return []

        handler = self._handlers.get(geometry.geom_type)
        if handler is None:
            self._skip(feature, "unsupported_geometry", geometry.geom_type)
            return []

        # Check every coordinate before anything is allocated
        try:
            NodeTable.keys_for(shapely.get_coordinates(geometry))
        except CoordinateOverflowError as e:
            raise CoordinateOverflowError(
                f"layer '{feature.layer.name}' row {feature.row_number}: {e}"
            ) from e

        emitted: Emitted = {}
        top = handler(geometry, to_osm_tags(feature.tags), emitted)
        if top is None:
            self._skip(feature, "degenerate_geometry")
            return []

        self.features_converted += 1
        return list(emitted.values())

    def _skip(self, feature: Feature, reason: str, detail: str = "") -> None:
        layer_name = feature.layer.name
        self.skipped[(layer_name, reason)] += 1
        message = f"Skipping row {feature.row_number} in layer '{layer_name}': {reason}"
        if detail:
            message += f" ({detail})"
        logger.warning(message)

    # ------------------------------------------------------------------
    # Node and way allocation
    # ------------------------------------------------------------------

    def _node_for(self, key: CoordinateKey, emitted: Emitted) -> OSMNode:
        node_id = self.node_table.get(key)
        if node_id is None:
            node_id = self.allocator.next_id(MemberType.NODE)
            self.node_table.add(key, node_id)
            self.graph.add(OSMNode(
                id=node_id,
                lat=key[1] / COORDINATE_SCALE,
                lon=key[0] / COORDINATE_SCALE,
            ))
        node = self.graph.nodes[node_id]
        emitted[(MemberType.NODE, node_id)] = node
        return node

    @staticmethod
    def _way_keys(coords: np.ndarray) -> Optional[List[CoordinateKey]]:
        """Vertex keys with consecutive duplicates collapsed, None if degenerate"""
        keys = NodeTable.keys_for(coords)
        if len(keys) < 2:
            return None
        keep = np.ones(len(keys), dtype=bool)
        keep[1:] = np.any(keys[1:] != keys[:-1], axis=1)
        keys = keys[keep]
        if len(np.unique(keys, axis=0)) < 2:
            return None
        return [(int(x), int(y)) for x, y in keys]

    def _way_for(self, keys: List[CoordinateKey], tags: Dict[str, str], emitted: Emitted) -> OSMWay:
        node_ids = [self._node_for(key, emitted).id for key in keys]
        way = OSMWay(id=self.allocator.next_id(MemberType.WAY), nodes=node_ids, tags=dict(tags))
        self.graph.add(way)
        emitted[(MemberType.WAY, way.id)] = way
        return way

    def _relation_for(self, members: List[RelationMember], tags: Dict[str, str],
                      emitted: Emitted) -> OSMRelation:
        relation = OSMRelation(
            id=self.allocator.next_id(MemberType.RELATION),
            members=members,
            tags=dict(tags),
        )
        self.graph.add(relation)
        emitted[(MemberType.RELATION, relation.id)] = relation
        return relation

    @staticmethod
    def _apply_tags(entity: OSMEntity, tags: Dict[str, str]) -> None:
        if not tags:
            return
        if isinstance(entity, OSMNode):
            # First writer wins on shared nodes
            if entity.tags:
                if entity.tags != tags:
                    logger.warning(f"Node {entity.id} is already tagged, keeping its first tags")
                return
            entity.tags = dict(tags)
        elif isinstance(entity, OSMRelation) and entity.tags.get("type") == "multipolygon":
            entity.tags = {**tags, "type": "multipolygon"}
        else:
            entity.tags.update(tags)

    # ------------------------------------------------------------------
    # Geometry handlers
    # ------------------------------------------------------------------

    def _synthesize_point(self, point, tags: Dict[str, str], emitted: Emitted) -> Optional[OSMEntity]:
        x, y = NodeTable.keys_for(shapely.get_coordinates(point))[0]
        node = self._node_for((int(x), int(y)), emitted)
        self._apply_tags(node, tags)
        return node

    def _synthesize_line(self, line, tags: Dict[str, str], emitted: Emitted) -> Optional[OSMEntity]:
        keys = self._way_keys(shapely.get_coordinates(line))
        if keys is None:
            logger.debug(f"Degenerate line with {len(line.coords)} vertices")
            return None
        return self._way_for(keys, tags, emitted)

    def _synthesize_polygon(self, polygon, tags: Dict[str, str], emitted: Emitted) -> Optional[OSMEntity]:
        # Ring position decides the role: the first ring is the outer one
        outer = self._way_keys(shapely.get_coordinates(polygon.exterior))
        if outer is None:
            logger.debug("Degenerate outer ring")
            return None

        inners = []
        for index, ring in enumerate(polygon.interiors, 1):
            keys = self._way_keys(shapely.get_coordinates(ring))
            if keys is None:
                logger.warning(f"Skipping degenerate inner ring {index}")
                continue
            inners.append(keys)

        # Simple polygon: the closed way carries the tags
        if not inners:
            return self._way_for(outer, tags, emitted)

        members = [RelationMember(MemberType.WAY, self._way_for(outer, {}, emitted).id, "outer")]
        for keys in inners:
            members.append(RelationMember(MemberType.WAY, self._way_for(keys, {}, emitted).id, "inner"))
        return self._relation_for(members, {**tags, "type": "multipolygon"}, emitted)

    def _collection_handler(self, member_handler: Callable) -> Callable:
        def synthesize_collection(collection, tags: Dict[str, str], emitted: Emitted) -> Optional[OSMEntity]:
            members: List[OSMEntity] = []
            seen = set()
            for part in collection.geoms:
                if part.is_empty:
                    continue
                entity = member_handler(part, {}, emitted)
                if entity is None:
                    logger.debug(f"Skipping degenerate {part.geom_type} member")
                    continue
                if (entity.kind, entity.id) not in seen:
                    seen.add((entity.kind, entity.id))
                    members.append(entity)

            if not members:
                return None
            if len(members) == 1:
                self._apply_tags(members[0], tags)
                return members[0]
            return self._relation_for(
                [RelationMember(m.kind, m.id, "member") for m in members], tags, emitted
            )
        return synthesize_collection
