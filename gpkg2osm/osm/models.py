"""
OSM data models

Data classes for OSM nodes, ways and relations. Ways and relations hold
member identifiers, never the member objects.
"""

from typing import Any, Dict, Iterator, List, Tuple, Union
from dataclasses import dataclass, field
from enum import Enum


class MemberType(Enum):
    """OSM primitive kinds"""
    NODE = "node"
    WAY = "way"
    RELATION = "relation"


@dataclass
class OSMNode:
    """Represents an OSM node (point)"""
    id: int
    lat: float
    lon: float
    tags: Dict[str, str] = field(default_factory=dict)

    kind = MemberType.NODE


@dataclass
class OSMWay:
    """Represents an OSM way (line or ring)"""
    id: int
    nodes: List[int]
    tags: Dict[str, str] = field(default_factory=dict)

    kind = MemberType.WAY

    @property
    def is_closed(self) -> bool:
        return len(self.nodes) > 2 and self.nodes[0] == self.nodes[-1]


@dataclass(frozen=True)
class RelationMember:
    type: MemberType
    ref: int
    role: str = ""


@dataclass
class OSMRelation:
    """Represents an OSM relation"""
    id: int
    members: List[RelationMember] = field(default_factory=list)
    tags: Dict[str, str] = field(default_factory=dict)

    kind = MemberType.RELATION


OSMEntity = Union[OSMNode, OSMWay, OSMRelation]


def format_tag_value(value: Any) -> str:
    """Render a tag value the way OSM expects it"""
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return repr(value)
    return str(value)


def to_osm_tags(tags: Dict[str, Any]) -> Dict[str, str]:
    """Convert a tag mapping to OSM string tags, nulls are dropped"""
    return {str(k): format_tag_value(v) for k, v in tags.items() if v is not None}


@dataclass
class EntityGraph:
    """All primitives produced by one conversion run"""
    nodes: Dict[int, OSMNode] = field(default_factory=dict)
    ways: Dict[int, OSMWay] = field(default_factory=dict)
    relations: Dict[int, OSMRelation] = field(default_factory=dict)

    def add(self, entity: OSMEntity) -> None:
        self._store(entity.kind)[entity.id] = entity

    def get(self, kind: MemberType, entity_id: int):
        return self._store(kind).get(entity_id)

    def _store(self, kind: MemberType) -> Dict[int, Any]:
        if kind is MemberType.NODE:
            return self.nodes
        if kind is MemberType.WAY:
            return self.ways
        return self.relations

    def __len__(self) -> int:
        return len(self.nodes) + len(self.ways) + len(self.relations)

    def __iter__(self) -> Iterator[OSMEntity]:
        """Nodes, then ways, then relations, each sorted by id"""
        for store in (self.nodes, self.ways, self.relations):
            for entity_id in sorted(store):
                yield store[entity_id]

    def counts(self) -> Dict[str, int]:
        return {
            "nodes": len(self.nodes),
            "ways": len(self.ways),
            "relations": len(self.relations),
        }

    def missing_references(self) -> List[Tuple[MemberType, int]]:
        """References from ways and relations that do not resolve"""
        missing = []
        for way in self.ways.values():
            for node_id in way.nodes:
                if node_id not in self.nodes:
                    missing.append((MemberType.NODE, node_id))
        for relation in self.relations.values():
            for member in relation.members:
                if self.get(member.type, member.ref) is None:
                    missing.append((member.type, member.ref))
        return missing
