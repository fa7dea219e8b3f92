"""
OpenStreetMap output module

Components for building and writing the OSM entity graph:
- Models: Data structures (OSMNode, OSMWay, OSMRelation, EntityGraph)
- Synthesizer: Feature to node/way/relation conversion with node deduplication
- Writer: OSM XML and PBF output
"""

from .models import (
    MemberType, OSMNode, OSMWay, OSMRelation, RelationMember, EntityGraph,
)
from .synthesizer import EntitySynthesizer, NodeTable, IdentifierAllocator
from .writer import OSMXmlWriter, OSMPbfWriter, open_writer

__all__ = [
    "MemberType",
    "OSMNode",
    "OSMWay",
    "OSMRelation",
    "RelationMember",
    "EntityGraph",
    "EntitySynthesizer",
    "NodeTable",
    "IdentifierAllocator",
    "OSMXmlWriter",
    "OSMPbfWriter",
    "open_writer",
]
