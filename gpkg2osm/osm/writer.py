"""
OSM file output

Writes an EntityGraph as OSM XML (lxml) or PBF (pyosmium). Nodes are written
first, then ways, then relations, each sorted by id.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Optional, Union

from loguru import logger
from lxml import etree

from ..config import ConverterConfig, OutputConfig, get_config
from .models import EntityGraph, MemberType, OSMNode, OSMWay

STDOUT = "-"


def format_coordinate(value: float) -> str:
    """Coordinate with at most 7 decimals and no trailing zeros"""
    text = f"{value:.7f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


class OSMXmlWriter:
    """Writes OSM XML 0.6 to a file path or a binary stream"""

    def __init__(
        self,
        target: Union[str, Path, BinaryIO],
        output_config: Optional[OutputConfig] = None,
        force_overwrite: bool = False
    ):
        self.target = target
        self.output_config = output_config or OutputConfig()
        self.force_overwrite = force_overwrite

    def write(self, graph: EntityGraph) -> None:
        if hasattr(self.target, "write"):
            self._write_stream(self.target, graph)
            return

        path = Path(self.target)
        write_mode = "wb" if self.force_overwrite else "xb"
        f = path.open(write_mode, buffering=-1)
        try:
            with f:
                self._write_stream(f, graph)
        except Exception:
            # No truncated output
            path.unlink(missing_ok=True)
            raise
        logger.info(f"Wrote OSM XML: {path}")

    def _common_attributes(self) -> dict:
        attributes = {"visible": "true"}
        if self.output_config.add_version:
            attributes["version"] = "1"
        if self.output_config.add_timestamp:
            attributes["timestamp"] = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        return attributes

    def _write_stream(self, stream: BinaryIO, graph: EntityGraph) -> None:
        root_attrib = {
            "version": self.output_config.osm_version,
            "generator": self.output_config.generator,
        }
        if self.output_config.upload is not None:
            root_attrib["upload"] = self.output_config.upload
        attributes = self._common_attributes()

        with etree.xmlfile(stream, encoding="utf-8", buffered=False) as xf:
            xf.write_declaration()
            with xf.element("osm", **root_attrib):
                for entity in graph:
                    xf.write(self._element(entity, attributes))

    @staticmethod
    def _element(entity, attributes: dict) -> etree._Element:
        xmlattrs = {"id": str(entity.id)}
        xmlattrs.update(attributes)

        if isinstance(entity, OSMNode):
            xmlattrs["lat"] = format_coordinate(entity.lat)
            xmlattrs["lon"] = format_coordinate(entity.lon)
            xmlobject = etree.Element("node", xmlattrs)
        elif isinstance(entity, OSMWay):
            xmlobject = etree.Element("way", xmlattrs)
            for node_id in entity.nodes:
                xmlobject.append(etree.Element("nd", {"ref": str(node_id)}))
        else:
            xmlobject = etree.Element("relation", xmlattrs)
            for member in entity.members:
                xmlobject.append(etree.Element("member", {
                    "type": member.type.value,
                    "ref": str(member.ref),
                    "role": member.role,
                }))

        for key, value in sorted(entity.tags.items()):
            xmlobject.append(etree.Element("tag", {"k": key, "v": value}))
        return xmlobject


class OSMPbfWriter:
    """Writes OSM PBF with pyosmium"""

    MEMBER_TYPES = {
        MemberType.NODE: "n",
        MemberType.WAY: "w",
        MemberType.RELATION: "r",
    }

    def __init__(
        self,
        target: Union[str, Path],
        output_config: Optional[OutputConfig] = None,
        force_overwrite: bool = False
    ):
        self.target = Path(target)
        self.output_config = output_config or OutputConfig()
        self.force_overwrite = force_overwrite

    def write(self, graph: EntityGraph) -> None:
        import osmium
        from osmium.osm import mutable

        if self.target.exists():
            if not self.force_overwrite:
                raise FileExistsError(f"Output file already exists: {self.target}")
            # SimpleWriter refuses to replace an existing file
            self.target.unlink()

        attrs = {"visible": True}
        if self.output_config.add_version:
            attrs["version"] = 1
        if self.output_config.add_timestamp:
            attrs["timestamp"] = datetime.now(timezone.utc)

        writer = osmium.SimpleWriter(str(self.target))
        try:
            for node in sorted(graph.nodes.values(), key=lambda n: n.id):
                writer.add_node(mutable.Node(
                    id=node.id, location=(node.lon, node.lat), tags=node.tags, **attrs
                ))
            for way in sorted(graph.ways.values(), key=lambda w: w.id):
                writer.add_way(mutable.Way(id=way.id, nodes=way.nodes, tags=way.tags, **attrs))
            for relation in sorted(graph.relations.values(), key=lambda r: r.id):
                members = [
                    (self.MEMBER_TYPES[m.type], m.ref, m.role) for m in relation.members
                ]
                writer.add_relation(mutable.Relation(
                    id=relation.id, members=members, tags=relation.tags, **attrs
                ))
        finally:
            writer.close()
        logger.info(f"Wrote OSM PBF: {self.target}")


def open_writer(target: str, config: Optional[ConverterConfig] = None):
    """
    Pick a writer for an output target

    '-' writes XML to stdout, *.pbf writes PBF, *.osm and *.xml write XML.
    """
    config = config or get_config()
    if target == STDOUT:
        return OSMXmlWriter(sys.stdout.buffer, config.output)

    lower = target.lower()
    if lower.endswith(".pbf"):
        return OSMPbfWriter(target, config.output, config.force_overwrite)
    if lower.endswith(".osm") or lower.endswith(".xml"):
        return OSMXmlWriter(target, config.output, config.force_overwrite)
    raise ValueError(f"Invalid output extension for {target}. Must be .pbf, .osm or .xml")
