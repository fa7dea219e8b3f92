"""
GeoPackage geometry blob decoding

A GeoPackage geometry is a small binary header, an optional bounding box
envelope, and a standard WKB payload:

    magic 'GP' | version | flags | srs_id (int32) | envelope | WKB

Flags layout (https://www.geopackage.org/spec/#gpb_format):
    bit 0     byte order of header values (1 = little endian)
    bits 1-3  envelope contents indicator
    bit 4     empty geometry
    bit 5     extended GeoPackage geometry
"""

import struct
from dataclasses import dataclass

import shapely
from shapely.errors import ShapelyError

from ..errors import (
    InvalidHeaderError,
    UnsupportedEnvelopeError,
    TruncatedBlobError,
    InvalidGeometryError,
)

MAGIC = b"GP"
HEADER_LENGTH = 8

# Envelope indicator -> envelope size in bytes
# 1: [minx, maxx, miny, maxy], 2: + [minz, maxz], 3: + [minm, maxm], 4: + z and m
ENVELOPE_LENGTHS = {
    0: 0,
    1: 32,
    2: 48,
    3: 48,
    4: 64,
}


@dataclass(frozen=True)
class GeoPackageHeader:
    """Parsed GeoPackage binary header"""
    version: int
    flags: int
    srs_id: int
    envelope_length: int

    @property
    def byte_order(self) -> str:
        return "<" if self.flags & 0b1 else ">"

    @property
    def is_empty(self) -> bool:
        return bool(self.flags & 0b10000)

    @property
    def is_extended(self) -> bool:
        return bool(self.flags & 0b100000)

    @property
    def wkb_offset(self) -> int:
        return HEADER_LENGTH + self.envelope_length


def envelope_length(flags: int) -> int:
    """Envelope size in bytes for a flags byte"""
    indicator = (flags >> 1) & 0b111
    try:
        return ENVELOPE_LENGTHS[indicator]
    except KeyError:
        raise UnsupportedEnvelopeError(indicator) from None


def parse_header(blob: bytes) -> GeoPackageHeader:
    """Validate and parse the header of a geometry blob"""
    if blob is None or len(blob) < 2 or blob[:2] != MAGIC:
        raise InvalidHeaderError("bad header: missing 'GP' magic")
    if len(blob) < HEADER_LENGTH:
        raise TruncatedBlobError(f"blob of {len(blob)} bytes is shorter than the header")

    version = blob[2]
    flags = blob[3]
    env_size = envelope_length(flags)
    byte_order = "<" if flags & 0b1 else ">"
    (srs_id,) = struct.unpack(byte_order + "i", blob[4:8])

    if len(blob) < HEADER_LENGTH + env_size:
        raise TruncatedBlobError(
            f"blob of {len(blob)} bytes is shorter than header plus {env_size} byte envelope"
        )
    return GeoPackageHeader(version=version, flags=flags, srs_id=srs_id, envelope_length=env_size)


def decode(blob: bytes):
    """Decode a GeoPackage geometry blob into a shapely geometry"""
    header = parse_header(blob)
    # The envelope is only a bounding box, skip it
    payload = bytes(blob[header.wkb_offset:])
    try:
        # Unclosed rings are closed by the reader, nothing else is repaired
        geometry = shapely.from_wkb(payload, on_invalid="fix")
    except (ShapelyError, ValueError) as e:
        raise InvalidGeometryError(f"bad WKB payload: {e}") from e
    if geometry is None:
        raise InvalidGeometryError("bad WKB payload: geometry could not be read")
    return geometry


class GeometryDecoder:
    """Decodes geometry blobs for the feature reader"""

    def decode(self, blob: bytes):
        return decode(blob)

    def header(self, blob: bytes) -> GeoPackageHeader:
        return parse_header(blob)
