"""
Tests for GeoPackage geometry blob decoding
"""

import struct

import pytest
from shapely.geometry import LineString, MultiPolygon, Point, Polygon

from gpkg2osm.errors import (
    InvalidGeometryError, InvalidHeaderError, TruncatedBlobError, UnsupportedEnvelopeError,
)
from gpkg2osm.geopackage.geometry import GeometryDecoder, decode, envelope_length, parse_header


@pytest.mark.parametrize("indicator,expected", [(0, 0), (1, 32), (2, 48), (3, 48), (4, 64)])
def test_envelope_lengths(indicator, expected):
    assert envelope_length(indicator << 1) == expected
    # Byte order and empty flags do not change the envelope size
    assert envelope_length((indicator << 1) | 0b10001) == expected


@pytest.mark.parametrize("indicator", [5, 6, 7])
def test_unsupported_envelope(blob, indicator):
    data = blob(Point(1, 2), envelope=indicator)
    with pytest.raises(UnsupportedEnvelopeError) as exc:
        decode(data)
    assert exc.value.indicator == indicator
    assert exc.value.reason == "unsupported_envelope"


@pytest.mark.parametrize("indicator", [0, 1, 2, 3, 4])
def test_decode_with_every_envelope(blob, indicator):
    line = LineString([(10.0, 59.0), (10.5, 59.5), (11.0, 59.25)])
    geometry = decode(blob(line, envelope=indicator))
    assert geometry.equals(line)


def test_64_byte_envelope_is_skipped(blob):
    point = Point(5.5, 60.1)
    data = blob(point, envelope=4)
    header = parse_header(data)
    assert header.envelope_length == 64
    assert header.wkb_offset == 72
    assert len(data) == 72 + 21  # 2D WKB point
    assert decode(data).equals(point)


def test_envelope_contents_are_ignored(blob):
    polygon = Polygon([(0, 0), (1, 0), (1, 1), (0, 1)])
    first = decode(blob(polygon, envelope=1, envelope_fill=0.0))
    second = decode(blob(polygon, envelope=1, envelope_fill=-999.5))
    assert first.equals(second)
    assert first.equals(polygon)


def test_decode_is_idempotent(blob):
    multi = MultiPolygon([
        Polygon([(0, 0), (1, 0), (1, 1), (0, 0)]),
        Polygon([(2, 2), (3, 2), (3, 3), (2, 2)]),
    ])
    data = blob(multi, envelope=2)
    assert decode(data).equals(decode(data))


@pytest.mark.parametrize("data", [b"", b"G", b"XP\x00\x03\xe6\x10\x00\x00", b"GX\x00\x03\xe6\x10\x00\x00"])
def test_invalid_header(data):
    with pytest.raises(InvalidHeaderError):
        decode(data)


def test_truncated_header():
    with pytest.raises(TruncatedBlobError):
        decode(b"GP\x00\x03")


def test_truncated_envelope(blob):
    data = blob(Point(1, 2), envelope=4)
    with pytest.raises(TruncatedBlobError):
        decode(data[:40])


def test_header_fields_little_and_big_endian(blob):
    little = parse_header(blob(Point(1, 2), srs_id=4326, little_endian=True))
    big = parse_header(blob(Point(1, 2), srs_id=4326, little_endian=False))
    assert little.srs_id == big.srs_id == 4326
    assert little.byte_order == "<"
    assert big.byte_order == ">"
    assert not little.is_empty
    assert not little.is_extended


def test_empty_flag():
    header = b"GP\x00" + bytes([0b10001]) + struct.pack("<i", 4326)
    assert parse_header(header).is_empty


def test_bad_wkb_payload(blob):
    data = blob(Point(1, 2), envelope=0)[:8] + b"\x01\xff\xff"
    with pytest.raises(InvalidGeometryError):
        decode(data)


def test_decoder_class(blob):
    decoder = GeometryDecoder()
    data = blob(Point(3, 4))
    assert decoder.decode(data).equals(Point(3, 4))
    assert decoder.header(data).srs_id == 4326


def test_unclosed_ring_is_kept():
    ring = [(0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0)]
    payload = struct.pack("<BIII", 1, 3, 1, len(ring))
    payload += b"".join(struct.pack("<dd", x, y) for x, y in ring)
    data = b"GP\x00\x01" + struct.pack("<i", 4326) + payload

    polygon = decode(data)
    assert polygon.geom_type == "Polygon"
    coords = list(polygon.exterior.coords)
    assert coords[:4] == ring
    assert coords[0] == coords[-1]
