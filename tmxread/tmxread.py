"""
Copyright (C) 2012-2023, Leif Theden <leif.theden@gmail.com>

This file is part of tmxread.

tmxread is free software: you can redistribute it and/or modify
it under the terms of the GNU Lesser General Public License as
published by the Free Software Foundation, either version 3 of the
License, or (at your option) any later version.

tmxread is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU Lesser General Public License for more details.

You should have received a copy of the GNU Lesser General Public
License along with tmxread.  If not, see <https://www.gnu.org/licenses/>.

"""
from __future__ import annotations

import binascii
import gzip
import logging
import os
import re
import struct
import zlib
from base64 import b64decode
from operator import attrgetter
from typing import IO, Iterator, List, Optional, Sequence, Tuple, Union
from xml.etree import ElementTree

from tmxread.errors import (
    CorruptPayloadError,
    CSVTokenError,
    DataLengthError,
    InfiniteMapError,
    InvalidGIDError,
    PointsFormatError,
    ResourceAccessError,
    StructuralParseError,
    TilesetOrderError,
    TmxError,
    UnknownCompressionError,
    UnknownEncodingError,
    UnsupportedFeatureError,
)
from tmxread.objects import (
    NIL_TILE,
    Data,
    DataTile,
    DecodedTile,
    Ellipse,
    Image,
    ImageLayer,
    Map,
    Object,
    ObjectGroup,
    Point,
    PointMarker,
    Polygon,
    Polyline,
    Property,
    Rectangle,
    Tile,
    TileFlags,
    TileLayer,
    Tileset,
    empty_flags,
)

__all__ = (
    "convert_to_bool",
    "convert_to_gid",
    "decode_gid",
    "decode_points",
    "get_layer_tileset",
    "load",
    "loads",
    "parse_map",
    "read",
    "read_file",
    "resolve_gid",
    "unpack_gids",
)

logger = logging.getLogger(__name__)

# Tiled gid flags
GID_TRANS_FLIPX = 1 << 31
GID_TRANS_FLIPY = 1 << 30
GID_TRANS_ROT = 1 << 29
GID_MASK = GID_TRANS_FLIPX | GID_TRANS_FLIPY | GID_TRANS_ROT
MAX_GID = 0xFFFFFFFF

_csv_junk = re.compile(r"[^0-9,]")
_coordinate = re.compile(r"[+-]?[0-9]+")
_line_breaks = re.compile(r"[\r\n]")

PathLike = Union[str, "os.PathLike[str]"]


def convert_to_bool(value) -> bool:
    """Convert a few common variations of "true" and "false" to boolean

    Args:
        value: String to test.

    Raises:
        ValueError: If `value` cannot be converted to a boolean.

    Returns:
        bool: The converted boolean.

    """
    value = str(value).strip()
    if value:
        value = value.lower()[0]
        if value in ("1", "y", "t"):
            return True
        if value in ("-", "0", "n", "f"):
            return False
    else:
        return False
    raise ValueError('cannot parse "{}" as bool'.format(value))


def convert_to_gid(value) -> int:
    """Parse a gid attribute, which must fit in 32 bits"""
    value = str(value).strip()
    if not value.isdigit() or len(value) > 10 or int(value) > MAX_GID:
        raise ValueError(f'"{value}" is not a valid gid')
    return int(value)


def getdefault(node: ElementTree.Element):
    """Return attribute getter for `node` with optional type and a default

    A value that cannot be cast is a structural error of the document.

    """
    attrib = node.attrib

    def get(key, type=None, default=None):
        try:
            value = attrib[key]
        except KeyError:
            return default
        if type is None:
            return value
        try:
            return type(value)
        except ValueError:
            raise StructuralParseError(
                f'<{node.tag}> attribute {key}="{value}" is invalid', token=value
            ) from None

    return get


# geometry


def decode_points(text: str) -> List[Point]:
    """Decode a Tiled point list such as "0,0 10,0 10,10"

    Points are separated by single spaces and coordinates by a single
    comma.  Order is preserved.

    Args:
        text (str): Raw value of a polygon or polyline `points` attribute.

    Raises:
        PointsFormatError: If any point is not two base-10 integers.

    Returns:
        List[Point]: The decoded points.

    """
    points = list()
    for token in text.split(" "):
        coords = token.split(",")
        if len(coords) != 2 or not all(_coordinate.fullmatch(c) for c in coords):
            raise PointsFormatError(f'invalid point "{token}" in "{text}"', token=token)
        points.append(Point(int(coords[0]), int(coords[1])))
    return points


# layer data


def decode_csv(text: str) -> List[int]:
    """Return gids from csv layer data

    Anything that is not a digit or a comma is removed first, so
    whitespace and line breaks between values do not matter.

    """
    gids = list()
    for token in _csv_junk.sub("", text).split(","):
        if not token or len(token) > 10 or int(token) > MAX_GID:
            raise CSVTokenError(f'cannot parse "{token}" as a gid', token=token)
        gids.append(int(token))
    return gids


def decode_base64(text: str, compression: Optional[str] = None) -> bytes:
    """Return raw bytes from base64 layer data, decompressed if needed"""
    if compression not in (None, "", "gzip", "zlib"):
        raise UnknownCompressionError(
            f"layer compression {compression} is not supported.", token=compression
        )

    try:
        data = b64decode(_line_breaks.sub("", text.strip()), validate=True)
    except binascii.Error as e:
        raise CorruptPayloadError(f"invalid base64 layer data: {e}") from e

    try:
        if compression == "gzip":
            data = gzip.decompress(data)
        elif compression == "zlib":
            data = zlib.decompress(data)
    except (zlib.error, EOFError, OSError) as e:
        raise CorruptPayloadError(f"cannot decompress {compression} layer data: {e}") from e
    return data


def unpack_gids(data: Data, width: int, height: int) -> List[int]:
    """Return all gids from encoded/compressed layer data

    Every encoding yields exactly `width * height` gids in row-major
    order, so the gid for (x, y) is at index `y * width + x`.

    Args:
        data (Data): Raw layer data.
        width (int): Map width in tiles.
        height (int): Map height in tiles.

    Raises:
        UnknownEncodingError: If the encoding is not csv or base64.
        UnknownCompressionError: If base64 data uses an unknown compression.
        CSVTokenError: If a csv value is not an unsigned 32-bit integer.
        DataLengthError: If the data does not hold `width * height` gids.

    Returns:
        List[int]: The gids, flags included.

    """
    expected = width * height
    encoding = data.encoding

    if not encoding:
        if len(data.tiles) != expected:
            raise DataLengthError(
                f"expected {expected} tile elements, found {len(data.tiles)}",
                expected=expected,
                actual=len(data.tiles),
            )
        return [tile.gid for tile in data.tiles]

    elif encoding == "csv":
        gids = decode_csv(data.text)
        if len(gids) != expected:
            raise DataLengthError(
                f"expected {expected} csv values, found {len(gids)}",
                expected=expected,
                actual=len(gids),
            )
        return gids

    elif encoding == "base64":
        raw = decode_base64(data.text, data.compression)
        if len(raw) != expected * 4:
            raise DataLengthError(
                f"expected {expected * 4} bytes of layer data, found {len(raw)}",
                expected=expected * 4,
                actual=len(raw),
            )
        return list(struct.unpack("<%dL" % expected, raw))

    raise UnknownEncodingError(
        f"layer encoding {encoding} is not supported.", token=encoding
    )


# gids


def decode_gid(raw_gid: int) -> Tuple[int, TileFlags]:
    """Decode a GID from TMX data.

    Args:
        raw_gid (int): GID, as reported by Tiled.

    Returns:
        Tuple[int, TileFlags]: Tuple of the GID after rotation flags, and TileFlags object

    """
    if raw_gid < GID_TRANS_ROT:
        return raw_gid, empty_flags
    return (
        raw_gid & ~GID_MASK,
        TileFlags(
            raw_gid & GID_TRANS_FLIPX == GID_TRANS_FLIPX,
            raw_gid & GID_TRANS_FLIPY == GID_TRANS_FLIPY,
            raw_gid & GID_TRANS_ROT == GID_TRANS_ROT,
        ),
    )


def resolve_gid(gid: int, tilesets: Sequence[Tileset]) -> DecodedTile:
    """Return the tile a GID refers to

    Tilesets must be in ascending firstgid order.  They are searched
    from the last one down, and the first with a firstgid not above the
    bare gid owns the tile.

    Args:
        gid (int): GID, flags included.
        tilesets (Sequence[Tileset]): Tilesets of the map.

    Raises:
        InvalidGIDError: If no tileset owns the gid.

    Returns:
        DecodedTile: The resolved tile, or NIL_TILE for gid 0.

    """
    if gid == 0:
        return NIL_TILE

    bare_gid, flags = decode_gid(gid)
    for tileset in reversed(tilesets):
        if tileset.firstgid <= bare_gid:
            return DecodedTile(bare_gid - tileset.firstgid, tileset, *flags)

    raise InvalidGIDError(f"GID {gid} does not belong to any tileset", gid=gid)


def get_layer_tileset(
    tiles: Sequence[DecodedTile],
) -> Tuple[Optional[Tileset], bool, bool]:
    """Return the single tileset used by `tiles`

    Returns:
        Tuple[Optional[Tileset], bool, bool]: The tileset (None when there
        is not exactly one), whether every tile is nil, and whether more
        than one tileset is used.

    """
    tileset = None
    for tile in tiles:
        if tile.nil:
            continue
        if tileset is None:
            tileset = tile.tileset
        elif tile.tileset is not tileset:
            return None, False, True
    return tileset, tileset is None, False


# document model


def parse_properties(node: ElementTree.Element) -> List[Property]:
    """Return the properties of a node, in document order"""
    properties = list()
    for child in node.findall("properties"):
        for subnode in child.findall("property"):
            get = getdefault(subnode)
            value = get("value")
            if value is None:
                value = subnode.text or ""
            properties.append(Property(get("name"), get("type", default="string"), value))
    return properties


def new_image(node: Optional[ElementTree.Element], folder: str = "") -> Optional[Image]:
    if node is None:
        return None
    get = getdefault(node)
    source = get("source")
    if source and folder:
        source = os.path.join(folder, source)
    return Image(
        source=source,
        trans=get("trans"),
        width=get("width", int, 0),
        height=get("height", int, 0),
    )


def new_tile(node: ElementTree.Element, folder: str = "") -> Tile:
    get = getdefault(node)
    return Tile(
        id=get("id", int, 0),
        type=get("type") or get("class"),
        image=new_image(node.find("image"), folder),
        properties=parse_properties(node),
    )


def new_tileset(node: ElementTree.Element, folder: str, **kwargs) -> Tileset:
    """Return a tileset, following references to external tsx files

    Images of an external tileset are relative to the tsx file, so
    their paths are rewritten to be relative to the map instead.

    """
    get = getdefault(node)
    firstgid = get("firstgid", int, 0)
    source = get("source")
    tile_folder = ""

    if source and kwargs.get("load_external_tilesets", True):
        if source[-4:].lower() != ".tsx":
            raise UnsupportedFeatureError(
                f"Found external tileset, but cannot handle type: {source}"
            )
        path = os.path.join(folder, source)
        logger.debug("loading external tileset %s", path)
        node = parse_document(read_bytes(path), path)
        if node.tag != "tileset":
            raise StructuralParseError(f"{path} is not a tileset", filename=path)
        get = getdefault(node)
        tile_folder = os.path.dirname(source)

    return Tileset(
        firstgid=firstgid,
        source=source,
        name=get("name"),
        tilewidth=get("tilewidth", int, 0),
        tileheight=get("tileheight", int, 0),
        spacing=get("spacing", int, 0),
        margin=get("margin", int, 0),
        tilecount=get("tilecount", int, 0),
        columns=get("columns", int, 0),
        image=new_image(node.find("image"), tile_folder),
        tiles=[new_tile(child, tile_folder) for child in node.findall("tile")],
        properties=parse_properties(node),
    )


def new_data(node: Optional[ElementTree.Element], layer_name: str) -> Data:
    if node is None:
        raise StructuralParseError("layer has no <data> element", layer=layer_name)
    get = getdefault(node)
    return Data(
        encoding=get("encoding"),
        compression=get("compression"),
        text=node.text or "",
        tiles=[
            DataTile(getdefault(t)("gid", convert_to_gid, 0))
            for t in node.findall("tile")
        ],
        chunked=node.find("chunk") is not None,
    )


def new_tilelayer(node: ElementTree.Element) -> TileLayer:
    get = getdefault(node)
    name = get("name")
    return TileLayer(
        name=name,
        opacity=get("opacity", float, 1.0),
        visible=get("visible", convert_to_bool, True),
        offsetx=get("offsetx", float, 0.0),
        offsety=get("offsety", float, 0.0),
        data=new_data(node.find("data"), name),
        properties=parse_properties(node),
    )


def new_imagelayer(node: ElementTree.Element) -> ImageLayer:
    get = getdefault(node)
    return ImageLayer(
        name=get("name"),
        opacity=get("opacity", float, 1.0),
        visible=get("visible", convert_to_bool, True),
        offsetx=get("offsetx", float, 0.0),
        offsety=get("offsety", float, 0.0),
        image=new_image(node.find("image")),
        properties=parse_properties(node),
    )


def new_shape(node: ElementTree.Element, x: float, y: float, width: float, height: float):
    """Return the shape of an object, chosen by which child element is present"""
    polygon = node.find("polygon")
    if polygon is not None:
        return Polygon(polygon.get("points", ""))

    polyline = node.find("polyline")
    if polyline is not None:
        return Polyline(polyline.get("points", ""))

    if node.find("ellipse") is not None:
        return Ellipse(x, y, width, height)

    if node.find("point") is not None:
        return PointMarker(x, y)

    return Rectangle(x, y, width, height)


def new_object(node: ElementTree.Element) -> Object:
    get = getdefault(node)
    x = get("x", float, 0.0)
    y = get("y", float, 0.0)
    width = get("width", float, 0.0)
    height = get("height", float, 0.0)
    return Object(
        id=get("id", int, 0),
        name=get("name"),
        type=get("type") or get("class"),
        x=x,
        y=y,
        width=width,
        height=height,
        rotation=get("rotation", float, 0.0),
        gid=get("gid", convert_to_gid, 0),
        visible=get("visible", convert_to_bool, True),
        shape=new_shape(node, x, y, width, height),
        properties=parse_properties(node),
    )


def new_objectgroup(node: ElementTree.Element) -> ObjectGroup:
    get = getdefault(node)
    return ObjectGroup(
        name=get("name"),
        color=get("color"),
        opacity=get("opacity", float, 1.0),
        visible=get("visible", convert_to_bool, True),
        objects=[new_object(child) for child in node.findall("object")],
        properties=parse_properties(node),
    )


def iter_layer_nodes(node: ElementTree.Element) -> Iterator[ElementTree.Element]:
    """Yield layer nodes in document order, flattening group layers"""
    for child in node:
        if child.tag == "group":
            yield from iter_layer_nodes(child)
        elif child.tag in ("layer", "objectgroup", "imagelayer"):
            yield child


def parse_map(node: ElementTree.Element, filename: str = None, **kwargs) -> Map:
    """Build the document model from the root node of a TMX document

    Layer data is left undecoded.

    """
    if node.tag != "map":
        raise StructuralParseError(f"expected a <map> document, found <{node.tag}>")

    get = getdefault(node)
    folder = os.path.dirname(filename) if filename else ""
    tmxmap = Map(
        version=get("version"),
        orientation=get("orientation", default="orthogonal"),
        width=get("width", int, 0),
        height=get("height", int, 0),
        tilewidth=get("tilewidth", int, 0),
        tileheight=get("tileheight", int, 0),
        infinite=get("infinite", convert_to_bool, False),
        filename=filename,
        properties=parse_properties(node),
    )

    for subnode in node.findall("tileset"):
        tmxmap.tilesets.append(new_tileset(subnode, folder, **kwargs))

    for subnode in iter_layer_nodes(node):
        if subnode.tag == "layer":
            tmxmap.layers.append(new_tilelayer(subnode))
        elif subnode.tag == "objectgroup":
            tmxmap.objectgroups.append(new_objectgroup(subnode))
        else:
            tmxmap.imagelayers.append(new_imagelayer(subnode))

    return tmxmap


# loading


def check_tileset_order(tilesets: List[Tileset], sort: bool = False) -> None:
    """Make sure tilesets are in ascending firstgid order

    If `sort` is true the list is sorted in place, otherwise
    TilesetOrderError is raised for out-of-order tilesets.

    """
    if sort:
        tilesets.sort(key=attrgetter("firstgid"))
        return

    for previous, tileset in zip(tilesets, tilesets[1:]):
        if tileset.firstgid <= previous.firstgid:
            raise TilesetOrderError(
                f'tileset "{tileset.name}" (firstgid {tileset.firstgid}) follows '
                f'"{previous.name}" (firstgid {previous.firstgid})',
                gid=tileset.firstgid,
            )


def decode_layer(layer: TileLayer, tmxmap: Map) -> None:
    """Decode the data of one tile layer and fill in the derived fields"""
    layer.width = tmxmap.width
    layer.height = tmxmap.height
    gids = unpack_gids(layer.data, tmxmap.width, tmxmap.height)
    tilesets = tmxmap.tilesets
    layer.decoded_tiles = [resolve_gid(gid, tilesets) for gid in gids]

    tileset, empty, multiple = get_layer_tileset(layer.decoded_tiles)
    layer.tileset = tileset
    layer.empty = empty
    layer.uses_multiple_tilesets = multiple
    if multiple:
        logger.debug('layer "%s" uses multiple tilesets', layer.name)


def parse_document(document: Union[str, bytes], filename: str = None) -> ElementTree.Element:
    try:
        return ElementTree.fromstring(document)
    except ElementTree.ParseError as e:
        raise StructuralParseError(str(e), filename=filename) from e


def read_bytes(path: PathLike) -> bytes:
    try:
        with open(path, "rb") as fp:
            return fp.read()
    except OSError as e:
        raise ResourceAccessError(
            f"cannot read {path}: {e.strerror or e}", filename=os.fspath(path)
        ) from e


def build_map(document: Union[str, bytes], filename: str = None, **kwargs) -> Map:
    """Run the whole pipeline over a buffered TMX document

    Any failure aborts the load; no partial map is returned.

    """
    try:
        tmxmap = parse_map(parse_document(document, filename), filename, **kwargs)

        if tmxmap.infinite or any(layer.data.chunked for layer in tmxmap.layers):
            raise InfiniteMapError("TMX map size: infinite is not supported.")

        check_tileset_order(tmxmap.tilesets, kwargs.get("sort_tilesets", False))

        logger.debug("decoding %d tile layers", len(tmxmap.layers))
        for layer in tmxmap.layers:
            try:
                decode_layer(layer, tmxmap)
            except TmxError as e:
                e.layer = layer.name
                raise

        # tile objects
        for group in tmxmap.objectgroups:
            try:
                for obj in group:
                    if obj.gid:
                        obj.tile = resolve_gid(obj.gid, tmxmap.tilesets)
            except TmxError as e:
                e.layer = group.name
                raise

    except TmxError as e:
        if e.filename is None:
            e.filename = filename
        raise

    return tmxmap


def read_file(path: PathLike, **kwargs) -> Map:
    """Load a map from a .tmx file

    Args:
        path: Filename of the map.
        sort_tilesets (bool): Sort tilesets by firstgid instead of
            rejecting maps where they are out of order.
        load_external_tilesets (bool): Read tsx files referenced by the map.

    Raises:
        ResourceAccessError: If the file cannot be read.
        TmxError: If the map cannot be decoded.

    """
    filename = os.fspath(path)
    logger.debug("reading %s", filename)
    return build_map(read_bytes(filename), filename, **kwargs)


def read(stream: IO, **kwargs) -> Map:
    """Load a map from a file-like object

    External tilesets are looked up relative to `stream.name`, when the
    stream has one.

    """
    try:
        document = stream.read()
    except OSError as e:
        raise ResourceAccessError(f"cannot read map stream: {e}") from e
    filename = getattr(stream, "name", None)
    if not isinstance(filename, str):
        filename = None
    return build_map(document, filename, **kwargs)


def loads(document: Union[str, bytes], **kwargs) -> Map:
    """Load a map from a string holding the TMX document

    Text is parsed as is; the encoding in the xml declaration only
    applies to bytes.

    """
    if not isinstance(document, str):
        document = bytes(document)
    return build_map(document, **kwargs)


def load(source: Union[PathLike, IO], **kwargs) -> Map:
    """Load a map from a file name, path, or file-like object"""
    if hasattr(source, "read"):
        return read(source, **kwargs)
    return read_file(source, **kwargs)
