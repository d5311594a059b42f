"""
Copyright (C) 2012-2020, Leif Theden <leif.theden@gmail.com>

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
License along with tmxread.  If not, see <http://www.gnu.org/licenses/>.
"""
from __future__ import annotations

from collections import namedtuple
from dataclasses import dataclass, field
from itertools import chain
from typing import Callable, Iterator, List, Optional, Tuple, Union

from tmxread.errors import InvalidObjectTypeError

__all__ = (
    "DataTile",
    "Data",
    "DecodedTile",
    "Ellipse",
    "Image",
    "ImageLayer",
    "Map",
    "MapCoordinates",
    "NIL_TILE",
    "Object",
    "ObjectGroup",
    "Point",
    "PointMarker",
    "Polygon",
    "Polyline",
    "Property",
    "Rectangle",
    "Tile",
    "TileFlags",
    "TileLayer",
    "Tileset",
)

flag_names = ("flipped_horizontally", "flipped_vertically", "flipped_diagonally")

TileFlags = namedtuple("TileFlags", flag_names)
empty_flags = TileFlags(False, False, False)
Point = namedtuple("Point", ["x", "y"])


def get_property(properties: List[Property], name: str, default=None):
    """Return the value of the first property called `name`"""
    for prop in properties:
        if prop.name == name:
            return prop.value
    return default


class HasProperties:
    """Mixin for elements that carry a `properties` list"""

    properties: List[Property]

    def get_property(self, name: str, default=None):
        return get_property(self.properties, name, default)


@dataclass
class Property:
    name: str
    type: str
    value: str


@dataclass
class Image:
    source: str
    trans: str
    width: int
    height: int


@dataclass(eq=False)
class Tile(HasProperties):
    """Per-tile metadata record from a tileset"""

    id: int
    type: str = None
    image: Image = None
    properties: List[Property] = field(default_factory=list)


@dataclass(eq=False)
class Tileset(HasProperties):
    firstgid: int
    source: str
    name: str
    tilewidth: int
    tileheight: int
    spacing: int
    margin: int
    tilecount: int
    columns: int
    image: Image = None
    tiles: List[Tile] = field(default_factory=list)
    properties: List[Property] = field(default_factory=list)

    def __repr__(self):
        return f'<Tileset[{self.firstgid}]: "{self.name}">'

    def get_tile(self, tile_id: int) -> Optional[Tile]:
        """Return the metadata record for a local tile id, if the tileset has one"""
        for tile in self.tiles:
            if tile.id == tile_id:
                return tile
        return None


@dataclass(frozen=True)
class DecodedTile:
    """A tile reference resolved from a GID

    `id` is local to `tileset`; the nil tile has neither.

    """

    id: int = 0
    tileset: Optional[Tileset] = None
    flipped_horizontally: bool = False
    flipped_vertically: bool = False
    flipped_diagonally: bool = False
    nil: bool = False

    @property
    def is_nil(self) -> bool:
        return self.nil

    @property
    def flags(self) -> TileFlags:
        return TileFlags(
            self.flipped_horizontally,
            self.flipped_vertically,
            self.flipped_diagonally,
        )


# shared by every empty cell of every map
NIL_TILE = DecodedTile(nil=True)


@dataclass
class DataTile:
    gid: int


@dataclass
class Data:
    """Raw payload of a tile layer, before decoding"""

    encoding: Optional[str]
    compression: Optional[str]
    text: str
    tiles: List[DataTile] = field(default_factory=list)
    chunked: bool = False


@dataclass
class MapCoordinates:
    x: int
    y: int
    layer: TileLayer


@dataclass(eq=False)
class TileLayer(HasProperties):
    name: str
    opacity: float
    visible: bool
    offsetx: float
    offsety: float
    data: Data
    properties: List[Property] = field(default_factory=list)
    # filled in by the loader
    width: int = 0
    height: int = 0
    decoded_tiles: List[DecodedTile] = field(default_factory=list)
    tileset: Optional[Tileset] = None
    empty: bool = False
    uses_multiple_tilesets: bool = False

    def __repr__(self):
        return f'<TileLayer: "{self.name}">'

    def __iter__(self):
        yield from self.tiles()

    def iter_data(self) -> Iterator[Tuple[int, int, DecodedTile]]:
        """Yield x, y, tile for every cell, in row-major order"""
        width = self.width
        for index, tile in enumerate(self.decoded_tiles):
            yield index % width, index // width, tile

    def tiles(self) -> Iterator[Tuple[int, int, DecodedTile]]:
        """Yield x, y, tile for every cell that is not nil"""
        for x, y, tile in self.iter_data():
            if not tile.nil:
                yield x, y, tile

    def get_tile(self, x: int, y: int) -> DecodedTile:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise ValueError(f"Tile coordinates ({x},{y}) are invalid")
        return self.decoded_tiles[y * self.width + x]


@dataclass(eq=False)
class ImageLayer(HasProperties):
    name: str
    opacity: float
    visible: bool
    offsetx: float
    offsety: float
    image: Image = None
    properties: List[Property] = field(default_factory=list)

    def __repr__(self):
        return f'<ImageLayer: "{self.name}">'


# object shapes.  exactly one is attached to each object.


@dataclass(frozen=True)
class Rectangle:
    kind = "rectangle"
    x: float
    y: float
    width: float
    height: float

    @property
    def points(self) -> List[Tuple[float, float]]:
        return [
            (self.x, self.y),
            (self.x + self.width, self.y),
            (self.x + self.width, self.y + self.height),
            (self.x, self.y + self.height),
        ]


# Ellipse is described by its bounding box
@dataclass(frozen=True)
class Ellipse:
    kind = "ellipse"
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> Tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2

    @property
    def radius(self) -> float:
        """Mean of both half-axes, for consumers that only handle circles"""
        return (self.width + self.height) / 4


@dataclass(frozen=True)
class PointMarker:
    kind = "point"
    x: float
    y: float


@dataclass(frozen=True)
class Polygon:
    """Closed shape.  `points` is kept raw and decoded on demand."""

    kind = "polygon"
    points: str

    def decode(self) -> List[Point]:
        from tmxread.tmxread import decode_points

        return decode_points(self.points)


@dataclass(frozen=True)
class Polyline:
    """Open shape.  `points` is kept raw and decoded on demand."""

    kind = "polyline"
    points: str

    def decode(self) -> List[Point]:
        from tmxread.tmxread import decode_points

        return decode_points(self.points)


Shape = Union[Rectangle, Ellipse, PointMarker, Polygon, Polyline]


@dataclass(eq=False)
class Object(HasProperties):
    id: int
    name: str
    type: str
    x: float
    y: float
    width: float
    height: float
    rotation: float
    gid: int
    visible: bool
    shape: Shape = None
    properties: List[Property] = field(default_factory=list)
    # tile objects only, filled in by the loader
    tile: Optional[DecodedTile] = None

    def __repr__(self):
        return f'<Object[{self.id}]: {self.kind} "{self.name}">'

    @property
    def kind(self) -> str:
        return self.shape.kind

    def _shape_of(self, cls):
        if not isinstance(self.shape, cls):
            raise InvalidObjectTypeError(
                f'Object "{self.name}" is a {self.kind}, not a {cls.kind}',
                expected=cls.kind,
                actual=self.kind,
            )
        return self.shape

    def get_rect(self) -> Rectangle:
        return self._shape_of(Rectangle)

    def get_ellipse(self) -> Ellipse:
        return self._shape_of(Ellipse)

    def get_point(self) -> Point:
        marker = self._shape_of(PointMarker)
        return Point(marker.x, marker.y)

    def get_polygon(self) -> List[Point]:
        """Decode polygon vertices, relative to the object origin"""
        return self._shape_of(Polygon).decode()

    def get_polyline(self) -> List[Point]:
        """Decode polyline vertices, relative to the object origin"""
        return self._shape_of(Polyline).decode()


@dataclass(eq=False)
class ObjectGroup(HasProperties):
    name: str
    color: str
    opacity: float
    visible: bool
    objects: List[Object] = field(default_factory=list)
    properties: List[Property] = field(default_factory=list)

    def __repr__(self):
        return f'<ObjectGroup: "{self.name}">'

    def __iter__(self):
        yield from self.objects

    def get_object_by_name(self, name: str) -> Object:
        for obj in self.objects:
            if obj.name == name:
                return obj
        raise ValueError(f'Object "{name}" not found')


@dataclass(eq=False)
class Map(HasProperties):
    version: str
    orientation: str
    width: int
    height: int
    tilewidth: int
    tileheight: int
    infinite: bool
    filename: str = None
    tilesets: List[Tileset] = field(default_factory=list)
    layers: List[TileLayer] = field(default_factory=list)
    objectgroups: List[ObjectGroup] = field(default_factory=list)
    imagelayers: List[ImageLayer] = field(default_factory=list)
    properties: List[Property] = field(default_factory=list)

    def __repr__(self):
        return f'<Map: "{self.filename}">'

    @property
    def pixel_width(self) -> int:
        return self.width * self.tilewidth

    @property
    def pixel_height(self) -> int:
        return self.height * self.tileheight

    @staticmethod
    def _find(layers, name: str, label: str):
        for layer in layers:
            if layer.name == name:
                return layer
        raise ValueError(f'{label} "{name}" not found')

    def get_tile_layer_by_name(self, name: str) -> TileLayer:
        """Return a tile layer by name.  Case-sensitive."""
        return self._find(self.layers, name, "Tile layer")

    def get_object_layer_by_name(self, name: str) -> ObjectGroup:
        """Return an object group by name.  Case-sensitive."""
        return self._find(self.objectgroups, name, "Object layer")

    def get_image_layer_by_name(self, name: str) -> ImageLayer:
        return self._find(self.imagelayers, name, "Image layer")

    def get_object_by_name(self, name: str) -> Object:
        """Find an object by name in any object group"""
        for obj in self.objects:
            if obj.name == name:
                return obj
        raise ValueError(f'Object "{name}" not found')

    def get_tile(self, x: int, y: int, layer: int) -> DecodedTile:
        """Return the decoded tile at this location"""
        if not (x >= 0 and y >= 0 and layer >= 0):
            raise ValueError(
                f"Tile coordinates and layers must be non-negative, were ({x}, {y}), layer={layer}"
            )
        try:
            tile_layer = self.layers[layer]
        except IndexError:
            raise ValueError(f"Layer not found: {layer}")
        return tile_layer.get_tile(x, y)

    def get_tileset_by_gid(self, gid: int) -> Tileset:
        """Return the tileset that owns the gid"""
        from tmxread.tmxread import resolve_gid

        tile = resolve_gid(gid, self.tilesets)
        if tile.nil:
            raise ValueError("GID 0 is not owned by any tileset")
        return tile.tileset

    def get_tile_locations(
        self, predicate: Callable[[DecodedTile], bool]
    ) -> Iterator[MapCoordinates]:
        """Search visible tile layers for tiles matching `predicate`

        Note: Not a fast operation.  Cache results if used often.
        """
        for layer in self.visible_tile_layers:
            for x, y, tile in layer.tiles():
                if predicate(tile):
                    yield MapCoordinates(x, y, layer)

    @property
    def objects(self) -> Iterator[Object]:
        """Return iterator of all the objects associated with this map"""
        return chain(*self.objectgroups)

    @property
    def visible_tile_layers(self) -> Iterator[TileLayer]:
        return (layer for layer in self.layers if layer.visible)

    @property
    def visible_object_groups(self) -> Iterator[ObjectGroup]:
        return (group for group in self.objectgroups if group.visible)
