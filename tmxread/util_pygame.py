# -*- coding: utf-8 -*-
"""
Copyright (C) 2012-2017, Leif Theden <leif.theden@gmail.com>

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
import logging
import os
from typing import Callable, Dict, Optional

from tmxread.objects import DecodedTile, Map, TileFlags, Tileset

logger = logging.getLogger(__name__)

try:
    from pygame.transform import flip, rotate
    import pygame
except ImportError:
    logger.error("cannot import pygame (is it installed?)")
    raise

__all__ = [
    "get_tile_image",
    "handle_transformation",
    "load_tileset_images",
    "map_folder",
    "pygame_image_loader",
    "tile_rect",
]

ImageLoader = Callable[..., pygame.Surface]


def handle_transformation(
    tile: pygame.Surface,
    flags: TileFlags,
) -> pygame.Surface:
    """
    Transform tile according to the flags and return a new one

    Parameters:
        tile: tile surface to transform
        flags: TileFlags object

    Returns:
        new tile surface

    """
    if flags.flipped_diagonally:
        tile = flip(rotate(tile, 270), True, False)
    if flags.flipped_horizontally or flags.flipped_vertically:
        tile = flip(tile, flags.flipped_horizontally, flags.flipped_vertically)
    return tile


def smart_convert(
    surface: pygame.Surface, colorkey: Optional[pygame.Color], pixelalpha: bool
) -> pygame.Surface:
    """Return new surface optimized for blitting"""
    if colorkey:
        tile = surface.convert()
        tile.set_colorkey(colorkey, pygame.RLEACCEL)
        return tile
    if pixelalpha:
        filled_pixels = pygame.mask.from_surface(surface).count()
        total_pixels = surface.get_width() * surface.get_height()
        if filled_pixels != total_pixels:
            return surface.convert_alpha()
    return surface.convert()


def pygame_image_loader(filename: str, colorkey: Optional[str] = None, **kwargs):
    """
    Image loader for pygame

    Surfaces are only converted when `convert` is true, which needs an
    initialized display.

    Parameters:
        filename: filename, including path, to load
        colorkey: colorkey for the image, as written by Tiled ("ff00ff")

    Returns:
        function to load tile images

    """
    if colorkey:
        colorkey = pygame.Color("#{0}".format(colorkey.lstrip("#")))

    pixelalpha = kwargs.get("pixelalpha", True)
    convert = kwargs.get("convert", True)
    image = pygame.image.load(filename)

    def load_image(rect=None, flags=None):
        if rect:
            try:
                tile = image.subsurface(rect)
            except ValueError:
                logger.error("Tile bounds outside bounds of tileset image")
                raise
        else:
            tile = image.copy()

        if flags:
            tile = handle_transformation(tile, flags)

        if convert:
            tile = smart_convert(tile, colorkey, pixelalpha)
        return tile

    return load_image


def tile_rect(tileset: Tileset, tile_id: int) -> pygame.Rect:
    """Return the area of a local tile id inside the tileset image"""
    tw = tileset.tilewidth
    th = tileset.tileheight
    columns = tileset.columns
    if not columns:
        width = tileset.image.width - 2 * tileset.margin + tileset.spacing
        columns = max(1, width // (tw + tileset.spacing))
    row, column = divmod(tile_id, columns)
    return pygame.Rect(
        tileset.margin + column * (tw + tileset.spacing),
        tileset.margin + row * (th + tileset.spacing),
        tw,
        th,
    )


def map_folder(tmxmap: Map) -> str:
    """Return the directory image paths of `tmxmap` are relative to"""
    return os.path.dirname(tmxmap.filename) if tmxmap.filename else ""


def load_tileset_images(tmxmap: Map, **kwargs) -> Dict[Tileset, ImageLoader]:
    """Return an image loader for every tileset that has an image

    Image paths are relative to the map file.  Keyword arguments are
    passed on to `pygame_image_loader`.

    """
    folder = map_folder(tmxmap)
    loaders = dict()
    for tileset in tmxmap.tilesets:
        if tileset.image is None or not tileset.image.source:
            continue
        path = os.path.join(folder, tileset.image.source)
        logger.debug("loading tileset image %s", path)
        loaders[tileset] = pygame_image_loader(path, tileset.image.trans, **kwargs)
    return loaders


def get_tile_image(
    tmxmap: Map,
    tile: DecodedTile,
    loaders: Dict[Tileset, ImageLoader],
    **kwargs,
) -> Optional[pygame.Surface]:
    """Return the surface for a decoded tile of `tmxmap`

    Tiles with an image of their own (image collection tilesets) are
    loaded from that image instead of the tileset image.  None is
    returned for the nil tile and for tiles that have no image at all.

    """
    if tile.nil:
        return None

    flags = tile.flags if any(tile.flags) else None
    record = tile.tileset.get_tile(tile.id)
    if record is not None and record.image is not None:
        path = os.path.join(map_folder(tmxmap), record.image.source)
        loader = pygame_image_loader(path, record.image.trans, **kwargs)
        return loader(None, flags)

    try:
        loader = loaders[tile.tileset]
    except KeyError:
        logger.debug("no image for tile %d of %r", tile.id, tile.tileset)
        return None
    return loader(tile_rect(tile.tileset, tile.id), flags)
