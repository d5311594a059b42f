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

__all__ = (
    "CorruptPayloadError",
    "CSVTokenError",
    "DataLengthError",
    "InfiniteMapError",
    "InvalidGIDError",
    "InvalidObjectTypeError",
    "PayloadError",
    "PointsFormatError",
    "ResourceAccessError",
    "StructuralParseError",
    "TilesetOrderError",
    "TmxError",
    "UnknownCompressionError",
    "UnknownEncodingError",
    "UnsupportedFeatureError",
)


class TmxError(Exception):
    """Base class for every failure raised while loading a map

    The keyword arguments are optional context for reporting, such as
    "file X, layer Y: reason".  Anything not known is None.

    """

    def __init__(
        self,
        message: str,
        *,
        layer: str = None,
        token: str = None,
        gid: int = None,
        expected: int = None,
        actual: int = None,
        filename: str = None,
    ):
        super().__init__(message)
        self.message = message
        self.layer = layer
        self.token = token
        self.gid = gid
        self.expected = expected
        self.actual = actual
        self.filename = filename

    def __str__(self):
        prefix = ""
        if self.filename:
            prefix += f"{self.filename}: "
        if self.layer is not None:
            prefix += f'layer "{self.layer}": '
        return prefix + self.message


class StructuralParseError(TmxError):
    """The document is not well-formed xml, or not a TMX map"""


class TilesetOrderError(StructuralParseError):
    """Tilesets do not appear in ascending firstgid order"""


class UnsupportedFeatureError(TmxError):
    pass


class InfiniteMapError(UnsupportedFeatureError):
    pass


class PayloadError(TmxError):
    """Layer data could not be turned into gids"""


class UnknownEncodingError(PayloadError):
    pass


class UnknownCompressionError(PayloadError):
    pass


class DataLengthError(PayloadError):
    """Decoded layer data does not cover exactly width * height tiles"""


class CorruptPayloadError(DataLengthError):
    """Base64 text or compressed stream could not be decoded into bytes"""


class CSVTokenError(PayloadError):
    pass


class InvalidGIDError(TmxError):
    pass


class PointsFormatError(TmxError):
    pass


class ResourceAccessError(TmxError):
    pass


class InvalidObjectTypeError(TmxError, TypeError):
    """Geometry was requested for an object of another shape kind"""
