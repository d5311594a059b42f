import io
import os
import struct
import unittest
import zlib
from base64 import b64encode

import tmxread
from tmxread import NIL_TILE

RESOURCES = os.path.join(os.path.dirname(os.path.abspath(__file__)), "resources")

MAP_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<map version="1.2" orientation="orthogonal" width="{width}" height="{height}"
     tilewidth="16" tileheight="16" infinite="{infinite}">
 <tileset firstgid="1" name="a" tilewidth="16" tileheight="16" tilecount="16" columns="4"/>
 <tileset firstgid="{second}" name="b" tilewidth="16" tileheight="16" tilecount="16" columns="4"/>
 <layer name="ground">
  <data{attrs}>{payload}</data>
 </layer>
</map>
"""


def resource(name):
    return os.path.join(RESOURCES, name)


def make_map(payload, attrs="", width=2, height=2, infinite=0, second=17):
    return MAP_TEMPLATE.format(
        payload=payload,
        attrs=attrs,
        width=width,
        height=height,
        infinite=infinite,
        second=second,
    )


class ReadFileTest(unittest.TestCase):
    def test_encodings(self):
        for name in ("base64", "base64-zlib", "base64-gzip", "csv", "xml"):
            with self.subTest(name=name):
                tmxmap = tmxread.read_file(resource(name + ".tmx"))
                layer = tmxmap.get_tile_layer_by_name("Tile Layer 1")
                self.assertEqual([0, 1, 2, 3], [t.id for t in layer.decoded_tiles])
                tileset = tmxmap.tilesets[0]
                self.assertTrue(all(t.tileset is tileset for t in layer.decoded_tiles))
                self.assertIs(tileset, layer.tileset)
                self.assertFalse(layer.empty)
                self.assertFalse(layer.uses_multiple_tilesets)

    def test_missing_file(self):
        with self.assertRaises(tmxread.ResourceAccessError) as cm:
            tmxread.read_file(resource("foo.tmx"))
        self.assertTrue(cm.exception.filename.endswith("foo.tmx"))

    def test_infinite_map(self):
        with self.assertRaises(tmxread.UnsupportedFeatureError):
            tmxread.read_file(resource("infinite.tmx"))

    def test_load_accepts_paths_and_streams(self):
        from pathlib import Path

        by_path = tmxread.load(Path(resource("csv.tmx")))
        with open(resource("csv.tmx"), "rb") as fp:
            by_stream = tmxread.load(fp)
        self.assertEqual(resource("csv.tmx"), by_path.filename)
        self.assertEqual(
            [t.id for t in by_path.layers[0].decoded_tiles],
            [t.id for t in by_stream.layers[0].decoded_tiles],
        )

    def test_read_text_stream(self):
        stream = io.StringIO(make_map("1,2,3,4", ' encoding="csv"'))
        tmxmap = tmxread.read(stream)
        self.assertIsNone(tmxmap.filename)
        self.assertEqual(4, len(tmxmap.layers[0].decoded_tiles))


class StructureTest(unittest.TestCase):
    def test_malformed_xml(self):
        with self.assertRaises(tmxread.StructuralParseError):
            tmxread.loads("<map><layer></map>")

    def test_not_a_map(self):
        with self.assertRaises(tmxread.StructuralParseError):
            tmxread.loads("<tileset/>")

    def test_bad_attribute(self):
        document = make_map("1,2,3,4", ' encoding="csv"').replace(
            'width="2"', 'width="two"', 1
        )
        with self.assertRaises(tmxread.StructuralParseError) as cm:
            tmxread.loads(document)
        self.assertEqual("two", cm.exception.token)

    def test_layer_without_data(self):
        document = '<map width="1" height="1"><layer name="x"/></map>'
        with self.assertRaises(tmxread.StructuralParseError):
            tmxread.loads(document)

    def test_tilesets_out_of_order(self):
        document = make_map("1,2,3,4", ' encoding="csv"', second=0)
        with self.assertRaises(tmxread.TilesetOrderError):
            tmxread.loads(document)

    def test_tilesets_sorted_on_request(self):
        document = make_map("0,3,5,6", ' encoding="csv"', second=3)
        document = document.replace('firstgid="1"', 'firstgid="5"')
        with self.assertRaises(tmxread.TilesetOrderError):
            tmxread.loads(document)

        tmxmap = tmxread.loads(document, sort_tilesets=True)
        self.assertEqual([3, 5], [t.firstgid for t in tmxmap.tilesets])
        tiles = tmxmap.layers[0].decoded_tiles
        self.assertIs(NIL_TILE, tiles[0])
        self.assertEqual(["b", "a", "a"], [t.tileset.name for t in tiles[1:]])
        self.assertEqual([0, 0, 1], [t.id for t in tiles[1:]])


class AssemblyTest(unittest.TestCase):
    def test_infinite_flag(self):
        document = make_map("1,2,3,4", ' encoding="csv"', infinite=1)
        with self.assertRaises(tmxread.InfiniteMapError):
            tmxread.loads(document)

    def test_zlib_payload_with_wrong_length(self):
        raw = struct.pack("<15L", *range(15))
        payload = b64encode(zlib.compress(raw)).decode("ascii")
        document = make_map(payload, ' encoding="base64" compression="zlib"', 4, 4)
        with self.assertRaises(tmxread.DataLengthError) as cm:
            tmxread.loads(document)
        self.assertEqual("ground", cm.exception.layer)
        self.assertIn('layer "ground"', str(cm.exception))

    def test_zlib_payload(self):
        gids = list(range(16))
        payload = b64encode(zlib.compress(struct.pack("<16L", *gids))).decode("ascii")
        document = make_map(payload, ' encoding="base64" compression="zlib"', 4, 4)
        layer = tmxread.loads(document).layers[0]
        self.assertIs(NIL_TILE, layer.decoded_tiles[0])
        self.assertEqual(list(range(15)), [t.id for t in layer.decoded_tiles[1:]])
        self.assertIs(layer.get_tile(1, 0), layer.decoded_tiles[1])
        self.assertIs(layer.get_tile(3, 2), layer.decoded_tiles[2 * 4 + 3])

    def test_unknown_encoding(self):
        with self.assertRaises(tmxread.UnknownEncodingError):
            tmxread.loads(make_map("1,2,3,4", ' encoding="json"'))

    def test_unknown_compression(self):
        attrs = ' encoding="base64" compression="zstd"'
        with self.assertRaises(tmxread.UnknownCompressionError):
            tmxread.loads(make_map("AQAAAAIAAAADAAAABAAAAA==", attrs))

    def test_invalid_gid(self):
        document = make_map("1,2,3,4", ' encoding="csv"').replace(
            'firstgid="1"', 'firstgid="2"'
        )
        with self.assertRaises(tmxread.InvalidGIDError) as cm:
            tmxread.loads(document)
        self.assertEqual(1, cm.exception.gid)
        self.assertEqual("ground", cm.exception.layer)

    def test_tile_element_gid_out_of_range(self):
        tiles = '<tile gid="5000000000"/><tile gid="1"/><tile/><tile/>'
        with self.assertRaises(tmxread.StructuralParseError) as cm:
            tmxread.loads(make_map(tiles))
        self.assertEqual("5000000000", cm.exception.token)

    def test_tile_element_max_gid(self):
        tiles = '<tile gid="4294967295"/><tile gid="1"/><tile/><tile/>'
        tile = tmxread.loads(make_map(tiles)).layers[0].decoded_tiles[0]
        self.assertEqual((True, True, True), tile.flags)
        self.assertEqual(0x1FFFFFFF - 17, tile.id)

    def test_csv_token_error(self):
        with self.assertRaises(tmxread.CSVTokenError):
            tmxread.loads(make_map("1,2,,4", ' encoding="csv"'))

    def test_tile_element_count(self):
        tiles = '<tile gid="1"/>' * 3
        with self.assertRaises(tmxread.DataLengthError):
            tmxread.loads(make_map(tiles))

    def test_single_tileset(self):
        layer = tmxread.loads(make_map("1,0,16,0", ' encoding="csv"')).layers[0]
        self.assertEqual("a", layer.tileset.name)
        self.assertFalse(layer.empty)
        self.assertFalse(layer.uses_multiple_tilesets)

    def test_multiple_tilesets(self):
        layer = tmxread.loads(make_map("1,0,17,0", ' encoding="csv"')).layers[0]
        self.assertIsNone(layer.tileset)
        self.assertFalse(layer.empty)
        self.assertTrue(layer.uses_multiple_tilesets)
        self.assertEqual(["a", "b"], [t.tileset.name for _, _, t in layer.tiles()])

    def test_empty_layer(self):
        layer = tmxread.loads(make_map("0,0,0,0", ' encoding="csv"')).layers[0]
        self.assertIsNone(layer.tileset)
        self.assertTrue(layer.empty)
        self.assertFalse(layer.uses_multiple_tilesets)
        self.assertTrue(all(t is NIL_TILE for t in layer.decoded_tiles))

    def test_maps_are_independent(self):
        document = make_map("1,2,3,4", ' encoding="csv"')
        first, second = tmxread.loads(document), tmxread.loads(document)
        self.assertIsNot(first.tilesets[0], second.tilesets[0])
        self.assertIs(first.tilesets[0], first.layers[0].decoded_tiles[0].tileset)


class PolyMapTest(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.m = tmxread.read_file(resource("poly.tmx"))

    def test_map_attributes(self):
        self.assertEqual("orthogonal", self.m.orientation)
        self.assertEqual((4, 2), (self.m.width, self.m.height))
        self.assertEqual((64, 32), (self.m.pixel_width, self.m.pixel_height))
        self.assertFalse(self.m.infinite)

    def test_map_properties(self):
        self.assertEqual("bitcraft", self.m.get_property("author"))
        self.assertEqual("first line\nsecond line", self.m.get_property("notes"))
        self.assertIsNone(self.m.get_property("missing"))
        self.assertEqual(["author", "notes"], [p.name for p in self.m.properties])

    def test_get_layer_by_name(self):
        layer = self.m.get_tile_layer_by_name("Tile Layer 1")
        self.assertEqual("Tile Layer 1", layer.name)
        self.assertEqual("true", layer.get_property("collision"))
        with self.assertRaises(ValueError):
            self.m.get_tile_layer_by_name("Object Layer 1")

    def test_get_object_layer_by_name(self):
        group = self.m.get_object_layer_by_name("Object Layer 1")
        self.assertEqual("Object Layer 1", group.name)
        self.assertEqual("#a0a0a4", group.color)
        self.assertEqual("yes", group.get_property("solid"))
        with self.assertRaises(ValueError):
            self.m.get_object_layer_by_name("Tile Layer 1")

    def test_group_layers_are_flattened(self):
        names = [layer.name for layer in self.m.layers]
        self.assertEqual(["Tile Layer 1", "Mixed", "Empty"], names)

    def test_layer_attributes(self):
        mixed = self.m.get_tile_layer_by_name("Mixed")
        self.assertEqual(0.5, mixed.opacity)
        self.assertFalse(mixed.visible)
        self.assertEqual(["Tile Layer 1", "Empty"], [l.name for l in self.m.visible_tile_layers])

    def test_layer_metadata(self):
        tiles = self.m.tilesets[0]
        layer = self.m.get_tile_layer_by_name("Tile Layer 1")
        self.assertIs(tiles, layer.tileset)
        self.assertFalse(layer.empty)
        mixed = self.m.get_tile_layer_by_name("Mixed")
        self.assertIsNone(mixed.tileset)
        self.assertTrue(mixed.uses_multiple_tilesets)
        empty = self.m.get_tile_layer_by_name("Empty")
        self.assertTrue(empty.empty)
        self.assertIsNone(empty.tileset)

    def test_flipped_tile(self):
        tile = self.m.get_tile(0, 1, 0)
        self.assertEqual(3, tile.id)
        self.assertEqual((True, False, False), tile.flags)
        self.assertIs(self.m.tilesets[0], tile.tileset)

    def test_iter_data(self):
        layer = self.m.layers[0]
        cells = list(layer.iter_data())
        self.assertEqual(8, len(cells))
        self.assertEqual((3, 0), cells[3][:2])
        self.assertEqual((0, 1), cells[4][:2])
        self.assertEqual([(0, 0), (1, 0), (3, 0), (0, 1), (3, 1)], [(x, y) for x, y, _ in layer.tiles()])

    def test_get_tile_out_of_bounds(self):
        with self.assertRaises(ValueError):
            self.m.get_tile(4, 0, 0)
        with self.assertRaises(ValueError):
            self.m.get_tile(0, 0, 9)

    def test_tile_records(self):
        tileset = self.m.tilesets[0]
        record = tileset.get_tile(2)
        self.assertEqual("water", record.type)
        self.assertEqual("0.5", record.get_property("speed"))
        self.assertIsNone(tileset.get_tile(5))

    def test_tileset_image(self):
        props = self.m.tilesets[1]
        self.assertEqual("props.png", props.image.source)
        self.assertEqual("ff00ff", props.image.trans)
        self.assertEqual((32, 32), (props.image.width, props.image.height))
        self.assertEqual((4, 2), (props.tilecount, props.columns))

    def test_get_tileset_by_gid(self):
        self.assertIs(self.m.tilesets[1], self.m.get_tileset_by_gid(18))
        self.assertIs(self.m.tilesets[0], self.m.get_tileset_by_gid(16))

    def test_polygon(self):
        obj = self.m.get_object_by_name("triangle")
        self.assertEqual("polygon", obj.kind)
        self.assertEqual("zone", obj.type)
        self.assertEqual("bar", obj.get_property("foo"))
        self.assertEqual([(0, 0), (10, 0), (10, 10)], obj.get_polygon())
        with self.assertRaises(tmxread.InvalidObjectTypeError):
            obj.get_polyline()
        with self.assertRaises(tmxread.InvalidObjectTypeError):
            obj.get_rect()

    def test_polyline(self):
        obj = self.m.get_object_by_name("path")
        self.assertEqual("polyline", obj.kind)
        self.assertEqual([(0, 0), (-8, 4), (16, 32)], obj.get_polyline())
        with self.assertRaises(tmxread.InvalidObjectTypeError):
            obj.get_polygon()

    def test_ellipse(self):
        obj = self.m.get_object_by_name("pond")
        ellipse = obj.get_ellipse()
        self.assertEqual((16.0, 12.0), ellipse.center)
        self.assertEqual(6.0, ellipse.radius)
        with self.assertRaises(tmxread.InvalidObjectTypeError):
            obj.get_point()

    def test_point(self):
        obj = self.m.get_object_by_name("spawn")
        self.assertEqual((12.0, 20.0), obj.get_point())
        with self.assertRaises(tmxread.InvalidObjectTypeError):
            obj.get_ellipse()

    def test_rectangle(self):
        obj = self.m.get_object_by_name("box")
        rect = obj.get_rect()
        self.assertEqual((1.0, 2.0, 3.0, 4.0), (rect.x, rect.y, rect.width, rect.height))
        self.assertEqual([(1, 2), (4, 2), (4, 6), (1, 6)], rect.points)
        with self.assertRaises(TypeError):
            obj.get_polygon()

    def test_tile_object(self):
        obj = self.m.get_object_by_name("chest")
        self.assertEqual("rectangle", obj.kind)
        self.assertFalse(obj.visible)
        self.assertEqual(18, obj.gid)
        self.assertEqual(1, obj.tile.id)
        self.assertIs(self.m.tilesets[1], obj.tile.tileset)

    def test_objects_without_gid_have_no_tile(self):
        self.assertIsNone(self.m.get_object_by_name("box").tile)

    def test_all_objects(self):
        self.assertEqual(6, len(list(self.m.objects)))
        with self.assertRaises(ValueError):
            self.m.get_object_by_name("nothing")

    def test_image_layer(self):
        layer = self.m.get_image_layer_by_name("Background")
        self.assertEqual("background.png", layer.image.source)
        self.assertEqual((4.0, 8.0), (layer.offsetx, layer.offsety))
        self.assertEqual(0.75, layer.opacity)

    def test_get_tile_locations(self):
        found = list(self.m.get_tile_locations(lambda t: t.id == 1))
        self.assertEqual([(1, 0)], [(c.x, c.y) for c in found])


class BadPolygonTest(unittest.TestCase):
    def test_decoded_on_demand(self):
        document = (
            '<map width="0" height="0"><objectgroup name="o">'
            '<object id="1" name="broken"><polygon points="0,0 bad"/></object>'
            "</objectgroup></map>"
        )
        tmxmap = tmxread.loads(document)
        obj = tmxmap.get_object_by_name("broken")
        with self.assertRaises(tmxread.PointsFormatError):
            obj.get_polygon()

    def test_tile_object_gid_out_of_range(self):
        document = (
            '<map width="0" height="0"><objectgroup name="o">'
            '<object id="1" name="huge" gid="4294967296"/>'
            "</objectgroup></map>"
        )
        with self.assertRaises(tmxread.StructuralParseError) as cm:
            tmxread.loads(document)
        self.assertEqual("4294967296", cm.exception.token)

    def test_invalid_tile_object_gid(self):
        document = (
            '<map width="0" height="0"><objectgroup name="o">'
            '<object id="1" name="ghost" gid="5"/>'
            "</objectgroup></map>"
        )
        with self.assertRaises(tmxread.InvalidGIDError) as cm:
            tmxread.loads(document)
        self.assertEqual("o", cm.exception.layer)


class DocumentEncodingTest(unittest.TestCase):
    document = (
        '<?xml version="1.0" encoding="ISO-8859-1"?>\n'
        '<map width="1" height="1"><layer name="caf\xe9">'
        '<data encoding="csv">0</data></layer></map>'
    )

    def test_text_ignores_declared_encoding(self):
        tmxmap = tmxread.loads(self.document)
        self.assertEqual("caf\xe9", tmxmap.layers[0].name)

    def test_bytes_use_declared_encoding(self):
        tmxmap = tmxread.loads(self.document.encode("latin-1"))
        self.assertEqual("caf\xe9", tmxmap.layers[0].name)

    def test_text_stream(self):
        tmxmap = tmxread.read(io.StringIO(self.document))
        self.assertEqual("caf\xe9", tmxmap.layers[0].name)


class ExternalTilesetTest(unittest.TestCase):
    def test_external_tileset(self):
        tmxmap = tmxread.read_file(resource("external.tmx"))
        tileset = tmxmap.tilesets[0]
        self.assertEqual(1, tileset.firstgid)
        self.assertEqual("external", tileset.name)
        self.assertEqual("tilesets/external.tsx", tileset.source)
        self.assertEqual((1, 2, 3), (tileset.spacing, tileset.margin, tileset.columns))
        self.assertEqual("tsx", tileset.get_property("origin"))
        self.assertEqual(os.path.join("tilesets", "../tiles.png"), tileset.image.source)
        record = tileset.get_tile(3)
        self.assertEqual(os.path.join("tilesets", "single.png"), record.image.source)
        tile = tmxmap.layers[0].decoded_tiles[0]
        self.assertEqual(3, tile.id)
        self.assertIs(tileset, tile.tileset)

    def test_external_tileset_not_loaded(self):
        tmxmap = tmxread.read_file(resource("external.tmx"), load_external_tilesets=False)
        tileset = tmxmap.tilesets[0]
        self.assertEqual("tilesets/external.tsx", tileset.source)
        self.assertIsNone(tileset.name)
        self.assertIsNone(tileset.image)

    def test_missing_external_tileset(self):
        with self.assertRaises(tmxread.ResourceAccessError):
            tmxread.read_file(resource("missing_tileset.tmx"))
