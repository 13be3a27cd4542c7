import os
import tempfile

import numpy
from PIL import Image as PIL_Image

from nitfviz.io.complex.sicd import MetadataError
from nitfviz.io.general.base import FormatError, NitfVizIOError
from nitfviz.io.general.nitf import parse
from nitfviz.visualization.render import Route, SicdPolicy, DEFAULT_SICD_POLICY, RenderOptions, \
    RenderResult, detect, render_nitf, render_file, get_output_path
from nitfviz.visualization.remap import RemapParameters, remap

from tests import unittest, build_nitf, complex_image, mono_image, make_des_header, make_sicd_xml, \
    sicd_data_extension


def _complex_grid(rows, cols):
    values = numpy.arange(1, rows*cols + 1, dtype='float64')
    return numpy.reshape(values*(1 + 0.5j), (rows, cols)).astype('complex64')


def _sicd_nitf(rows=12, cols=8, splits=(4, 8), xml=None, preceding=()):
    grid = _complex_grid(rows, cols)
    edges = (0, ) + tuple(splits) + (rows, )
    images = [complex_image(grid[start:end], iloc=(start, 0), idlvl=i + 1)
              for i, (start, end) in enumerate(zip(edges[:-1], edges[1:]))]
    if xml is None:
        xml = make_sicd_xml(rows, cols)
    return build_nitf(images, data_extensions=list(preceding) + [sicd_data_extension(xml)]), grid


def _mono_nitf(count):
    images = [mono_image(numpy.full((6, 6), 50*(i + 1), dtype='uint8')) for i in range(count)]
    return build_nitf(images)


class TestRenderOptions(unittest.TestCase):
    def test_defaults(self):
        options = RenderOptions()
        self.assertEqual(options.size, 256)
        self.assertEqual(options.sicd_policy, DEFAULT_SICD_POLICY)
        self.assertEqual(DEFAULT_SICD_POLICY, SicdPolicy.DEGRADE)
        self.assertIsNone(options.max_workers)
        self.assertIsInstance(options.remap_parameters, RemapParameters)

    def test_policy_from_string(self):
        self.assertEqual(RenderOptions(sicd_policy='fatal').sicd_policy, SicdPolicy.FATAL)

    def test_invalid(self):
        for kwargs in [{'size': 0}, {'max_workers': 0}, {'sicd_policy': 'ignore'}]:
            with self.subTest(msg=str(kwargs)):
                with self.assertRaises(ValueError):
                    RenderOptions(**kwargs)


class TestDispatch(unittest.TestCase):
    def test_sicd_route(self):
        # three complex segments with metadata is one projected raster
        data, grid = _sicd_nitf()
        result = render_nitf(data, RenderOptions(size=4))
        self.assertEqual(result.route, Route.SICD)
        self.assertEqual(result.extension, 'png')
        self.assertEqual(len(result.rasters), 1)
        self.assertIsNotNone(result.metadata)
        # the identity geometry leaves the remapped raster unchanged
        numpy.testing.assert_array_equal(result.rasters[0], remap(grid, RemapParameters(size=4)))

    def test_sicd_after_other_xml(self):
        # an annotation XML data extension ahead of the SICD one does not hide it
        annotations = (make_des_header(), b'<?xml version="1.0"?><Annotations/>')
        data, grid = _sicd_nitf(preceding=[annotations, ])
        result = render_nitf(data, RenderOptions(size=4))
        self.assertEqual(result.route, Route.SICD)
        self.assertIsNotNone(result.metadata)
        numpy.testing.assert_array_equal(result.rasters[0], remap(grid, RemapParameters(size=4)))

    def test_sicd_route_threaded(self):
        data, _ = _sicd_nitf()
        serial = render_nitf(data, RenderOptions(size=5))
        threaded = render_nitf(data, RenderOptions(size=5, max_workers=3))
        numpy.testing.assert_array_equal(threaded.rasters[0], serial.rasters[0])

    def test_multi_segment_route(self):
        result = render_nitf(_mono_nitf(3), RenderOptions(size=4))
        self.assertEqual(result.route, Route.MULTI_SEGMENT)
        self.assertEqual(result.extension, 'gif')
        self.assertIsNone(result.metadata)
        self.assertEqual(len(result.rasters), 3)
        for i, raster in enumerate(result.rasters):
            self.assertEqual(raster.shape, (4, 4))
            numpy.testing.assert_array_equal(raster, 50*(i + 1))

    def test_single_segment_route(self):
        result = render_nitf(_mono_nitf(1), RenderOptions(size=3))
        self.assertEqual(result.route, Route.SINGLE_SEGMENT)
        self.assertEqual(result.extension, 'png')
        self.assertEqual(len(result.rasters), 1)
        self.assertEqual(result.rasters[0].shape, (3, 3))

    def test_complex_without_metadata(self):
        grid = _complex_grid(6, 6)
        result = render_nitf(build_nitf([complex_image(grid[:3]), complex_image(grid[3:])]), RenderOptions(size=3))
        self.assertEqual(result.route, Route.MULTI_SEGMENT)
        # each segment is remapped with its own statistics
        numpy.testing.assert_array_equal(result.rasters[0], remap(grid[:3], RemapParameters(size=3)))
        numpy.testing.assert_array_equal(result.rasters[1], remap(grid[3:], RemapParameters(size=3)))

    def test_invalid_metadata(self):
        data, _ = _sicd_nitf(xml=make_sicd_xml(12, 8, omit=('SCPCOA', )))
        with self.subTest(msg='degrade'):
            with self.assertLogs('nitfviz.visualization.render', level='WARNING'):
                result = render_nitf(data, RenderOptions(size=4, sicd_policy=SicdPolicy.DEGRADE))
            self.assertEqual(result.route, Route.MULTI_SEGMENT)
            self.assertEqual(len(result.rasters), 3)
        with self.subTest(msg='fatal'):
            with self.assertRaises(MetadataError):
                render_nitf(data, RenderOptions(size=4, sicd_policy=SicdPolicy.FATAL))

    def test_no_image_segments(self):
        data = build_nitf([])
        with self.assertRaises(FormatError):
            render_nitf(data)
        with self.assertRaises(FormatError):
            detect(parse(data), RenderOptions())

    def test_result_extension(self):
        raster = numpy.zeros((2, 2), dtype='uint8')
        self.assertEqual(RenderResult(Route.SICD, (raster, )).extension, 'png')
        self.assertEqual(RenderResult(Route.SINGLE_SEGMENT, [raster, ]).extension, 'png')
        self.assertEqual(RenderResult(Route.MULTI_SEGMENT, [raster, raster]).extension, 'gif')


class TestRenderFile(unittest.TestCase):
    def setUp(self):
        self._temp_dir = tempfile.TemporaryDirectory()
        self.directory = self._temp_dir.name

    def tearDown(self):
        self._temp_dir.cleanup()

    def _write_input(self, data, name='input.ntf'):
        path = os.path.join(self.directory, name)
        with open(path, 'wb') as fi:
            fi.write(data)
        return path

    def test_output_path(self):
        self.assertEqual(get_output_path('out', 'image', 256, 'png'), os.path.join('out', 'image_256.png'))

    def test_single_png(self):
        input_path = self._write_input(_mono_nitf(1), name='scene.nitf')
        output_dir = os.path.join(self.directory, 'out', 'nested')
        output_path = render_file(input_path, output_dir=output_dir, options=RenderOptions(size=16))
        self.assertEqual(output_path, os.path.join(output_dir, 'scene_16.png'))
        with PIL_Image.open(output_path) as image:
            self.assertEqual(image.format, 'PNG')
            self.assertEqual(image.size, (16, 16))

    def test_multi_gif(self):
        input_path = self._write_input(_mono_nitf(3))
        output_path = render_file(input_path, output_dir=self.directory, prefix='frames', options=RenderOptions(size=8))
        self.assertEqual(output_path, os.path.join(self.directory, 'frames_8.gif'))
        with PIL_Image.open(output_path) as image:
            self.assertEqual(image.format, 'GIF')
            self.assertEqual(image.n_frames, 3)

    def test_sicd_png(self):
        data, _ = _sicd_nitf()
        input_path = self._write_input(data)
        output_path = render_file(input_path, output_dir=self.directory, prefix='sicd', options=RenderOptions(size=8))
        self.assertEqual(output_path, os.path.join(self.directory, 'sicd_8.png'))
        self.assertTrue(os.path.isfile(output_path))

    def test_no_output_on_failure(self):
        input_path = self._write_input(b'NITF02.10' + b'\x00'*100)
        output_dir = os.path.join(self.directory, 'out')
        with self.assertRaises(FormatError):
            render_file(input_path, output_dir=output_dir)
        self.assertFalse(os.path.exists(output_dir))

    def test_missing_input(self):
        with self.assertRaises(NitfVizIOError):
            render_file(os.path.join(self.directory, 'missing.ntf'), output_dir=self.directory)
        self.assertEqual(os.listdir(self.directory), [])
