import numpy

from nitfviz.io.complex.sicd import MetadataError, SicdMetadata, extract

from tests import unittest, make_sicd_xml, IDENTITY_GEOMETRY


class TestExtract(unittest.TestCase):
    def test_absent(self):
        self.assertIsNone(extract(None))

    def test_valid(self):
        xml = make_sicd_xml(100, 200, scp_pixel=(40, 60), row_ss=0.5, col_ss=0.75)
        for payload in [xml, xml.encode('utf-8')]:
            metadata = extract(payload)
            self.assertIsInstance(metadata, SicdMetadata)
            self.assertEqual((metadata.num_rows, metadata.num_cols), (100, 200))
            numpy.testing.assert_array_equal(metadata.scp_pixel, [40, 60])
            self.assertEqual((metadata.row_ss, metadata.col_ss), (0.5, 0.75))
            numpy.testing.assert_array_equal(metadata.scp, IDENTITY_GEOMETRY['scp'])
            numpy.testing.assert_array_equal(metadata.row_uvect, IDENTITY_GEOMETRY['row_uvect'])
            numpy.testing.assert_array_equal(metadata.arp_vel, IDENTITY_GEOMETRY['arp_vel'])
            self.assertEqual(metadata.side_of_track, 'L')
            self.assertEqual(metadata.look, 1)
            self.assertEqual(metadata.image_form_algo, 'PFA')
            numpy.testing.assert_array_equal(metadata.fpn, IDENTITY_GEOMETRY['fpn'])
            self.assertEqual(metadata.pixel_type, 'RE32F_IM32F')
            self.assertEqual(metadata.graze_ang, 90.0)

    def test_no_namespace(self):
        metadata = extract(make_sicd_xml(10, 10, namespace=None))
        self.assertEqual(metadata.num_rows, 10)

    def test_right_looking(self):
        metadata = extract(make_sicd_xml(10, 10, side_of_track='R'))
        self.assertEqual(metadata.look, -1)

    def test_amplitude_table(self):
        table = numpy.arange(256)*2.0
        metadata = extract(make_sicd_xml(10, 10, pixel_type='AMP8I_PHS8I', amplitude_table=table))
        numpy.testing.assert_array_equal(metadata.amplitude_table, table)

    def test_other_image_formation(self):
        metadata = extract(make_sicd_xml(10, 10, image_form_algo='RMA'))
        self.assertEqual(metadata.image_form_algo, 'RMA')
        self.assertIsNone(metadata.fpn)


class TestExtractErrors(unittest.TestCase):
    def test_unparsable(self):
        for payload in [b'', b'not xml at all', b'<SICD><ImageData>', b'\xff\xfe\x00']:
            with self.subTest(msg='payload {!r}'.format(payload)):
                with self.assertRaises(MetadataError):
                    extract(payload)

    def test_not_sicd(self):
        with self.assertRaises(MetadataError):
            extract('<SIDD xmlns="urn:SIDD:2.0.0"><ProductCreation/></SIDD>')

    def test_missing_geometry(self):
        for omit in ['ImageData', 'GeoData', 'Grid', 'SCPCOA', 'PFA']:
            with self.subTest(msg='missing {}'.format(omit)):
                with self.assertRaises(MetadataError):
                    extract(make_sicd_xml(10, 10, omit=(omit, )))

    def test_bad_values(self):
        with self.subTest(msg='side of track'):
            with self.assertRaises(MetadataError):
                extract(make_sicd_xml(10, 10, side_of_track='X'))
        with self.subTest(msg='pixel type'):
            with self.assertRaises(MetadataError):
                extract(make_sicd_xml(10, 10, pixel_type='RE8I_IM8I'))
        with self.subTest(msg='image size'):
            with self.assertRaises(MetadataError):
                extract(make_sicd_xml(0, 10))
        with self.subTest(msg='partial amplitude table'):
            with self.assertRaises(MetadataError):
                extract(make_sicd_xml(10, 10, pixel_type='AMP8I_PHS8I', amplitude_table=numpy.arange(10)))
        with self.subTest(msg='non-numeric'):
            xml = make_sicd_xml(10, 10).replace('<SS>1.0</SS>', '<SS>wide</SS>', 1)
            with self.assertRaises(MetadataError):
                extract(xml)
