from nitfviz.io.xml.base import parse_xml_from_string, find_path, find_children, get_node_value, local_tag

from tests import unittest


class TestXmlHelpers(unittest.TestCase):
    def test_default_namespace(self):
        root, xml_ns = parse_xml_from_string(
            '<Root xmlns="urn:test"><A><B> value </B><B>other</B></A><C/></Root>')
        self.assertEqual(local_tag(root), 'Root')
        self.assertEqual(xml_ns['default'], 'urn:test')
        self.assertEqual(get_node_value(find_path(root, 'A/B', xml_ns)), 'value')
        self.assertEqual(len(find_children(find_path(root, 'A', xml_ns), 'B', xml_ns)), 2)
        self.assertIsNone(get_node_value(find_path(root, 'C', xml_ns)))
        self.assertIsNone(find_path(root, 'A/D', xml_ns))

    def test_no_namespace(self):
        root, xml_ns = parse_xml_from_string(b'<Root><A>1</A></Root>')
        self.assertIsNone(xml_ns)
        self.assertEqual(get_node_value(find_path(root, 'A', xml_ns)), '1')

    def test_prefixed_namespace(self):
        root, xml_ns = parse_xml_from_string(
            '<Root xmlns:other="urn:other"><A>1</A><other:B>2</other:B></Root>')
        self.assertIsNone(xml_ns)
        self.assertEqual(get_node_value(find_path(root, 'A', xml_ns)), '1')
