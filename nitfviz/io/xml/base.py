"""
This module contains the dom helper functions for basic xml parsing.
"""

__classification__ = "UNCLASSIFIED"

import logging
import re
from io import StringIO
from xml.etree import ElementTree

from nitfviz.compliance import bytes_to_string


logger = logging.getLogger(__name__)


#################
# dom helper functions


def get_node_value(nod):
    """
    XML parsing helper for extracting text value from an ElementTree Element. No error checking performed.

    Parameters
    ----------
    nod : ElementTree.Element
        the xml dom element

    Returns
    -------
    None|str
        the string value of the node.
    """

    if nod.text is None:
        return None

    val = nod.text.strip()
    if len(val) == 0:
        return None
    else:
        return val


def find_first_child(node, tag, xml_ns, ns_key=None):
    """
    Finds the first child node

    Parameters
    ----------
    node : ElementTree.Element
    tag : str
    xml_ns : None|dict
    ns_key : None|str
    """

    if xml_ns is None:
        return node.find(tag)
    elif ns_key is None:
        return node.find('default:{}'.format(tag), xml_ns)
    else:
        return node.find('{}:{}'.format(ns_key, tag), xml_ns)


def find_children(node, tag, xml_ns, ns_key=None):
    """
    Finds the collection of children nodes

    Parameters
    ----------
    node : ElementTree.Element
    tag : str
    xml_ns : None|dict
    ns_key : None|str
    """

    if xml_ns is None:
        return node.findall(tag)
    elif ns_key is None:
        return node.findall('default:{}'.format(tag), xml_ns)
    else:
        return node.findall('{}:{}'.format(ns_key, tag), xml_ns)


def find_path(node, path, xml_ns):
    """
    Follow the `/` separated path of child tags from the given node, in the
    default namespace.

    Parameters
    ----------
    node : ElementTree.Element
    path : str
    xml_ns : None|dict

    Returns
    -------
    None|ElementTree.Element
        `None` if any element along the path is absent.
    """

    for tag in path.split('/'):
        node = find_first_child(node, tag, xml_ns)
        if node is None:
            return None
    return node


def local_tag(node):
    """
    The tag of the given node, stripped of any namespace.

    Parameters
    ----------
    node : ElementTree.Element

    Returns
    -------
    str
    """

    return node.tag.split('}')[-1]


def parse_xml_from_string(xml_string):
    """
    Parse the ElementTree root node and xml namespace dict from an xml string.

    Parameters
    ----------
    xml_string : str|bytes

    Returns
    -------
    root_node: ElementTree.Element
    xml_ns: Dict[str, str]
    """

    xml_string = bytes_to_string(xml_string, encoding='utf-8')

    root_node = ElementTree.fromstring(xml_string)
    # define the namespace dictionary
    xml_ns = dict([node for _, node in ElementTree.iterparse(StringIO(xml_string), events=('start-ns',))])
    if len(xml_ns.keys()) == 0:
        xml_ns = None
    elif '' in xml_ns:
        xml_ns['default'] = xml_ns['']
    else:
        # default will be the namespace for the root node
        namespace_match = re.match(r'\{.*\}', root_node.tag)
        if namespace_match is None:
            # only prefixed namespaces, and the elements of interest have none
            return root_node, None
        xml_ns['default'] = namespace_match[0][1:-1]
    return root_node, xml_ns
