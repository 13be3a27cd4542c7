"""
Extraction of the SICD (Sensor Independent Complex Data) scene geometry from
the XML metadata payload of a NITF data extension segment.
"""

__classification__ = "UNCLASSIFIED"

import logging
from typing import Optional, Union
from xml.etree import ElementTree

import numpy

from nitfviz.compliance import NitfVizError
from nitfviz.geometry.geocoords import ecf_to_geodetic
from nitfviz.io.xml.base import parse_xml_from_string, find_path, find_children, \
    get_node_value, local_tag

logger = logging.getLogger(__name__)

_PIXEL_TYPES = ('RE32F_IM32F', 'RE16I_IM16I', 'AMP8I_PHS8I')
_IMAGE_FORM_ALGOS = ('PFA', 'RMA', 'RGAZCOMP', 'OTHER')


class MetadataError(NitfVizError):
    """A custom exception class for a present, but malformed, SICD metadata payload."""


class SicdMetadata(object):
    """
    The subset of the SICD structure which describes the scene geometry and
    the complex pixel encoding.
    """

    __slots__ = (
        '_scp', '_num_rows', '_num_cols', '_first_row', '_first_col', '_scp_pixel',
        '_row_uvect', '_col_uvect', '_row_ss', '_col_ss',
        '_arp_pos', '_arp_vel', '_side_of_track', '_graze_ang', '_twist_ang',
        '_image_form_algo', '_fpn', '_pixel_type', '_amplitude_table')

    def __init__(
            self, scp, num_rows, num_cols, scp_pixel,
            row_uvect, col_uvect, row_ss, col_ss,
            arp_pos, arp_vel, side_of_track,
            first_row=0, first_col=0, graze_ang=None, twist_ang=None,
            image_form_algo=None, fpn=None, pixel_type=None, amplitude_table=None):
        """

        Parameters
        ----------
        scp : numpy.ndarray|list|tuple
            The scene center point, in ECF coordinates.
        num_rows : int
        num_cols : int
        scp_pixel : numpy.ndarray|list|tuple
            The `(row, column)` scene center point pixel, in full image coordinates.
        row_uvect : numpy.ndarray|list|tuple
            The ECF unit vector in the increasing row direction.
        col_uvect : numpy.ndarray|list|tuple
            The ECF unit vector in the increasing column direction.
        row_ss : float
            The row sample spacing, in meters.
        col_ss : float
            The column sample spacing, in meters.
        arp_pos : numpy.ndarray|list|tuple
            The aperture reference point position at the center of aperture.
        arp_vel : numpy.ndarray|list|tuple
            The aperture reference point velocity at the center of aperture.
        side_of_track : str
            One of `('L', 'R')`.
        first_row : int
            The first row of this image in the full image.
        first_col : int
            The first column of this image in the full image.
        graze_ang : None|float
        twist_ang : None|float
        image_form_algo : None|str
        fpn : None|numpy.ndarray|list|tuple
            The PFA focus plane normal.
        pixel_type : None|str
        amplitude_table : None|numpy.ndarray
        """

        self._scp = numpy.array(scp, dtype='float64')
        self._num_rows = int(num_rows)
        self._num_cols = int(num_cols)
        self._first_row = int(first_row)
        self._first_col = int(first_col)
        self._scp_pixel = numpy.array(scp_pixel, dtype='float64')
        self._row_uvect = numpy.array(row_uvect, dtype='float64')
        self._col_uvect = numpy.array(col_uvect, dtype='float64')
        self._row_ss = float(row_ss)
        self._col_ss = float(col_ss)
        self._arp_pos = numpy.array(arp_pos, dtype='float64')
        self._arp_vel = numpy.array(arp_vel, dtype='float64')
        self._side_of_track = side_of_track
        self._graze_ang = graze_ang
        self._twist_ang = twist_ang
        self._image_form_algo = image_form_algo
        self._fpn = None if fpn is None else numpy.array(fpn, dtype='float64')
        self._pixel_type = pixel_type
        self._amplitude_table = amplitude_table

    @property
    def scp(self) -> numpy.ndarray:
        """
        numpy.ndarray: The scene center point ECF coordinates.
        """

        return self._scp

    @property
    def num_rows(self) -> int:
        return self._num_rows

    @property
    def num_cols(self) -> int:
        return self._num_cols

    @property
    def first_row(self) -> int:
        return self._first_row

    @property
    def first_col(self) -> int:
        return self._first_col

    @property
    def scp_pixel(self) -> numpy.ndarray:
        """
        numpy.ndarray: The `(row, column)` scene center point pixel, relative to
        the first row and column of this image.
        """

        return self._scp_pixel - numpy.array([self._first_row, self._first_col], dtype='float64')

    @property
    def row_uvect(self) -> numpy.ndarray:
        return self._row_uvect

    @property
    def col_uvect(self) -> numpy.ndarray:
        return self._col_uvect

    @property
    def row_ss(self) -> float:
        return self._row_ss

    @property
    def col_ss(self) -> float:
        return self._col_ss

    @property
    def arp_pos(self) -> numpy.ndarray:
        return self._arp_pos

    @property
    def arp_vel(self) -> numpy.ndarray:
        return self._arp_vel

    @property
    def side_of_track(self) -> str:
        return self._side_of_track

    @property
    def look(self) -> int:
        """
        int: `+1` for left looking, `-1` for right looking.
        """

        return 1 if self._side_of_track == 'L' else -1

    @property
    def graze_ang(self) -> Optional[float]:
        return self._graze_ang

    @property
    def twist_ang(self) -> Optional[float]:
        return self._twist_ang

    @property
    def image_form_algo(self) -> Optional[str]:
        return self._image_form_algo

    @property
    def fpn(self) -> Optional[numpy.ndarray]:
        """
        None|numpy.ndarray: The focus plane normal, populated for PFA images.
        """

        return self._fpn

    @property
    def pixel_type(self) -> Optional[str]:
        return self._pixel_type

    @property
    def amplitude_table(self) -> Optional[numpy.ndarray]:
        """
        None|numpy.ndarray: The 256 element amplitude lookup table, for `AMP8I_PHS8I`.
        """

        return self._amplitude_table

    def __repr__(self):
        return 'SicdMetadata(num_rows={}, num_cols={}, image_form_algo={}, side_of_track={})'.format(
            self._num_rows, self._num_cols, self._image_form_algo, self._side_of_track)


#########
# parsing helpers

def _get_text(root, path, xml_ns, required=True):
    node = find_path(root, path, xml_ns)
    value = None if node is None else get_node_value(node)
    if value is None and required:
        raise MetadataError('Required SICD field {} is missing'.format(path))
    return value


def _get_float(root, path, xml_ns, required=True):
    value = _get_text(root, path, xml_ns, required=required)
    if value is None:
        return None
    try:
        out = float(value)
    except ValueError as e:
        raise MetadataError('SICD field {} has non-numeric value {}'.format(path, value)) from e
    if not numpy.isfinite(out):
        raise MetadataError('SICD field {} has non-finite value {}'.format(path, value))
    return out


def _get_int(root, path, xml_ns, required=True):
    value = _get_text(root, path, xml_ns, required=required)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError as e:
        raise MetadataError('SICD field {} has non-integer value {}'.format(path, value)) from e


def _get_xyz(root, path, xml_ns, required=True):
    node = find_path(root, path, xml_ns)
    if node is None:
        if required:
            raise MetadataError('Required SICD field {} is missing'.format(path))
        return None
    return numpy.array(
        [_get_float(node, tag, xml_ns) for tag in ['X', 'Y', 'Z']], dtype='float64')


def _get_row_col(root, path, xml_ns, required=True):
    node = find_path(root, path, xml_ns)
    if node is None:
        if required:
            raise MetadataError('Required SICD field {} is missing'.format(path))
        return None
    return _get_int(node, 'Row', xml_ns), _get_int(node, 'Col', xml_ns)


def _get_amplitude_table(root, xml_ns):
    node = find_path(root, 'ImageData/AmpTable', xml_ns)
    if node is None:
        return None
    table = numpy.full((256, ), numpy.nan, dtype='float64')
    for entry in find_children(node, 'Amplitude', xml_ns):
        try:
            index = int(entry.attrib['index'])
            table[index] = float(get_node_value(entry))
        except (KeyError, ValueError, TypeError, IndexError) as e:
            raise MetadataError('Malformed ImageData/AmpTable entry') from e
    if not numpy.all(numpy.isfinite(table)):
        raise MetadataError('ImageData/AmpTable must populate 256 finite amplitudes')
    return table


def _parse_sicd_node(root, xml_ns):
    scp = _get_xyz(root, 'GeoData/SCP/ECF', xml_ns)
    num_rows = _get_int(root, 'ImageData/NumRows', xml_ns)
    num_cols = _get_int(root, 'ImageData/NumCols', xml_ns)
    if num_rows < 1 or num_cols < 1:
        raise MetadataError('SICD image size must be positive, got {} x {}'.format(num_rows, num_cols))
    first_row = _get_int(root, 'ImageData/FirstRow', xml_ns, required=False) or 0
    first_col = _get_int(root, 'ImageData/FirstCol', xml_ns, required=False) or 0
    scp_pixel = _get_row_col(root, 'ImageData/SCPPixel', xml_ns)

    side_of_track = _get_text(root, 'SCPCOA/SideOfTrack', xml_ns).upper()
    if side_of_track not in ('L', 'R'):
        raise MetadataError('SCPCOA/SideOfTrack must be one of L or R, got {}'.format(side_of_track))

    image_form_algo = _get_text(root, 'ImageFormation/ImageFormAlgo', xml_ns, required=False)
    if image_form_algo is not None:
        image_form_algo = image_form_algo.upper()
        if image_form_algo not in _IMAGE_FORM_ALGOS:
            logger.warning('Got unexpected ImageFormAlgo {}'.format(image_form_algo))
    fpn = None
    if image_form_algo == 'PFA':
        fpn = _get_xyz(root, 'PFA/FPN', xml_ns)

    pixel_type = _get_text(root, 'ImageData/PixelType', xml_ns, required=False)
    if pixel_type is not None and pixel_type not in _PIXEL_TYPES:
        raise MetadataError('ImageData/PixelType must be one of {}, got {}'.format(_PIXEL_TYPES, pixel_type))
    amplitude_table = _get_amplitude_table(root, xml_ns)
    if amplitude_table is not None and pixel_type != 'AMP8I_PHS8I':
        logger.warning('ImageData/AmpTable is populated, but PixelType is {}'.format(pixel_type))

    return SicdMetadata(
        scp, num_rows, num_cols, scp_pixel,
        _get_xyz(root, 'Grid/Row/UVectECF', xml_ns),
        _get_xyz(root, 'Grid/Col/UVectECF', xml_ns),
        _get_float(root, 'Grid/Row/SS', xml_ns),
        _get_float(root, 'Grid/Col/SS', xml_ns),
        _get_xyz(root, 'SCPCOA/ARPPos', xml_ns),
        _get_xyz(root, 'SCPCOA/ARPVel', xml_ns),
        side_of_track,
        first_row=first_row, first_col=first_col,
        graze_ang=_get_float(root, 'SCPCOA/GrazeAng', xml_ns, required=False),
        twist_ang=_get_float(root, 'SCPCOA/TwistAng', xml_ns, required=False),
        image_form_algo=image_form_algo, fpn=fpn,
        pixel_type=pixel_type, amplitude_table=amplitude_table)


def extract(payload: Union[None, bytes, str]) -> Optional[SicdMetadata]:
    """
    Extract the SICD metadata from the given XML payload.

    Parameters
    ----------
    payload : None|bytes|str

    Returns
    -------
    None|SicdMetadata
        `None` if and only if no payload is given.

    Raises
    ------
    MetadataError
        If the payload is present, but is not valid SICD XML.
    """

    if payload is None:
        return None

    try:
        if isinstance(payload, (bytes, bytearray, memoryview)):
            payload = bytes(payload).decode('utf-8')
        root_node, xml_ns = parse_xml_from_string(payload.strip())
    except (UnicodeDecodeError, ElementTree.ParseError, ValueError) as e:
        raise MetadataError('The metadata payload is not parsable XML') from e

    if local_tag(root_node) != 'SICD':
        raise MetadataError('The metadata payload root element is {}, not SICD'.format(local_tag(root_node)))

    metadata = _parse_sicd_node(root_node, xml_ns)
    llh = ecf_to_geodetic(metadata.scp)
    logger.info(
        'SICD metadata: {} x {} image, scene center at lat {:.6f}, lon {:.6f}, '
        'image formation {}'.format(
            metadata.num_rows, metadata.num_cols, llh[0], llh[1], metadata.image_form_algo))
    return metadata
