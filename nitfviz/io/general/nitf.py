"""
Module laying out the basic functionality for parsing a NITF 2.1 container
into its image segments and an embedded XML metadata payload.
"""

__classification__ = "UNCLASSIFIED"


import logging
from collections import OrderedDict
from enum import Enum
from io import BytesIO
from typing import Union, List, Tuple, Optional
from xml.etree import ElementTree

import numpy

from nitfviz.io.general.base import FormatError
from nitfviz.io.general.format_function import FormatFunction, ComplexFormatFunction, \
    SingleLUTFormatFunction, read_raw_bands
from nitfviz.io.general.nitf_headers import NITFHeader, ImageSegmentHeader, \
    DataExtensionHeader, SegmentTable
from nitfviz.io.xml.base import local_tag

logger = logging.getLogger(__name__)

_NITF_MAGIC = b'NITF02.10'
_UNKNOWN_FILE_LENGTH = 999999999999


class PixelFormat(Enum):
    """
    The supported image representations of an image segment.
    """

    MONO = 'MONO'
    RGB = 'RGB'
    RGB_LUT = 'RGB/LUT'
    COMPLEX = 'COMPLEX'


class BandEncoding(object):
    """
    The band and sample encoding of an image segment. Two image segments
    with equal encoding can be decoded by the same format function.
    """

    __slots__ = ('_raw_dtype', '_complex_order', '_lut', '_bands')

    def __init__(
            self,
            raw_dtype: Union[str, numpy.dtype],
            bands: int,
            complex_order: Optional[str] = None,
            lut: Optional[numpy.ndarray] = None):
        """

        Parameters
        ----------
        raw_dtype : str|numpy.dtype
            The raw big-endian data type of each band sample.
        bands : int
            The number of bands.
        complex_order : None|str
            One of `('IQ', 'QI', 'MP', 'PM')`, if complex band pairs.
        lut : None|numpy.ndarray
            The lookup table, of shape `(N, )` or `(N, 3)`.
        """

        self._raw_dtype = numpy.dtype(raw_dtype)
        self._bands = int(bands)
        self._complex_order = complex_order
        self._lut = lut

    @property
    def raw_dtype(self) -> numpy.dtype:
        return self._raw_dtype

    @property
    def bands(self) -> int:
        return self._bands

    @property
    def complex_order(self) -> Optional[str]:
        return self._complex_order

    @property
    def lut(self) -> Optional[numpy.ndarray]:
        return self._lut

    @property
    def pixel_type(self) -> Optional[str]:
        """
        None|str: The corresponding SICD pixel type name, if any.
        """

        name = self._raw_dtype.name
        if self._complex_order == 'IQ':
            if name == 'float32':
                return 'RE32F_IM32F'
            elif name == 'int16':
                return 'RE16I_IM16I'
        elif self._complex_order == 'MP' and name == 'uint8':
            return 'AMP8I_PHS8I'
        return None

    def __eq__(self, other):
        if not isinstance(other, BandEncoding):
            return False
        if self._raw_dtype != other._raw_dtype or self._bands != other._bands or \
                self._complex_order != other._complex_order:
            return False
        if self._lut is None or other._lut is None:
            return self._lut is None and other._lut is None
        return self._lut.shape == other._lut.shape and bool(numpy.all(self._lut == other._lut))

    def __ne__(self, other):
        return not self.__eq__(other)

    __hash__ = None

    def __repr__(self):
        return 'BandEncoding(raw_dtype={}, bands={}, complex_order={}, lut={})'.format(
            self._raw_dtype.str, self._bands, self._complex_order,
            None if self._lut is None else self._lut.shape)


class ImageSegment(object):
    """
    A single image segment, which locates its sample data in the (shared) file
    buffer without copying it. This is read-only after parsing.
    """

    __slots__ = (
        '_index', '_header', '_pixel_format', '_encoding', '_buffer',
        '_data_offset', '_data_size')

    def __init__(
            self,
            index: int,
            header: ImageSegmentHeader,
            pixel_format: PixelFormat,
            encoding: BandEncoding,
            buffer: memoryview,
            data_offset: int,
            data_size: int):
        self._index = index
        self._header = header
        self._pixel_format = pixel_format
        self._encoding = encoding
        self._buffer = buffer
        self._data_offset = int(data_offset)
        self._data_size = int(data_size)

    @property
    def index(self) -> int:
        """
        int: The position of this segment in the container.
        """

        return self._index

    @property
    def header(self) -> ImageSegmentHeader:
        return self._header

    @property
    def rows(self) -> int:
        return self._header.NROWS

    @property
    def cols(self) -> int:
        return self._header.NCOLS

    @property
    def pixel_format(self) -> PixelFormat:
        return self._pixel_format

    @property
    def encoding(self) -> BandEncoding:
        return self._encoding

    @property
    def image_location(self) -> Tuple[int, int]:
        """
        Tuple[int, int]: The `(row, column)` location relative to the attached item.
        """

        return self._header.image_location

    @property
    def attachment_level(self) -> int:
        return self._header.IALVL

    @property
    def display_level(self) -> int:
        return self._header.IDLVL

    @property
    def imode(self) -> str:
        return self._header.IMODE.strip()

    @property
    def block_layout(self) -> Tuple[int, int, int, int]:
        """
        Tuple[int, int, int, int]: The `(NBPR, NBPC, NPPBH, NPPBV)`, where a
        zero pixel count has been replaced by the full image dimension.
        """

        header = self._header
        nppbh = header.NCOLS if header.NPPBH == 0 else header.NPPBH
        nppbv = header.NROWS if header.NPPBV == 0 else header.NPPBV
        return header.NBPR, header.NBPC, nppbh, nppbv

    @property
    def data_offset(self) -> int:
        return self._data_offset

    @property
    def data_size(self) -> int:
        return self._data_size

    def get_data(self) -> memoryview:
        """
        Gets a zero-copy view of the sample data for this segment.

        Returns
        -------
        memoryview
        """

        return self._buffer[self._data_offset:self._data_offset + self._data_size]

    def read_bands(self) -> numpy.ndarray:
        """
        Read the raw sample data, of shape `(rows, cols, bands)`, with the
        blocking and interleave undone.

        Returns
        -------
        numpy.ndarray

        Raises
        ------
        DecodeError
        """

        nbpr, nbpc, nppbh, nppbv = self.block_layout
        return read_raw_bands(
            self.get_data(), self._encoding.raw_dtype, self.rows, self.cols,
            self._encoding.bands, self.imode, nbpr=nbpr, nbpc=nbpc, nppbh=nppbh, nppbv=nppbv)

    def get_format_function(self, amplitude_table: Optional[numpy.ndarray] = None) -> Optional[FormatFunction]:
        """
        Gets the format function which maps the raw bands to the formatted data.

        Parameters
        ----------
        amplitude_table : None|numpy.ndarray
            Only used for 8-bit magnitude and phase complex data.

        Returns
        -------
        None|FormatFunction
        """

        if self._pixel_format == PixelFormat.COMPLEX:
            return ComplexFormatFunction(
                self._encoding.raw_dtype, self._encoding.complex_order, amplitude_table=amplitude_table)
        elif self._encoding.lut is not None:
            return SingleLUTFormatFunction(self._encoding.lut)
        return None

    def __repr__(self):
        return 'ImageSegment(index={}, rows={}, cols={}, pixel_format={})'.format(
            self._index, self.rows, self.cols, self._pixel_format.name)


class NitfFile(object):
    """
    The parsed NITF container - the ordered image segments, and the raw bytes
    of the XML metadata data extension, if any.
    """

    __slots__ = ('_header', '_image_segments', '_des_headers', '_metadata_payload', '_file_length')

    def __init__(
            self,
            header: NITFHeader,
            image_segments: Tuple[ImageSegment, ...],
            des_headers: Tuple[DataExtensionHeader, ...],
            metadata_payload: Optional[bytes],
            file_length: int):
        self._header = header
        self._image_segments = tuple(image_segments)
        self._des_headers = tuple(des_headers)
        self._metadata_payload = metadata_payload
        self._file_length = file_length

    @property
    def header(self) -> NITFHeader:
        return self._header

    @property
    def image_segments(self) -> Tuple[ImageSegment, ...]:
        """
        Tuple[ImageSegment, ...]: The image segments, in order of appearance.
        """

        return self._image_segments

    @property
    def des_headers(self) -> Tuple[DataExtensionHeader, ...]:
        return self._des_headers

    @property
    def metadata_payload(self) -> Optional[bytes]:
        """
        None|bytes: The raw bytes of the chosen XML data extension segment, preferring SICD content.
        """

        return self._metadata_payload

    @property
    def file_length(self) -> int:
        return self._file_length

    def __len__(self):
        return len(self._image_segments)


#####
# helper functions

def is_nitf(data: Union[bytes, bytearray, memoryview]) -> bool:
    """
    Test whether the given bytes start with the NITF 2.1 file header identifier.

    Parameters
    ----------
    data : bytes|bytearray|memoryview

    Returns
    -------
    bool
    """

    return bytes(data[:9]) == _NITF_MAGIC


def _element_offsets(
        cur_loc: int,
        item_array_details: SegmentTable) -> Tuple[int, List[Tuple[int, int, int, int]]]:
    """
    Accumulate the subheader and item offsets for the given segment directory.

    Returns
    -------
    cur_loc : int
        The location following the final item.
    locations : List[Tuple[int, int, int, int]]
        Entries of the form `(subheader_offset, subheader_size, item_offset, item_size)`.
    """

    subhead_sizes = item_array_details.subhead_sizes
    item_sizes = item_array_details.item_sizes
    if subhead_sizes.size == 0:
        return cur_loc, []

    subhead_offsets = numpy.full(subhead_sizes.shape, cur_loc, dtype=numpy.int64)
    subhead_offsets[1:] += numpy.cumsum(subhead_sizes[:-1]) + numpy.cumsum(item_sizes[:-1])
    item_offsets = subhead_offsets + subhead_sizes
    cur_loc = int(item_offsets[-1] + item_sizes[-1])
    locations = [
        (int(a), int(b), int(c), int(d)) for a, b, c, d in
        zip(subhead_offsets, subhead_sizes, item_offsets, item_sizes)]
    return cur_loc, locations


def _get_dtype(image_header: ImageSegmentHeader) -> Tuple[PixelFormat, BandEncoding]:
    """
    Classify the image representation and sample encoding of the given image
    segment.

    Parameters
    ----------
    image_header : ImageSegmentHeader

    Returns
    -------
    pixel_format : PixelFormat
    encoding : BandEncoding

    Raises
    ------
    FormatError
        For an unsupported image representation.
    """

    def get_raw_dtype() -> numpy.dtype:
        if nbpp not in [8, 16, 32, 64, 128]:
            raise FormatError('Unsupported NBPP {}'.format(nbpp))
        if pvtype == 'INT':
            if bpp > 8:
                raise FormatError('Unsupported unsigned integer NBPP {}'.format(nbpp))
            return numpy.dtype('>u{}'.format(bpp))
        elif pvtype == 'SI':
            if bpp > 8:
                raise FormatError('Unsupported signed integer NBPP {}'.format(nbpp))
            return numpy.dtype('>i{}'.format(bpp))
        elif pvtype == 'R':
            if bpp not in [4, 8]:
                raise FormatError('Got PVTYPE = R and NBPP = {} (not 32 or 64), which is unsupported.'.format(nbpp))
            return numpy.dtype('>f{}'.format(bpp))
        elif pvtype == 'C':
            if bpp not in [8, 16]:
                raise FormatError('Got PVTYPE = C and NBPP = {} (not 64 or 128), which is unsupported.'.format(nbpp))
            return numpy.dtype('>c{}'.format(bpp))
        else:
            raise FormatError('Unsupported PVTYPE `{}`'.format(pvtype))

    def get_complex_order() -> Optional[str]:
        if (len(bands) % 2) != 0:
            return None
        order = bands[0].ISUBCAT.strip() + bands[1].ISUBCAT.strip()
        if order not in ['IQ', 'QI', 'MP', 'PM']:
            return None
        for i in range(2, len(bands), 2):
            if order != bands[i].ISUBCAT.strip() + bands[i+1].ISUBCAT.strip():
                return None
        if order in ['IQ', 'QI'] and pvtype not in ['SI', 'R']:
            raise FormatError(
                'Image segment appears to be complex of order `{}`, \n\t'
                'but PVTYPE is `{}`'.format(order, pvtype))
        if order in ['MP', 'PM'] and pvtype not in ['INT', 'R']:
            raise FormatError(
                'Image segment appears to be complex of order `{}`, \n\t'
                'but PVTYPE is `{}`'.format(order, pvtype))
        return order

    def get_lut_info() -> Optional[numpy.ndarray]:
        if len(bands) > 1:
            for band in bands:
                if band.LUTD is not None:
                    raise FormatError('There are multiple bands with LUT.')
        lut = bands[0].LUTD
        if lut is None:
            return None
        if lut.shape[0] == 1:
            return lut[0, :]
        return numpy.transpose(lut)

    nbpp = image_header.NBPP
    bpp = int(nbpp/8)  # bytes per pixel per band
    pvtype = image_header.PVTYPE.strip()
    irep = image_header.IREP.strip()
    bands = image_header.bands
    if len(bands) == 0:
        raise FormatError('Image segment has no bands')
    if (nbpp % 8) != 0:
        raise FormatError('Unsupported NBPP {}'.format(nbpp))

    raw_dtype = get_raw_dtype()
    complex_order = get_complex_order()
    if complex_order is not None:
        if len(bands) != 2:
            raise FormatError(
                'Complex image segment with {} bands (more than one complex band) '
                'is unsupported'.format(len(bands)))
        return PixelFormat.COMPLEX, BandEncoding(raw_dtype, 2, complex_order=complex_order)
    if pvtype == 'C':
        if len(bands) != 1:
            raise FormatError('Native complex image segment with {} bands is unsupported'.format(len(bands)))
        return PixelFormat.COMPLEX, BandEncoding(raw_dtype, 1)

    lut = get_lut_info()
    if irep in ['MONO', 'RGB', 'RGB/LUT'] and (nbpp != 8 or pvtype != 'INT'):
        raise FormatError(
            'Image representation {} requires 8-bit unsigned integer data, '
            'got PVTYPE {} and NBPP {}'.format(irep, pvtype, nbpp))

    if irep == 'MONO':
        if len(bands) != 1:
            raise FormatError('MONO image segment has {} bands'.format(len(bands)))
        if lut is not None and lut.ndim != 1:
            raise FormatError('MONO image segment has a lookup table of shape {}'.format(lut.shape))
        return PixelFormat.MONO, BandEncoding(raw_dtype, 1, lut=lut)
    elif irep == 'RGB':
        if len(bands) != 3:
            raise FormatError('RGB image segment has {} bands'.format(len(bands)))
        return PixelFormat.RGB, BandEncoding(raw_dtype, 3)
    elif irep == 'RGB/LUT':
        if len(bands) != 1 or lut is None or lut.ndim != 2 or lut.shape[1] != 3:
            raise FormatError('RGB/LUT image segment requires one band with three lookup tables')
        return PixelFormat.RGB_LUT, BandEncoding(raw_dtype, 1, lut=lut)
    raise FormatError(
        'Unsupported image representation IREP `{}` with PVTYPE `{}` and {} band(s)'.format(
            irep, pvtype, len(bands)))


def _parse_image_segment(
        index: int,
        buffer: memoryview,
        subheader_offset: int,
        subheader_size: int,
        item_offset: int,
        item_size: int) -> ImageSegment:
    try:
        header = ImageSegmentHeader.from_bytes(
            bytes(buffer[subheader_offset:subheader_offset+subheader_size]), 0)
    except (ValueError, TypeError) as e:
        raise FormatError('Failed parsing image subheader {}'.format(index)) from e
    if header.get_bytes_length() != subheader_size:
        raise FormatError(
            'Image subheader {} declares length {}, but the interpreted length '
            'is {}'.format(index, subheader_size, header.get_bytes_length()))

    compression = header.IC.strip()
    if compression != 'NC':
        raise FormatError('Image segment {} has unsupported compression `{}`'.format(index, compression))
    imode = header.IMODE.strip()
    if imode not in ['B', 'P', 'R', 'S']:
        raise FormatError('Image segment {} has unsupported IMODE `{}`'.format(index, imode))

    pixel_format, encoding = _get_dtype(header)

    nbpr, nbpc = header.NBPR, header.NBPC
    nppbh = header.NCOLS if header.NPPBH == 0 else header.NPPBH
    nppbv = header.NROWS if header.NPPBV == 0 else header.NPPBV
    if nbpr < 1 or nbpc < 1:
        raise FormatError('Image segment {} has invalid block counts {} x {}'.format(index, nbpc, nbpr))
    if nbpr*nppbh < header.NCOLS or nbpc*nppbv < header.NROWS:
        raise FormatError(
            'Image segment {} blocking does not cover its {} x {} extent'.format(
                index, header.NROWS, header.NCOLS))
    required = nbpc*nppbv*nbpr*nppbh*encoding.bands*encoding.raw_dtype.itemsize
    if required > item_size:
        raise FormatError(
            'Image segment {} requires {} bytes of data, but the item length '
            'is {}'.format(index, required, item_size))

    logger.debug(
        'Image segment {}: {} x {}, {}, IMODE {}, {} blocks'.format(
            index, header.NROWS, header.NCOLS, pixel_format.name, imode, nbpr*nbpc))
    return ImageSegment(index, header, pixel_format, encoding, buffer, item_offset, item_size)


def _parse_des_header(
        index: int,
        buffer: memoryview,
        subheader_offset: int,
        subheader_size: int) -> DataExtensionHeader:
    try:
        header = DataExtensionHeader.from_bytes(
            bytes(buffer[subheader_offset:subheader_offset+subheader_size]), 0)
    except (ValueError, TypeError) as e:
        raise FormatError('Failed parsing data extension subheader {}'.format(index)) from e
    if header.get_bytes_length() != subheader_size:
        raise FormatError(
            'Data extension subheader {} declares length {}, but the interpreted length '
            'is {}'.format(index, subheader_size, header.get_bytes_length()))
    return header


def _xml_root_tag(payload: bytes) -> Optional[str]:
    """
    The local tag of the root element of the XML payload, or `None` if it is
    not parsable.
    """

    try:
        for _, node in ElementTree.iterparse(BytesIO(payload.strip()), events=('start', )):
            return local_tag(node)
    except ElementTree.ParseError:
        return None
    return None


def _select_metadata_payload(candidates: List[Tuple[int, DataExtensionHeader, bytes]]) -> Optional[bytes]:
    """
    Choose the metadata payload among the XML data extensions. In order of
    preference, this is the first one whose subheader identifies SICD content,
    the first one whose root element is SICD, or else the first one.

    Parameters
    ----------
    candidates : List[Tuple[int, DataExtensionHeader, bytes]]
        The index, subheader and payload of each XML data extension.

    Returns
    -------
    None|bytes
    """

    if len(candidates) == 0:
        return None

    chosen = None
    for entry in candidates:
        if entry[1].is_sicd:
            chosen = entry
            break
    if chosen is None:
        for entry in candidates:
            if _xml_root_tag(entry[2]) == 'SICD':
                chosen = entry
                break
    if chosen is None:
        chosen = candidates[0]
    index, des_header, payload = chosen
    logger.info('Using data extension segment {} (DESID {}) as the metadata payload'.format(
        index, des_header.DESID.strip()))
    return payload


def parse(data: Union[bytes, bytearray, memoryview]) -> NitfFile:
    """
    Parse the NITF 2.1 container.

    Parameters
    ----------
    data : bytes|bytearray|memoryview|mmap.mmap
        The complete file contents.

    Returns
    -------
    NitfFile

    Raises
    ------
    FormatError
    """

    buffer = memoryview(data)
    if buffer.ndim != 1 or buffer.itemsize != 1:
        buffer = buffer.cast('B')
    file_length = buffer.nbytes

    if not is_nitf(buffer):
        raise FormatError('Not a NITF 2.1 file')
    if file_length < 360:
        raise FormatError('File of length {} is too short for a NITF header'.format(file_length))

    try:
        header_length = int(bytes(buffer[354:360]))
    except ValueError as e:
        raise FormatError('Failed parsing the header length field') from e
    if header_length > file_length:
        raise FormatError(
            'Stated header length {} exceeds the file length {}'.format(header_length, file_length))

    try:
        header = NITFHeader.from_bytes(bytes(buffer[:header_length]), 0)
    except (ValueError, TypeError) as e:
        raise FormatError('Failed parsing the NITF file header') from e
    if header.get_bytes_length() != header_length:
        raise FormatError(
            'Stated header length is {}, while the interpreted header '
            'length is {}'.format(header_length, header.get_bytes_length()))

    if header.FL == _UNKNOWN_FILE_LENGTH:
        logger.warning('File length is unknown (FL = {}), using the actual length {}'.format(
            header.FL, file_length))
    elif header.FL != file_length:
        raise FormatError('Stated file length is {}, but the file contains {} bytes'.format(
            header.FL, file_length))

    cur_loc = header_length
    directory = OrderedDict()
    for name, details in [
            ('image', header.ImageSegments),
            ('graphics', header.GraphicsSegments),
            ('text', header.TextSegments),
            ('data extension', header.DataExtensions),
            ('reserved extension', header.ReservedExtensions)]:
        cur_loc, locations = _element_offsets(cur_loc, details)
        for i, (_, _, item_offset, item_size) in enumerate(locations):
            if item_offset + item_size > file_length:
                raise FormatError(
                    'The {} segment {} extends to byte {}, past the end of the file '
                    'at {}'.format(name, i, item_offset + item_size, file_length))
        directory[name] = locations
    logger.debug('Segment directory: {}'.format(
        ', '.join('{} {}'.format(len(value), key) for key, value in directory.items())))

    image_segments = tuple(
        _parse_image_segment(i, buffer, *entry) for i, entry in enumerate(directory['image']))

    des_headers = []
    xml_candidates = []
    for i, (sub_offset, sub_size, item_offset, item_size) in enumerate(directory['data extension']):
        des_header = _parse_des_header(i, buffer, sub_offset, sub_size)
        des_headers.append(des_header)
        if des_header.is_xml:
            xml_candidates.append((i, des_header, bytes(buffer[item_offset:item_offset + item_size])))
    metadata_payload = _select_metadata_payload(xml_candidates)

    return NitfFile(header, image_segments, tuple(des_headers), metadata_payload, file_length)
