"""
Read-only decoding of the NITF 2.1 file header, image subheader and data
extension subheader. Only the fields needed to locate and interpret image data
and an embedded XML metadata payload are retained, everything else is skipped
over. See MIL-STD-2500C for the field layout.
"""

__classification__ = "UNCLASSIFIED"

import logging
from typing import Tuple, Optional, Union

import numpy


logger = logging.getLogger(__name__)

# the security fields which follow the title in each header (FSCLAS through FSCTLN)
_SECURITY_LENGTH = 167
# the length of the SICD data extension user subheader, following DESSHL
_SICD_SUBHEADER_LENGTH = 773


class _FieldReader(object):
    """
    Sequential reader of the fixed width fields of a header.
    """

    __slots__ = ('_value', '_start', '_loc', '_name')

    def __init__(self, value: Union[bytes, memoryview], start: int, name: str):
        self._value = value
        self._start = start
        self._loc = start
        self._name = name

    @property
    def consumed(self) -> int:
        """
        int: The number of bytes read so far.
        """

        return self._loc - self._start

    def _take(self, length: int, field: str) -> bytes:
        end = self._loc + length
        if end > len(self._value):
            raise ValueError(
                '{} field {} requires {} bytes at offset {}, but only {} remain'.format(
                    self._name, field, length, self._loc, max(len(self._value) - self._loc, 0)))
        out = bytes(self._value[self._loc:end])
        self._loc = end
        return out

    def skip(self, length: int, field: str) -> None:
        self._take(length, field)

    def string(self, length: int, field: str) -> str:
        return self._take(length, field).decode('utf-8', errors='replace')

    def integer(self, length: int, field: str) -> int:
        raw = self._take(length, field)
        try:
            return int(raw)
        except ValueError as e:
            raise ValueError(
                '{} field {} is not an integer, got {!r}'.format(self._name, field, raw)) from e

    def raw(self, length: int, field: str) -> bytes:
        return self._take(length, field)

    def skip_extension(self, field: str) -> int:
        """
        Skip a user defined or extended header data field, which is a five
        digit length followed by that many bytes (overflow and tagged record
        extensions).

        Returns
        -------
        int
            The declared length.
        """

        length = self.integer(5, field)
        if length > 0:
            self.skip(length, field)
        return length


class _DecodedHeader(object):
    """
    Base for the decoded headers. The retained fields are given as keyword
    arguments, and the total length in bytes of the header is kept.
    """

    __slots__ = ('_length', )

    def __init__(self, length: int, **kwargs):
        self._length = int(length)
        for attribute in self.__slots__:
            setattr(self, attribute, kwargs.pop(attribute, None))
        if len(kwargs) > 0:
            raise ValueError('{} got unexpected fields {}'.format(self.__class__.__name__, sorted(kwargs)))

    def get_bytes_length(self) -> int:
        """
        Gets the length in bytes of the decoded header.

        Returns
        -------
        int
        """

        return self._length


class SegmentTable(object):
    """
    The subheader and item lengths for one segment type, as listed in the file header.
    """

    __slots__ = ('subhead_sizes', 'item_sizes')

    def __init__(self, subhead_sizes=None, item_sizes=None):
        """

        Parameters
        ----------
        subhead_sizes : None|numpy.ndarray|list
        item_sizes : None|numpy.ndarray|list
        """

        if subhead_sizes is None or item_sizes is None:
            subhead_sizes, item_sizes = [], []
        self.subhead_sizes = numpy.asarray(subhead_sizes, dtype=numpy.int64)
        self.item_sizes = numpy.asarray(item_sizes, dtype=numpy.int64)
        if self.subhead_sizes.shape != self.item_sizes.shape or self.item_sizes.ndim != 1:
            raise ValueError('the subhead_sizes and item_sizes arrays must be one-dimensional and the same length')

    def __len__(self):
        return self.subhead_sizes.size

    @classmethod
    def read(cls, reader: _FieldReader, name: str, subhead_len: int, item_len: int):
        count = reader.integer(3, 'NUM{}'.format(name))
        subhead_sizes = numpy.zeros((count, ), dtype=numpy.int64)
        item_sizes = numpy.zeros((count, ), dtype=numpy.int64)
        for i in range(count):
            subhead_sizes[i] = reader.integer(subhead_len, 'L{}SH{:03d}'.format(name, i+1))
            item_sizes[i] = reader.integer(item_len, 'L{}{:03d}'.format(name, i+1))
        return cls(subhead_sizes, item_sizes)


######
# The file header

class NITFHeader(_DecodedHeader):
    """
    The NITF file header.
    """

    __slots__ = (
        'CLEVEL', 'OSTAID', 'FTITLE', 'FL', 'HL',
        'ImageSegments', 'GraphicsSegments', 'TextSegments',
        'DataExtensions', 'ReservedExtensions')

    @classmethod
    def from_bytes(cls, value: Union[bytes, memoryview], start: int):
        """
        Decode the file header.

        Parameters
        ----------
        value : bytes|memoryview
        start : int

        Returns
        -------
        NITFHeader

        Raises
        ------
        ValueError
        """

        reader = _FieldReader(value, start, 'File header')
        fields = {}
        reader.skip(9, 'FHDR/FVER')
        fields['CLEVEL'] = reader.integer(2, 'CLEVEL')
        reader.skip(4, 'STYPE')
        fields['OSTAID'] = reader.string(10, 'OSTAID')
        reader.skip(14, 'FDT')
        fields['FTITLE'] = reader.string(80, 'FTITLE')
        reader.skip(_SECURITY_LENGTH, 'FSCLAS')
        reader.skip(14, 'FSCOP/FSCPYS/ENCRYP/FBKGC')
        reader.skip(42, 'ONAME/OPHONE')
        fields['FL'] = reader.integer(12, 'FL')
        fields['HL'] = reader.integer(6, 'HL')
        fields['ImageSegments'] = SegmentTable.read(reader, 'I', 6, 10)
        fields['GraphicsSegments'] = SegmentTable.read(reader, 'S', 4, 6)
        reader.skip(3, 'NUMX')
        fields['TextSegments'] = SegmentTable.read(reader, 'T', 4, 5)
        fields['DataExtensions'] = SegmentTable.read(reader, 'DES', 4, 9)
        fields['ReservedExtensions'] = SegmentTable.read(reader, 'RES', 4, 7)
        reader.skip_extension('UDHDL')
        reader.skip_extension('XHDL')
        return cls(reader.consumed, **fields)


######
# Image segment subheader

class ImageBand(object):
    """
    The band subcategory and lookup table of a single image band.
    """

    __slots__ = ('ISUBCAT', 'LUTD')

    def __init__(self, ISUBCAT: str, LUTD: Optional[numpy.ndarray] = None):
        self.ISUBCAT = ISUBCAT
        self.LUTD = LUTD  # type: Optional[numpy.ndarray]

    @classmethod
    def read(cls, reader: _FieldReader, index: int):
        reader.skip(2, 'IREPBAND{}'.format(index))
        subcat = reader.string(6, 'ISUBCAT{}'.format(index))
        reader.skip(4, 'IFC/IMFLT{}'.format(index))
        nluts = reader.integer(1, 'NLUTS{}'.format(index))
        if nluts == 0:
            return cls(subcat)
        neluts = reader.integer(5, 'NELUT{}'.format(index))
        lutd = numpy.frombuffer(
            reader.raw(nluts*neluts, 'LUTD{}'.format(index)), dtype=numpy.uint8).reshape((nluts, neluts))
        return cls(subcat, LUTD=lutd)


class ImageSegmentHeader(_DecodedHeader):
    """
    The image segment subheader.
    """

    __slots__ = (
        'IID1', 'NROWS', 'NCOLS', 'PVTYPE', 'IREP', 'ICORDS', 'IC', 'bands',
        'IMODE', 'NBPR', 'NBPC', 'NPPBH', 'NPPBV', 'NBPP', 'IDLVL', 'IALVL', 'ILOC')

    @classmethod
    def from_bytes(cls, value: Union[bytes, memoryview], start: int):
        """
        Decode the image subheader.

        Parameters
        ----------
        value : bytes|memoryview
        start : int

        Returns
        -------
        ImageSegmentHeader

        Raises
        ------
        ValueError
        """

        reader = _FieldReader(value, start, 'Image subheader')
        fields = {}
        reader.skip(2, 'IM')
        fields['IID1'] = reader.string(10, 'IID1')
        reader.skip(111, 'IDATIM/TGTID/IID2')
        reader.skip(_SECURITY_LENGTH, 'ISCLAS')
        reader.skip(43, 'ENCRYP/ISORCE')
        fields['NROWS'] = reader.integer(8, 'NROWS')
        fields['NCOLS'] = reader.integer(8, 'NCOLS')
        fields['PVTYPE'] = reader.string(3, 'PVTYPE')
        fields['IREP'] = reader.string(8, 'IREP')
        reader.skip(11, 'ICAT/ABPP/PJUST')
        fields['ICORDS'] = reader.string(1, 'ICORDS')
        if fields['ICORDS'].strip() != '':
            reader.skip(60, 'IGEOLO')
        comments = reader.integer(1, 'NICOM')
        reader.skip(80*comments, 'ICOM')
        fields['IC'] = reader.string(2, 'IC')
        if fields['IC'].strip() not in ('NC', 'NM'):
            reader.skip(4, 'COMRAT')
        band_count = reader.integer(1, 'NBANDS')
        if band_count == 0:
            # more than nine bands uses the longer field
            band_count = reader.integer(5, 'XBANDS')
        fields['bands'] = tuple(ImageBand.read(reader, i+1) for i in range(band_count))
        reader.skip(1, 'ISYNC')
        fields['IMODE'] = reader.string(1, 'IMODE')
        fields['NBPR'] = reader.integer(4, 'NBPR')
        fields['NBPC'] = reader.integer(4, 'NBPC')
        fields['NPPBH'] = reader.integer(4, 'NPPBH')
        fields['NPPBV'] = reader.integer(4, 'NPPBV')
        fields['NBPP'] = reader.integer(2, 'NBPP')
        fields['IDLVL'] = reader.integer(3, 'IDLVL')
        fields['IALVL'] = reader.integer(3, 'IALVL')
        fields['ILOC'] = reader.string(10, 'ILOC')
        reader.skip(4, 'IMAG')
        reader.skip_extension('UDIDL')
        reader.skip_extension('IXSHDL')
        return cls(reader.consumed, **fields)

    @property
    def image_location(self) -> Tuple[int, int]:
        """
        Tuple[int, int]: The `(row, column)` offset parsed from `ILOC`, relative
        to the item this segment is attached to.
        """

        return int(self.ILOC[:5]), int(self.ILOC[5:])


######
# Data extension subheader

class SICDDESSubheader(_DecodedHeader):
    """
    The user defined subheader of a SICD XML data extension.
    """

    __slots__ = ('DESSHFT', 'DESSHSI', 'DESSHSV', 'DESSHTN')

    @classmethod
    def from_bytes(cls, value: Union[bytes, memoryview], start: int):
        reader = _FieldReader(value, start, 'SICD data extension subheader')
        fields = {}
        reader.skip(5, 'DESCRC')
        fields['DESSHFT'] = reader.string(8, 'DESSHFT')
        reader.skip(60, 'DESSHDT/DESSHRP')
        fields['DESSHSI'] = reader.string(60, 'DESSHSI')
        fields['DESSHSV'] = reader.string(10, 'DESSHSV')
        reader.skip(20, 'DESSHSD')
        fields['DESSHTN'] = reader.string(120, 'DESSHTN')
        reader.skip(490, 'DESSHLPG/DESSHLPT/DESSHLI/DESSHLIN/DESSHABS')
        return cls(reader.consumed, **fields)

    @property
    def is_sicd(self) -> bool:
        """
        bool: Does the specification identifier name the SICD standard?
        """

        return self.DESSHSI.strip().upper().startswith('SICD')


class DataExtensionHeader(_DecodedHeader):
    """
    The data extension subheader. The user defined subheader is decoded for
    an XML data extension with a subheader of the SICD length, and otherwise
    skipped.
    """

    __slots__ = ('DESID', 'DESVER', 'DESSHL', 'UserHeader')

    @classmethod
    def from_bytes(cls, value: Union[bytes, memoryview], start: int):
        """
        Decode the data extension subheader.

        Parameters
        ----------
        value : bytes|memoryview
        start : int

        Returns
        -------
        DataExtensionHeader

        Raises
        ------
        ValueError
        """

        reader = _FieldReader(value, start, 'Data extension subheader')
        fields = {}
        reader.skip(2, 'DE')
        fields['DESID'] = reader.string(25, 'DESID')
        fields['DESVER'] = reader.integer(2, 'DESVER')
        reader.skip(_SECURITY_LENGTH, 'DESCLAS')
        if fields['DESID'].strip() == 'TRE_OVERFLOW':
            reader.skip(9, 'DESOFLOW/DESITEM')
        fields['DESSHL'] = reader.integer(4, 'DESSHL')
        user_start = start + reader.consumed
        reader.skip(fields['DESSHL'], 'DESSHF')
        if fields['DESID'].strip() in ('XML_DATA_CONTENT', 'SICD_XML') and \
                fields['DESSHL'] == _SICD_SUBHEADER_LENGTH:
            fields['UserHeader'] = SICDDESSubheader.from_bytes(value, user_start)
        return cls(reader.consumed, **fields)

    @property
    def is_xml(self) -> bool:
        """
        bool: Does this data extension carry XML content?
        """

        return self.DESID.strip() in ('XML_DATA_CONTENT', 'SICD_XML')

    @property
    def is_sicd(self) -> bool:
        """
        bool: Does the user defined subheader identify SICD content?
        """

        return isinstance(self.UserHeader, SICDDESSubheader) and self.UserHeader.is_sicd
