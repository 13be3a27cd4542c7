"""
Stateful functions which map raw NITF sample data into formatted data, along
with the helper which undoes the NITF image blocking and band interleaving.
"""

__classification__ = "UNCLASSIFIED"


import logging
from typing import Union, Optional

import numpy

from nitfviz.io.general.base import DecodeError

logger = logging.getLogger(__name__)


# (raw block layout) -> transpose to (nbpc, nppbv, nbpr, nppbh, bands)
_IMODE_TRANSPOSE = {
    'S': (1, 3, 2, 4, 0),
    'B': (0, 3, 1, 4, 2),
    'P': (0, 2, 1, 3, 4),
    'R': (0, 2, 1, 4, 3)}


def _get_block_shape(
        imode: str,
        bands: int,
        nbpr: int,
        nbpc: int,
        nppbh: int,
        nppbv: int) -> tuple:
    if imode == 'S':
        return bands, nbpc, nbpr, nppbv, nppbh
    elif imode == 'B':
        return nbpc, nbpr, bands, nppbv, nppbh
    elif imode == 'P':
        return nbpc, nbpr, nppbv, nppbh, bands
    elif imode == 'R':
        return nbpc, nbpr, nppbv, bands, nppbh
    else:
        raise DecodeError('Unhandled IMODE `{}`'.format(imode))


def read_raw_bands(
        buffer: Union[bytes, memoryview],
        raw_dtype: Union[str, numpy.dtype],
        rows: int,
        cols: int,
        bands: int,
        imode: str,
        nbpr: int = 1,
        nbpc: int = 1,
        nppbh: Optional[int] = None,
        nppbv: Optional[int] = None) -> numpy.ndarray:
    """
    Interpret the (uncompressed) image segment data as an array of shape
    `(rows, cols, bands)`, removing the blocking structure and any block padding.

    Parameters
    ----------
    buffer : bytes|memoryview
        The image segment data.
    raw_dtype : str|numpy.dtype
        The raw (big-endian) data type of each band sample.
    rows : int
    cols : int
    bands : int
    imode : str
        One of `('B', 'P', 'R', 'S')`.
    nbpr : int
        The number of blocks per row.
    nbpc : int
        The number of blocks per column.
    nppbh : None|int
        Pixels per block horizontal, defaults to `cols`.
    nppbv : None|int
        Pixels per block vertical, defaults to `rows`.

    Returns
    -------
    numpy.ndarray

    Raises
    ------
    DecodeError
    """

    raw_dtype = numpy.dtype(raw_dtype)
    nppbh = cols if not nppbh else nppbh
    nppbv = rows if not nppbv else nppbv
    if nbpr*nppbh < cols or nbpc*nppbv < rows:
        raise DecodeError(
            'Blocking ({} x {} blocks of {} x {} pixels) does not cover an image of '
            'size {} x {}'.format(nbpc, nbpr, nppbv, nppbh, rows, cols))

    count = nbpc*nppbv*nbpr*nppbh*bands
    expected = count*raw_dtype.itemsize
    if len(buffer) < expected:
        raise DecodeError(
            'Image data requires {} bytes, but only {} are available'.format(expected, len(buffer)))

    data = numpy.frombuffer(buffer, dtype=raw_dtype, count=count)
    data = numpy.reshape(data, _get_block_shape(imode, bands, nbpr, nbpc, nppbh, nppbv))
    data = numpy.transpose(data, _IMODE_TRANSPOSE[imode])
    data = numpy.reshape(data, (nbpc*nppbv, nbpr*nppbh, bands))
    return data[:rows, :cols, :]


#########
# format function implementations

class FormatFunction(object):
    """
    Stateful function for converting raw data of shape `(rows, cols, bands)`
    into the formatted data of intended use.
    """

    __slots__ = ()

    def _forward_functional_step(self, data: numpy.ndarray) -> numpy.ndarray:
        raise NotImplementedError

    def __call__(self, data: numpy.ndarray) -> numpy.ndarray:
        """
        Performs the reformatting operation.

        Parameters
        ----------
        data : numpy.ndarray
            The raw data, of shape `(rows, cols, bands)`.

        Returns
        -------
        numpy.ndarray
        """

        if not isinstance(data, numpy.ndarray):
            raise TypeError('requires a numpy.ndarray, got {}'.format(type(data)))
        if data.ndim != 3:
            raise DecodeError('Requires three-dimensional raw data, got shape {}'.format(data.shape))
        return self._forward_functional_step(data)


class ComplexFormatFunction(FormatFunction):
    """
    Reformats data from real/imaginary (or magnitude/phase) band pairs to
    complex64 output of shape `(rows, cols)`. A single band of native complex
    data is also accepted, with `order=None`.
    """

    _allowed_ordering = ('IQ', 'QI', 'MP', 'PM')

    __slots__ = ('_order', '_raw_dtype', '_amplitude_table')

    def __init__(
            self,
            raw_dtype: Union[str, numpy.dtype],
            order: Optional[str],
            amplitude_table: Optional[numpy.ndarray] = None):
        """

        Parameters
        ----------
        raw_dtype : str|numpy.dtype
            The raw datatype. Valid options dependent on the value of order.
        order : None|str
            One of `('IQ', 'QI', 'MP', 'PM')`, or `None` for native complex.
            The options `('IQ', 'QI')` allow raw_dtype
            `('int8', 'int16', 'int32', 'float32', 'float64')`. The options
            `('MP', 'PM')` allow raw_dtype
            `('uint8', 'uint16', 'uint32', 'float32', 'float64')`.
        amplitude_table : None|numpy.ndarray
            The magnitude lookup table, only applicable for integer magnitude
            and phase data.

        Raises
        ------
        DecodeError
            If the order and raw data type are incompatible.
        """

        self._raw_dtype = numpy.dtype(raw_dtype)  # type: numpy.dtype
        self._order = None
        self._amplitude_table = None
        self._set_order(order)
        self._set_amplitude_table(amplitude_table)

    @property
    def order(self) -> Optional[str]:
        """
        None|str: The order string, one of `('IQ', 'QI', 'MP', 'PM')`.
        """

        return self._order

    @property
    def raw_dtype(self) -> numpy.dtype:
        return self._raw_dtype

    @property
    def amplitude_table(self) -> Optional[numpy.ndarray]:
        return self._amplitude_table

    def _set_order(self, value: Optional[str]) -> None:
        if value is None:
            if self._raw_dtype.kind != 'c':
                raise DecodeError(
                    'No complex band order given, so raw_dtype must be complex. '
                    'Got {}'.format(self._raw_dtype))
            return

        value = value.strip().upper()
        if value not in self._allowed_ordering:
            raise DecodeError(
                'Order is required to be one of {},\n\t'
                'got `{}`'.format(self._allowed_ordering, value))
        name = self._raw_dtype.name
        if value in ['IQ', 'QI']:
            if name not in ['int8', 'int16', 'int32', 'float32', 'float64']:
                raise DecodeError(
                    'order is {}, and raw_dtype ({}) must be one of '
                    'int8, int16, int32, float32, or float64'.format(value, self._raw_dtype))
        elif name not in ['uint8', 'uint16', 'uint32', 'float32', 'float64']:
            raise DecodeError(
                'order is {}, and raw_dtype ({}) must be one of '
                'uint8, uint16, uint32, float32, or float64'.format(value, self._raw_dtype))
        self._order = value

    def _set_amplitude_table(self, value: Optional[numpy.ndarray]) -> None:
        if value is None:
            return
        if self._order not in ['MP', 'PM'] or self._raw_dtype.name != 'uint8':
            logger.warning(
                'An amplitude table is only applicable for 8-bit magnitude and phase data,\n\t'
                'so it is ignored for order {} and raw_dtype {}'.format(self._order, self._raw_dtype))
            return
        value = numpy.asarray(value, dtype='float64')
        if value.shape != (256, ):
            raise DecodeError('The amplitude table must have 256 entries, got shape {}'.format(value.shape))
        self._amplitude_table = value

    def _forward_magnitude_theta(
            self,
            data: numpy.ndarray,
            out: numpy.ndarray,
            magnitude: numpy.ndarray,
            theta: numpy.ndarray) -> None:
        if self._amplitude_table is not None:
            magnitude = self._amplitude_table[magnitude]
        if data.dtype.name in ['uint8', 'uint16', 'uint32']:
            bit_depth = data.dtype.itemsize * 8
            theta = theta*2*numpy.pi/(1 << bit_depth)
        out.real = magnitude*numpy.cos(theta)
        out.imag = magnitude*numpy.sin(theta)

    def _forward_functional_step(self, data: numpy.ndarray) -> numpy.ndarray:
        band_count = data.shape[2]
        if self.order is None:
            if band_count != 1:
                raise DecodeError('Native complex data requires a single band, got {}'.format(band_count))
            return data[:, :, 0].astype('complex64')

        if band_count != 2:
            raise DecodeError(
                'Complex order {} requires exactly two bands, got {}'.format(self.order, band_count))

        # native byte order, before the arithmetic below
        data = data.astype(data.dtype.newbyteorder('='), copy=False)
        out = numpy.empty(data.shape[:2], dtype='complex64')
        if self.order == 'IQ':
            out.real = data[:, :, 0]
            out.imag = data[:, :, 1]
        elif self.order == 'QI':
            out.imag = data[:, :, 0]
            out.real = data[:, :, 1]
        elif self.order == 'MP':
            self._forward_magnitude_theta(data, out, data[:, :, 0], data[:, :, 1])
        else:
            self._forward_magnitude_theta(data, out, data[:, :, 1], data[:, :, 0])
        return out


class SingleLUTFormatFunction(FormatFunction):
    """
    Reformat the raw data according to the use of a single 8-bit lookup table.
    A lookup table of shape `(N, 3)` yields RGB output of shape `(rows, cols, 3)`,
    while a one-dimensional table yields output of shape `(rows, cols)`.
    """

    __slots__ = ('_lookup_table', )

    def __init__(self, lookup_table: numpy.ndarray):
        """

        Parameters
        ----------
        lookup_table : numpy.ndarray
            The 8-bit lookup table.
        """

        self._lookup_table = None
        if not isinstance(lookup_table, numpy.ndarray):
            raise ValueError('requires a numpy.ndarray, got {}'.format(type(lookup_table)))
        if lookup_table.dtype.name != 'uint8':
            raise ValueError('requires a numpy.ndarray of uint8 dtype, got {}'.format(lookup_table.dtype))
        if lookup_table.ndim == 2 and lookup_table.shape[1] == 1:
            lookup_table = numpy.reshape(lookup_table, (-1, ))
        self._lookup_table = lookup_table

    @property
    def lookup_table(self) -> numpy.ndarray:
        return self._lookup_table

    def _forward_functional_step(self, data: numpy.ndarray) -> numpy.ndarray:
        if data.dtype.name != 'uint8':
            raise DecodeError(
                'requires data of uint8 dtype, got {}'.format(data.dtype.name))
        if data.shape[2] != 1:
            raise DecodeError('A lookup table applies to a single band, got {}'.format(data.shape[2]))

        # entries beyond the end of a short table map to its final entry
        indices = numpy.minimum(data[:, :, 0], self.lookup_table.shape[0] - 1)
        return self.lookup_table[indices]
