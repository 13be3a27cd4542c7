"""
Provides the methods for remapping a complex (or other) array to an 8-bit
display raster - the piecewise extended density format (PEDF) remap, the
nearest neighbor resampling to the output size, and the brightness and contrast
adjustments.
"""

__classification__ = "UNCLASSIFIED"


import logging
from typing import Union, Optional

import numpy


logger = logging.getLogger(__name__)

DEFAULT_SIZE = 256
DEFAULT_DMIN = 30
DEFAULT_MMULT = 40
DEFAULT_EPS = 1e-5
_MID_GREY = 128
# brightness is a signed 32-bit offset
_BRIGHTNESS_MIN = -2**31
_BRIGHTNESS_MAX = 2**31 - 1


###########
# helper functions

def clip_cast(array, dtype='uint8', min_value=None, max_value=None):
    """
    Cast by clipping values outside of valid range, rather than truncating.

    Parameters
    ----------
    array : numpy.ndarray
    dtype : str|numpy.dtype
    min_value : None|int|float
    max_value : None|int|float

    Returns
    -------
    numpy.ndarray
    """

    np_type = numpy.dtype(dtype)
    min_value = numpy.iinfo(np_type).min if min_value is None else max(min_value, numpy.iinfo(np_type).min)
    max_value = numpy.iinfo(np_type).max if max_value is None else min(max_value, numpy.iinfo(np_type).max)
    return numpy.clip(array, min_value, max_value).astype(np_type)


def get_data_mean_magnitude(data):
    """
    Gets the mean magnitude over the finite entries of the given array.

    Parameters
    ----------
    data : numpy.ndarray
        The (presumably complex) data.

    Returns
    -------
    float
        This will be `0` if there are no finite entries.
    """

    amplitude = numpy.abs(data)
    mask = numpy.isfinite(amplitude)
    if not numpy.any(mask):
        return 0.0
    return float(numpy.mean(amplitude[mask], dtype='float64'))


def amplitude_to_density(data, dmin=DEFAULT_DMIN, mmult=DEFAULT_MMULT, eps=DEFAULT_EPS, data_mean=None):
    """
    Convert to density data for remap.

    This is a digested version of contents presented in a 1994 publication
    entitled "Softcopy Display of SAR Data" by Kevin Mangis.

    Parameters
    ----------
    data : numpy.ndarray
        The (presumably complex) data to remap
    dmin : float|int
        A dynamic range parameter. Lowering this widens the range, while raising
        it narrows the range. This was historically fixed at 30.
    mmult : float|int
        A contrast parameter. Low values will result is higher contrast and quicker
        saturation, while high values will decrease contrast and slower saturation.
    eps : float
        Small offset to create a nominal floor when mapping data containing 0's.
    data_mean : None|float|int
        The data mean (for this or the parent array for continuity), which will
        be calculated if not provided.

    Returns
    -------
    numpy.ndarray
    """

    dmin = float(dmin)
    if not (0 <= dmin < 255):
        raise ValueError('Invalid dmin value {}'.format(dmin))

    mmult = float(mmult)
    if mmult <= 1:
        raise ValueError('Invalid mmult value {}'.format(mmult))

    amplitude = numpy.abs(data).astype('float64')
    if data_mean is None:
        data_mean = get_data_mean_magnitude(amplitude)
    if not (numpy.isfinite(data_mean) and data_mean > 0):
        # an all zero image
        return numpy.zeros(amplitude.shape, dtype='float64')

    # remap parameters
    C_L = 0.8*data_mean
    C_H = mmult*C_L  # decreasing mmult will result in higher contrast (and quicker saturation)
    slope = (255 - dmin)/numpy.log10(C_H/C_L)
    constant = dmin - (slope*numpy.log10(C_L))
    return slope*numpy.log10(numpy.maximum(amplitude, eps)) + constant


def decimate(array, size):
    """
    Nearest neighbor resampling of the first two dimensions to `size x size`,
    where output `(i, j)` is taken from input `(i*rows//size, j*cols//size)`.

    Parameters
    ----------
    array : numpy.ndarray
        Of shape `(rows, cols)` or `(rows, cols, bands)`.
    size : int

    Returns
    -------
    numpy.ndarray
    """

    size = int(size)
    if size < 1:
        raise ValueError('size must be a positive integer, got {}'.format(size))
    if array.ndim not in [2, 3]:
        raise ValueError('Requires a two or three dimensional array, got shape {}'.format(array.shape))

    rows, cols = array.shape[:2]
    if rows < 1 or cols < 1:
        raise ValueError('Cannot resample an empty array of shape {}'.format(array.shape))
    row_indices = (numpy.arange(size, dtype='int64')*rows)//size
    col_indices = (numpy.arange(size, dtype='int64')*cols)//size
    return array[row_indices[:, numpy.newaxis], col_indices[numpy.newaxis, :]]


def adjust_brightness_contrast(raster, brightness=0, contrast=0.0):
    """
    Apply the additive brightness offset, then the contrast scale about mid-grey,
    with a single clamp of the result to `[0, 255]`.

    The contrast scale factor is `((100 + contrast)/100)^2`, and each value `p`
    maps to `round((p + brightness - 128)*factor + 128)`. The intermediate value
    is not clamped. A contrast of 0 is the identity, so that brightness alone is
    exactly additive before clamping.

    Parameters
    ----------
    raster : numpy.ndarray
        The uint8 raster.
    brightness : int
    contrast : float

    Returns
    -------
    numpy.ndarray
    """

    brightness = int(brightness)
    contrast = float(contrast)
    if brightness == 0 and contrast == 0:
        return raster

    values = raster.astype('int64') + brightness
    if contrast != 0:
        factor = ((100.0 + contrast)/100.0)**2
        values = numpy.floor((values - _MID_GREY)*factor + _MID_GREY + 0.5)
    return clip_cast(values, dtype='uint8', min_value=0, max_value=255)


class RemapParameters(object):
    """
    The display adjustment parameters.
    """

    __slots__ = ('_brightness', '_contrast', '_size')

    def __init__(self, brightness=0, contrast=0.0, size=DEFAULT_SIZE):
        """

        Parameters
        ----------
        brightness : int
            The additive brightness offset, in the signed 32-bit range.
        contrast : float
            The contrast adjustment, where 0 is no adjustment.
        size : int
            The output raster is `size x size`.
        """

        self._brightness = int(brightness)
        if not (_BRIGHTNESS_MIN <= self._brightness <= _BRIGHTNESS_MAX):
            raise ValueError('brightness must be a signed 32-bit integer, got {}'.format(brightness))
        self._contrast = float(contrast)
        if not numpy.isfinite(self._contrast):
            raise ValueError('contrast must be finite, got {}'.format(contrast))
        self._size = int(size)
        if self._size < 1:
            raise ValueError('size must be a positive integer, got {}'.format(size))

    @property
    def brightness(self) -> int:
        return self._brightness

    @property
    def contrast(self) -> float:
        return self._contrast

    @property
    def size(self) -> int:
        return self._size

    def __repr__(self):
        return 'RemapParameters(brightness={}, contrast={}, size={})'.format(
            self._brightness, self._contrast, self._size)


class PEDF(object):
    """
    A monochromatic piecewise extended density format remap.
    """

    __slots__ = ('_dmin', '_mmult', '_eps', '_data_mean')
    _name = 'pedf'

    def __init__(self, dmin=DEFAULT_DMIN, mmult=DEFAULT_MMULT, eps=DEFAULT_EPS, data_mean=None):
        """

        Parameters
        ----------
        dmin : float|int
            A dynamic range parameter. Lowering this widens the range, while raising
            it narrows the range.
        mmult : float|int
            A contrast parameter.
        eps : float
            small offset to create a nominal floor when mapping data containing 0's.
        data_mean : None|float|int
            The global data mean (for continuity). The appropriate value will be
            calculated on a per calling array basis if not provided.
        """

        self._dmin = float(dmin)
        self._mmult = float(mmult)
        self._eps = float(eps)
        self._data_mean = None if data_mean is None else float(data_mean)

    @property
    def name(self):
        return self._name

    @property
    def data_mean(self) -> Optional[float]:
        return self._data_mean

    @data_mean.setter
    def data_mean(self, value):
        self._data_mean = None if value is None else float(value)

    def raw_call(self, data, data_mean=None):
        """
        This performs the mapping from input data to output floating point
        version, this is directly used by the :func:`call` method.

        Parameters
        ----------
        data : numpy.ndarray
            The (presumably) complex data to remap.
        data_mean : None|float
            The pre-calculated data mean, for consistent global use. The order
            of preference is the value provided here, the class data_mean property
            value, then the value calculated from the present sample.

        Returns
        -------
        numpy.ndarray
        """

        data_mean = self._data_mean if data_mean is None else float(data_mean)
        half_value = 0.5*255
        out = amplitude_to_density(
            data, dmin=self._dmin, mmult=self._mmult, eps=self._eps, data_mean=data_mean)
        out = numpy.nan_to_num(out, nan=0.0, posinf=255.0, neginf=0.0)
        top_mask = (out > half_value)
        out[top_mask] = 0.5*(out[top_mask] + half_value)
        return out

    def call(self, data, data_mean=None):
        """
        This performs the mapping from input data to output discrete version.

        >>> remap = PEDF()
        >>> discrete_data = remap(data, data_mean=85.2)

        Parameters
        ----------
        data : numpy.ndarray
        data_mean : None|float

        Returns
        -------
        numpy.ndarray
        """

        return clip_cast(self.raw_call(data, data_mean=data_mean), dtype='uint8', min_value=0, max_value=255)

    def __call__(self, data, data_mean=None):
        return self.call(data, data_mean=data_mean)


def remap(image: numpy.ndarray, params: RemapParameters, data_mean: Union[None, float] = None) -> numpy.ndarray:
    """
    Remap the complex image to an 8-bit raster of size `N x N`. The PEDF
    statistics are taken from the full image, which is then resampled before
    the density remap, brightness and contrast are applied.

    Parameters
    ----------
    image : numpy.ndarray
        The complex image of shape `(rows, cols)`.
    params : RemapParameters
    data_mean : None|float
        The mean magnitude, calculated from `image` if not provided.

    Returns
    -------
    numpy.ndarray
        Of dtype uint8 and shape `(N, N)`.
    """

    if image.ndim != 2:
        raise ValueError('Requires a two-dimensional image, got shape {}'.format(image.shape))
    if data_mean is None:
        data_mean = get_data_mean_magnitude(image)
    logger.debug('PEDF remap with mean magnitude {}'.format(data_mean))
    magnitude = numpy.abs(decimate(image, params.size))
    raster = PEDF(data_mean=data_mean)(magnitude)
    return adjust_brightness_contrast(raster, brightness=params.brightness, contrast=params.contrast)


def remap_display(raster: numpy.ndarray, params: RemapParameters) -> numpy.ndarray:
    """
    Resample an 8-bit display raster to `N x N`, and apply the brightness and
    contrast adjustment.

    Parameters
    ----------
    raster : numpy.ndarray
        Of dtype uint8 and shape `(rows, cols)` or `(rows, cols, 3)`.
    params : RemapParameters

    Returns
    -------
    numpy.ndarray
    """

    if raster.dtype.name != 'uint8':
        raise ValueError('Requires a uint8 raster, got dtype {}'.format(raster.dtype))
    out = numpy.ascontiguousarray(decimate(raster, params.size))
    return adjust_brightness_contrast(out, brightness=params.brightness, contrast=params.contrast)
