"""
The per image segment display rasters, for NITF files which are not a SICD.
Every pixel format has an explicit handler.
"""

__classification__ = "UNCLASSIFIED"


import logging
from typing import Callable, Dict

import numpy

from nitfviz.io.general.base import FormatError
from nitfviz.io.general.nitf import ImageSegment, PixelFormat
from nitfviz.visualization.remap import RemapParameters, remap, remap_display


logger = logging.getLogger(__name__)


def _mono_raster(segment: ImageSegment, params: RemapParameters) -> numpy.ndarray:
    bands = segment.read_bands()
    format_function = segment.get_format_function()
    if format_function is None:
        raster = bands[:, :, 0]
    else:
        logger.debug('Applying the band lookup table for image segment {}'.format(segment.index))
        raster = format_function(bands)
    return remap_display(raster, params)


def _rgb_raster(segment: ImageSegment, params: RemapParameters) -> numpy.ndarray:
    return remap_display(segment.read_bands(), params)


def _rgb_lut_raster(segment: ImageSegment, params: RemapParameters) -> numpy.ndarray:
    format_function = segment.get_format_function()
    return remap_display(format_function(segment.read_bands()), params)


def _complex_raster(segment: ImageSegment, params: RemapParameters) -> numpy.ndarray:
    # the PEDF statistics come from this segment alone
    image = segment.get_format_function()(segment.read_bands())
    return remap(image, params)


PASSTHROUGH_HANDLERS = {
    PixelFormat.MONO: _mono_raster,
    PixelFormat.RGB: _rgb_raster,
    PixelFormat.RGB_LUT: _rgb_lut_raster,
    PixelFormat.COMPLEX: _complex_raster,
}  # type: Dict[PixelFormat, Callable[[ImageSegment, RemapParameters], numpy.ndarray]]


def get_passthrough_raster(segment: ImageSegment, params: RemapParameters) -> numpy.ndarray:
    """
    Get the display raster of size `N x N` for the given image segment.

    Parameters
    ----------
    segment : ImageSegment
    params : RemapParameters

    Returns
    -------
    numpy.ndarray
        Of dtype uint8, and shape `(N, N)` or `(N, N, 3)`.

    Raises
    ------
    FormatError
    """

    handler = PASSTHROUGH_HANDLERS.get(segment.pixel_format, None)
    if handler is None:
        raise FormatError('No display handler for pixel format {}'.format(segment.pixel_format))
    logger.info('Rendering image segment {} ({} x {}, {})'.format(
        segment.index, segment.rows, segment.cols, segment.pixel_format.name))
    return handler(segment, params)
