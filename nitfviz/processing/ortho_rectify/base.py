"""
Nearest neighbor resampling of a slant plane SICD raster onto the ground plane grid.
"""

__classification__ = "UNCLASSIFIED"


import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import numpy

from nitfviz.io.complex.sicd import SicdMetadata
from nitfviz.processing.ortho_rectify.projection_helper import PGProjection


logger = logging.getLogger(__name__)

DEFAULT_BLOCK_SIZE = 256


class NearestNeighborMethod(object):
    """
    Nearest neighbor ground projection method. Ground grid cells which project
    outside of the raster are populated with the pad value.
    """

    __slots__ = ('_proj_helper', '_pad_value')

    def __init__(self, proj_helper: PGProjection, pad_value=0):
        """

        Parameters
        ----------
        proj_helper : PGProjection
        pad_value : int
            Value to use for any out-of-range pixels.
        """

        self._proj_helper = proj_helper
        self._pad_value = pad_value

    @property
    def proj_helper(self) -> PGProjection:
        return self._proj_helper

    def get_orthorectified_rows(self, raster: numpy.ndarray, row_start: int, row_end: int) -> numpy.ndarray:
        """
        Get the ground projected rows `[row_start, row_end)`.

        Parameters
        ----------
        raster : numpy.ndarray
            The slant plane raster, of shape `(rows, cols)` or `(rows, cols, bands)`.
        row_start : int
        row_end : int

        Returns
        -------
        numpy.ndarray
        """

        rows, cols = raster.shape[:2]
        ortho_rows, ortho_cols = numpy.meshgrid(
            numpy.arange(row_start, row_end, dtype='float64'),
            numpy.arange(cols, dtype='float64'), indexing='ij')
        pixels = self._proj_helper.ortho_to_pixel(numpy.stack([ortho_rows, ortho_cols], axis=-1))
        pixel_rows = numpy.rint(pixels[..., 0])
        pixel_cols = numpy.rint(pixels[..., 1])
        # determine the in bounds points
        mask = numpy.isfinite(pixel_rows) & numpy.isfinite(pixel_cols) & \
            (pixel_rows >= 0) & (pixel_rows < rows) & (pixel_cols >= 0) & (pixel_cols < cols)

        ortho_array = numpy.full((row_end - row_start, ) + raster.shape[1:], self._pad_value, dtype=raster.dtype)
        ortho_array[mask] = raster[pixel_rows[mask].astype('int64'), pixel_cols[mask].astype('int64')]
        return ortho_array


def project(
        raster: numpy.ndarray,
        metadata: SicdMetadata,
        block_size: int = DEFAULT_BLOCK_SIZE,
        max_workers: Optional[int] = None) -> numpy.ndarray:
    """
    Resample the slant plane raster onto the ground plane grid of the same shape.

    Parameters
    ----------
    raster : numpy.ndarray
        The mono `(rows, cols)` or RGB `(rows, cols, 3)` raster, which is a
        resampled version of the full `NumRows x NumCols` SICD image.
    metadata : SicdMetadata
    block_size : int
        The number of rows processed at a time.
    max_workers : None|int
        The number of threads for processing row blocks, a value larger than 1
        processes the blocks concurrently.

    Returns
    -------
    numpy.ndarray

    Raises
    ------
    ProjectionError
        For degenerate geometry.
    """

    if raster.ndim not in [2, 3]:
        raise ValueError('Requires a two or three dimensional raster, got shape {}'.format(raster.shape))
    block_size = max(1, int(block_size))

    proj_helper = PGProjection(metadata, raster.shape[:2])
    method = NearestNeighborMethod(proj_helper, pad_value=0)
    logger.debug(
        'Ground projection with spacing ({}, {}), reference pixel {}'.format(
            proj_helper.row_spacing, proj_helper.col_spacing, proj_helper.reference_pixels))

    rows = raster.shape[0]
    out = numpy.empty(raster.shape, dtype=raster.dtype)
    blocks = [(start, min(start + block_size, rows)) for start in range(0, rows, block_size)]

    def process(block):
        row_start, row_end = block
        # each block owns a disjoint range of output rows
        out[row_start:row_end] = method.get_orthorectified_rows(raster, row_start, row_end)

    if max_workers is not None and max_workers > 1 and len(blocks) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            list(executor.map(process, blocks))
    else:
        for entry in blocks:
            process(entry)
    return out
