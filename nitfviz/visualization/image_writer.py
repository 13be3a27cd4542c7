"""
Encoding of display rasters to PNG and GIF files, using Pillow.
"""

__classification__ = "UNCLASSIFIED"


import logging
import os
from tempfile import mkstemp
from typing import Sequence

import numpy
from PIL import Image as PIL_Image

from nitfviz.io.general.base import NitfVizIOError


logger = logging.getLogger(__name__)

DEFAULT_FRAME_DURATION = 500  # milliseconds


def _to_image(raster: numpy.ndarray) -> PIL_Image.Image:
    if raster.dtype.name != 'uint8':
        raise ValueError('Requires a uint8 raster, got dtype {}'.format(raster.dtype))
    if raster.ndim == 2:
        return PIL_Image.fromarray(raster)
    elif raster.ndim == 3 and raster.shape[2] == 3:
        return PIL_Image.fromarray(raster)
    raise ValueError('Requires a raster of shape (N, M) or (N, M, 3), got {}'.format(raster.shape))


def _atomic_save(file_name: str, save_function) -> None:
    """
    Write to a temporary file in the destination directory, then rename it
    into place. No partial output remains on failure.

    Raises
    ------
    NitfVizIOError
    """

    directory = os.path.dirname(os.path.abspath(file_name))
    suffix = os.path.splitext(file_name)[1]
    try:
        fd, temp_name = mkstemp(suffix=suffix, prefix='.nitfviz-', dir=directory)
    except OSError as e:
        raise NitfVizIOError('Unable to create a temporary file in {}'.format(directory)) from e

    try:
        with os.fdopen(fd, 'wb') as fi:
            save_function(fi)
        os.replace(temp_name, file_name)
    except OSError as e:
        if os.path.exists(temp_name):
            os.remove(temp_name)
        raise NitfVizIOError('Failed writing {}'.format(file_name)) from e
    except Exception:
        if os.path.exists(temp_name):
            os.remove(temp_name)
        raise
    logger.info('Wrote {}'.format(file_name))


def write_png(raster: numpy.ndarray, file_name: str) -> None:
    """
    Write the raster as a PNG file.

    Parameters
    ----------
    raster : numpy.ndarray
        Of dtype uint8, and shape `(N, M)` or `(N, M, 3)`.
    file_name : str
    """

    image = _to_image(raster)
    _atomic_save(file_name, lambda fi: image.save(fi, format='PNG'))


def write_gif(rasters: Sequence[numpy.ndarray], file_name: str, duration: int = DEFAULT_FRAME_DURATION) -> None:
    """
    Write the rasters as the frames of an (infinitely looping) animated GIF
    file. The frames are converted to a common mode, which is RGB if any frame
    is RGB.

    Parameters
    ----------
    rasters : Sequence[numpy.ndarray]
    file_name : str
    duration : int
        The display duration of each frame, in milliseconds.
    """

    if len(rasters) == 0:
        raise ValueError('Requires at least one raster')
    frames = [_to_image(entry) for entry in rasters]
    mode = 'RGB' if any(frame.mode == 'RGB' for frame in frames) else 'L'
    frames = [frame if frame.mode == mode else frame.convert(mode) for frame in frames]

    def save(fi):
        frames[0].save(
            fi, format='GIF', save_all=True, append_images=frames[1:], loop=0, duration=duration)

    _atomic_save(file_name, save)
