"""
Selection and execution of the rendering pipeline for a NITF file.

A file with valid SICD metadata is assembled, remapped and projected to the
ground plane, producing one PNG. Otherwise, each image segment is rendered
directly, producing one PNG for a single segment, or one animated GIF with a
frame per segment.
"""

__classification__ = "UNCLASSIFIED"


import logging
import os
from enum import Enum
from typing import Optional, Tuple, Union

import numpy

from nitfviz.io.general.base import FormatError, NitfVizIOError
from nitfviz.io.general.nitf import NitfFile, parse
from nitfviz.io.complex.sicd import MetadataError, SicdMetadata, extract
from nitfviz.io.complex.aggregate import assemble
from nitfviz.processing.ortho_rectify import project
from nitfviz.visualization.display import get_passthrough_raster
from nitfviz.visualization.image_writer import write_gif, write_png
from nitfviz.visualization.remap import DEFAULT_SIZE, RemapParameters, remap


logger = logging.getLogger(__name__)


class Route(Enum):
    """
    The rendering pipeline.
    """

    SICD = 'sicd'
    MULTI_SEGMENT = 'multi_segment'
    SINGLE_SEGMENT = 'single_segment'


class SicdPolicy(Enum):
    """
    The handling of SICD metadata which is present, but not valid. `DEGRADE`
    renders the file as though no metadata were present, and `FATAL` aborts.
    """

    DEGRADE = 'degrade'
    FATAL = 'fatal'


DEFAULT_SICD_POLICY = SicdPolicy.DEGRADE


class RenderOptions(object):
    """
    The rendering options.
    """

    __slots__ = ('_remap_parameters', '_sicd_policy', '_max_workers')

    def __init__(
            self,
            size: int = DEFAULT_SIZE,
            brightness: int = 0,
            contrast: float = 0.0,
            sicd_policy: Union[str, SicdPolicy] = DEFAULT_SICD_POLICY,
            max_workers: Optional[int] = None):
        """

        Parameters
        ----------
        size : int
            The output raster is `size x size`.
        brightness : int
        contrast : float
        sicd_policy : str|SicdPolicy
        max_workers : None|int
            The number of threads for the data parallel steps.
        """

        self._remap_parameters = RemapParameters(brightness=brightness, contrast=contrast, size=size)
        self._sicd_policy = SicdPolicy(sicd_policy)
        if max_workers is not None:
            max_workers = int(max_workers)
            if max_workers < 1:
                raise ValueError('max_workers must be positive, got {}'.format(max_workers))
        self._max_workers = max_workers

    @property
    def remap_parameters(self) -> RemapParameters:
        return self._remap_parameters

    @property
    def size(self) -> int:
        return self._remap_parameters.size

    @property
    def sicd_policy(self) -> SicdPolicy:
        return self._sicd_policy

    @property
    def max_workers(self) -> Optional[int]:
        return self._max_workers


class RenderResult(object):
    """
    The rendered rasters, in the order they are to be encoded.
    """

    __slots__ = ('_route', '_rasters', '_metadata')

    def __init__(self, route: Route, rasters: Tuple[numpy.ndarray, ...], metadata: Optional[SicdMetadata] = None):
        self._route = route
        self._rasters = tuple(rasters)
        self._metadata = metadata

    @property
    def route(self) -> Route:
        return self._route

    @property
    def rasters(self) -> Tuple[numpy.ndarray, ...]:
        return self._rasters

    @property
    def metadata(self) -> Optional[SicdMetadata]:
        """
        None|SicdMetadata: The metadata, populated only for the SICD route.
        """

        return self._metadata

    @property
    def extension(self) -> str:
        """
        str: The output file extension, `gif` for multiple rasters and `png` otherwise.
        """

        return 'gif' if self._route == Route.MULTI_SEGMENT else 'png'


def _get_metadata(nitf_file: NitfFile, policy: SicdPolicy) -> Optional[SicdMetadata]:
    try:
        return extract(nitf_file.metadata_payload)
    except MetadataError as e:
        if policy == SicdPolicy.FATAL:
            raise
        logger.warning('Invalid SICD metadata, rendering the image segments directly.\n\t{}'.format(e))
        return None


def detect(nitf_file: NitfFile, options: RenderOptions) -> Tuple[Route, Optional[SicdMetadata]]:
    """
    Determine the rendering route for the parsed NITF file.

    Parameters
    ----------
    nitf_file : NitfFile
    options : RenderOptions

    Returns
    -------
    (Route, None|SicdMetadata)

    Raises
    ------
    FormatError
        If there are no image segments.
    MetadataError
        If the metadata is not valid, and the policy is `FATAL`.
    """

    if len(nitf_file.image_segments) == 0:
        raise FormatError('The NITF file contains no image segments')

    metadata = _get_metadata(nitf_file, options.sicd_policy)
    if metadata is not None:
        return Route.SICD, metadata
    elif len(nitf_file.image_segments) > 1:
        return Route.MULTI_SEGMENT, None
    else:
        return Route.SINGLE_SEGMENT, None


def render_nitf(data, options: Optional[RenderOptions] = None) -> RenderResult:
    """
    Parse and render the NITF file contents.

    Parameters
    ----------
    data : bytes|bytearray|memoryview
    options : None|RenderOptions

    Returns
    -------
    RenderResult

    Raises
    ------
    NitfVizError
    """

    if options is None:
        options = RenderOptions()
    params = options.remap_parameters

    nitf_file = parse(data)
    route, metadata = detect(nitf_file, options)
    logger.info('Rendering {} image segment(s) using the {} route'.format(
        len(nitf_file.image_segments), route.name))

    if route == Route.SICD:
        image = assemble(nitf_file.image_segments, metadata, max_workers=options.max_workers)
        raster = project(remap(image, params), metadata, max_workers=options.max_workers)
        return RenderResult(route, (raster, ), metadata=metadata)
    else:
        rasters = tuple(get_passthrough_raster(segment, params) for segment in nitf_file.image_segments)
        return RenderResult(route, rasters)


def _read_file(input_path: str) -> bytes:
    try:
        with open(input_path, 'rb') as fi:
            return fi.read()
    except OSError as e:
        raise NitfVizIOError('Unable to read {}'.format(input_path)) from e


def get_output_path(output_dir: str, prefix: str, size: int, extension: str) -> str:
    return os.path.join(output_dir, '{}_{}.{}'.format(prefix, size, extension))


def render_file(
        input_path: str,
        output_dir: str = '.',
        prefix: Optional[str] = None,
        options: Optional[RenderOptions] = None) -> str:
    """
    Render the NITF file to a PNG or GIF file named `<prefix>_<size>.<png|gif>`
    in the output directory. Nothing is written if any step fails.

    Parameters
    ----------
    input_path : str
    output_dir : str
        Created, if it does not exist.
    prefix : None|str
        The output file name prefix, defaults to the stem of the input file name.
    options : None|RenderOptions

    Returns
    -------
    str
        The output file path.

    Raises
    ------
    NitfVizError
    """

    if options is None:
        options = RenderOptions()
    if prefix is None:
        prefix = os.path.splitext(os.path.basename(input_path))[0]

    result = render_nitf(_read_file(input_path), options)

    try:
        os.makedirs(output_dir, exist_ok=True)
    except OSError as e:
        raise NitfVizIOError('Unable to create output directory {}'.format(output_dir)) from e
    output_path = get_output_path(output_dir, prefix, options.size, result.extension)
    if result.route == Route.MULTI_SEGMENT:
        write_gif(result.rasters, output_path)
    else:
        write_png(result.rasters[0], output_path)
    return output_path


__all__ = [
    'Route', 'SicdPolicy', 'DEFAULT_SICD_POLICY', 'RenderOptions', 'RenderResult',
    'detect', 'render_nitf', 'render_file', 'get_output_path']
