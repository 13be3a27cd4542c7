"""
Assembly of a single complex image from the (possibly several) complex image
segments of a SICD, based on the segment placement given by the `ILOC`,
`IALVL` and `IDLVL` image subheader fields.
"""

__classification__ = "UNCLASSIFIED"

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Sequence, Optional, Dict, List

import numpy

from nitfviz.compliance import NitfVizError
from nitfviz.io.general.nitf import ImageSegment, PixelFormat
from nitfviz.io.complex.sicd import SicdMetadata

logger = logging.getLogger(__name__)


class AssemblyError(NitfVizError):
    """A custom exception class for image segments which do not tile the full image."""


def get_segment_placements(
        segments: Sequence[ImageSegment],
        attachment_candidates: Optional[Sequence[ImageSegment]] = None) -> numpy.ndarray:
    """
    For the given image segments, get the relative coordinate scheme of the
    form `[[start_row, end_row, start_column, end_column]]`, in the order of
    `segments`.

    The `ILOC` of a segment with non-zero `IALVL` is relative to the segment
    whose `IDLVL` matches, and the chain of attachments is followed. The
    coordinate system is then renormalized so that the minimum row and column
    is zero.

    Parameters
    ----------
    segments : Sequence[ImageSegment]
    attachment_candidates : None|Sequence[ImageSegment]
        The image segments which may be attached to, defaults to `segments`.

    Returns
    -------
    numpy.ndarray

    Raises
    ------
    AssemblyError
        For a circular attachment.
    """

    if attachment_candidates is None:
        attachment_candidates = segments
    by_level = {}  # type: Dict[int, ImageSegment]
    for entry in attachment_candidates:
        by_level.setdefault(entry.display_level, entry)

    origins = {}  # type: Dict[int, numpy.ndarray]

    def get_origin(segment: ImageSegment, visiting: List[int]) -> numpy.ndarray:
        if segment.index in origins:
            return origins[segment.index]
        if segment.index in visiting:
            raise AssemblyError(
                'Image segments {} have a circular attachment'.format(visiting))
        location = numpy.array(segment.image_location, dtype='int64')
        level = segment.attachment_level
        if level != 0:
            parent = by_level.get(level, None)
            if parent is None:
                logger.warning(
                    'Image segment {} is attached to level {}, which is not an image segment.\n\t'
                    'Treating its location as absolute'.format(segment.index, level))
            else:
                location = location + get_origin(parent, visiting + [segment.index, ])
        origins[segment.index] = location
        return location

    block_definition = numpy.empty((len(segments), 4), dtype='int64')
    for i, segment in enumerate(segments):
        row_start, col_start = get_origin(segment, [])
        block_definition[i, :] = (row_start, row_start + segment.rows, col_start, col_start + segment.cols)

    if len(segments) > 0:
        # now, renormalize the coordinate system to be sensible
        min_row = numpy.min(block_definition[:, 0])
        min_col = numpy.min(block_definition[:, 2])
        block_definition[:, 0:2:1] -= min_row
        block_definition[:, 2:4:1] -= min_col
    return block_definition


def _verify_tiling(block_definition: numpy.ndarray, num_rows: int, num_cols: int) -> None:
    """
    Verify that the blocks lie inside the image, do not overlap, and fill it.

    Raises
    ------
    AssemblyError
    """

    for i, (row_start, row_end, col_start, col_end) in enumerate(block_definition):
        if row_end > num_rows or col_end > num_cols:
            raise AssemblyError(
                'Segment block {} with rows [{}, {}) and columns [{}, {}) lies outside '
                'of the image of size {} x {}'.format(
                    i, row_start, row_end, col_start, col_end, num_rows, num_cols))

    for i in range(block_definition.shape[0]):
        for j in range(i+1, block_definition.shape[0]):
            block0, block1 = block_definition[i], block_definition[j]
            if block0[0] < block1[1] and block1[0] < block0[1] and \
                    block0[2] < block1[3] and block1[2] < block0[3]:
                raise AssemblyError('Segment blocks {} and {} overlap'.format(i, j))

    area = int(numpy.sum(
        (block_definition[:, 1] - block_definition[:, 0])*(block_definition[:, 3] - block_definition[:, 2])))
    if area != num_rows*num_cols:
        raise AssemblyError(
            'Segment blocks cover {} pixels, but the image has {} x {} = {} pixels'.format(
                area, num_rows, num_cols, num_rows*num_cols))


def assemble(
        segments: Sequence[ImageSegment],
        metadata: SicdMetadata,
        max_workers: Optional[int] = None) -> numpy.ndarray:
    """
    Assemble the complex image from the complex image segments.

    Parameters
    ----------
    segments : Sequence[ImageSegment]
        The image segments. Only those of complex pixel format contribute.
    metadata : SicdMetadata
    max_workers : None|int
        The number of threads for decoding segments, a value larger than 1
        decodes the segments concurrently.

    Returns
    -------
    numpy.ndarray
        Of dtype `complex64` and shape `(NumRows, NumCols)`.

    Raises
    ------
    AssemblyError
    DecodeError
    """

    complex_segments = [entry for entry in segments if entry.pixel_format == PixelFormat.COMPLEX]
    if len(complex_segments) == 0:
        raise AssemblyError('There are no complex image segments')
    if len(complex_segments) < len(segments):
        logger.info('Ignoring {} image segments which are not complex'.format(
            len(segments) - len(complex_segments)))

    num_rows, num_cols = metadata.num_rows, metadata.num_cols
    block_definition = get_segment_placements(complex_segments, attachment_candidates=segments)
    order = sorted(range(len(complex_segments)), key=lambda k: (block_definition[k, 0], block_definition[k, 2]))
    complex_segments = [complex_segments[k] for k in order]
    block_definition = block_definition[order, :]
    _verify_tiling(block_definition, num_rows, num_cols)

    encoding = complex_segments[0].encoding
    for entry in complex_segments[1:]:
        if entry.encoding != encoding:
            raise AssemblyError(
                'Image segment {} has encoding {}, which differs from {} for image segment {}'.format(
                    entry.index, entry.encoding, encoding, complex_segments[0].index))
    if metadata.pixel_type is not None and encoding.pixel_type is not None and \
            metadata.pixel_type != encoding.pixel_type:
        logger.warning(
            'The SICD PixelType is {}, but the image segments are encoded as {}'.format(
                metadata.pixel_type, encoding.pixel_type))

    amplitude_table = metadata.amplitude_table if encoding.pixel_type == 'AMP8I_PHS8I' else None
    out = numpy.empty((num_rows, num_cols), dtype='complex64')

    def decode(index: int) -> None:
        segment = complex_segments[index]
        row_start, row_end, col_start, col_end = block_definition[index]
        format_function = segment.get_format_function(amplitude_table=amplitude_table)
        out[row_start:row_end, col_start:col_end] = format_function(segment.read_bands())
        logger.debug('Decoded image segment {} into rows [{}, {}), columns [{}, {})'.format(
            segment.index, row_start, row_end, col_start, col_end))

    if max_workers is not None and max_workers > 1 and len(complex_segments) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            # each call writes a disjoint block, so no locking is required
            list(executor.map(decode, range(len(complex_segments))))
    else:
        for i in range(len(complex_segments)):
            decode(i)
    return out
