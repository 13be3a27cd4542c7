"""
The plane to plane projection between the slant plane pixel grid of a SICD
raster and a planar grid in the ground plane.
"""

__classification__ = "UNCLASSIFIED"


import logging
from typing import Tuple

import numpy

from nitfviz.compliance import NitfVizError
from nitfviz.geometry.geocoords import wgs_84_norm
from nitfviz.io.complex.sicd import SicdMetadata


logger = logging.getLogger(__name__)

_TOLERANCE = 1e-9


class ProjectionError(NitfVizError):
    """A custom exception class for degenerate projection geometry."""


def _normalize(vec, name, perp=None):
    """
    Normalize the vector, after removing the component along the given
    (unit) vector(s).

    Raises
    ------
    ProjectionError
        If the resulting vector is (numerically) the zero vector.
    """

    vec = numpy.array(vec, dtype=numpy.float64)
    if not (vec.ndim == 1 and vec.size == 3):
        raise ProjectionError('{} vector must be of dimension 1 and size 3.'.format(name))
    if perp is not None:
        if isinstance(perp, numpy.ndarray):
            perp = (perp, )
        for entry in perp:
            vec = vec - entry*(entry.dot(vec))

    norm = numpy.linalg.norm(vec)
    if not numpy.isfinite(norm) or norm < _TOLERANCE:
        raise ProjectionError('{} vector is degenerate.'.format(name))
    return vec/norm


class PGProjection(object):
    """
    Helper for the Planar Grid (i.e. Ground Plane) projection of a (resampled)
    SICD raster, using the plane to plane projection along the slant plane normal.

    The ground grid shares the shape, reference pixel and sample spacing of
    the slant raster.
    """

    __slots__ = (
        '_reference_point', '_reference_pixels', '_row_spacing', '_col_spacing',
        '_uRow', '_uCol', '_uIPN', '_uSPN', '_sf', '_ipp_transform',
        '_normal_vector', '_row_vector', '_col_vector')

    def __init__(self, metadata: SicdMetadata, raster_shape: Tuple[int, int]):
        """

        Parameters
        ----------
        metadata : SicdMetadata
        raster_shape : Tuple[int, int]
            The `(rows, cols)` of the raster, which is a resampled version of
            the full `NumRows x NumCols` image.

        Raises
        ------
        ProjectionError
        """

        rows, cols = int(raster_shape[0]), int(raster_shape[1])
        if rows < 1 or cols < 1:
            raise ProjectionError('Raster shape {} must be positive'.format(raster_shape))
        if not (metadata.row_ss > 0 and metadata.col_ss > 0):
            raise ProjectionError(
                'Sample spacing must be positive, got row {} and column {}'.format(
                    metadata.row_ss, metadata.col_ss))

        # the effective spacing and reference pixel of the resampled raster
        row_scale = metadata.num_rows/float(rows)
        col_scale = metadata.num_cols/float(cols)
        self._row_spacing = metadata.row_ss*row_scale
        self._col_spacing = metadata.col_ss*col_scale
        scp_pixel = metadata.scp_pixel
        self._reference_pixels = numpy.array(
            [scp_pixel[0]/row_scale, scp_pixel[1]/col_scale], dtype=numpy.float64)
        self._reference_point = numpy.array(metadata.scp, dtype=numpy.float64)

        self._normal_vector = None
        self._row_vector = None
        self._col_vector = None
        self._set_image_plane(metadata)
        self._set_slant_normal(metadata)
        self.set_plane_frame(self._get_ground_normal(metadata))

    def _set_image_plane(self, metadata: SicdMetadata) -> None:
        self._uRow = _normalize(metadata.row_uvect, 'row')
        self._uCol = _normalize(metadata.col_uvect, 'column')
        uIPN = numpy.cross(self._uRow, self._uCol)  # NB: uRow/uCol may not be perpendicular
        norm = numpy.linalg.norm(uIPN)
        if norm < _TOLERANCE:
            raise ProjectionError('The row and column vectors are collinear')
        self._uIPN = uIPN/norm

        cos_theta = numpy.dot(self._uRow, self._uCol)
        sin_theta2 = 1 - cos_theta*cos_theta
        self._ipp_transform = numpy.array(
            [[1, -cos_theta], [-cos_theta, 1]], dtype='float64')/sin_theta2

    def _set_slant_normal(self, metadata: SicdMetadata) -> None:
        spn = metadata.look*numpy.cross(metadata.arp_vel, self._reference_point - metadata.arp_pos)
        self._uSPN = _normalize(spn, 'slant plane normal')
        self._sf = float(numpy.dot(self._uSPN, self._uIPN))  # scale factor
        if abs(self._sf) < _TOLERANCE:
            raise ProjectionError('The slant plane normal is parallel to the image plane')

    def _get_ground_normal(self, metadata: SicdMetadata) -> numpy.ndarray:
        if metadata.image_form_algo == 'PFA' and metadata.fpn is not None:
            return metadata.fpn
        return wgs_84_norm(self._reference_point)

    @property
    def reference_point(self) -> numpy.ndarray:
        """
        numpy.ndarray: The grid reference point, the scene center point.
        """

        return self._reference_point

    @property
    def reference_pixels(self) -> numpy.ndarray:
        """
        numpy.ndarray: The raster pixel coordinates of the grid reference point.
        """

        return self._reference_pixels

    @property
    def row_spacing(self) -> float:
        return self._row_spacing

    @property
    def col_spacing(self) -> float:
        return self._col_spacing

    @property
    def normal_vector(self) -> numpy.ndarray:
        """
        numpy.ndarray: The outward ground plane unit normal.
        """

        return self._normal_vector

    @property
    def row_vector(self) -> numpy.ndarray:
        """
        numpy.ndarray: The grid increasing row direction (ECF) unit vector.
        """

        return self._row_vector

    @property
    def col_vector(self) -> numpy.ndarray:
        """
        numpy.ndarray: The grid increasing column direction (ECF) unit vector.
        """

        return self._col_vector

    @property
    def slant_normal(self) -> numpy.ndarray:
        return self._uSPN

    def set_plane_frame(self, normal_vector) -> None:
        """
        Set the ground plane unit normal, with the row vector defined as the
        component of the image row vector perpendicular to the normal, and the
        column vector defined as the component of the image column vector
        perpendicular to both.

        Parameters
        ----------
        normal_vector : numpy.ndarray

        Raises
        ------
        ProjectionError
        """

        normal_vector = _normalize(normal_vector, 'ground normal')
        # check for outward unit norm
        if numpy.dot(normal_vector, self._reference_point) < 0:
            logger.warning('The ground normal vector appears to be inward pointing, so reversing.')
            normal_vector = -normal_vector
        self._normal_vector = normal_vector
        self._row_vector = _normalize(self._uRow, 'ground row', perp=normal_vector)
        self._col_vector = _normalize(
            self._uCol, 'ground column', perp=(normal_vector, self._row_vector))
        if abs(numpy.dot(self._uSPN, normal_vector)) < _TOLERANCE:
            raise ProjectionError('The slant plane normal is parallel to the ground plane')

    def ortho_to_ecf(self, ortho_coords: numpy.ndarray) -> numpy.ndarray:
        """
        Convert ground grid `(row, column)` coordinates to ECF coordinates in
        the ground plane.

        Parameters
        ----------
        ortho_coords : numpy.ndarray
            Of shape `(..., 2)`.

        Returns
        -------
        numpy.ndarray
            Of shape `(..., 3)`.
        """

        ortho_coords = numpy.asarray(ortho_coords, dtype='float64')
        xs = (ortho_coords[..., 0] - self._reference_pixels[0])*self._row_spacing
        ys = (ortho_coords[..., 1] - self._reference_pixels[1])*self._col_spacing
        return self._reference_point + xs[..., numpy.newaxis]*self._row_vector + \
            ys[..., numpy.newaxis]*self._col_vector

    def ecf_to_pixel(self, coords: numpy.ndarray) -> numpy.ndarray:
        """
        Project ECF coordinates along the slant plane normal onto the image plane,
        and convert to raster `(row, column)` coordinates.

        Parameters
        ----------
        coords : numpy.ndarray
            Of shape `(..., 3)`.

        Returns
        -------
        numpy.ndarray
            Of shape `(..., 2)`.
        """

        coords = numpy.asarray(coords, dtype='float64')
        dist_n = numpy.dot(self._reference_point - coords, self._uIPN)/self._sf
        i_n = coords + dist_n[..., numpy.newaxis]*self._uSPN
        delta_ipp = i_n - self._reference_point
        ip_iter = numpy.stack(
            [numpy.dot(delta_ipp, self._uRow), numpy.dot(delta_ipp, self._uCol)], axis=-1)
        ip_iter = numpy.dot(ip_iter, self._ipp_transform)
        out = numpy.empty(ip_iter.shape, dtype='float64')
        out[..., 0] = ip_iter[..., 0]/self._row_spacing + self._reference_pixels[0]
        out[..., 1] = ip_iter[..., 1]/self._col_spacing + self._reference_pixels[1]
        return out

    def ortho_to_pixel(self, ortho_coords: numpy.ndarray) -> numpy.ndarray:
        return self.ecf_to_pixel(self.ortho_to_ecf(ortho_coords))

    def pixel_to_ecf(self, pixel_coords: numpy.ndarray) -> numpy.ndarray:
        """
        Project raster `(row, column)` coordinates along the slant plane normal
        onto the ground plane.

        Parameters
        ----------
        pixel_coords : numpy.ndarray
            Of shape `(..., 2)`.

        Returns
        -------
        numpy.ndarray
            Of shape `(..., 3)`.
        """

        pixel_coords = numpy.asarray(pixel_coords, dtype='float64')
        xs = (pixel_coords[..., 0] - self._reference_pixels[0])*self._row_spacing
        ys = (pixel_coords[..., 1] - self._reference_pixels[1])*self._col_spacing
        i_n = self._reference_point + xs[..., numpy.newaxis]*self._uRow + ys[..., numpy.newaxis]*self._uCol
        dist_n = numpy.dot(self._reference_point - i_n, self._normal_vector) / \
            numpy.dot(self._uSPN, self._normal_vector)
        return i_n + dist_n[..., numpy.newaxis]*self._uSPN

    def pixel_to_ortho(self, pixel_coords: numpy.ndarray) -> numpy.ndarray:
        """
        The inverse of :func:`ortho_to_pixel`.

        Parameters
        ----------
        pixel_coords : numpy.ndarray
            Of shape `(..., 2)`.

        Returns
        -------
        numpy.ndarray
            Of shape `(..., 2)`.
        """

        diff = self.pixel_to_ecf(pixel_coords) - self._reference_point
        out = numpy.empty(diff.shape[:-1] + (2, ), dtype='float64')
        out[..., 0] = self._reference_pixels[0] + numpy.dot(diff, self._row_vector)/self._row_spacing
        out[..., 1] = self._reference_pixels[1] + numpy.dot(diff, self._col_vector)/self._col_spacing
        return out
