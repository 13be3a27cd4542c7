"""
WGS-84 ellipsoid helpers for the ECF (Earth Centered Fixed) coordinates used
by the SICD scene geometry.
"""

import numpy

__classification__ = "UNCLASSIFIED"

#####
# WGS-84 parameters and related derived parameters
_A = 6378137.0            # Semi-major radius (m)
_F = 1/298.257223563      # Flattening
_B = _A - _F*_A           # 6356752.3142, Semi-minor radius (m)
_A2 = _A*_A
_B2 = _B*_B
_E2 = (_A2-_B2)/_A2  # 6.69437999014E-3, First eccentricity squared
_E4 = _E2*_E2
_OME2 = 1.0 - _E2
_EB2 = (_A2 - _B2)/_B2


def _validate(arr):
    arr = numpy.asarray(arr, dtype='float64')
    if arr.shape[-1] != 3:
        raise ValueError(
            'The input argument should represent geographical coordinates, so the '
            'final dimension should have size 3. Got shape {}.'.format(arr.shape))
    return numpy.reshape(arr, (-1, 3)), arr.shape


def ecf_to_geodetic(ecf):
    """
    Converts ECF coordinates to WGS-84 `[latitude, longitude, hae]`, using the
    closed form solution of Zhu.

    Parameters
    ----------
    ecf : numpy.ndarray|list|tuple

    Returns
    -------
    numpy.ndarray
        The WGS-84 coordinates, of the same shape as `ecf`. Any point too near
        the center of the earth for a valid solution is populated with `nan`.
    """

    ecf, orig_shape = _validate(ecf)
    x, y, z = ecf[:, 0], ecf[:, 1], ecf[:, 2]

    llh = numpy.full(ecf.shape, numpy.nan, dtype=numpy.float64)
    r = numpy.sqrt((x * x) + (y * y))
    valid = ((_A*r)*(_A*r) + (_B*z)*(_B*z) > (_A2 - _B2)*(_A2 - _B2))
    if not numpy.any(valid):
        return numpy.reshape(llh, orig_shape)
    x, y, z, r = x[valid], y[valid], z[valid], r[valid]

    F = 54.0*_B2*z*z  # not the WGS 84 flattening parameter
    G = r*r + _OME2*z*z - _E2*(_A2 - _B2)
    C = _E4*F*r*r/(G*G*G)
    S = (1.0 + C + numpy.sqrt(C*C + 2*C))**(1./3)
    P = F/(3.0*(G*(S + 1.0/S + 1.0))**2)
    Q = numpy.sqrt(1.0 + 2.0*_E4*P)
    R0 = -P*_E2*r/(1.0 + Q) + numpy.sqrt(numpy.abs(0.5*_A2*(1.0 + 1/Q) - P*_OME2*z*z/(Q*(1.0 + Q)) - 0.5*P*r*r))
    T = r - _E2*R0
    U = numpy.sqrt(T*T + z*z)
    V = numpy.sqrt(T*T + _OME2*z*z)
    z0 = _B2*z/(_A*V)

    llh[valid, 0] = numpy.rad2deg(numpy.arctan2(z + _EB2*z0, r))
    llh[valid, 1] = numpy.rad2deg(numpy.arctan2(y, x))
    llh[valid, 2] = U*(1.0 - _B2/(_A*V))
    return numpy.reshape(llh, orig_shape)


def wgs_84_norm(ecf):
    """
    Calculates the normal vector to the WGS_84 ellipsoid at the given ECF coordinates.

    Parameters
    ----------
    ecf : numpy.ndarray|list|tuple

    Returns
    -------
    numpy.ndarray
        The unit normal vector, of the same shape as `ecf`.
    """

    ecf, orig_shape = _validate(ecf)
    out = ecf/numpy.array([_A2, _A2, _B2], dtype=numpy.float64)
    out = out/(numpy.linalg.norm(out, axis=1)[:, numpy.newaxis])
    return numpy.reshape(out, orig_shape)
