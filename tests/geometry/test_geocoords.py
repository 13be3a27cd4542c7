import pytest

import numpy

from nitfviz.geometry import geocoords


EQUATORIAL_RADIUS = 6378137
POLAR_RADIUS = 6356752.314245179
TOLERANCE = 1e-8


@pytest.fixture(scope='module')
def input():
    llh = numpy.array([[0, 0, 0], [0, 180, 0], [90, 0, 0], [-90, 0, 0], [0, 90, 0]], dtype='float64')
    ecf = numpy.array([[EQUATORIAL_RADIUS, 0, 0],
                       [-EQUATORIAL_RADIUS, 0, 0],
                       [0, 0, POLAR_RADIUS],
                       [0, 0, -POLAR_RADIUS],
                       [0, EQUATORIAL_RADIUS, 0]], dtype='float64')
    return {"llh": llh, "ecf": ecf}


def test_ecf_to_geodetic(input):
    out = geocoords.ecf_to_geodetic(input['ecf'][0, :])
    assert out == pytest.approx(input['llh'][0, :], abs=TOLERANCE)

    out2 = geocoords.ecf_to_geodetic(input['ecf'])
    assert out2 == pytest.approx(input['llh'], abs=TOLERANCE)

    with pytest.raises(ValueError):
        geocoords.ecf_to_geodetic(numpy.arange(4))


def test_ecf_to_geodetic_center():
    out = geocoords.ecf_to_geodetic([0, 0, 0])
    assert numpy.all(numpy.isnan(out))


def test_ecf_to_geodetic_height():
    root_half = numpy.sqrt(0.5)
    ecf = numpy.array([[(EQUATORIAL_RADIUS + 1000)*root_half, (EQUATORIAL_RADIUS + 1000)*root_half, 0],
                       [0, 0, POLAR_RADIUS + 5e4],
                       [0, -(EQUATORIAL_RADIUS + 250), 0]], dtype='float64')
    expected = numpy.array([[0, 45, 1000], [90, 0, 5e4], [0, -90, 250]], dtype='float64')
    assert geocoords.ecf_to_geodetic(ecf) == pytest.approx(expected, abs=1e-6)


def test_wgs84_norm(input):
    wgs84_norm = geocoords.wgs_84_norm(input['ecf'])
    expected = numpy.array([[1., 0., 0.],
                            [-1., 0., 0.],
                            [0., 0., 1.],
                            [0., 0., -1.],
                            [0., 1., 0.]])
    assert wgs84_norm == pytest.approx(expected, abs=TOLERANCE)
    assert numpy.linalg.norm(geocoords.wgs_84_norm([4e6, 3e6, 3e6])) == pytest.approx(1.0)
