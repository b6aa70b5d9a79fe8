import math
import numpy as np
import pytest
from numpy.testing import assert_array_almost_equal

from georec.geo.distance import haversine, pairwise_distances, EARTH_RADIUS_KM

def test_one_degree_of_longitude_at_equator():
    expected = EARTH_RADIUS_KM*math.pi/180  # ~111.19km
    assert haversine(0,0,0,1) == pytest.approx(expected,rel=1e-9)
    assert haversine(0,0,0,1) == pytest.approx(111.2,abs=0.1)

def test_one_degree_of_latitude():
    expected = EARTH_RADIUS_KM*math.pi/180
    assert haversine(10,20,11,20) == pytest.approx(expected,rel=1e-9)

def test_symmetric_and_zero_on_diagonal():
    X = np.array([[40.7,-74.0],[34.05,-118.25],[51.5,-0.12]])
    d = pairwise_distances(X)
    assert_array_almost_equal(d,d.T)
    assert_array_almost_equal(np.diag(d),np.zeros(3))

def test_known_city_distance():
    # New York to London is about 5570km
    d = haversine(40.7128,-74.0060,51.5074,-0.1278)
    assert d == pytest.approx(5570,rel=0.01)

def test_rectangular():
    X = np.array([[0.0,0.0]])
    Y = np.array([[0.0,1.0],[0.0,2.0],[0.0,0.0]])
    d = pairwise_distances(X,Y)
    assert d.shape == (1,3)
    assert d[0,1] == pytest.approx(2*d[0,0])
    assert d[0,2] == 0
