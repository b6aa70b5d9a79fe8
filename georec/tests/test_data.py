import numpy as np
import pytest
from numpy.testing import assert_array_equal

from georec.data import POI, IdMapping, Feedback, sort_pois, poi_coordinates
from georec.exceptions import ConfigurationError
from georec.geo.neighbors import GeoNeighborIndex

def test_id_mapping():
    m = IdMapping([40,7,12,7])
    assert len(m) == 3
    assert 12 in m
    assert 13 not in m
    assert m.to_internal(7) == 0
    assert m.to_internal(40) == 2
    assert m.to_original(1) == 12
    assert_array_equal(m.to_internal_array([40,7,7]),[2,0,0])
    with pytest.raises(KeyError):
        m.to_internal(13)

def test_sort_pois():
    pois = [POI(3,1.0,2.0),POI(1,3.0,4.0),POI(2,5.0,6.0)]
    assert [p.id for p in sort_pois(pois)] == [1,2,3]
    assert_array_equal(poi_coordinates(sort_pois(pois)),[[3,4],[5,6],[1,2]])
    with pytest.raises(ConfigurationError):
        sort_pois(None)
    with pytest.raises(ConfigurationError):
        sort_pois([])

def test_duplicate_poi_ids_are_rejected():
    pois = [POI(2,1.0,2.0),POI(1,3.0,4.0),POI(2,5.0,6.0)]
    with pytest.raises(ConfigurationError):
        sort_pois(pois)
    with pytest.raises(ConfigurationError):
        GeoNeighborIndex(k1=1,d=1).build(pois)

def test_feedback():
    feedback = Feedback([0,1,1],[2,0,2],2,3)
    assert len(feedback) == 3
    assert feedback.shape == (2,3)
    with pytest.raises(ValueError):
        Feedback([0,2],[0,0],2,3)
    with pytest.raises(ValueError):
        Feedback([0,1],[0,3],2,3)
    with pytest.raises(ValueError):
        Feedback([0],[0,1],2,3)
    assert len(Feedback([],[],2,3)) == 0

def test_feedback_from_pairs():
    users = IdMapping([100,200])
    items = IdMapping([5,9,11])
    feedback = Feedback.from_pairs([(200,11),(100,5),(200,11)],users,items)
    assert_array_equal(feedback.users,[1,0,1])
    assert_array_equal(feedback.items,[2,0,2])
    assert feedback.shape == (2,3)
