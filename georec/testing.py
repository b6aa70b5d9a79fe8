import random
import numpy as np
from numpy.testing import assert_array_equal

from georec.data import POI, Feedback

def get_random_pois(num_items=20,lat=40.75,lon=-73.98,spread=0.1,seed=0):
    """
    POIs with ids 1..num_items scattered around a point.
    """
    rng = np.random.RandomState(seed)
    lats = lat+spread*rng.random_sample(num_items)
    lons = lon+spread*rng.random_sample(num_items)
    return [POI(ix+1,float(a),float(b)) for ix,(a,b) in enumerate(zip(lats,lons))]

def get_random_feedback(num_users=5,num_items=20,nnz=40,seed=0):
    """
    Feedback with nnz records, where some (user,item) pairs
    are repeated to give visit counts above one.
    """
    r = random.Random(seed)
    unique = r.sample(range(num_users*num_items),nnz//2)  # ensure <row,col> are unique
    pairs = unique+[r.choice(unique) for _ in range(nnz-len(unique))]
    users = [p // num_items for p in pairs]
    items = [p % num_items for p in pairs]
    return Feedback(users,items,num_users,num_items)

def assert_factors_equal(a,b):
    for x,y in zip(a,b):
        assert_array_equal(x,y)
