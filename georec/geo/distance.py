"""
Great-circle distances between points given in degrees.
"""

import numpy as np
from sklearn.metrics.pairwise import haversine_distances

EARTH_RADIUS_KM = 6371.004

def haversine(lat1,lon1,lat2,lon2):
    """
    Distance in kilometres between two points on the earth's surface.

    Parameters
    ==========
    lat1, lon1 : float
        Latitude and longitude of the first point in degrees.
    lat2, lon2 : float
        Latitude and longitude of the second point in degrees.
    """
    return float(pairwise_distances(np.array([[lat1,lon1]]),np.array([[lat2,lon2]]))[0,0])

def pairwise_distances(X,Y=None):
    """
    Distances in kilometres between every row of X and every row of Y.

    Parameters
    ==========
    X : array_like, shape = [n, 2]
        (latitude, longitude) in degrees.
    Y : array_like, shape = [m, 2], optional
        (latitude, longitude) in degrees, defaults to X.

    Returns
    =======
    d : numpy.ndarray, shape = [n, m]
    """
    X = np.radians(np.asarray(X,dtype='float64'))
    Y = X if Y is None else np.radians(np.asarray(Y,dtype='float64'))
    return EARTH_RADIUS_KM*haversine_distances(X,Y)
