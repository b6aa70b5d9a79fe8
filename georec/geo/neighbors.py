"""
k-nearest geographic neighbours of each POI and the inverse-distance
weights used to aggregate the latent factors of those neighbours.

See:
X. Li, G. Cong, X.-L. Li, T.-A. N. Pham and S. Krishnaswamy,
Rank-GeoFM: A Ranking based Geographical Factorization Method for
Point of Interest Recommendation, SIGIR 2015.
http://dx.doi.org/10.1145/2766462.2767722
"""

import os
import time
import logging
import numpy as np

from georec import save_matrix, load_matrix
from georec.data import sort_pois, poi_coordinates, IdMapping
from georec.exceptions import ConfigurationError
from georec.geo.distance import pairwise_distances
from georec.parallel.pool import WorkerPool

DISTANCE_FILE = 'distance.npz'
NEIGHBORS_FILE = 'distance_index.npz'
WEIGHTS_FILE = 'W.npz'

# an item is never its own neighbour
SELF_DISTANCE = np.finfo('float64').max
# distances are clamped to this before inverting them
MIN_DISTANCE = 0.5

def nearest_neighbors(coords,start,end,k1,block_size=256):
    """
    Find the k1 nearest other points for rows start..end-1 of coords.

    Parameters
    ==========
    coords : numpy.ndarray, shape = [num_items, 2]
        (latitude, longitude) in degrees.
    start : int
        First row to process.
    end : int
        One beyond the last row to process.
    k1 : int
        Number of neighbours to keep for each row.
    block_size : int
        Number of rows whose full distance vectors are held in memory at once.

    Returns
    =======
    distances : numpy.ndarray, shape = [end-start, k1]
        Distances in km, ascending along each row.
    neighbors : numpy.ndarray, shape = [end-start, k1]
        Row indices of the corresponding neighbours.
    """
    distances = np.empty((end-start,k1))
    neighbors = np.empty((end-start,k1),dtype='int64')
    for bstart in range(start,end,block_size):
        bend = min(end,bstart+block_size)
        d = pairwise_distances(coords[bstart:bend],coords)
        d[np.arange(bend-bstart),np.arange(bstart,bend)] = SELF_DISTANCE
        # stable so that ties keep enumeration order
        nn = np.argsort(d,axis=1,kind='stable')[:,:k1]
        distances[bstart-start:bend-start] = np.take_along_axis(d,nn,axis=1)
        neighbors[bstart-start:bend-start] = nn
    return distances,neighbors

def weight_row(distances):
    """
    Normalized inverse distance weights for one item's neighbours.
    """
    inv = 1.0/np.maximum(distances,MIN_DISTANCE)
    return inv/inv.sum(axis=-1,keepdims=True)

def compute_weights(distances,d,pool=None):
    """
    Compute the weight matrix W from a k-nn distance matrix, where
    W[i,j] is the probability-like influence of the j-th nearest
    neighbour of item i.

    Parameters
    ==========
    distances : numpy.ndarray, shape = [num_items, k1]
        Neighbour distances for each item.
    d : int
        Embedding dimension, each item needs at least this many neighbours.
    pool : georec.parallel.pool.WorkerPool
        Pool to spread rows over, run sequentially if not supplied.

    Returns
    =======
    W : numpy.ndarray, shape = [num_items, k1]
        Each row sums to one.
    """
    if distances.shape[1] < d:
        raise ConfigurationError('number of nearest neighbors ({0}) is less than d={1}'.format(distances.shape[1],d))
    if pool is None:
        pool = WorkerPool(0)
    W = np.empty(distances.shape)
    def process(start,end):
        W[start:end] = weight_row(distances[start:end])
    pool.map_ranges(process,distances.shape[0])
    return W

class GeoNeighborIndex(object):
    """
    Geographic k-nn index over a set of POIs.

    Parameters
    ==========
    k1 : int
        Number of neighbours to keep for each POI.
    d : int
        Embedding dimension of the model that will use the index, every
        POI must have at least d neighbours.
    block_size : int
        Rows of the full distance matrix computed at once by each worker.

    Attributes
    ==========
    item_mapping : georec.data.IdMapping
        Maps POI ids to rows.
    distances : numpy.ndarray, shape = [num_items, num_neighbors]
        Distances in km to the nearest neighbours of each item, ascending.
    neighbors : numpy.ndarray, shape = [num_items, num_neighbors]
        Rows of the nearest neighbours of each item.
    W : numpy.ndarray, shape = [num_items, num_neighbors]
        Normalized inverse distance weight of each neighbour.
    """

    def __init__(self,k1,d,block_size=256):
        if k1 <= 0 or d <= 0:
            raise ValueError('k1 and d must be positive')
        if k1 < d:
            raise ConfigurationError('k1={0} must be at least d={1}'.format(k1,d))
        self.k1 = k1
        self.d = d
        self.block_size = block_size
        self.item_mapping = None
        self.distances = None
        self.neighbors = None
        self.W = None

    def __str__(self):
        return 'GeoNeighborIndex(k1={0},d={1})'.format(self.k1,self.d)

    @property
    def num_items(self):
        return self.neighbors.shape[0]

    @property
    def num_neighbors(self):
        return self.neighbors.shape[1]

    def effective_k1(self,num_items):
        k1 = min(self.k1,num_items-1)
        if k1 < self.d:
            raise ConfigurationError('only {0} neighbors available for each of {1} items, need at least d={2}'.format(max(k1,0),num_items,self.d))
        if k1 < self.k1:
            logging.warning('only %d items so keeping %d neighbors instead of k1=%d',num_items,k1,self.k1)
        return k1

    def build(self,pois,pool=None,modeldir=None):
        """
        Compute the neighbours and weights for each POI, or load them
        from modeldir if they have been cached there.

        Parameters
        ==========
        pois : list of georec.data.POI
            The items, rows are assigned in order of ascending id.
        pool : georec.parallel.pool.WorkerPool
            Pool to spread rows over, run sequentially if not supplied.
        modeldir : str
            Optional directory holding cached matrices, any newly
            computed matrices are saved here.

        Returns
        =======
        self : object
            This index itself.
        """
        pois = sort_pois(pois)
        if pool is None:
            pool = WorkerPool(0)
        self.item_mapping = IdMapping(p.id for p in pois)
        num_items = len(pois)
        k1 = self.effective_k1(num_items)

        if modeldir is not None and self.is_cached(modeldir):
            logging.info('loading distance matrix from %s',modeldir)
            self._load(modeldir)
            if self.neighbors.shape != (num_items,k1):
                raise ConfigurationError('cached neighbors have shape {0}, expected {1}'.format(self.neighbors.shape,(num_items,k1)))
        else:
            logging.info('computing distance matrix for %d items with %d workers...',num_items,pool.num_workers)
            t = time.time()
            coords = poi_coordinates(pois)
            self.distances = np.empty((num_items,k1))
            self.neighbors = np.empty((num_items,k1),dtype='int64')
            def process(start,end):
                d,nn = nearest_neighbors(coords,start,end,k1,self.block_size)
                self.distances[start:end] = d
                self.neighbors[start:end] = nn
                return end-start
            pool.map_ranges(process,num_items)
            logging.info('distance matrix done in %.1f seconds',time.time()-t)
            self.W = None

        if self.W is None:
            logging.info('creating weighted matrix...')
            self.W = compute_weights(self.distances,self.d,pool)
        elif self.W.shape[1] < self.d:
            raise ConfigurationError('number of nearest neighbors ({0}) is less than d={1}'.format(self.W.shape[1],self.d))

        if modeldir is not None:
            self.save(modeldir)
        return self

    def nearest_neighbors(self,item):
        """
        Return the neighbouring POI ids and their distances for a POI.

        Parameters
        ==========
        item : int
            POI id.

        Returns
        =======
        neighbors : list of int
            POI ids, nearest first.
        distances : numpy.ndarray
            Corresponding distances in km.
        """
        ix = self.item_mapping.to_internal(item)
        neighbors = [self.item_mapping.to_original(j) for j in self.neighbors[ix]]
        return neighbors,self.distances[ix].copy()

    @staticmethod
    def is_cached(modeldir):
        return all(os.path.exists(os.path.join(modeldir,f)) for f in [DISTANCE_FILE,NEIGHBORS_FILE])

    def save(self,modeldir):
        """
        Save distances, neighbours and weights into modeldir.
        """
        if not os.path.isdir(modeldir):
            os.makedirs(modeldir)
        save_matrix(self.distances,os.path.join(modeldir,DISTANCE_FILE))
        save_matrix(self.neighbors,os.path.join(modeldir,NEIGHBORS_FILE))
        if self.W is not None:
            save_matrix(self.W,os.path.join(modeldir,WEIGHTS_FILE))

    def _load(self,modeldir):
        self.distances = load_matrix(os.path.join(modeldir,DISTANCE_FILE))
        self.neighbors = load_matrix(os.path.join(modeldir,NEIGHBORS_FILE))
        weightsfile = os.path.join(modeldir,WEIGHTS_FILE)
        self.W = load_matrix(weightsfile) if os.path.exists(weightsfile) else None

    @staticmethod
    def load(modeldir,k1,d):
        """
        Load an index saved with save(), without POI ids, so that
        nearest_neighbors() reports rows rather than POI ids.
        """
        if not GeoNeighborIndex.is_cached(modeldir):
            raise ConfigurationError('no cached distance matrix in {0}'.format(modeldir))
        index = GeoNeighborIndex(k1,d)
        index._load(modeldir)
        index.item_mapping = IdMapping(range(index.neighbors.shape[0]))
        if index.W is None:
            index.W = compute_weights(index.distances,d)
        return index
