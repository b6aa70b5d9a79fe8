"""
Points of interest, id mappings and positive-only feedback.
"""

from collections import namedtuple
import numpy as np

from georec.exceptions import ConfigurationError

POI = namedtuple('POI',['id','latitude','longitude'])

class IdMapping(object):
    """
    Map external entity ids, which need not be contiguous, to the
    0-indexed rows used in the model matrices and back again.

    Parameters
    ==========
    ids : iterable of int
        External ids.  Rows are assigned in ascending id order and
        repeated ids are collapsed.
    """

    def __init__(self,ids):
        self.original_ids = np.unique(np.asarray(list(ids),dtype='int64'))
        self._to_internal = dict((int(x),ix) for ix,x in enumerate(self.original_ids))

    def __len__(self):
        return len(self.original_ids)

    def __contains__(self,original_id):
        return int(original_id) in self._to_internal

    def to_internal(self,original_id):
        return self._to_internal[int(original_id)]

    def to_original(self,internal_id):
        return int(self.original_ids[internal_id])

    def to_internal_array(self,original_ids):
        return np.array([self._to_internal[int(x)] for x in original_ids],dtype='int64')

def sort_pois(pois):
    """
    Return the POIs ordered by id, after checking that some were
    supplied and that no id appears twice.
    """
    if pois is None:
        raise ConfigurationError('items can not be None')
    pois = sorted(pois,key=lambda p: p.id)
    if not pois:
        raise ConfigurationError('items can not be empty')
    for prev,p in zip(pois,pois[1:]):
        if p.id == prev.id:
            raise ConfigurationError('duplicate item id {0}'.format(p.id))
    return pois

def poi_coordinates(pois):
    """
    Return an array of shape [len(pois), 2] holding (latitude, longitude)
    in degrees for each POI.
    """
    return np.array([(p.latitude,p.longitude) for p in pois],dtype='float64').reshape(-1,2)

class Feedback(object):
    """
    Positive-only implicit feedback, one record per observed
    (user, item) interaction, held as internal row indices.

    Parameters
    ==========
    users : array_like of int
        Internal index of the user for each record.
    items : array_like of int
        Internal index of the item for each record.
    num_users : int
        Number of rows in the user matrices.
    num_items : int
        Number of rows in the item matrices.
    """

    def __init__(self,users,items,num_users,num_items):
        self.users = np.asarray(users,dtype='int64')
        self.items = np.asarray(items,dtype='int64')
        if self.users.shape != self.items.shape:
            raise ValueError('users and items must have the same length')
        self.num_users = num_users
        self.num_items = num_items
        if len(self) and (self.users.max() >= num_users or self.items.max() >= num_items
                          or self.users.min() < 0 or self.items.min() < 0):
            raise ValueError('feedback index out of range for {0} users and {1} items'.format(num_users,num_items))

    def __len__(self):
        return self.users.shape[0]

    @property
    def shape(self):
        return self.num_users,self.num_items

    @staticmethod
    def from_pairs(pairs,user_mapping,item_mapping):
        """
        Build feedback from external (user id, item id) pairs.

        Parameters
        ==========
        pairs : iterable of (int,int)
            External user and item ids for each interaction.
        user_mapping : georec.data.IdMapping
            Mapping for user ids.
        item_mapping : georec.data.IdMapping
            Mapping for item ids.
        """
        pairs = list(pairs)
        users = user_mapping.to_internal_array([u for u,_ in pairs])
        items = item_mapping.to_internal_array([i for _,i in pairs])
        return Feedback(users,items,len(user_mapping),len(item_mapping))
