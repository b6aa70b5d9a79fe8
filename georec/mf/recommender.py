"""
Base class for recommenders that work
by matrix factorization.
"""

import pickle
import numpy as np

from georec.base_recommender import BaseRecommender

def clamp_scores(r,dtype='float32'):
    """
    Convert scores to dtype, replacing +/-inf that result from
    overflow with the largest/smallest representable values.
    """
    with np.errstate(over='ignore'):
        r = np.array(r,dtype=dtype)
    info = np.finfo(dtype)
    r[np.isposinf(r)] = info.max
    r[np.isneginf(r)] = info.min
    return r

class MatrixFactorizationRecommender(BaseRecommender):
    """
    Base class for matrix factorization recommenders. Subclasses
    list the names of their factor matrices in factor_names and
    implement predict_ratings().
    """

    factor_names = ()

    def _create_archive(self):
        """
        Return fields to be serialized in a numpy archive.

        Returns
        =======
        archive : dict
            Fields to serialize, includes the model itself
            under the key 'model'.
        """
        # pickle the model without its factors
        # then use numpy to save the factors efficiently
        tmp = dict((name,getattr(self,name,None)) for name in self.factor_names)
        for name in self.factor_names:
            setattr(self,name,None)
        m = pickle.dumps(self)
        for name,value in tmp.items():
            setattr(self,name,value)
        archive = dict((name,value) for name,value in tmp.items() if value is not None)
        archive['model'] = m
        return archive

    def _load_archive(self,archive):
        """
        Load fields from a numpy archive.
        """
        for name in self.factor_names:
            if name in archive:
                setattr(self,name,archive[name])

    def __str__(self):
        if hasattr(self,'description'):
            return self.description
        return 'MatrixFactorizationRecommender'

    def predict_ratings(self,users=None):
        """
        Predict scores for all items for supplied users.
        Assumes you've already called fit() to learn the factors.

        Parameters
        ==========
        users : int or array-like
            Index or indices of users for which to make predictions,
            all users if None.

        Returns
        =======
        predictions : numpy.ndarray, shape = [len(users), num_items]
            Predicted scores for all items for each supplied user.
        """
        raise NotImplementedError('you must implement predict_ratings()')

    def recommend_items(self,dataset,u,max_items=10,return_scores=True):
        """
        Recommend up to max_items most highly recommended items for user u.
        Assumes you've already called fit() to learn the factors.

        Parameters
        ==========
        dataset : scipy.sparse.csr_matrix
            User-item matrix containing known items.
        u : int
            Index of user for which to make recommendations.
        max_items : int
            Maximum number of recommended items to return.
        return_scores : bool
            If true return a score along with each recommended item.

        Returns
        =======
        recs : list
            List of (idx,score) pairs if return_scores is True, else
            just a list of idxs.
        """
        r = self.predict_ratings(u)
        return self._get_recommendations_from_predictions(r,dataset,u,u+1,max_items,return_scores)[0]

    def batch_recommend_items(self,dataset,max_items=10,return_scores=True):
        """
        Recommend new items for all users in the training dataset.  Assumes
        you've already called fit() to learn the factors.

        Parameters
        ==========
        dataset : scipy.sparse.csr_matrix
            User-item matrix containing known items.
        max_items : int
            Maximum number of recommended items to return.
        return_scores : bool
            If true return a score along with each recommended item.

        Returns
        =======
        recs : list of lists
            Each entry is a list of (idx,score) pairs if return_scores is True,
            else just a list of idxs.
        """
        r = self.predict_ratings()
        return self._get_recommendations_from_predictions(r,dataset,0,r.shape[0],max_items,return_scores)

    def range_recommend_items(self,dataset,user_start,user_end,max_items=10,return_scores=True):
        """
        Recommend new items for a range of users in the training dataset.
        Assumes you've already called fit() to learn the factors.

        Parameters
        ==========
        dataset : scipy.sparse.csr_matrix
            User-item matrix containing known items.
        user_start : int
            Index of first user in the range to recommend.
        user_end : int
            Index one beyond last user in the range to recommend.
        max_items : int
            Maximum number of recommended items to return.
        return_scores : bool
            If true return a score along with each recommended item.

        Returns
        =======
        recs : list of lists
            Each entry is a list of (idx,score) pairs if return_scores is True,
            else just a list of idxs.
        """
        r = self.predict_ratings(np.arange(user_start,user_end))
        return self._get_recommendations_from_predictions(r,dataset,user_start,user_end,max_items,return_scores)

    def _get_recommendations_from_predictions(self,r,dataset,user_start,user_end,max_items,return_scores=True):
        """
        Select recommendations given predicted scores.

        Parameters
        ==========
        r : numpy.ndarray
            Predicted scores for all items for users in supplied range.
        dataset : scipy.sparse.csr_matrix
            User-item matrix containing known items.
        user_start : int
            Index of first user in the range to recommend.
        user_end : int
            Index one beyond last user in the range to recommend.
        max_items : int
            Maximum number of recommended items to return.
        return_scores : bool
            If true return a score along with each recommended item.

        Returns
        =======
        recs : list of lists
            Each entry is a list of (idx,score) pairs if return_scores is True,
            else just a list of idxs.
        """
        r = self._exclude_known_items(r,dataset[user_start:user_end,:])
        recs = []
        for ru in r:
            top = [i for i in np.argsort(-ru,kind='stable')[:max_items] if np.isfinite(ru[i])]
            if return_scores:
                recs.append([(int(i),float(ru[i])) for i in top])
            else:
                recs.append([int(i) for i in top])
        return recs
