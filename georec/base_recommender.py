import pickle
import numpy as np

from georec.sparse import exclude_known_items

class BaseRecommender(object):
    """
    Base class for trained recommenders that can be written to and
    read back from a single numpy archive.

    Subclasses implement _create_archive() to return their arrays
    along with a pickle of the model stripped of them, and
    _load_archive() to put the arrays back after unpickling.
    """

    def save(self,filepath):
        """
        Serialize model to file.

        Parameters
        ==========
        filepath : str
            Filepath to write to, which must have the '.npz' suffix
            as numpy.savez would otherwise append it.
        """
        if not filepath.endswith('.npz'):
            raise ValueError('invalid filepath {0}, must have ".npz" suffix'.format(filepath))
        archive = self._create_archive()
        archive['model'] = np.frombuffer(archive['model'],dtype='uint8')
        np.savez(filepath,**archive)

    def _create_archive(self):
        """
        Return a dict of arrays to store, holding the pickled model
        itself under the key 'model'.
        """
        raise NotImplementedError('you must implement _create_archive()')

    def _load_archive(self,archive):
        """
        Restore the arrays returned by _create_archive().
        """
        raise NotImplementedError('you must implement _load_archive()')

    @staticmethod
    def load(filepath):
        """
        Load a recommender written by save().

        Parameters
        ==========
        filepath : str
            The filepath to read from.
        """
        with np.load(filepath,allow_pickle=True) as archive:
            model = pickle.loads(archive['model'].tobytes())
            model._load_archive(archive)
        return model

    @staticmethod
    def read_recommender_description(filepath):
        """
        Return the description of a recommender written by save(),
        reading only the pickled model and none of its arrays.
        """
        with np.load(filepath,allow_pickle=True) as archive:
            model = pickle.loads(archive['model'].tobytes())
        return str(model)

    def __str__(self):
        if hasattr(self,'description'):
            return self.description
        return 'unspecified recommender: you should set self.description or implement __str__()'

    def _exclude_known_items(self,r,train):
        return exclude_known_items(r,train)
