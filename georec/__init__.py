import numpy as np

from georec.base_recommender import BaseRecommender

__version__ = '0.1.0'

def save_matrix(data,filepath):
    """
    Save a dense numpy matrix to a compressed numpy archive.

    Parameters
    ----------
    data : numpy.ndarray
        The matrix to save.
    filepath : str
        The file to write, which should have the '.npz' suffix.
    """
    np.savez_compressed(filepath,matrix=np.ascontiguousarray(data))

def load_matrix(filepath):
    """
    Load a dense numpy matrix saved with save_matrix().

    Parameters
    ----------
    filepath : str
        The file to load.
    """
    with np.load(filepath) as archive:
        return archive['matrix']

def save_recommender(model,filepath):
    """
    Save a recommender model to file.

    Parameters
    ----------
    model : georec.base_recommender.BaseRecommender
        The recommender to save.
    filepath : str
        The filepath to write to.
    """
    model.save(filepath)

def load_recommender(filepath):
    """
    Load a recommender model from file after it has been saved by
    save_recommender().

    Parameters
    ----------
    filepath : str
        The filepath to read from.
    """
    return BaseRecommender.load(filepath)

def read_recommender_description(filepath):
    """
    Read a recommender model description from file after it has
    been saved by save_recommender(), without loading all the
    associated data into memory.

    Parameters
    ----------
    filepath : str
        The filepath to read from.
    """
    return BaseRecommender.read_recommender_description(filepath)
