"""
Sparse user-item frequency matrices and convenience methods to
save and load them.
"""

import numpy as np
from scipy.sparse import csr_matrix, coo_matrix

def frequency_matrix(feedback):
    """
    Count how often each user visited each item.

    Parameters
    ----------
    feedback : georec.data.Feedback
        Positive-only training records, repeated (user,item) pairs are
        counted once per record.

    Returns
    -------
    mat : scipy.sparse.csr_matrix, shape = [num_users, num_items]
        Visit counts with sorted column indices in each row.
    """
    data = np.ones(len(feedback))
    m = coo_matrix((data,(feedback.users,feedback.items)),shape=feedback.shape)
    # duplicate entries are summed on conversion
    mat = m.tocsr()
    mat.sum_duplicates()
    mat.sort_indices()
    return mat

def user_frequencies(mat,u,cols):
    """
    Look up the entries of row u for the given columns of a csr matrix
    with sorted indices, without densifying the row.

    Parameters
    ----------
    mat : scipy.sparse.csr_matrix
        Matrix with sorted column indices.
    u : int
        The row to read.
    cols : array_like of int
        Columns to read.

    Returns
    -------
    vals : numpy.ndarray
        mat[u,cols] with zeros for missing entries.
    """
    cols = np.asarray(cols)
    start,end = mat.indptr[u],mat.indptr[u+1]
    indices = mat.indices[start:end]
    vals = np.zeros(cols.shape)
    if end > start:
        pos = np.searchsorted(indices,cols)
        pos[pos == indices.shape[0]] = 0
        found = indices[pos] == cols
        vals[found] = mat.data[start:end][pos[found]]
    return vals

def savez(d,file):
    """
    Save a sparse matrix to file in numpy binary format.

    Parameters
    ----------
    d : scipy.sparse.coo_matrix
        The sparse matrix to save.
    file : str or file
        Either the file name (string) or an open file (file-like object)
        where the matrix will be saved. If file is a string, the ``.npz``
        extension will be appended to the file name if it is not already there.
    """
    np.savez(file,row=d.row,col=d.col,data=d.data,shape=d.shape)

def loadz(file):
    """
    Load a sparse matrix saved to file with savez.

    Parameters
    ----------
    file : str
        The open file or filepath to read from.

    Returns
    -------
    mat : scipy.sparse.coo_matrix
        The sparse matrix.
    """
    y = np.load(file)
    return coo_matrix((y['data'],(y['row'],y['col'])),shape=tuple(y['shape']))

def load_frequency_matrix(file):
    """
    Load a frequency matrix saved with savez() ready for use
    with user_frequencies().
    """
    mat = csr_matrix(loadz(file))
    mat.sum_duplicates()
    mat.sort_indices()
    return mat

def exclude_known_items(r,train):
    """
    Set predicted scores for training items to -inf, to avoid
    recommending already known items.

    Parameters
    ----------
    r : numpy.ndarray
        Predicted scores, one row per row of train.
    train : scipy.sparse.csr_matrix
        The training user-item matrix, which can include zero-valued entries.

    Returns
    -------
    r_safe : numpy.ndarray
        Copy of r with r_safe[u,i] = -inf for all u,i with entries in train.
    """
    r = np.array(r,dtype='float64',ndmin=2)
    # build up the row (user) indices
    # - we can't just use row,col = train.nonzero() as this eliminates
    #   u,i for which train[u,i] has been explicitly set to zero
    col = train.indices
    row = np.repeat(np.arange(train.shape[0]),np.diff(train.indptr))
    r[row,col] = -np.inf
    return r
