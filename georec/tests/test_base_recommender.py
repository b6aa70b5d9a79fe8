import pickle
import tempfile
import os
import numpy as np
import pytest
from numpy.testing import assert_array_equal

from georec.testing import get_random_feedback
from georec.sparse import frequency_matrix

from georec.base_recommender import BaseRecommender

class MyRecommender(BaseRecommender):
    def __init__(self):
        self.foo = np.arange(10)
        self.description = 'my recommender'
    def _create_archive(self):
        tmp = self.foo
        self.foo = None
        m = pickle.dumps(self)
        self.foo = tmp
        return {'model':m,'foo':self.foo}
    def _load_archive(self,archive):
        self.foo = archive['foo']

def save_load(r):
    f,path = tempfile.mkstemp(suffix='.npz')
    os.close(f)
    r.save(path)
    loaded = BaseRecommender.load(path)
    description = BaseRecommender.read_recommender_description(path)
    os.remove(path)
    return loaded,description

def test_save_filepath_condition():
    r = MyRecommender()
    with pytest.raises(ValueError):
        r.save('no suffix')

def test_save_requires_archive():
    f,path = tempfile.mkstemp(suffix='.npz')
    os.close(f)
    try:
        with pytest.raises(NotImplementedError):
            BaseRecommender().save(path)
    finally:
        os.remove(path)

def test_save_load():
    r = MyRecommender()
    r2,description = save_load(r)
    assert type(r2) == type(r)
    assert_array_equal(r2.foo,r.foo)
    assert r2.description == r.description
    assert description == str(r) == 'my recommender'

def test_exclude_known_items():
    train = frequency_matrix(get_random_feedback())
    predictions = np.random.random_sample(train.shape)
    safe = MyRecommender()._exclude_known_items(predictions,train)
    num_users,num_items = predictions.shape
    for u in range(num_users):
        for i in range(num_items):
            if i in train[u].indices:
                assert safe[u,i] == -np.inf
            else:
                assert safe[u,i] == predictions[u,i]
