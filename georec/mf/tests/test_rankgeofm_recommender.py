import os
import shutil
import tempfile
import numpy as np
import pytest
from numpy.testing import assert_array_equal, assert_array_almost_equal

from georec import save_recommender, load_recommender, read_recommender_description
from georec.data import Feedback
from georec.sparse import frequency_matrix
from georec.testing import get_random_pois
from georec.mf.recommender import clamp_scores
from georec.mf.rankgeofm import RankGeoFMRecommender

def get_feedback():
    users = [0,0,0,1,1,2,2,2,0,1]
    items = [0,0,1,2,3,4,4,0,2,1]
    return Feedback(users,items,3,5)

def get_recommender(**kwargs):
    params = dict(d=2,k1=2,gamma=0.01,max_iters=2,seed=3,num_workers=0)
    params.update(kwargs)
    return RankGeoFMRecommender(**params).fit(get_feedback(),get_random_pois(5))

def save_load(r):
    f,path = tempfile.mkstemp(suffix='.npz')
    os.close(f)
    save_recommender(r,path)
    description = read_recommender_description(path)
    loaded = load_recommender(path)
    os.remove(path)
    return loaded,description

def test_clamp_scores():
    r = clamp_scores([np.inf,-np.inf,1e40,1.5])
    info = np.finfo('float32')
    assert r.dtype == np.float32
    assert_array_equal(r,np.array([info.max,info.min,info.max,1.5],dtype='float32'))

def test_predict():
    r = get_recommender()
    expected = (r.UL+r.UFG).astype('float32')
    for u in range(3):
        for i in range(5):
            assert r.predict(u,i) == expected[u,i]
    assert_array_equal(r.predict_ratings(),expected)
    assert_array_equal(r.predict_ratings(1),expected[[1]])
    assert_array_equal(r.predict_ratings([2,0]),expected[[2,0]])

def test_predict_overflow_is_clamped():
    r = get_recommender()
    r.UL = r.UL.copy()
    r.UL[0,0] = 1e300
    assert r.predict(0,0) == float(np.finfo('float32').max)

def test_save_load():
    r = get_recommender()
    loaded,description = save_load(r)
    assert description == str(r)
    assert str(r).startswith('RankGeoFMRecommender(RankGeoFM(d=2,k1=2')
    assert type(loaded) == RankGeoFMRecommender
    assert not hasattr(loaded,'model_')
    # the score matrices are dropped and scores computed from the factors
    assert loaded.UL is None
    assert loaded.UFG is None
    for name in ['U1','U2','L1','FG']:
        assert_array_equal(getattr(loaded,name),getattr(r,name))
    for u in range(3):
        for i in range(5):
            assert loaded.predict(u,i) == pytest.approx(r.predict(u,i),rel=1e-5,abs=1e-9)
    assert_array_almost_equal(loaded.predict_ratings(),r.predict_ratings())

def test_recommend_items():
    r = get_recommender()
    train = frequency_matrix(get_feedback())
    recs = r.recommend_items(train,0,max_items=10)
    # user 0 has visited items 0,1,2
    assert sorted(i for i,_ in recs) == [3,4]
    scores = [score for _,score in recs]
    assert scores == sorted(scores,reverse=True)
    assert r.recommend_items(train,0,max_items=1,return_scores=False) == [recs[0][0]]
    batch = r.batch_recommend_items(train,max_items=10)
    assert len(batch) == 3
    assert batch[0] == recs
    for u,user_recs in enumerate(batch):
        for i,_ in user_recs:
            assert i not in train[u].indices
    assert r.range_recommend_items(train,1,3,max_items=10) == batch[1:]

def test_load_factors():
    modeldir = tempfile.mkdtemp()
    try:
        r = get_recommender(modeldir=modeldir)
        s = RankGeoFMRecommender(d=2,k1=2)
        s.load_factors(modeldir)
        for name in RankGeoFMRecommender.factor_names:
            assert_array_equal(getattr(s,name),getattr(r,name))
    finally:
        shutil.rmtree(modeldir)
