import numpy as np

from georec.mf.recommender import MatrixFactorizationRecommender, clamp_scores
from georec.mf.model.rankgeofm import RankGeoFM, RankGeoFMDecomposition, REFERENCE

class RankGeoFMRecommender(MatrixFactorizationRecommender):
    """
    Recommend POIs by combining each user's latent preference with
    the geographical influence of nearby POIs, learned with Rank-GeoFM.

    Parameters
    ==========
    d : int
        Dimensionality of factors.
    k1 : int
        Number of geographical neighbours of each POI.
    epsilon : float
        Ranking margin.
    C : float
        Norm bound for user and item factors.
    gamma : float
        Learning rate.
    alpha : float
        Scales the norm bound of the geographical user factors.
    max_iters : int
        Number of sweeps over the training data.
    variant : 'reference' or 'paper'
        How updates are weighted, see georec.mf.model.rankgeofm.RankGeoFM.
    seed : int
        Random seed.
    num_workers : int or None
        Workers for preprocessing, default is 95% of the cores.
    modeldir : str or None
        Directory to cache preprocessing and save the trained matrices.
    """

    factor_names = ('U1','U2','L1','FG','UL','UFG')

    def __init__(self,
                 d=100,
                 k1=300,
                 epsilon=0.3,
                 C=1.0,
                 gamma=0.0001,
                 alpha=0.2,
                 max_iters=1000,
                 variant=REFERENCE,
                 seed=34,
                 num_workers=None,
                 modeldir=None):
        self.d = d
        self.k1 = k1
        self.epsilon = epsilon
        self.C = C
        self.gamma = gamma
        self.alpha = alpha
        self.max_iters = max_iters
        self.variant = variant
        self.seed = seed
        self.num_workers = num_workers
        self.modeldir = modeldir
        self.U1 = self.U2 = self.L1 = self.FG = self.UL = self.UFG = None

    def create_model(self):
        return RankGeoFM(d=self.d,
                         k1=self.k1,
                         epsilon=self.epsilon,
                         C=self.C,
                         gamma=self.gamma,
                         alpha=self.alpha,
                         max_iters=self.max_iters,
                         variant=self.variant,
                         seed=self.seed,
                         num_workers=self.num_workers,
                         modeldir=self.modeldir)

    def fit(self,train,pois,validation=None):
        """
        Learn factors from training set.

        Parameters
        ==========
        train : georec.data.Feedback
            Positive-only user-item records.
        pois : list of georec.data.POI
            Items with their coordinates.
        validation : dict
            Optional mapping of user -> held-out items used to keep the
            factors from the best iteration.
        """
        model = self.create_model()
        self.description = 'RankGeoFMRecommender({0})'.format(model)
        model.fit(train,pois,validation)
        self.model_ = model
        self._set_factors(model.decomposition_)
        return self

    def _set_factors(self,decomposition):
        self.U1 = decomposition.U1
        self.U2 = decomposition.U2
        self.L1 = decomposition.L1
        self.FG = decomposition.FG
        self.UL = decomposition.UL
        self.UFG = decomposition.UFG

    def load_factors(self,modeldir):
        """
        Load factors saved in a model directory during training.
        """
        self._set_factors(RankGeoFMDecomposition.load(modeldir))

    def _create_archive(self):
        # the dense score matrices can be recomputed from the factors
        tmp = self.UL,self.UFG
        self.UL = self.UFG = None
        archive = MatrixFactorizationRecommender._create_archive(self)
        self.UL,self.UFG = tmp
        return archive

    def __getstate__(self):
        state = self.__dict__.copy()
        # don't pickle the learner with all its training data
        state.pop('model_',None)
        return state

    def predict(self,user,item):
        """
        Score a single item for a user.

        Parameters
        ==========
        user : int
            User index.
        item : int
            Item index.

        Returns
        =======
        score : float
            User preference plus geographical influence, with overflow
            clamped to the float32 range.
        """
        if self.UL is not None and self.UFG is not None:
            score = self.UL[user,item]+self.UFG[user,item]
        else:
            score = self.U1[user].dot(self.L1[item])+self.U2[user].dot(self.FG[item])
        return float(clamp_scores(score))

    def predict_ratings(self,users=None):
        if isinstance(users,(int,np.integer)):
            users = [users]
        if self.UL is not None and self.UFG is not None:
            if users is None:
                r = self.UL+self.UFG
            else:
                r = self.UL[users]+self.UFG[users]
        else:
            U1 = self.U1 if users is None else self.U1[users]
            U2 = self.U2 if users is None else self.U2[users]
            r = U1.dot(self.L1.T)+U2.dot(self.FG.T)
        return clamp_scores(r)
