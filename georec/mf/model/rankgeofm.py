"""
Rank-GeoFM: ranking based geographical factorization for POI recommendation.

The score of item l for user u combines the user's own preference with
the geographical influence of l's nearest neighbours:

    y(u,l) = U1[u].L1[l] + U2[u].FG[l],  FG[l] = sum_j W[l,j] L1[n(l,j)]

Factors are learned by SGD on sampled pairs (l,l') where l is visited more
often than l' by u but not yet scored at least epsilon higher.

See:
X. Li, G. Cong, X.-L. Li, T.-A. N. Pham and S. Krishnaswamy,
Rank-GeoFM: A Ranking based Geographical Factorization Method for
Point of Interest Recommendation, SIGIR 2015.
http://dx.doi.org/10.1145/2766462.2767722
"""

import os
import time
import logging
from collections import namedtuple
import numpy as np
from scipy.special import expit
from sklearn.utils import check_random_state

from georec import save_matrix, load_matrix
from georec.evaluation.metrics import evaluate_ranking
from georec.exceptions import ConfigurationError, PairFault
from georec.geo.neighbors import GeoNeighborIndex
from georec.parallel.pool import WorkerPool
from georec.sparse import frequency_matrix, load_frequency_matrix, user_frequencies, savez, exclude_known_items

U1_FILE = 'U1.npz'
U2_FILE = 'U2.npz'
L1_FILE = 'L1.npz'
FG_FILE = 'FG.npz'
UL_FILE = 'UL.npz'
UFG_FILE = 'UFG.npz'
UIF_FILE = 'UIF.npz'
BEST_ITERATION_DIR = 'best_iteration'
ITERATIONS_FILE = 'iterations.tsv'

PAPER = 'paper'
REFERENCE = 'reference'
VARIANTS = (PAPER,REFERENCE)

# training states
IDLE = 'idle'
PREPARING = 'preparing'
ITERATING = 'iterating'
MAX_ITERATIONS_REACHED = 'max_iterations_reached'

SweepStats = namedtuple('SweepStats',['iteration','updates','skipped','trials','faults','seconds'])

def project(v,bound):
    """
    Return v rescaled so that its L2 norm is at most bound.
    """
    norm = np.linalg.norm(v)
    if norm > bound:
        return v*(bound/norm)
    return v

def project_row(matrix,ix,bound):
    """
    Rescale matrix[ix] in place so that its L2 norm is at most bound.
    """
    matrix[ix] = project(matrix[ix],bound)

def project_rows(matrix,bound,start=0,end=None):
    """
    Rescale every row of matrix[start:end] in place so that its L2 norm
    is at most bound.
    """
    rows = matrix[start:end]
    norms = np.linalg.norm(rows,axis=1)
    over = norms > bound
    rows[over] *= (bound/norms[over])[:,np.newaxis]

def incompatible(x_score,x_freq,y_score,y_freq,epsilon):
    """
    True where item y is ranked incorrectly relative to item x: x has
    been visited more often than y, but is not scored at least epsilon
    higher. Scores and frequencies for y can be arrays.
    """
    return np.logical_and(x_freq > y_freq,x_score < y_score+epsilon)

class RankGeoFMDecomposition(object):
    """
    Latent factors of a Rank-GeoFM model along with the matrices
    derived from them.

    Parameters
    ==========
    num_users : int
        Number of users.
    num_items : int
        Number of items.
    d : int
        The embedding dimension.
    random_state : int or numpy.random.RandomState or None
        Seeds the initial factors.
    init : bool
        If False leave the factors unset, e.g. before loading them.

    Attributes
    ==========
    U1 : numpy.ndarray, shape = [num_users, d]
        User preference factors.
    U2 : numpy.ndarray, shape = [num_users, d]
        User factors for geographical influence.
    L1 : numpy.ndarray, shape = [num_items, d]
        Item factors.
    FG : numpy.ndarray, shape = [num_items, d]
        Weighted sum of the L1 factors of each item's neighbours.
    UL : numpy.ndarray, shape = [num_users, num_items]
        U1.L1^T
    UFG : numpy.ndarray, shape = [num_users, num_items]
        U2.FG^T
    """

    def __init__(self,num_users,num_items,d,random_state=None,init=True):
        self.num_users = num_users
        self.num_items = num_items
        self.d = d
        self.U1 = self.U2 = self.L1 = None
        if init:
            self.init_factors(random_state)
        self.FG = self.UL = self.UFG = None

    def init_factors(self,random_state=None):
        # small zero-mean gaussian values
        random_state = check_random_state(random_state)
        self.U1 = random_state.normal(0.0,0.01,(self.num_users,self.d))
        self.U2 = random_state.normal(0.0,0.01,(self.num_users,self.d))
        self.L1 = random_state.normal(0.0,0.01,(self.num_items,self.d))

    def recompute_geo_influence(self,W,neighbors,pool=None):
        """
        Rebuild FG from the current item factors.

        Parameters
        ==========
        W : numpy.ndarray, shape = [num_items, k1]
            Neighbour weights.
        neighbors : numpy.ndarray, shape = [num_items, k1]
            Neighbour rows.
        pool : georec.parallel.pool.WorkerPool
            Pool to spread rows over, run sequentially if not supplied.
        """
        if pool is None:
            pool = WorkerPool(0)
        FG = np.zeros((self.num_items,self.d))
        L1 = self.L1
        def process(start,end):
            # one neighbour column at a time keeps temporaries to rows x d
            rows = FG[start:end]
            for j in range(W.shape[1]):
                rows += W[start:end,j,np.newaxis]*L1[neighbors[start:end,j]]
        pool.map_ranges(process,self.num_items)
        self.FG = FG

    def recompute_scores(self):
        """
        Precompute the dense score matrices UL and UFG.
        """
        self.UL = self.U1.dot(self.L1.T)
        self.UFG = self.U2.dot(self.FG.T)

    def clear_scores(self):
        self.UL = self.UFG = None

    def score(self,u,items):
        """
        Score items for user u, from the precomputed score matrices when
        they are available, otherwise directly from the factors.
        """
        if self.UL is not None and self.UFG is not None:
            return self.UL[u,items]+self.UFG[u,items]
        return self.L1[items].dot(self.U1[u])+self.FG[items].dot(self.U2[u])

    def reconstruct(self,rows=None):
        """
        Scores for all items for the given users, or all users.
        """
        if rows is None:
            if self.UL is not None and self.UFG is not None:
                return self.UL+self.UFG
            return self.U1.dot(self.L1.T)+self.U2.dot(self.FG.T)
        if self.UL is not None and self.UFG is not None:
            return self.UL[rows]+self.UFG[rows]
        return self.U1[rows].dot(self.L1.T)+self.U2[rows].dot(self.FG.T)

    def compute_gradient_step(self,u,i,j,step):
        """
        Compute the new rows from a sampled triple.

        Parameters
        ==========
        u : int
            The sampled user.
        i : int
            The sampled visited item.
        j : int
            The sampled incompatible item i.e. y(u,j)+epsilon is currently
            too large compared to y(u,i).
        step : float
            Learning rate times loss weight.

        Returns
        =======
        u1, u2, l1_pos, l1_neg : numpy.ndarray
            Updated rows of U1[u], U2[u], L1[i] and L1[j].
        """
        u1 = self.U1[u]-step*(self.L1[j]-self.L1[i])
        u2 = self.U2[u]-step*(self.FG[j]-self.FG[i])
        # item steps use the updated user factors
        wu1 = step*u1
        l1_pos = self.L1[i]+wu1
        l1_neg = self.L1[j]-wu1
        return u1,u2,l1_pos,l1_neg

    def apply_update(self,u,i,j,step,C,alpha):
        """
        Take a gradient step and project the four touched rows back onto
        the norm constraints ||U1[u]|| <= C, ||U2[u]|| <= C*alpha,
        ||L1[i]|| <= C, ||L1[j]|| <= C. The factors are left untouched if
        computing or projecting the step fails.
        """
        u1,u2,l1_pos,l1_neg = self.compute_gradient_step(u,i,j,step)
        u1 = project(u1,C)
        u2 = project(u2,C*alpha)
        l1_pos = project(l1_pos,C)
        l1_neg = project(l1_neg,C)
        self.U1[u] = u1
        self.U2[u] = u2
        self.L1[i] = l1_pos
        self.L1[j] = l1_neg

    def copy_factors(self):
        return self.U1.copy(),self.U2.copy(),self.L1.copy()

    def diff(self,factors):
        """
        Total Frobenius norm of the change in U1, U2 and L1 since
        copy_factors() returned factors.
        """
        U1,U2,L1 = factors
        return np.linalg.norm(self.U1-U1)+np.linalg.norm(self.U2-U2)+np.linalg.norm(self.L1-L1)

    def snapshot(self):
        return dict((name,None if m is None else m.copy()) for name,m in self._matrices())

    def restore(self,snapshot):
        for name,m in snapshot.items():
            setattr(self,name,m)

    def _matrices(self):
        return [('U1',self.U1),('U2',self.U2),('L1',self.L1),('FG',self.FG),('UL',self.UL),('UFG',self.UFG)]

    def save(self,modeldir,include_scores=True):
        """
        Save each matrix to its own compressed file in modeldir.

        Parameters
        ==========
        modeldir : str
            Directory to write to, created if necessary.
        include_scores : bool
            If False skip the dense user x item score matrices.
        """
        if not os.path.isdir(modeldir):
            os.makedirs(modeldir)
        files = {'U1':U1_FILE,'U2':U2_FILE,'L1':L1_FILE,'FG':FG_FILE,'UL':UL_FILE,'UFG':UFG_FILE}
        for name,m in self._matrices():
            if m is None or (name in ('UL','UFG') and not include_scores):
                continue
            save_matrix(m,os.path.join(modeldir,files[name]))

    @staticmethod
    def is_cached(modeldir):
        return all(os.path.exists(os.path.join(modeldir,f)) for f in [U1_FILE,U2_FILE,L1_FILE])

    @staticmethod
    def load(modeldir):
        """
        Load a decomposition saved with save(). U1, U2 and L1 are
        mandatory, FG, UL and UFG are restored if present.
        """
        for f in [U1_FILE,U2_FILE,L1_FILE]:
            if not os.path.exists(os.path.join(modeldir,f)):
                raise ConfigurationError('missing model file {0}'.format(os.path.join(modeldir,f)))
        U1 = load_matrix(os.path.join(modeldir,U1_FILE))
        decomposition = RankGeoFMDecomposition(U1.shape[0],0,U1.shape[1],init=False)
        decomposition.U1 = U1
        decomposition.U2 = load_matrix(os.path.join(modeldir,U2_FILE))
        decomposition.L1 = load_matrix(os.path.join(modeldir,L1_FILE))
        decomposition.num_items = decomposition.L1.shape[0]
        for name,f in [('FG',FG_FILE),('UL',UL_FILE),('UFG',UFG_FILE)]:
            path = os.path.join(modeldir,f)
            if os.path.exists(path):
                setattr(decomposition,name,load_matrix(path))
        return decomposition

class RankGeoFM(object):
    """
    Learn Rank-GeoFM latent factors from positive-only POI feedback.

    Parameters
    ==========
    d : int
        Embedding dimension K.
    k1 : int
        Number of geographical neighbours of each POI, at least d.
    epsilon : float
        Margin by which a more visited POI should outscore a less visited one.
    C : float
        Bound on the L2 norm of the rows of U1 and L1.
    gamma : float
        Learning rate.
    alpha : float
        The rows of U2 are bounded by C*alpha, balancing user preference
        against geographical influence.
    max_iters : int
        Number of sweeps over the training data.
    variant : 'reference' or 'paper' (default: 'reference')
        How to weight each update:
        reference - weight is the harmonic loss L(r) of the estimated rank r
        paper - L(r) multiplied by d(s)=s(1-s) where s=sigmoid(y(u,j)+epsilon-y(u,i)),
        the derivative of the smoothed ranking indicator.
        Both variants apply the same update equations.
    seed : int or None
        Seed for the initial factors, the order of each sweep and the
        negative sampling.
    num_workers : int or None
        Workers for per-row preprocessing, default is 95% of the cores,
        0 to run sequentially.
    modeldir : str or None
        Directory for cached preprocessing and the trained matrices.
    sample_block : int
        Number of candidate negatives drawn and checked at a time.

    Attributes
    ==========
    decomposition_ : RankGeoFMDecomposition
        The learned factors.
    index_ : georec.geo.neighbors.GeoNeighborIndex
        Geographic neighbours and weights.
    uif_ : scipy.sparse.csr_matrix
        User-item visit counts.
    history_ : list of SweepStats
        Statistics for each sweep.
    diffs_ : list of float
        Change in the factors during each sweep.
    faults_ : list of georec.exceptions.PairFault
        Updates that failed and were skipped.
    validation_history_ : list of (iteration,prec,recall)
        Validation results before each sweep.
    best_iteration_ : int or None
        Iteration with the best validation precision.
    """

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
                 modeldir=None,
                 sample_block=64):
        if variant not in VARIANTS:
            raise ValueError('invalid variant {0}, must be one of {1}'.format(variant,VARIANTS))
        if d <= 0 or k1 <= 0 or max_iters < 0 or sample_block <= 0:
            raise ValueError('d, k1 and sample_block must be positive and max_iters non-negative')
        if C <= 0 or alpha <= 0 or gamma <= 0:
            raise ValueError('C, alpha and gamma must be positive')
        if k1 < d:
            raise ConfigurationError('k1={0} must be at least d={1}'.format(k1,d))
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
        self.sample_block = sample_block
        self.state_ = IDLE

    def __str__(self):
        return 'RankGeoFM(d={0},k1={1},epsilon={2},C={3},gamma={4},alpha={5},max_iters={6},variant={7},seed={8})'.format(
            self.d,self.k1,self.epsilon,self.C,self.gamma,self.alpha,self.max_iters,self.variant,self.seed)

    def fit(self,train,pois,validation=None):
        """
        Learn factors from the training feedback.

        Parameters
        ==========
        train : georec.data.Feedback
            Training records, item rows must follow the POIs in ascending id order.
        pois : list of georec.data.POI
            All the items with their coordinates.
        validation : dict
            Optional mapping of user -> held-out items. If supplied then
            prec@10 is measured before each sweep and the factors with the
            best precision are kept.

        Returns
        =======
        self : object
            This model itself.
        """
        if train is None:
            raise ConfigurationError('training feedback can not be None')
        if len(train) == 0:
            raise ConfigurationError('training feedback can not be empty')
        self.state_ = PREPARING
        random_state = check_random_state(self.seed)
        with WorkerPool(self.num_workers) as pool:
            logging.info('%d users, %d items, %d training records',train.num_users,train.num_items,len(train))
            self.index_ = GeoNeighborIndex(self.k1,self.d).build(pois,pool,self.modeldir)
            if self.index_.num_items != train.num_items:
                raise ConfigurationError('feedback has {0} items but there are {1} POIs'.format(train.num_items,self.index_.num_items))
            self.uif_ = self.create_frequency_matrix(train)
            decomposition = self.create_decomposition(train.num_users,train.num_items,random_state)
            self.precompute_loss_weights(train.num_items)

            self.history_ = []
            self.diffs_ = []
            self.faults_ = []
            self.validation_history_ = []
            self.best_iteration_ = None
            self.state_ = ITERATING
            best = self._fit(decomposition,train,validation,random_state,pool)
            self.state_ = MAX_ITERATIONS_REACHED

        self.decomposition_ = decomposition
        if self.modeldir is not None:
            logging.info('saving model to %s',self.modeldir)
            decomposition.save(self.modeldir)
            if self.validation_history_:
                self.save_validation_history(os.path.join(self.modeldir,ITERATIONS_FILE))
        if best is not None:
            logging.info('keeping factors from iteration %d with prec@10 = %.4f',self.best_iteration_,self.best_precision_)
            decomposition.restore(best)
            if self.modeldir is not None:
                decomposition.save(os.path.join(self.modeldir,BEST_ITERATION_DIR))
        return self

    def _fit(self,decomposition,train,validation,random_state,pool):
        best = None
        self.best_precision_ = 0.0
        for it in range(self.max_iters):
            t = time.time()
            self.recompute(decomposition,pool)
            if validation:
                metrics = self.estimate_precision(decomposition,validation)
                prec,recall = metrics['prec@10'],metrics['recall@10']
                self.validation_history_.append((it,prec,recall))
                logging.info('iteration=%d, @10, pre=%.4f, recall=%.4f',it,prec,recall)
                if prec > self.best_precision_:
                    self.best_precision_ = prec
                    self.best_iteration_ = it
                    best = decomposition.snapshot()
            factors = decomposition.copy_factors()
            stats = self.sweep(decomposition,train,random_state,it)
            diff = decomposition.diff(factors)
            stats = stats._replace(seconds=time.time()-t)
            self.history_.append(stats)
            self.diffs_.append(diff)
            logging.info('iteration %d - latent diffs: %f, %d updates, %d skipped, %d faults, %.1f seconds',
                         it,diff,stats.updates,stats.skipped,stats.faults,stats.seconds)
        # leave the scores consistent with the final factors
        self.recompute(decomposition,pool)
        return best

    def recompute(self,decomposition,pool):
        """
        Project U2 onto its norm constraint, then rebuild FG and the
        score matrices from the current factors.
        """
        bound = self.C*self.alpha
        def process(start,end):
            project_rows(decomposition.U2,bound,start,end)
        pool.map_ranges(process,decomposition.num_users)
        decomposition.recompute_geo_influence(self.index_.W,self.index_.neighbors,pool)
        decomposition.recompute_scores()

    def create_frequency_matrix(self,train):
        if self.modeldir is not None:
            uiffile = os.path.join(self.modeldir,UIF_FILE)
            if os.path.exists(uiffile):
                logging.info('loading user-item frequency matrix')
                uif = load_frequency_matrix(uiffile)
                if uif.shape != train.shape:
                    raise ConfigurationError('cached user-item frequency matrix has shape {0}, expected {1}'.format(uif.shape,train.shape))
                return uif
        logging.info('creating user-item frequency matrix')
        uif = frequency_matrix(train)
        if self.modeldir is not None:
            if not os.path.isdir(self.modeldir):
                os.makedirs(self.modeldir)
            savez(uif.tocoo(),os.path.join(self.modeldir,UIF_FILE))
        return uif

    def create_decomposition(self,num_users,num_items,random_state):
        if self.modeldir is not None and RankGeoFMDecomposition.is_cached(self.modeldir):
            logging.info('loading latent factors matrix')
            decomposition = RankGeoFMDecomposition.load(self.modeldir)
            expected = [(num_users,self.d),(num_users,self.d),(num_items,self.d)]
            actual = [decomposition.U1.shape,decomposition.U2.shape,decomposition.L1.shape]
            if actual != expected:
                raise ConfigurationError('cached factors have shapes {0}, expected {1}'.format(actual,expected))
            return decomposition
        logging.info('creating latent factors matrix')
        return RankGeoFMDecomposition(num_users,num_items,self.d,random_state)

    def precompute_loss_weights(self,num_items):
        """
        Precompute the loss weight for each possible rank estimate:

            L(r) = \\sum_{i=1}^{r} 1/i
        """
        self.loss_weights = np.zeros(max(num_items,1))
        if num_items > 1:
            self.loss_weights[1:] = np.cumsum(1.0/np.arange(1,num_items))

    def estimate_loss_weight(self,num_items,trials):
        estimated_rank = (num_items-1)//trials
        return self.loss_weights[estimated_rank]

    def compute_step_weight(self,x_score,y_score,num_items,trials):
        eta = self.estimate_loss_weight(num_items,trials)
        if self.variant == PAPER:
            s = expit(y_score+self.epsilon-x_score)
            eta *= s*(1-s)
        return eta

    def sample(self,decomposition,u,i,random_state):
        """
        Draw items uniformly at random until one is found that is
        incompatible with the visited item i for user u, giving up
        after num_items attempts.

        Returns
        =======
        j : int or None
            The incompatible item, or None if none was found.
        trials : int
            Number of items drawn.
        x_score : float
            Current score of i.
        y_score : float or None
            Current score of j.
        """
        num_items = decomposition.num_items
        x_score = decomposition.score(u,i)
        x_freq = user_frequencies(self.uif_,u,[i])[0]
        trials = 0
        while trials < num_items:
            block = min(self.sample_block,num_items-trials)
            candidates = random_state.randint(0,num_items,block)
            y_score = decomposition.score(u,candidates)
            y_freq = user_frequencies(self.uif_,u,candidates)
            found = np.flatnonzero(incompatible(x_score,x_freq,y_score,y_freq,self.epsilon))
            if found.size:
                ix = found[0]
                return int(candidates[ix]),trials+ix+1,x_score,y_score[ix]
            trials += block
        return None,trials,x_score,None

    def sweep(self,decomposition,train,random_state,it=0):
        """
        Make one pass of sgd updates over a random permutation of the
        training records. Scores are read from the score matrices
        computed before the sweep.

        Returns
        =======
        stats : SweepStats
        """
        updates = skipped = tot_trials = faults = 0
        for index in random_state.permutation(len(train)):
            u = train.users[index]
            i = train.items[index]
            j = None
            try:
                with np.errstate(over='raise',invalid='raise'):
                    j,trials,x_score,y_score = self.sample(decomposition,u,i,random_state)
                    tot_trials += trials
                    if j is None:
                        skipped += 1
                        continue
                    eta = self.compute_step_weight(x_score,y_score,decomposition.num_items,trials)
                    decomposition.apply_update(u,i,j,self.gamma*eta,self.C,self.alpha)
                    updates += 1
            except (FloatingPointError,IndexError,ValueError) as e:
                fault = PairFault(it,int(index),int(u),int(i),j,str(e))
                logging.warning('skipping update for record %d - user: %d - item: %d - candidate: %s: %s',
                                fault.index,fault.user,fault.item,fault.candidate,fault.error)
                self.faults_.append(fault)
                faults += 1
        return SweepStats(it,updates,skipped,tot_trials,faults,0.0)

    def estimate_precision(self,decomposition,validation,k=10):
        """
        Compute prec@k and recall@k for the validation users, ranking
        all items except those each user visited in training.
        """
        users = list(validation.keys())
        r = exclude_known_items(decomposition.reconstruct(users),self.uif_[users])
        return evaluate_ranking(r,validation,k)

    def save_validation_history(self,filepath):
        with open(filepath,'w') as out:
            for it,prec,recall in self.validation_history_:
                out.write('{0}\t{1}\t{2}\n'.format(it,prec,recall))
