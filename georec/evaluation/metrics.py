"""
Metrics to check ranking quality on held-out items during training:
* prec@k and recall@k, following the usual top-k POI recommendation protocol
"""

import numpy as np

def evaluate_ranking(predictions,validation,k=10):
    """
    Compute mean prec@k and recall@k for a set of users.

    Parameters
    ==========
    predictions : numpy.ndarray, shape = [len(validation), num_items]
        Predicted scores for each validation user in the iteration order
        of validation, with known training items already set to -inf.
    validation : dict
        Mapping of user -> held-out items.
    k : int
        Cutoff rank.

    Returns
    =======
    metrics : dict
        'prec@k' and 'recall@k' averaged over users with held-out items.
    """
    precs = []
    recalls = []
    for ru,(u,actual) in zip(predictions,validation.items()):
        if len(actual) == 0:
            continue
        top = np.argsort(-ru,kind='stable')[:k]
        predicted = [i for i in top if np.isfinite(ru[i])]
        precs.append(prec(predicted,actual,k))
        recalls.append(recall(predicted,actual,k))
    if not precs:
        return {'prec@{0}'.format(k):0.0,'recall@{0}'.format(k):0.0}
    return {'prec@{0}'.format(k):float(np.mean(precs)),
            'recall@{0}'.format(k):float(np.mean(recalls))}

# individual metrics

def prec(predicted,true,k,ignore_missing=False):
    """
    Compute precision@k.

    Parameters
    ==========
    predicted : array like
        Predicted items.
    true : array like
        True items.
    k : int
        Measure precision@k.
    ignore_missing : boolean (default: False)
        If True then measure precision only up to rank len(predicted)
        even if this is less than k, otherwise assume that the missing
        predictions were all incorrect

    Returns
    =======
    prec@k : float
        Precision at k.
    """
    if len(predicted) == 0:
        return 0
    correct = len(set(predicted[:k]).intersection(set(true)))
    num_predicted = k
    if len(predicted) < k and ignore_missing:
        num_predicted = len(predicted)
    return float(correct)/num_predicted

def recall(predicted,true,k):
    """
    Compute recall@k.

    Parameters
    ==========
    predicted : array like
        Predicted items.
    true : array like
        True items.
    k : int
        Measure recall@k.

    Returns
    =======
    recall@k : float
        Proportion of true items found in the top k predictions.
    """
    if len(true) == 0:
        raise ValueError('can only evaluate recall with at least 1 true item')
    correct = len(set(predicted[:k]).intersection(set(true)))
    return float(correct)/len(set(true))
